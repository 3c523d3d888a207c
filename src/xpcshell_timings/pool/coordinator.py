"""Pull-based worker pool that spreads job descriptors over a fixed set of workers."""

from __future__ import annotations

import logging
import multiprocessing
import queue
import threading
import time
from collections import deque
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from xpcshell_timings.config import default_worker_count
from xpcshell_timings.models import TaskDescriptor
from xpcshell_timings.pool.messages import (
    AssignJob,
    JobCompleted,
    ShutdownWorker,
    WorkerFailed,
    WorkerFinished,
    WorkerMessage,
    WorkerReady,
)
from xpcshell_timings.pool.worker import Channel, JobProcessor, run_worker

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

# Polls in a row a worker may spend dead with exit code 0 before its
# shutdown acknowledgment is considered lost.
_SILENT_EXIT_POLLS = 2


class WorkerPoolError(RuntimeError):
    """A worker failed; the whole batch is aborted."""


class _WorkerHandle(Protocol):
    @property
    def exitcode(self) -> int | None: ...

    def is_alive(self) -> bool: ...

    def join(self, timeout: float | None = None) -> None: ...

    def terminate(self) -> None: ...


class _ThreadHandle:
    """Gives a thread the subset of the ``multiprocessing.Process`` API the pool needs."""

    def __init__(self, thread: threading.Thread) -> None:
        self._thread = thread

    @property
    def exitcode(self) -> int | None:
        return None if self._thread.is_alive() else 0

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def join(self, timeout: float | None = None) -> None:
        self._thread.join(timeout)

    def terminate(self) -> None:
        """Threads cannot be killed; they are daemons and exit on shutdown."""


class _ProcessBackend:
    def __init__(self, start_method: str | None = None) -> None:
        self._context = multiprocessing.get_context(start_method)

    def channel(self) -> Channel:
        return self._context.Queue()

    def start(
        self,
        worker_id: int,
        processor: JobProcessor,
        inbox: Channel,
        outbox: Channel,
    ) -> _WorkerHandle:
        process = self._context.Process(
            target=run_worker,
            args=(worker_id, processor, inbox, outbox),
            name=f"profile-worker-{worker_id}",
            daemon=True,
        )
        process.start()
        return process

    def close(self, channel: Channel) -> None:
        channel.close()  # type: ignore[attr-defined]
        channel.cancel_join_thread()  # type: ignore[attr-defined]


class _ThreadBackend:
    def channel(self) -> Channel:
        return queue.Queue()

    def start(
        self,
        worker_id: int,
        processor: JobProcessor,
        inbox: Channel,
        outbox: Channel,
    ) -> _WorkerHandle:
        thread = threading.Thread(
            target=run_worker,
            args=(worker_id, processor, inbox, outbox),
            name=f"profile-worker-{worker_id}",
            daemon=True,
        )
        thread.start()
        return _ThreadHandle(thread)

    def close(self, channel: Channel) -> None:
        pass


@dataclass(slots=True)
class _WorkerState:
    worker_id: int
    handle: _WorkerHandle
    inbox: Channel
    jobs_processed: int = 0
    finished: bool = False
    silent_exit_polls: int = 0


class ProgressReporter:
    """Forwards completion counts at most once per interval, plus first and last."""

    def __init__(
        self,
        total: int,
        callback: ProgressCallback,
        *,
        interval_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.total = total
        self.completed = 0
        self._callback = callback
        self._interval_seconds = interval_seconds
        self._clock = clock
        self._last_report: float | None = None

    def job_completed(self) -> None:
        self.completed += 1
        now = self._clock()
        if (
            self.completed == 1
            or self.completed == self.total
            or self._last_report is None
            or now - self._last_report >= self._interval_seconds
        ):
            self._callback(self.completed, self.total)
            self._last_report = now


def format_progress(completed: int, total: int) -> str:
    """Render `` 42% 21/50`` with columns stable across one batch."""

    percentage = int(completed * 100 / total + 0.5) if total else 100
    return f" {percentage:>3}% {completed:>{len(str(total))}}/{total}"


def _log_progress(completed: int, total: int) -> None:
    logger.info(format_progress(completed, total))


class WorkerPool:
    """Runs ``processor`` over descriptors on ``worker_count`` concurrent workers.

    Workers request work as they become free, so a slow cold fetch never holds
    back jobs queued behind it. Results are returned in completion order;
    ``None`` results mark skipped jobs and are dropped. Any worker failure
    aborts the batch with :class:`WorkerPoolError`.
    """

    def __init__(  # noqa: PLR0913
        self,
        processor: JobProcessor,
        worker_count: int | None = None,
        *,
        backend: str = "process",
        start_method: str | None = None,
        on_progress: ProgressCallback | None = None,
        progress_interval_seconds: float = 1.0,
        poll_interval_seconds: float = 0.5,
        join_timeout_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if worker_count is not None and worker_count <= 0:
            raise ValueError("worker_count must be > 0.")
        if backend == "process":
            self._backend: _ProcessBackend | _ThreadBackend = _ProcessBackend(start_method)
        elif backend == "thread":
            self._backend = _ThreadBackend()
        else:
            raise ValueError(f"Unknown worker backend: {backend!r}")
        self.processor = processor
        self.worker_count = worker_count or default_worker_count()
        self.on_progress = on_progress or _log_progress
        self.progress_interval_seconds = progress_interval_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.join_timeout_seconds = join_timeout_seconds
        self._clock = clock

    def run(self, descriptors: Sequence[TaskDescriptor]) -> list[object]:
        total = len(descriptors)
        if total == 0:
            return []

        worker_count = min(self.worker_count, total)
        logger.info("Processing %d jobs using %d workers", total, worker_count)
        pending: deque[TaskDescriptor] = deque(descriptors)
        results: list[object] = []
        progress = ProgressReporter(
            total,
            self.on_progress,
            interval_seconds=self.progress_interval_seconds,
            clock=self._clock,
        )
        outbox = self._backend.channel()
        workers: dict[int, _WorkerState] = {}

        try:
            for worker_id in range(1, worker_count + 1):
                inbox = self._backend.channel()
                handle = self._backend.start(worker_id, self.processor, inbox, outbox)
                workers[worker_id] = _WorkerState(worker_id=worker_id, handle=handle, inbox=inbox)

            finished = 0
            while finished < worker_count:
                try:
                    message: WorkerMessage = outbox.get(  # type: ignore[assignment]
                        timeout=self.poll_interval_seconds,
                    )
                except queue.Empty:
                    self._check_liveness(workers.values())
                    continue

                state = workers[message.worker_id]
                if isinstance(message, WorkerReady):
                    self._assign_next(state, pending)
                elif isinstance(message, JobCompleted):
                    state.jobs_processed += 1
                    if message.result is not None:
                        results.append(message.result)
                    progress.job_completed()
                    self._assign_next(state, pending)
                elif isinstance(message, WorkerFinished):
                    state.finished = True
                    finished += 1
                    logger.debug(
                        "Worker %d finished processing %d jobs",
                        state.worker_id,
                        message.jobs_processed,
                    )
                elif isinstance(message, WorkerFailed):
                    raise WorkerPoolError(f"Worker {state.worker_id} error: {message.error}")
                else:
                    raise WorkerPoolError(f"Unexpected worker message: {message!r}")
        finally:
            self._stop(workers.values())
            self._backend.close(outbox)

        logger.debug("All workers completed processing")
        return results

    def _assign_next(self, state: _WorkerState, pending: deque[TaskDescriptor]) -> None:
        if pending:
            state.inbox.put(AssignJob(descriptor=pending.popleft()))
        else:
            state.inbox.put(ShutdownWorker())

    def _check_liveness(self, states: Iterable[_WorkerState]) -> None:
        for state in states:
            if state.finished:
                continue
            exitcode = state.handle.exitcode
            if exitcode is None:
                continue
            if exitcode != 0:
                raise WorkerPoolError(f"Worker {state.worker_id} stopped with exit code {exitcode}")
            state.silent_exit_polls += 1
            if state.silent_exit_polls >= _SILENT_EXIT_POLLS:
                raise WorkerPoolError(
                    f"Worker {state.worker_id} exited without acknowledging shutdown",
                )

    def _stop(self, states: Iterable[_WorkerState]) -> None:
        states = list(states)
        for state in states:
            if not state.finished and state.handle.is_alive():
                state.inbox.put(ShutdownWorker())
                state.handle.terminate()
        for state in states:
            state.handle.join(timeout=self.join_timeout_seconds)
            self._backend.close(state.inbox)
