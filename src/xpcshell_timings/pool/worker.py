"""Worker loop shared by the process and thread backends."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

from xpcshell_timings.models import TaskDescriptor
from xpcshell_timings.pool.messages import (
    AssignJob,
    CoordinatorMessage,
    JobCompleted,
    ShutdownWorker,
    WorkerFailed,
    WorkerFinished,
    WorkerMessage,
    WorkerReady,
)

logger = logging.getLogger(__name__)

JobProcessor = Callable[[TaskDescriptor], object | None]


class Channel(Protocol):
    """The subset of ``queue.Queue`` / ``multiprocessing.Queue`` the pool uses."""

    def put(self, item: object) -> None: ...

    def get(self, block: bool = True, timeout: float | None = None) -> object: ...


def run_worker(
    worker_id: int,
    processor: JobProcessor,
    inbox: Channel,
    outbox: Channel,
) -> None:
    """Pull jobs from ``inbox`` until shutdown, reporting each completion."""

    jobs_processed = 0
    try:
        outbox.put(WorkerReady(worker_id=worker_id))
        while True:
            message: CoordinatorMessage = inbox.get()  # type: ignore[assignment]
            if isinstance(message, ShutdownWorker):
                break
            if not isinstance(message, AssignJob):
                raise TypeError(f"Unexpected message for worker {worker_id}: {message!r}")
            result = processor(message.descriptor)
            jobs_processed += 1
            reply: WorkerMessage = JobCompleted(worker_id=worker_id, result=result)
            outbox.put(reply)
        outbox.put(WorkerFinished(worker_id=worker_id, jobs_processed=jobs_processed))
    except Exception as exc:  # noqa: BLE001
        logger.debug("Worker %d failed", worker_id, exc_info=True)
        outbox.put(WorkerFailed(worker_id=worker_id, error=f"{type(exc).__name__}: {exc}"))
