"""Closed set of messages exchanged between the coordinator and its workers."""

from __future__ import annotations

from dataclasses import dataclass

from xpcshell_timings.models import TaskDescriptor


@dataclass(frozen=True, slots=True)
class AssignJob:
    """Coordinator → worker: process one descriptor."""

    descriptor: TaskDescriptor


@dataclass(frozen=True, slots=True)
class ShutdownWorker:
    """Coordinator → worker: the queue is exhausted."""


@dataclass(frozen=True, slots=True)
class WorkerReady:
    """Worker → coordinator: ready for the first job."""

    worker_id: int


@dataclass(frozen=True, slots=True)
class JobCompleted:
    """Worker → coordinator: one job done; ``result`` is ``None`` when skipped."""

    worker_id: int
    result: object | None


@dataclass(frozen=True, slots=True)
class WorkerFinished:
    """Worker → coordinator: shutdown acknowledged."""

    worker_id: int
    jobs_processed: int


@dataclass(frozen=True, slots=True)
class WorkerFailed:
    """Worker → coordinator: uncaught error; fatal to the batch."""

    worker_id: int
    error: str


CoordinatorMessage = AssignJob | ShutdownWorker
WorkerMessage = WorkerReady | JobCompleted | WorkerFinished | WorkerFailed
