"""Worker pool coordinating concurrent artifact processing."""

from xpcshell_timings.pool.coordinator import (
    ProgressReporter,
    WorkerPool,
    WorkerPoolError,
    format_progress,
)
from xpcshell_timings.pool.worker import JobProcessor, run_worker

__all__ = [
    "JobProcessor",
    "ProgressReporter",
    "WorkerPool",
    "WorkerPoolError",
    "format_progress",
    "run_worker",
]
