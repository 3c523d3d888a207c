"""Domain models for task descriptors, test runs, and resource usage."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from xpcshell_timings.common import to_epoch_seconds

UNKNOWN_STATUS = "UNKNOWN"
CPU_BUCKET_COUNT = 10


@dataclass(frozen=True, slots=True)
class TaskDescriptor:
    """One attempted test-execution job, identified by ``(task_id, retry_id)``."""

    task_id: str
    job_name: str
    repository: str
    start_time: str | int | float
    retry_id: int = 0

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> TaskDescriptor:
        """Build a descriptor from a job-listing row."""

        retry_id = payload.get("retry_id")
        return cls(
            task_id=str(payload["task_id"]),
            job_name=str(payload.get("name") or ""),
            repository=str(payload.get("repository") or ""),
            start_time=payload.get("start_time") or 0,  # type: ignore[arg-type]
            retry_id=int(retry_id) if retry_id is not None else 0,  # type: ignore[arg-type]
        )

    @property
    def key(self) -> tuple[str, int]:
        return (self.task_id, self.retry_id)

    def start_time_epoch(self) -> int:
        return to_epoch_seconds(self.start_time)


@dataclass(frozen=True, slots=True)
class RunEvent:
    """One observed execution of one test within one job."""

    path: str
    status: str
    duration_ms: float
    timestamp_ms: float
    message: str | None = None
    crash_signature: str | None = None
    minidump: str | None = None


@dataclass(frozen=True, slots=True)
class MachineInfo:
    """Hardware description reported by the profiler."""

    logical_cpus: int
    physical_cpus: int | None = None
    main_memory_bytes: int | None = None


@dataclass(frozen=True, slots=True)
class ResourceUsageSummary:
    """Per-job CPU and memory aggregate derived from profile markers."""

    machine: MachineInfo
    max_memory_bytes: int
    idle_time_ms: float
    single_core_time_ms: float
    cpu_buckets: tuple[float, ...] = (0.0,) * CPU_BUCKET_COUNT

    def as_record(self) -> dict[str, object]:
        return {
            "logicalCPUs": self.machine.logical_cpus,
            "physicalCPUs": self.machine.physical_cpus,
            "mainMemory": self.machine.main_memory_bytes,
            "maxMemory": self.max_memory_bytes,
            "idleTime": round(self.idle_time_ms),
            "singleCoreTime": round(self.single_core_time_ms),
            "cpuBuckets": [round(value) for value in self.cpu_buckets],
        }


@dataclass(slots=True)
class JobResult:
    """Extraction output for one job that produced at least one test run."""

    job_name: str
    task_id: str
    retry_id: int
    repository: str
    start_time: str | int | float
    events: list[RunEvent] = field(default_factory=list)
    resource_usage: ResourceUsageSummary | None = None

    @property
    def task_token(self) -> str:
        return f"{self.task_id}.{self.retry_id}"
