"""Fold per-job test runs into the compact columnar dataset."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

from xpcshell_timings.common import utc_now
from xpcshell_timings.encoding.tables import (
    CRASH_STATUS,
    SKIP_STATUS,
    StatusGroup,
    StringTable,
    PathNameIndex,
)
from xpcshell_timings.models import UNKNOWN_STATUS, JobResult

TABLE_NAMES = (
    "jobNames",
    "testPaths",
    "testNames",
    "repositories",
    "statuses",
    "taskIds",
    "messages",
    "crashSignatures",
)


def split_test_path(full_path: str) -> tuple[str, str]:
    """Split at the final ``/``; a bare file name has an empty directory."""

    directory, separator, name = full_path.rpartition("/")
    if not separator:
        return "", full_path
    return directory, name


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


class DatasetEncoder:
    """Single-use accumulator for one encoding pass.

    ``testRuns`` is kept as a mapping keyed by ``(test_id, status_id)`` so a
    combination that never occurred is simply absent; it only becomes a
    ``None`` hole when the nested JSON lists are materialized.
    """

    def __init__(self) -> None:
        self.tables: dict[str, StringTable] = {name: StringTable() for name in TABLE_NAMES}
        self.tests = PathNameIndex()
        self.task_repository_ids: list[int] = []
        self.task_job_name_ids: list[int] = []
        self.groups: dict[tuple[int, int], StatusGroup] = {}
        self._built = False

    @property
    def run_count(self) -> int:
        return sum(len(group) for group in self.groups.values())

    def intern(self, table: str, value: str) -> int:
        return self.tables[table].intern(value)

    def add_jobs(self, results: Iterable[JobResult]) -> None:
        for result in results:
            self.add_job(result)

    def add_job(self, result: JobResult) -> None:
        if self._built:
            raise RuntimeError("Encoder already built; start a new pass.")

        job_name_id = self.intern("jobNames", result.job_name)
        repository_id = self.intern("repositories", result.repository)
        task_id_id = self.intern("taskIds", result.task_token)
        if task_id_id == len(self.task_repository_ids):
            self.task_repository_ids.append(repository_id)
            self.task_job_name_ids.append(job_name_id)

        for event in result.events:
            test_path, test_name = split_test_path(event.path)
            test_id = self.tests.test_id(
                self.intern("testPaths", test_path),
                self.intern("testNames", test_name),
            )
            status = event.status or UNKNOWN_STATUS
            status_id = self.intern("statuses", status)

            group = self.groups.get((test_id, status_id))
            if group is None:
                group = StatusGroup.for_status(status)
                self.groups[(test_id, status_id)] = group

            message_id = None
            if status == SKIP_STATUS and event.message:
                message_id = self.intern("messages", event.message)
            crash_signature_id = None
            if status == CRASH_STATUS and event.crash_signature:
                crash_signature_id = self.intern("crashSignatures", event.crash_signature)

            group.append(
                task_id_id=task_id_id,
                duration=round_half_up(event.duration_ms),
                timestamp=event.timestamp_ms,
                message_id=message_id,
                crash_signature_id=crash_signature_id,
                minidump=event.minidump or None,
            )

    def build(self, *, start_time: int) -> dict[str, object]:
        """Delta-encode every group and materialize the JSON-ready sections."""

        if self._built:
            raise RuntimeError("Encoder already built; start a new pass.")
        self._built = True

        test_runs: list[list[dict[str, object] | None]] = [[] for _ in range(len(self.tests))]
        for (test_id, status_id), group in sorted(self.groups.items()):
            group.compress(start_time=start_time)
            row = test_runs[test_id]
            row.extend([None] * (status_id + 1 - len(row)))
            row[status_id] = group.as_json()

        return {
            "tables": {name: table.values for name, table in self.tables.items()},
            "taskInfo": {
                "repositoryIds": self.task_repository_ids,
                "jobNameIds": self.task_job_name_ids,
            },
            "testInfo": {
                "testPathIds": self.tests.test_path_ids,
                "testNameIds": self.tests.test_name_ids,
            },
            "testRuns": test_runs,
        }


def encode_dataset(
    results: list[JobResult],
    *,
    start_time: int,
    job_count: int,
    metadata: Mapping[str, object] | None = None,
    generated_at: datetime | None = None,
) -> dict[str, object] | None:
    """Encode job results; ``None`` when no test run was extracted at all."""

    encoder = DatasetEncoder()
    encoder.add_jobs(results)
    if encoder.run_count == 0:
        return None

    body = encoder.build(start_time=start_time)
    return {
        "metadata": {
            **(metadata or {}),
            "startTime": start_time,
            "generatedAt": iso_timestamp(generated_at or utc_now()),
            "jobCount": job_count,
            "processedJobCount": len(results),
        },
        **body,
    }


def iso_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with milliseconds and a ``Z`` suffix."""

    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(slots=True)
class DatasetStats:
    """Headline counts of an encoded dataset."""

    tests: int
    runs: int
    tasks: int
    job_names: int
    statuses: int

    @classmethod
    def from_dataset(cls, dataset: Mapping[str, object]) -> DatasetStats:
        tables: dict[str, list[str]] = dataset["tables"]  # type: ignore[assignment]
        test_runs: list[list[dict[str, list[int]] | None]] = dataset["testRuns"]  # type: ignore[assignment]
        return cls(
            tests=len(test_runs),
            runs=sum(
                len(group["taskIdIds"]) for row in test_runs for group in row if group is not None
            ),
            tasks=len(tables["taskIds"]),
            job_names=len(tables["jobNames"]),
            statuses=len(tables["statuses"]),
        )
