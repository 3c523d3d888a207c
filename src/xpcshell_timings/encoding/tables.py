"""Interning tables and per-(test, status) run columns."""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import accumulate

SKIP_STATUS = "SKIP"
CRASH_STATUS = "CRASH"


class StringTable:
    """Append-only string to id mapping.

    Ids are assigned in first-seen order and never change during one
    encoding pass, so identical input iteration yields identical tables.
    """

    __slots__ = ("_ids", "values")

    def __init__(self) -> None:
        self.values: list[str] = []
        self._ids: dict[str, int] = {}

    def intern(self, value: str) -> int:
        index = self._ids.get(value)
        if index is None:
            index = len(self.values)
            self.values.append(value)
            self._ids[value] = index
        return index

    def id_of(self, value: str) -> int | None:
        return self._ids.get(value)

    def __len__(self) -> int:
        return len(self.values)

    def __contains__(self, value: object) -> bool:
        return value in self._ids


class PathNameIndex:
    """Dense ``test_id`` for each distinct ``(test_path_id, test_name_id)`` pair."""

    __slots__ = ("_ids", "test_name_ids", "test_path_ids")

    def __init__(self) -> None:
        self.test_path_ids: list[int] = []
        self.test_name_ids: list[int] = []
        self._ids: dict[tuple[int, int], int] = {}

    def test_id(self, test_path_id: int, test_name_id: int) -> int:
        key = (test_path_id, test_name_id)
        test_id = self._ids.get(key)
        if test_id is None:
            test_id = len(self.test_path_ids)
            self.test_path_ids.append(test_path_id)
            self.test_name_ids.append(test_name_id)
            self._ids[key] = test_id
        return test_id

    def __len__(self) -> int:
        return len(self.test_path_ids)


@dataclass(slots=True)
class StatusGroup:
    """Parallel run columns for one test under one status.

    The optional side channels are chosen once, from the status, when the
    group is created: ``SKIP`` groups carry ``message_ids`` and ``CRASH``
    groups carry ``crash_signature_ids`` and ``minidumps``.
    """

    task_id_ids: list[int] = field(default_factory=list)
    durations: list[int] = field(default_factory=list)
    timestamps: list[float] = field(default_factory=list)
    message_ids: list[int | None] | None = None
    crash_signature_ids: list[int | None] | None = None
    minidumps: list[str | None] | None = None

    @classmethod
    def for_status(cls, status: str) -> StatusGroup:
        if status == SKIP_STATUS:
            return cls(message_ids=[])
        if status == CRASH_STATUS:
            return cls(crash_signature_ids=[], minidumps=[])
        return cls()

    def __len__(self) -> int:
        return len(self.task_id_ids)

    def append(  # noqa: PLR0913
        self,
        *,
        task_id_id: int,
        duration: int,
        timestamp: float,
        message_id: int | None = None,
        crash_signature_id: int | None = None,
        minidump: str | None = None,
    ) -> None:
        self.task_id_ids.append(task_id_id)
        self.durations.append(duration)
        self.timestamps.append(timestamp)
        if self.message_ids is not None:
            self.message_ids.append(message_id)
        if self.crash_signature_ids is not None:
            self.crash_signature_ids.append(crash_signature_id)
        if self.minidumps is not None:
            self.minidumps.append(minidump)

    def compress(self, *, start_time: int) -> None:
        """Rebase millisecond timestamps to seconds, sort, and delta-encode in place."""

        relative = [int(timestamp // 1000) - start_time for timestamp in self.timestamps]
        order = sorted(range(len(relative)), key=relative.__getitem__)

        previous = 0
        deltas: list[float] = []
        for index in order:
            deltas.append(relative[index] - previous)
            previous = relative[index]

        self.timestamps = deltas
        self.task_id_ids = [self.task_id_ids[index] for index in order]
        self.durations = [self.durations[index] for index in order]
        if self.message_ids is not None:
            self.message_ids = [self.message_ids[index] for index in order]
        if self.crash_signature_ids is not None:
            self.crash_signature_ids = [self.crash_signature_ids[index] for index in order]
        if self.minidumps is not None:
            self.minidumps = [self.minidumps[index] for index in order]

    def as_json(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "taskIdIds": self.task_id_ids,
            "durations": self.durations,
            "timestamps": self.timestamps,
        }
        if self.message_ids is not None:
            payload["messageIds"] = self.message_ids
        if self.crash_signature_ids is not None:
            payload["crashSignatureIds"] = self.crash_signature_ids
        if self.minidumps is not None:
            payload["minidumps"] = self.minidumps
        return payload


def decode_timestamps(deltas: list[int]) -> list[int]:
    """Undo delta encoding by cumulative summation."""

    return list(accumulate(deltas))
