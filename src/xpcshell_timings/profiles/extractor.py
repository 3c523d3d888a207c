"""Turn one resource profile into test-run events and a resource-usage summary.

Two marker payload generations are understood, dispatched on ``data["type"]``:

* ``Text`` (legacy): ``{"type": "Text", "text": "<test path>"}``; no status.
* ``Test`` (structured): ``{"type": "Test", "test": "<manifest>:<path>",
  "status": ..., "message"?, "color"?}``.

``CPU``, ``Mem`` and ``Crash`` markers feed the resource summary and crash
details. Any other payload type is ignored.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass

from xpcshell_timings.config import DEFAULT_TEST_EXTENSIONS
from xpcshell_timings.models import (
    CPU_BUCKET_COUNT,
    UNKNOWN_STATUS,
    MachineInfo,
    ResourceUsageSummary,
    RunEvent,
)

logger = logging.getLogger(__name__)

TEST_MARKER_NAME = "test"
PARALLEL_MARKER_NAME = "parallel"
PARALLEL_AWARE_STATUSES = frozenset({"TIMEOUT", "FAIL", "PASS"})
EXPECTED_FAIL_STATUS = "EXPECTED-FAIL"
IDLE_FRACTION = 0.5
SINGLE_CORE_BAND = (0.75, 1.25)


@dataclass(slots=True)
class _Marker:
    name: str | None
    data: dict[str, object]
    start: float
    end: float | None


@dataclass(slots=True)
class _MarkerTable:
    """Column view over ``threads[0].markers`` with names resolved."""

    names: Sequence[object] | None
    data: Sequence[object]
    starts: Sequence[object]
    ends: Sequence[object]
    strings: Sequence[object]

    @classmethod
    def from_profile(cls, profile: object) -> _MarkerTable | None:
        if not isinstance(profile, dict):
            return None
        threads = profile.get("threads")
        if not isinstance(threads, list) or not threads or not isinstance(threads[0], dict):
            return None
        markers = threads[0].get("markers")
        strings = threads[0].get("stringArray")
        if not isinstance(markers, dict) or not isinstance(strings, list):
            return None
        data = markers.get("data")
        starts = markers.get("startTime")
        ends = markers.get("endTime")
        if not isinstance(data, list) or not isinstance(starts, list):
            return None
        names = markers.get("name")
        return cls(
            names=names if isinstance(names, list) else None,
            data=data,
            starts=starts,
            ends=ends if isinstance(ends, list) else [],
            strings=strings,
        )

    def name_at(self, index: int) -> str | None:
        if self.names is None or index >= len(self.names):
            return None
        string_id = self.names[index]
        if not isinstance(string_id, int) or not 0 <= string_id < len(self.strings):
            return None
        name = self.strings[string_id]
        return name if isinstance(name, str) else None

    def __iter__(self) -> Iterator[_Marker]:
        for index, payload in enumerate(self.data):
            if not isinstance(payload, dict):
                continue
            start = _number_at(self.starts, index)
            if start is None:
                continue
            yield _Marker(
                name=self.name_at(index),
                data=payload,
                start=start,
                end=_number_at(self.ends, index),
            )


def extract(
    profile: object,
    job_name: str,
    *,
    test_extensions: tuple[str, ...] = DEFAULT_TEST_EXTENSIONS,
) -> tuple[list[RunEvent], ResourceUsageSummary | None]:
    """Extract test-run events and the resource summary from one profile."""

    events = extract_test_events(profile, test_extensions=test_extensions)
    usage = extract_resource_usage(profile)
    logger.debug(
        "Extracted %d test runs from %s (resource usage: %s)",
        len(events),
        job_name,
        "yes" if usage else "no",
    )
    return events, usage


def extract_test_events(
    profile: object,
    *,
    test_extensions: tuple[str, ...] = DEFAULT_TEST_EXTENSIONS,
) -> list[RunEvent]:
    """Return test runs in marker order; malformed profiles yield no events."""

    table = _MarkerTable.from_profile(profile)
    profile_start = _profile_start_time(profile)
    if table is None or profile_start is None:
        return []

    markers = list(table)
    parallel_ranges: list[tuple[float, float]] = [
        (marker.start, marker.end)
        for marker in markers
        if marker.name == PARALLEL_MARKER_NAME and marker.end is not None
    ]
    crashes: dict[str, list[_Marker]] = {}
    for marker in markers:
        test_id = marker.data.get("test")
        if marker.data.get("type") == "Crash" and isinstance(test_id, str):
            crashes.setdefault(test_id, []).append(marker)

    restrict_to_tests = table.names is not None
    events: list[RunEvent] = []
    for marker in markers:
        if restrict_to_tests and marker.name != TEST_MARKER_NAME:
            continue
        if marker.end is None:
            continue
        event = _test_event(
            marker,
            end=marker.end,
            profile_start=profile_start,
            parallel_ranges=parallel_ranges,
            crashes=crashes,
        )
        if event is not None and event.path.endswith(test_extensions):
            events.append(event)
    return events


def _test_event(
    marker: _Marker,
    *,
    end: float,
    profile_start: float,
    parallel_ranges: list[tuple[float, float]],
    crashes: dict[str, list[_Marker]],
) -> RunEvent | None:
    data = marker.data
    message: str | None = None
    crash_signature: str | None = None
    minidump: str | None = None

    payload_type = data.get("type")
    if payload_type == "Test":
        raw_test = data.get("test") or data.get("name")
        if not isinstance(raw_test, str) or not raw_test:
            return None
        path = raw_test.rsplit(":", 1)[-1]
        status = str(data.get("status") or UNKNOWN_STATUS)
        if status == "FAIL" and data.get("color") == "green":
            status = EXPECTED_FAIL_STATUS
        if parallel_ranges and status in PARALLEL_AWARE_STATUSES:
            parallel = any(
                marker.start < range_end and end > range_start
                for range_start, range_end in parallel_ranges
            )
            status = f"{status}-PARALLEL" if parallel else f"{status}-SEQUENTIAL"
        if status == "SKIP":
            message = _normalize_message(data.get("message"))
        elif status == "CRASH":
            crash = _matching_crash(crashes.get(raw_test, []), start=marker.start, end=end)
            if crash is not None:
                crash_signature = _optional_str(crash.data.get("signature"))
                minidump = _optional_str(crash.data.get("minidump"))
    elif payload_type == "Text":
        path = data.get("text")
        if not isinstance(path, str) or not path:
            return None
        status = UNKNOWN_STATUS
    else:
        return None

    return RunEvent(
        path=path,
        status=status,
        duration_ms=end - marker.start,
        timestamp_ms=profile_start + marker.start,
        message=message,
        crash_signature=crash_signature,
        minidump=minidump,
    )


def _matching_crash(candidates: list[_Marker], *, start: float, end: float) -> _Marker | None:
    for crash in candidates:
        if start <= crash.start <= end:
            return crash
    return None


def extract_resource_usage(profile: object) -> ResourceUsageSummary | None:
    """Summarize CPU and memory markers; ``None`` when the layout is missing."""

    table = _MarkerTable.from_profile(profile)
    machine = _machine_info(profile)
    if table is None or machine is None:
        return None

    on_core_pct = 100.0 / machine.logical_cpus
    idle_below = on_core_pct * IDLE_FRACTION
    single_low, single_high = (factor * on_core_pct for factor in SINGLE_CORE_BAND)

    buckets = [0.0] * CPU_BUCKET_COUNT
    idle_time = 0.0
    single_core_time = 0.0
    max_memory: int | None = None
    cpu_samples = 0

    for marker in table:
        payload_type = marker.data.get("type")
        if payload_type == "CPU":
            percent = _cpu_percent(marker.data.get("cpuPercent"))
            if percent is None or marker.end is None:
                continue
            duration = marker.end - marker.start
            cpu_samples += 1
            bucket = min(CPU_BUCKET_COUNT - 1, max(0, int(percent // 10)))
            buckets[bucket] += duration
            if percent < idle_below:
                idle_time += duration
            if single_low <= percent <= single_high:
                single_core_time += duration
        elif payload_type == "Mem":
            used = _finite(marker.data.get("used"))
            if used is not None:
                max_memory = int(used) if max_memory is None else max(max_memory, int(used))

    if cpu_samples == 0 and max_memory is None:
        return None
    return ResourceUsageSummary(
        machine=machine,
        max_memory_bytes=max_memory or 0,
        idle_time_ms=idle_time,
        single_core_time_ms=single_core_time,
        cpu_buckets=tuple(buckets),
    )


def _machine_info(profile: object) -> MachineInfo | None:
    meta = profile.get("meta") if isinstance(profile, dict) else None
    if not isinstance(meta, dict):
        return None
    logical = meta.get("logicalCPUs")
    if not isinstance(logical, int) or isinstance(logical, bool) or logical <= 0:
        return None
    physical = meta.get("physicalCPUs")
    memory = _finite(meta.get("mainMemory"))
    return MachineInfo(
        logical_cpus=logical,
        physical_cpus=physical if isinstance(physical, int) else None,
        main_memory_bytes=int(memory) if memory is not None else None,
    )


def _profile_start_time(profile: object) -> float | None:
    meta = profile.get("meta") if isinstance(profile, dict) else None
    if not isinstance(meta, dict):
        return None
    return _finite(meta.get("startTime"))


def _cpu_percent(value: object) -> float | None:
    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%"))
        except ValueError:
            return None
    return _finite(value)


def _number_at(values: Sequence[object], index: int) -> float | None:
    if index >= len(values):
        return None
    return _finite(values[index])


def _finite(value: object) -> float | None:
    """Real numbers only; NaN and infinities count as malformed."""

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def _normalize_message(value: object) -> str | None:
    if not isinstance(value, str) or not value:
        return None
    return value.replace("\r\n", "\n").replace("\r", "\n")


def _optional_str(value: object) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
