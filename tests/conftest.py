"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

PROFILE_START_MS = 1_760_000_000_000


class ProfileBuilder:
    """Assembles resource profiles in the profiler's column layout."""

    def __init__(
        self,
        *,
        start_time: float = PROFILE_START_MS,
        logical_cpus: int | None = 4,
        physical_cpus: int = 2,
        main_memory: int = 16 * 1024**3,
    ) -> None:
        self.meta: dict[str, object] = {
            "startTime": start_time,
            "physicalCPUs": physical_cpus,
            "mainMemory": main_memory,
        }
        if logical_cpus is not None:
            self.meta["logicalCPUs"] = logical_cpus
        self.strings: list[str] = []
        self.names: list[int] = []
        self.data: list[dict[str, object] | None] = []
        self.starts: list[float] = []
        self.ends: list[float | None] = []

    def marker(
        self,
        name: str,
        data: dict[str, object] | None,
        start: float,
        end: float | None,
    ) -> ProfileBuilder:
        if name not in self.strings:
            self.strings.append(name)
        self.names.append(self.strings.index(name))
        self.data.append(data)
        self.starts.append(start)
        self.ends.append(end)
        return self

    def test(self, test: str, status: str, start: float, end: float, **extra: object):
        return self.marker("test", {"type": "Test", "test": test, "status": status, **extra}, start, end)

    def legacy(self, path: str, start: float, end: float):
        return self.marker("test", {"type": "Text", "text": path}, start, end)

    def parallel(self, start: float, end: float):
        return self.marker("parallel", {"type": "Text", "text": "parallel"}, start, end)

    def crash(self, test: str, start: float, **extra: object):
        return self.marker("crash", {"type": "Crash", "test": test, **extra}, start, None)

    def cpu(self, percent: object, start: float, end: float):
        return self.marker("CPU Use", {"type": "CPU", "cpuPercent": percent}, start, end)

    def memory(self, used: int, start: float):
        return self.marker("Memory", {"type": "Mem", "used": used}, start, None)

    def build(self) -> dict[str, object]:
        return {
            "meta": dict(self.meta),
            "threads": [
                {
                    "stringArray": list(self.strings),
                    "markers": {
                        "length": len(self.data),
                        "name": list(self.names),
                        "data": list(self.data),
                        "startTime": list(self.starts),
                        "endTime": list(self.ends),
                    },
                },
            ],
        }


@pytest.fixture()
def profile_builder():
    """Factory for fresh profile builders."""

    return ProfileBuilder


@pytest.fixture()
def cache_dir(tmp_path: Path) -> Path:
    path = tmp_path / "profile-cache"
    path.mkdir()
    return path
