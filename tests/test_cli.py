from __future__ import annotations

import json
from datetime import UTC, date, datetime
from pathlib import Path

import allure
import pytest
from click.testing import CliRunner

from xpcshell_timings import controllers
from xpcshell_timings.discovery import DiscoveryError, TelemetryJobSource, TryPushJobSource
from xpcshell_timings.main import xpcshell_timings
from xpcshell_timings.models import TaskDescriptor
from xpcshell_timings.profiles.cache import ArtifactCache

pytestmark = [
    allure.epic("Command Line"),
    allure.feature("Fetch Command"),
]

YESTERDAY = date(2025, 10, 9)


@pytest.fixture()
def offline(monkeypatch: pytest.MonkeyPatch, cache_dir: Path, profile_builder) -> TaskDescriptor:
    """Seeded cache, unreachable network, and a fixed clock."""

    monkeypatch.setenv("XPCSHELL_TIMINGS_ARTIFACT_URL_TEMPLATE", "http://127.0.0.1:9/{task_id}")
    monkeypatch.setattr(
        controllers,
        "utc_now",
        lambda: datetime(2025, 10, 10, 8, 0, tzinfo=UTC),
    )
    descriptor = TaskDescriptor(
        task_id="T1",
        job_name="test-linux/opt-xpcshell-1",
        repository="mozilla-central",
        start_time="2025-10-09T05:00:00",
    )
    profile = (
        profile_builder(start_time=datetime(2025, 10, 9, 5, tzinfo=UTC).timestamp() * 1000)
        .test("xpcshell.toml:toolkit/test/test_a.js", "PASS", 0, 2500)
        .build()
    )
    ArtifactCache(cache_dir).store("T1", 0, profile)
    return descriptor


def _fetch_args(tmp_path: Path, cache_dir: Path, *extra: str) -> list[str]:
    return [
        "fetch",
        "--backend",
        "thread",
        "--workers",
        "2",
        "--output-dir",
        str(tmp_path / "out"),
        "--cache-dir",
        str(cache_dir),
        *extra,
    ]


def test_fetch_writes_dataset_and_index(
    tmp_path: Path,
    cache_dir: Path,
    offline: TaskDescriptor,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    requested: list[date] = []

    def _jobs_for_date(_self: TelemetryJobSource, target: date) -> list[TaskDescriptor]:
        requested.append(target)
        return [offline]

    monkeypatch.setattr(TelemetryJobSource, "jobs_for_date", _jobs_for_date)
    runner = CliRunner()

    first = runner.invoke(xpcshell_timings, _fetch_args(tmp_path, cache_dir, "--days", "1"))

    assert first.exit_code == 0, first.output
    assert "=== Processing 2025-10-09 ===" in first.output
    assert "Successfully processed 1 of 1 jobs" in first.output
    assert "1 tests, 1 runs, 1 tasks, 1 job names, 1 statuses" in first.output
    assert " 100% 1/1" in first.output
    assert requested == [YESTERDAY]
    dataset = json.loads((tmp_path / "out" / "xpcshell-2025-10-09.json").read_text("utf-8"))
    assert dataset["testRuns"][0][0]["durations"] == [2500]
    index = json.loads((tmp_path / "out" / "index.json").read_text("utf-8"))
    assert index == {"dates": ["2025-10-09"]}

    second = runner.invoke(xpcshell_timings, _fetch_args(tmp_path, cache_dir, "--days", "1"))

    assert second.exit_code == 0, second.output
    assert "Data for 2025-10-09 already exists. Skipping." in second.output


def test_fetch_covers_requested_days_and_reports_errors(
    tmp_path: Path,
    cache_dir: Path,
    offline: TaskDescriptor,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _jobs_for_date(_self: TelemetryJobSource, target: date) -> list[TaskDescriptor]:
        if target == YESTERDAY:
            raise DiscoveryError("Telemetry query failed: HTTP 503")
        return []

    monkeypatch.setattr(TelemetryJobSource, "jobs_for_date", _jobs_for_date)

    result = CliRunner().invoke(xpcshell_timings, _fetch_args(tmp_path, cache_dir))

    assert result.exit_code == 0, result.output
    assert "last 3 days: 2025-10-09, 2025-10-08, 2025-10-07" in result.output
    assert "Error processing 2025-10-09: Telemetry query failed: HTTP 503" in result.output
    assert "No jobs found for 2025-10-08." in result.output
    assert "No jobs found for 2025-10-07." in result.output


def test_fetch_try_revision(
    tmp_path: Path,
    cache_dir: Path,
    offline: TaskDescriptor,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(TryPushJobSource, "push_id", lambda _self, revision: 99)
    monkeypatch.setattr(TryPushJobSource, "jobs", lambda _self, push_id: [offline])

    result = CliRunner().invoke(
        xpcshell_timings,
        _fetch_args(tmp_path, cache_dir, "--try", "abc123"),
    )

    assert result.exit_code == 0, result.output
    assert "Try mode: Fetching xpcshell test data for revision abc123" in result.output
    dataset = json.loads((tmp_path / "out" / "xpcshell-try-abc123.json").read_text("utf-8"))
    assert dataset["metadata"]["pushId"] == 99


def test_fetch_rejects_invalid_configuration(
    tmp_path: Path,
    cache_dir: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("XPCSHELL_TIMINGS_REQUEST_TIMEOUT_SECONDS", "0")

    result = CliRunner().invoke(xpcshell_timings, _fetch_args(tmp_path, cache_dir))

    assert result.exit_code == 1
    assert "REQUEST_TIMEOUT_SECONDS" in result.output


def test_fetch_rejects_out_of_range_days(tmp_path: Path, cache_dir: Path) -> None:
    result = CliRunner().invoke(xpcshell_timings, _fetch_args(tmp_path, cache_dir, "--days", "31"))

    assert result.exit_code == 2


@allure.feature("Index Command")
def test_index_command_rebuilds_index(tmp_path: Path) -> None:
    (tmp_path / "xpcshell-2025-10-01.json").write_text("{}", encoding="utf-8")
    (tmp_path / "xpcshell-2025-10-03.json").write_text("{}", encoding="utf-8")

    result = CliRunner().invoke(xpcshell_timings, ["index", "--output-dir", str(tmp_path)])

    assert result.exit_code == 0, result.output
    assert "with 2 dates" in result.output
    index = json.loads((tmp_path / "index.json").read_text("utf-8"))
    assert index == {"dates": ["2025-10-03", "2025-10-01"]}
