"""Controllers for timings CLI commands."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path

from xpcshell_timings.common import utc_now
from xpcshell_timings.config import Settings
from xpcshell_timings.discovery import DiscoveryError, TelemetryJobSource, TryPushJobSource
from xpcshell_timings.http.fetcher import HttpFetcher
from xpcshell_timings.output import DatasetWriter
from xpcshell_timings.pipeline import SnapshotReport, SnapshotStatus, TimingsPipeline
from xpcshell_timings.pool.coordinator import format_progress

Emit = Callable[[str], None]
BYTES_PER_MB = 1024 * 1024


@dataclass(slots=True)
class FetchCommand:
    """CLI inputs for the fetch command."""

    days: int = 3
    try_revision: str | None = None
    force: bool = False
    debug: bool = False
    workers: int | None = None
    backend: str | None = None
    output_dir: Path | None = None
    cache_dir: Path | None = None
    today: date | None = None


@dataclass(slots=True)
class IndexCommand:
    """CLI inputs for the index rebuild command."""

    output_dir: Path | None = None


class TimingsCliController:
    """Coordinates fetch command execution, streaming progress through ``emit``."""

    def fetch(self, command: FetchCommand, emit: Emit) -> None:
        settings = Settings.from_env(output_dir=command.output_dir, cache_dir=command.cache_dir)
        if command.workers is not None:
            settings.pool.worker_count = command.workers
        if command.backend is not None:
            settings.pool.backend = command.backend
        settings.validate()

        writer = DatasetWriter(settings.output_dir)
        pipeline = TimingsPipeline(
            settings=settings,
            writer=writer,
            on_progress=lambda completed, total: emit(format_progress(completed, total)),
            pretty=command.debug,
        )
        with HttpFetcher(
            timeout_seconds=settings.http.request_timeout_seconds,
            max_retries=settings.http.max_retries,
        ) as http:
            if command.try_revision:
                self._fetch_try(command, pipeline, http, settings, emit)
                return

            today = command.today or utc_now().date()
            days = 1 if command.debug else command.days
            dates = [today - timedelta(days=offset) for offset in range(1, days + 1)]
            if command.debug:
                emit(f"Debug mode: Fetching xpcshell test data for {dates[0]} only")
            else:
                emit(
                    f"Fetching xpcshell test data for the last {days} "
                    f"day{'s' if days > 1 else ''}: {', '.join(d.isoformat() for d in dates)}",
                )

            source = TelemetryJobSource(
                http=http,
                query_url=settings.discovery.telemetry_query_url,
                api_key=settings.discovery.telemetry_api_key,
            )
            for day in dates:
                emit(f"=== Processing {day.isoformat()} ===")
                try:
                    report = pipeline.process_date(day, source=source, force=command.force)
                except DiscoveryError as exc:
                    emit(f"Error processing {day.isoformat()}: {exc}")
                    continue
                for line in _report_lines(report, force=command.force, pretty=command.debug):
                    emit(line)

        available = writer.write_index()
        emit(f"Index file saved as {writer.index_path} with {len(available)} dates")

    def _fetch_try(  # noqa: PLR0913
        self,
        command: FetchCommand,
        pipeline: TimingsPipeline,
        http: HttpFetcher,
        settings: Settings,
        emit: Emit,
    ) -> None:
        revision = command.try_revision or ""
        emit(f"Try mode: Fetching xpcshell test data for revision {revision}")
        source = TryPushJobSource(http=http, treeherder_url=settings.discovery.treeherder_url)
        try:
            report = pipeline.process_try(revision, source=source, force=command.force)
        except DiscoveryError as exc:
            emit(f"Error processing try revision {revision}: {exc}")
            return
        for line in _report_lines(report, force=command.force, pretty=command.debug):
            emit(line)

    def rebuild_index(self, command: IndexCommand) -> list[str]:
        settings = Settings.from_env(output_dir=command.output_dir)
        writer = DatasetWriter(settings.output_dir)
        available = writer.write_index()
        return [f"Index file saved as {writer.index_path} with {len(available)} dates"]


def _report_lines(report: SnapshotReport, *, force: bool, pretty: bool) -> list[str]:
    if report.status == SnapshotStatus.SKIPPED_EXISTING:
        return [f"Data for {report.label} already exists. Skipping."]
    lines = [f"Force flag detected, re-fetched data for {report.label}."] if force else []
    if report.status == SnapshotStatus.NO_JOBS:
        return [*lines, f"No jobs found for {report.label}."]

    lines.append(
        f"Successfully processed {report.processed_job_count} of {report.job_count} jobs "
        f"in {report.processing_ms}ms",
    )
    if report.status == SnapshotStatus.NO_DATA or report.stats is None:
        return [*lines, f"No test run data extracted for {report.label}"]

    stats = report.stats
    size = report.size_bytes or 0
    lines.extend(
        [
            f"Created data tables in {report.encoding_ms}ms:",
            f"  {stats.tests} tests, {stats.runs} runs, {stats.tasks} tasks, "
            f"{stats.job_names} job names, {stats.statuses} statuses",
            f"Saved {report.path} - {round(size / BYTES_PER_MB)}MB ({size:,} bytes)"
            f"{' (with formatting)' if pretty else ''}",
        ],
    )
    if report.resource_usage_path is not None:
        lines.append(f"Saved resource usage to {report.resource_usage_path}")
    return lines
