"""End-to-end fetch/parse/encode orchestration for one dataset snapshot."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from pathlib import Path

from xpcshell_timings.common import start_of_day, utc_now
from xpcshell_timings.config import DEFAULT_ARTIFACT_URL_TEMPLATE, DEFAULT_TEST_EXTENSIONS, Settings
from xpcshell_timings.discovery import TelemetryJobSource, TryPushJobSource
from xpcshell_timings.encoding.encoder import DatasetStats, encode_dataset
from xpcshell_timings.http.fetcher import HttpFetcher
from xpcshell_timings.models import JobResult, TaskDescriptor
from xpcshell_timings.output import DatasetWriter
from xpcshell_timings.pool.coordinator import ProgressCallback, WorkerPool
from xpcshell_timings.pool.worker import JobProcessor
from xpcshell_timings.profiles.cache import ArtifactCache
from xpcshell_timings.profiles.extractor import extract
from xpcshell_timings.profiles.fetcher import ArtifactFetcher

logger = logging.getLogger(__name__)


@dataclass
class ProfileJobProcessor:
    """Fetch and parse the profile of one job inside a worker.

    Only configuration is pickled to worker processes; each worker opens its
    own HTTP client on first use.
    """

    cache_dir: Path
    artifact_url_template: str = DEFAULT_ARTIFACT_URL_TEMPLATE
    request_timeout_seconds: float = 30.0
    max_retries: int = 0
    test_extensions: tuple[str, ...] = DEFAULT_TEST_EXTENSIONS
    _fetcher: ArtifactFetcher | None = field(default=None, init=False, repr=False, compare=False)

    @classmethod
    def from_settings(cls, settings: Settings) -> ProfileJobProcessor:
        return cls(
            cache_dir=settings.cache_dir,
            artifact_url_template=settings.http.artifact_url_template,
            request_timeout_seconds=settings.http.request_timeout_seconds,
            max_retries=settings.http.max_retries,
            test_extensions=settings.extraction.test_extensions,
        )

    def __getstate__(self) -> dict[str, object]:
        state = dict(self.__dict__)
        state["_fetcher"] = None
        return state

    @property
    def fetcher(self) -> ArtifactFetcher:
        if self._fetcher is None:
            self._fetcher = ArtifactFetcher(
                cache=ArtifactCache(self.cache_dir),
                http=HttpFetcher(
                    timeout_seconds=self.request_timeout_seconds,
                    max_retries=self.max_retries,
                ),
                url_template=self.artifact_url_template,
            )
        return self._fetcher

    def __call__(self, descriptor: TaskDescriptor) -> JobResult | None:
        if not descriptor.task_id:
            return None
        profile = self.fetcher.fetch(descriptor.task_id, descriptor.retry_id)
        if profile is None:
            return None

        events, usage = extract(profile, descriptor.job_name, test_extensions=self.test_extensions)
        if not events:
            return None
        return JobResult(
            job_name=descriptor.job_name,
            task_id=descriptor.task_id,
            retry_id=descriptor.retry_id,
            repository=descriptor.repository,
            start_time=descriptor.start_time,
            events=events,
            resource_usage=usage,
        )


class SnapshotStatus(str, Enum):
    """Outcome of building one dataset snapshot."""

    WRITTEN = "written"
    SKIPPED_EXISTING = "skipped_existing"
    NO_JOBS = "no_jobs"
    NO_DATA = "no_data"


@dataclass(slots=True)
class SnapshotReport:
    """What happened while building one snapshot, for CLI reporting."""

    label: str
    status: SnapshotStatus
    job_count: int = 0
    processed_job_count: int = 0
    processing_ms: int = 0
    encoding_ms: int = 0
    stats: DatasetStats | None = None
    path: Path | None = None
    size_bytes: int | None = None
    resource_usage_path: Path | None = None
    dataset: dict[str, object] | None = field(default=None, repr=False)


class TimingsPipeline:
    """Descriptors → worker pool → encoder → writer."""

    def __init__(
        self,
        *,
        settings: Settings,
        writer: DatasetWriter,
        processor: JobProcessor | None = None,
        on_progress: ProgressCallback | None = None,
        pretty: bool = False,
    ) -> None:
        self.settings = settings
        self.writer = writer
        self.processor = processor or ProfileJobProcessor.from_settings(settings)
        self.on_progress = on_progress
        self.pretty = pretty

    def collect(self, descriptors: Sequence[TaskDescriptor]) -> list[JobResult]:
        pool = WorkerPool(
            self.processor,
            self.settings.pool.worker_count,
            backend=self.settings.pool.backend,
            on_progress=self.on_progress,
        )
        return pool.run(descriptors)  # type: ignore[return-value]

    def build_snapshot(
        self,
        descriptors: Sequence[TaskDescriptor],
        *,
        label: str,
        start_time: int,
        metadata: Mapping[str, object],
        path: Path,
    ) -> SnapshotReport:
        if not descriptors:
            return SnapshotReport(label=label, status=SnapshotStatus.NO_JOBS)

        started = time.monotonic()
        results = self.collect(descriptors)
        processing_ms = _elapsed_ms(started)

        started = time.monotonic()
        dataset = encode_dataset(
            results,
            start_time=start_time,
            job_count=len(descriptors),
            metadata=metadata,
        )
        encoding_ms = _elapsed_ms(started)
        report = SnapshotReport(
            label=label,
            status=SnapshotStatus.NO_DATA,
            job_count=len(descriptors),
            processed_job_count=len(results),
            processing_ms=processing_ms,
            encoding_ms=encoding_ms,
        )
        if dataset is None:
            logger.info("No test run data extracted for %s", label)
            return report

        report.status = SnapshotStatus.WRITTEN
        report.dataset = dataset
        report.stats = DatasetStats.from_dataset(dataset)
        report.path = path
        report.size_bytes = self.writer.write(dataset, path, pretty=self.pretty)
        usage_path = self.writer.resource_usage_path(label)
        if self.writer.write_resource_usage(results, usage_path, pretty=self.pretty) is not None:
            report.resource_usage_path = usage_path
        return report

    def process_date(
        self,
        day: date,
        *,
        source: TelemetryJobSource,
        force: bool = False,
    ) -> SnapshotReport:
        label = day.isoformat()
        path = self.writer.date_path(day)
        if path.exists() and not force:
            return SnapshotReport(label=label, status=SnapshotStatus.SKIPPED_EXISTING, path=path)

        descriptors = source.jobs_for_date(day)
        return self.build_snapshot(
            descriptors,
            label=label,
            start_time=start_of_day(day),
            metadata={"date": label},
            path=path,
        )

    def process_try(
        self,
        revision: str,
        *,
        source: TryPushJobSource,
        force: bool = False,
    ) -> SnapshotReport:
        label = f"try-{revision}"
        path = self.writer.try_path(revision)
        if path.exists() and not force:
            return SnapshotReport(label=label, status=SnapshotStatus.SKIPPED_EXISTING, path=path)

        push_id = source.push_id(revision)
        descriptors = source.jobs(push_id)
        if descriptors:
            start_time = descriptors[0].start_time_epoch()
        else:
            start_time = int(utc_now().timestamp())
        return self.build_snapshot(
            descriptors,
            label=label,
            start_time=start_time,
            metadata={"revision": revision, "pushId": push_id},
            path=path,
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
