"""Persistence of encoded datasets and the index of available snapshots."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from datetime import date
from pathlib import Path

from xpcshell_timings.models import JobResult

logger = logging.getLogger(__name__)

DATE_DATASET_RE = re.compile(r"^xpcshell-(\d{4}-\d{2}-\d{2})\.json$")
INDEX_FILE_NAME = "index.json"


class DatasetWriter:
    """Writes dataset files into one output directory."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)

    @property
    def index_path(self) -> Path:
        return self.output_dir / INDEX_FILE_NAME

    def date_path(self, day: date | str) -> Path:
        label = day.isoformat() if isinstance(day, date) else day
        return self.output_dir / f"xpcshell-{label}.json"

    def try_path(self, revision: str) -> Path:
        return self.output_dir / f"xpcshell-try-{revision}.json"

    def resource_usage_path(self, label: str) -> Path:
        return self.output_dir / f"resource-usage-{label}.json"

    def write(self, dataset: dict[str, object], path: Path, *, pretty: bool = False) -> int:
        """Write JSON (compact unless ``pretty``) and return the file size in bytes."""

        return _write_json(path, dataset, pretty=pretty)

    def write_resource_usage(
        self,
        results: Iterable[JobResult],
        path: Path,
        *,
        pretty: bool = False,
    ) -> int | None:
        """Write one record per job with a usage summary; ``None`` when there is none."""

        records = [
            {"taskId": result.task_token, "jobName": result.job_name}
            | result.resource_usage.as_record()
            for result in results
            if result.resource_usage is not None
        ]
        if not records:
            return None
        return _write_json(path, {"jobs": records}, pretty=pretty)

    def available_dates(self) -> list[str]:
        """Dates with a dataset on disk, newest first."""

        if not self.output_dir.is_dir():
            return []
        dates = [
            match.group(1)
            for entry in self.output_dir.iterdir()
            if (match := DATE_DATASET_RE.match(entry.name))
        ]
        return sorted(dates, reverse=True)

    def write_index(self) -> list[str]:
        dates = self.available_dates()
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.index_path.write_text(json.dumps({"dates": dates}, indent=2), encoding="utf-8")
        logger.info("Index file saved with %d dates", len(dates))
        return dates


def _write_json(path: Path, payload: object, *, pretty: bool) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    if pretty:
        text = json.dumps(payload, indent=2, ensure_ascii=False)
    else:
        text = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    path.write_text(text, encoding="utf-8")
    return path.stat().st_size
