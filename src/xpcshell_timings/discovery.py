"""Job-listing clients that turn CI queries into task descriptors."""

from __future__ import annotations

import logging
from datetime import date

from xpcshell_timings.http.fetcher import FetchResult, HttpFetcher
from xpcshell_timings.models import TaskDescriptor

logger = logging.getLogger(__name__)

XPCSHELL_MARKER = "xpcshell"
TRY_REPOSITORY = "try"


class DiscoveryError(RuntimeError):
    """The job-listing service could not be queried."""


def _decode(result: FetchResult, *, what: str) -> object:
    if not result.is_success:
        raise DiscoveryError(f"{what} failed: {result.error}")
    try:
        return result.json()
    except ValueError as exc:
        raise DiscoveryError(f"{what} returned invalid JSON: {exc}") from exc


class TelemetryJobSource:
    """Lists xpcshell jobs from the saved telemetry query of recent CI tasks."""

    def __init__(self, *, http: HttpFetcher, query_url: str, api_key: str | None = None) -> None:
        self.http = http
        self.query_url = query_url
        self.api_key = api_key

    def jobs_for_date(self, target: date) -> list[TaskDescriptor]:
        params = {"api_key": self.api_key} if self.api_key else None
        payload = _decode(self.http.fetch(self.query_url, params=params), what="Telemetry query")
        try:
            rows = payload["query_result"]["data"]["rows"]  # type: ignore[index]
        except (KeyError, TypeError) as exc:
            raise DiscoveryError(f"Unexpected telemetry query payload: missing {exc}") from exc

        day = target.isoformat()
        jobs = [
            TaskDescriptor.from_mapping(row)
            for row in rows
            if isinstance(row, dict)
            and row.get("task_id")
            and XPCSHELL_MARKER in str(row.get("name") or "")
            and str(row.get("start_time") or "")[:10] == day
        ]
        logger.info("Found %d xpcshell jobs for %s out of %d rows", len(jobs), day, len(rows))
        return jobs


class TryPushJobSource:
    """Resolves a try revision to its push and lists the push's xpcshell jobs."""

    def __init__(self, *, http: HttpFetcher, treeherder_url: str) -> None:
        self.http = http
        self.base_url = treeherder_url.rstrip("/")

    def push_id(self, revision: str) -> int:
        payload = _decode(
            self.http.fetch(
                f"{self.base_url}/api/project/{TRY_REPOSITORY}/push/",
                params={"full": "true", "count": "10", "revision": revision},
            ),
            what="Push lookup",
        )
        results = payload.get("results") if isinstance(payload, dict) else None
        if not results:
            raise DiscoveryError(f"No push found for revision {revision}")
        push_id = int(results[0]["id"])
        logger.info("Found push ID %d for revision %s", push_id, revision)
        return push_id

    def jobs(self, push_id: int) -> list[TaskDescriptor]:
        payload = _decode(
            self.http.fetch(f"{self.base_url}/api/jobs/", params={"push_id": str(push_id)}),
            what="Job listing",
        )
        if not isinstance(payload, dict):
            raise DiscoveryError("Unexpected job listing payload")
        rows = payload.get("results") or []
        property_names = payload.get("job_property_names") or []

        jobs: list[TaskDescriptor] = []
        for row in rows:
            fields = dict(zip(property_names, row, strict=False))
            name = fields.get("job_type_name")
            if not name or XPCSHELL_MARKER not in name or not fields.get("task_id"):
                continue
            jobs.append(
                TaskDescriptor(
                    task_id=str(fields["task_id"]),
                    job_name=name,
                    repository=TRY_REPOSITORY,
                    start_time=fields.get("last_modified") or 0,
                    retry_id=int(fields.get("retry_id") or 0),
                ),
            )
        logger.info("Found %d xpcshell jobs out of %d total jobs", len(jobs), len(rows))
        return jobs
