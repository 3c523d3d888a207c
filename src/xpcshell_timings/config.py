"""Runtime configuration for the profile fetch/parse/encode pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

DEFAULT_ARTIFACT_URL_TEMPLATE = (
    "https://firefox-ci-tc.services.mozilla.com/api/queue/v1/task/{task_id}/runs/{retry_id}"
    "/artifacts/public/test_info/profile_resource-usage.json"
)
DEFAULT_TELEMETRY_QUERY_URL = "https://sql.telemetry.mozilla.org/api/queries/110630/results.json"
DEFAULT_TREEHERDER_URL = "https://treeherder.mozilla.org"
DEFAULT_TEST_EXTENSIONS = (".js",)
WORKER_BACKENDS = frozenset({"process", "thread"})


def default_worker_count() -> int:
    """Half of the available processing units, never less than one."""

    return max(1, (os.cpu_count() or 1) // 2)


@dataclass(slots=True)
class PoolSettings:
    """Worker pool settings."""

    worker_count: int = field(default_factory=default_worker_count)
    backend: str = "process"


@dataclass(slots=True)
class HttpSettings:
    """Artifact retrieval settings."""

    request_timeout_seconds: float = 30.0
    max_retries: int = 0
    artifact_url_template: str = DEFAULT_ARTIFACT_URL_TEMPLATE


@dataclass(slots=True)
class ExtractionSettings:
    """Profile parsing settings."""

    test_extensions: tuple[str, ...] = DEFAULT_TEST_EXTENSIONS


@dataclass(slots=True)
class DiscoverySettings:
    """Job-listing service settings."""

    telemetry_query_url: str = DEFAULT_TELEMETRY_QUERY_URL
    telemetry_api_key: str | None = None
    treeherder_url: str = DEFAULT_TREEHERDER_URL


@dataclass(slots=True)
class Settings:
    """Application settings grouped by pipeline stage."""

    output_dir: Path = Path("xpcshell-data")
    cache_dir: Path = Path("profile-cache")
    pool: PoolSettings = field(default_factory=PoolSettings)
    http: HttpSettings = field(default_factory=HttpSettings)
    extraction: ExtractionSettings = field(default_factory=ExtractionSettings)
    discovery: DiscoverySettings = field(default_factory=DiscoverySettings)

    @classmethod
    def from_env(
        cls,
        *,
        output_dir: Path | None = None,
        cache_dir: Path | None = None,
    ) -> Settings:
        """Load settings from environment with defaults suited to a local checkout."""

        return cls(
            output_dir=output_dir
            or Path(os.getenv("XPCSHELL_TIMINGS_OUTPUT_DIR", "xpcshell-data")),
            cache_dir=cache_dir or Path(os.getenv("XPCSHELL_TIMINGS_CACHE_DIR", "profile-cache")),
            pool=PoolSettings(
                worker_count=int(
                    os.getenv("XPCSHELL_TIMINGS_WORKERS", str(default_worker_count())),
                ),
                backend=os.getenv("XPCSHELL_TIMINGS_WORKER_BACKEND", "process").strip().lower(),
            ),
            http=HttpSettings(
                request_timeout_seconds=float(
                    os.getenv("XPCSHELL_TIMINGS_REQUEST_TIMEOUT_SECONDS", "30.0"),
                ),
                max_retries=int(os.getenv("XPCSHELL_TIMINGS_HTTP_MAX_RETRIES", "0")),
                artifact_url_template=os.getenv(
                    "XPCSHELL_TIMINGS_ARTIFACT_URL_TEMPLATE",
                    DEFAULT_ARTIFACT_URL_TEMPLATE,
                ),
            ),
            extraction=ExtractionSettings(
                test_extensions=_collect_extensions(),
            ),
            discovery=DiscoverySettings(
                telemetry_query_url=os.getenv(
                    "XPCSHELL_TIMINGS_TELEMETRY_QUERY_URL",
                    DEFAULT_TELEMETRY_QUERY_URL,
                ),
                telemetry_api_key=os.getenv("XPCSHELL_TIMINGS_TELEMETRY_API_KEY") or None,
                treeherder_url=os.getenv("XPCSHELL_TIMINGS_TREEHERDER_URL", DEFAULT_TREEHERDER_URL),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error on values the pipeline cannot run with."""

        if self.pool.worker_count <= 0:
            raise ValueError("XPCSHELL_TIMINGS_WORKERS must be > 0.")
        if self.pool.backend not in WORKER_BACKENDS:
            raise ValueError(
                f"Unknown worker backend {self.pool.backend!r}. "
                f"Expected one of: {', '.join(sorted(WORKER_BACKENDS))}.",
            )
        if self.http.request_timeout_seconds <= 0:
            raise ValueError("XPCSHELL_TIMINGS_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.http.max_retries < 0:
            raise ValueError("XPCSHELL_TIMINGS_HTTP_MAX_RETRIES must be >= 0.")
        if "{task_id}" not in self.http.artifact_url_template:
            raise ValueError("Artifact URL template must contain a {task_id} placeholder.")
        for url in (
            self.http.artifact_url_template,
            self.discovery.telemetry_query_url,
            self.discovery.treeherder_url,
        ):
            _validate_url(url)
        if not self.extraction.test_extensions:
            raise ValueError("At least one test file extension is required.")
        for extension in self.extraction.test_extensions:
            if not extension.startswith("."):
                raise ValueError(f"Invalid test file extension: {extension!r}. Expected '.ext'.")


def _collect_extensions() -> tuple[str, ...]:
    raw = os.getenv("XPCSHELL_TIMINGS_TEST_EXTENSIONS", "").strip()
    if not raw:
        return DEFAULT_TEST_EXTENSIONS

    extensions: list[str] = []
    for part in raw.split(","):
        token = part.strip().lower()
        if token and token not in extensions:
            extensions.append(token)
    return tuple(extensions)


def _validate_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid URL: {value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )
