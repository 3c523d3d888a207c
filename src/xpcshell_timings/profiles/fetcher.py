"""Cache-first retrieval of per-task resource profiles."""

from __future__ import annotations

import logging

from xpcshell_timings.http.fetcher import HttpFetcher
from xpcshell_timings.profiles.cache import ArtifactCache

logger = logging.getLogger(__name__)


class ArtifactFetcher:
    """Returns a decoded profile for a task run, or ``None`` when unavailable."""

    def __init__(self, *, cache: ArtifactCache, http: HttpFetcher, url_template: str) -> None:
        self.cache = cache
        self.http = http
        self.url_template = url_template

    def url_for(self, task_id: str, retry_id: int) -> str:
        return self.url_template.format(task_id=task_id, retry_id=retry_id)

    def fetch(self, task_id: str, retry_id: int = 0) -> dict[str, object] | None:
        cached = self.cache.load(task_id, retry_id)
        if cached is not None:
            return cached

        result = self.http.fetch(self.url_for(task_id, retry_id))
        if result.is_not_found:
            logger.debug("No profile artifact for task %s.%s", task_id, retry_id)
            return None
        if not result.is_success:
            logger.warning(
                "Error fetching profile for task %s.%s: %s",
                task_id,
                retry_id,
                result.error,
            )
            return None
        try:
            artifact = result.json()
        except ValueError as exc:
            logger.warning("Undecodable profile for task %s.%s: %s", task_id, retry_id, exc)
            return None
        if not isinstance(artifact, dict):
            logger.warning("Unexpected profile payload for task %s.%s", task_id, retry_id)
            return None

        self.cache.store(task_id, retry_id, artifact)
        return artifact
