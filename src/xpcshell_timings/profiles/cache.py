"""Local gzip store of previously fetched resource profiles."""

from __future__ import annotations

import gzip
import json
import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


class ArtifactCache:
    """Disk cache keyed by ``(task_id, retry_id)``.

    Each key is owned by exactly one worker for one job, so entries are
    read and written without locking. Every I/O failure degrades to a miss.
    """

    suffix = ".json.gz"

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, task_id: str, retry_id: int) -> Path:
        return self.root / f"{task_id}-{retry_id}{self.suffix}"

    def load(self, task_id: str, retry_id: int) -> dict[str, object] | None:
        path = self.path_for(task_id, retry_id)
        if not path.exists():
            return None
        try:
            with gzip.open(path, "rb") as handle:
                payload = json.load(handle)
        except (OSError, EOFError, ValueError) as exc:
            logger.warning("Discarding unreadable cached profile %s: %s", path.name, exc)
            return None
        if not isinstance(payload, dict):
            logger.warning("Discarding cached profile %s: not a JSON object", path.name)
            return None
        return payload

    def store(self, task_id: str, retry_id: int, artifact: dict[str, object]) -> None:
        path = self.path_for(task_id, retry_id)
        tmp_name: str | None = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=self.root,
                prefix=f".{path.name}.",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                with gzip.GzipFile(fileobj=tmp, mode="wb") as compressed:
                    compressed.write(json.dumps(artifact, separators=(",", ":")).encode("utf-8"))
            os.replace(tmp_name, path)
        except OSError as exc:
            logger.warning("Error caching profile %s: %s", path.name, exc)
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
