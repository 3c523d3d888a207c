"""Resource profile retrieval and parsing."""

from xpcshell_timings.profiles.cache import ArtifactCache
from xpcshell_timings.profiles.extractor import (
    extract,
    extract_resource_usage,
    extract_test_events,
)
from xpcshell_timings.profiles.fetcher import ArtifactFetcher

__all__ = [
    "ArtifactCache",
    "ArtifactFetcher",
    "extract",
    "extract_resource_usage",
    "extract_test_events",
]
