"""HTTP retrieval helpers."""

from xpcshell_timings.http.fetcher import FetchResult, HttpFetcher

__all__ = ["FetchResult", "HttpFetcher"]
