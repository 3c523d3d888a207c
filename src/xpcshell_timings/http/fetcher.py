"""Synchronous HTTP client with timeout and optional connection retries."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 0
DEFAULT_USER_AGENT = "xpcshell-timings/1.0 (+https://github.com/mozilla/xpcshell-timings)"


@dataclass(slots=True)
class FetchResult:
    """Result of an HTTP fetch operation."""

    url: str
    status_code: int
    content: bytes
    is_success: bool
    error: str | None = None

    @property
    def is_not_found(self) -> bool:
        return self.status_code == httpx.codes.NOT_FOUND

    def json(self) -> object:
        """Decode the body as JSON; raises ``ValueError`` on malformed content."""

        return json.loads(self.content)


class HttpFetcher:
    """HTTP client wrapper with timeout, retry, and user-agent configuration."""

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        user_agent: str = DEFAULT_USER_AGENT,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        base_headers = {"User-Agent": user_agent}
        if headers:
            base_headers.update(headers)
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers=base_headers,
            transport=transport or httpx.HTTPTransport(retries=max_retries),
            follow_redirects=True,
        )

    def fetch(self, url: str, *, params: dict[str, str] | None = None) -> FetchResult:
        """Fetch URL content, returning structured result."""

        try:
            response = self._client.get(url, params=params)
            return FetchResult(
                url=url,
                status_code=response.status_code,
                content=response.content,
                is_success=response.is_success,
                error=None if response.is_success else f"HTTP {response.status_code}",
            )
        except httpx.TimeoutException:
            logger.warning("Timeout fetching %s", url)
            return FetchResult(url=url, status_code=0, content=b"", is_success=False, error="timeout")
        except httpx.HTTPError as exc:
            logger.warning("HTTP error fetching %s: %s", url, exc)
            return FetchResult(url=url, status_code=0, content=b"", is_success=False, error=str(exc))

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpFetcher:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
