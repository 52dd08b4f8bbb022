"""
HTTP Fetcher Module
===================

Blocking HTTP fetches used by worker handlers. Every request carries an
explicit timeout; timeouts and network failures surface as
TransientFetchError so the job queue retries them with backoff.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

import httpx

from catalog_ingest.core.clock import utc_now
from catalog_ingest.core.errors import TransientFetchError

logger = logging.getLogger(__name__)

GONE_STATUSES = frozenset({404, 410})


def availability_from_status(status_code: int | None) -> bool | None:
    """
    Stock signal carried by a HEAD status code.

    2xx and 3xx mean available, 404 and 410 mean gone. Anything else
    (405, 429, 5xx) says nothing about stock and yields None.
    """
    if status_code is None:
        return None
    if 200 <= status_code < 400:
        return True
    if status_code in GONE_STATUSES:
        return False
    return None


@dataclass
class HeadResult:
    """Result of an availability (HEAD) check."""

    url: str
    final_url: str
    status_code: int
    content_type: str | None
    checked_at: datetime

    @property
    def availability(self) -> bool | None:
        return availability_from_status(self.status_code)


@dataclass
class FetchResult:
    """Result of fetching a page body."""

    url: str
    final_url: str
    status_code: int
    content_type: str | None
    text: str
    fetched_at: datetime


class Fetcher:
    """
    Thin httpx wrapper with per-call timeouts.

    Example:
        with Fetcher(user_agent="CatalogIngest/0.1") as fetcher:
            head = fetcher.head("https://shop.example/p/1", timeout_ms=6000)
    """

    def __init__(
        self,
        user_agent: str = "CatalogIngest/0.1",
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.user_agent = user_agent
        self._client = httpx.Client(
            headers={"User-Agent": user_agent},
            follow_redirects=True,
            transport=transport,
        )

    def __enter__(self) -> Fetcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def _request(self, method: str, url: str, timeout_ms: int) -> httpx.Response:
        try:
            return self._client.request(method, url, timeout=timeout_ms / 1000)
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout after {timeout_ms}ms on {method} {url}")
            raise TransientFetchError(f"Timeout after {timeout_ms}ms", url=url) from e
        except httpx.HTTPError as e:
            logger.warning(f"HTTP error on {method} {url}: {e}")
            raise TransientFetchError(f"HTTP error: {e}", url=url) from e

    def head(self, url: str, timeout_ms: int) -> HeadResult:
        """
        Check availability of a URL.

        Non-2xx/3xx statuses are returned, not raised: an unavailable page
        is an observation.

        Raises:
            TransientFetchError: On timeout or network failure
        """
        response = self._request("HEAD", url, timeout_ms)
        return HeadResult(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            content_type=response.headers.get("content-type"),
            checked_at=utc_now(),
        )

    def get(self, url: str, timeout_ms: int) -> FetchResult:
        """
        Fetch a page body.

        Raises:
            TransientFetchError: On timeout, network failure or non-2xx status
        """
        response = self._request("GET", url, timeout_ms)
        if not 200 <= response.status_code < 300:
            raise TransientFetchError(
                f"HTTP {response.status_code} for {url}", url=url, status_code=response.status_code
            )
        return FetchResult(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            content_type=response.headers.get("content-type"),
            text=response.text,
            fetched_at=utc_now(),
        )
