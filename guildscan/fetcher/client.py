"""Async HTTP fetcher for the per-application statistics endpoint.

Wraps :class:`httpx.AsyncClient` and performs exactly **one** request per
:meth:`GuildCountFetcher.fetch` call.  Retrying is not this module's job.
Every HTTP outcome is classified into a
:data:`~guildscan.core.models.FetchOutcome` and handed to the retry loop:

==============================  =========================================
Response                        Outcome
==============================  =========================================
HTTP 429                        ``RateLimited(retry_after)``
other non-2xx, network error,   ``TransientError(cause)``
timeout, non-JSON 2xx body
2xx with a usable count         ``Value(count)``
2xx without one                 ``NoValue()``
==============================  =========================================

The count is looked up in two shapes, in priority order::

    {"directory_entry": {"guild_count": 5120}}
    {"guild": {"approximate_member_count": 870}}

One fetcher (one connection pool) is shared by every concurrent item of a run.

Typical usage::

    async with GuildCountFetcher(base_url="https://worker.example.com") as fetcher:
        outcome = await fetcher.fetch(WorkItem(id="1234567890"))
"""

from __future__ import annotations

import logging
import math
from types import TracebackType
from typing import Any, Final

import httpx

from guildscan.core.models import (
    FetchOutcome,
    NoValue,
    RateLimited,
    TransientError,
    Value,
    WorkItem,
)

__all__ = ["GuildCountFetcher", "extract_count", "parse_retry_after"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Timeout for one attempt, connect through last body byte (seconds).
_DEFAULT_TIMEOUT: Final[float] = 10.0

#: Fixed query string appended to every request.
_QUERY_PARAMS: Final[dict[str, str]] = {"locale": "en-US"}

#: Candidate (container, field) paths, most authoritative first.
_COUNT_PATHS: Final[tuple[tuple[str, str], ...]] = (
    ("directory_entry", "guild_count"),
    ("guild", "approximate_member_count"),
)


# ---------------------------------------------------------------------------
# Response parsing helpers
# ---------------------------------------------------------------------------


def _usable_number(value: Any) -> int | None:
    """Return *value* as a count if it is a finite, non-negative number."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if value < 0:
        return None
    return int(value)


def extract_count(body: Any) -> int | None:
    """Find the statistic in a decoded JSON body.

    Args:
        body: Decoded JSON (any type; non-dicts yield ``None``).

    Returns:
        The first usable number along :data:`_COUNT_PATHS`, or ``None``.
    """
    if not isinstance(body, dict):
        return None
    for container, field in _COUNT_PATHS:
        section = body.get(container)
        if isinstance(section, dict):
            count = _usable_number(section.get(field))
            if count is not None:
                return count
    return None


def parse_retry_after(response: httpx.Response) -> int | None:
    """Read the ``Retry-After`` header as whole seconds.

    Returns:
        The hint, or ``None`` when the header is absent, not an integer, or
        negative.  HTTP-date values are not supported.
    """
    header = response.headers.get("retry-after", "").strip()
    if not header:
        return None
    try:
        seconds = int(header)
    except ValueError:
        logger.debug("Could not parse Retry-After header %r.", header)
        return None
    return seconds if seconds >= 0 else None


# ---------------------------------------------------------------------------
# Public client
# ---------------------------------------------------------------------------


class GuildCountFetcher:
    """Single-attempt fetcher for ``GET {base_url}/{id}?locale=en-US``.

    Use as an ``async with`` context manager so the connection pool is
    closed on exit::

        async with GuildCountFetcher(base_url=settings.base_url) as fetcher:
            outcome = await fetcher.fetch(item)

    Args:
        base_url: Endpoint root; the application ID is appended as a path
            segment.
        timeout: Per-attempt timeout in seconds.
        headers: Extra default headers merged into every request.
        transport: Optional :class:`httpx.AsyncBaseTransport`, mainly for
            tests (:class:`httpx.MockTransport`).
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout: float = _DEFAULT_TIMEOUT,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout!r}.")

        self._base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout)
        self._default_headers: dict[str, str] = headers or {}
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> GuildCountFetcher:
        self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client.  Safe to call repeatedly."""
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            logger.debug("GuildCountFetcher HTTP session closed.")
        self._http = None

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    def url_for(self, item: WorkItem) -> str:
        """Return the request URL (without query string) for *item*."""
        return f"{self._base_url}/{item.id}"

    async def fetch(self, item: WorkItem) -> FetchOutcome:
        """Perform one GET for *item* and classify the response.

        Never raises for HTTP, network or body-decoding problems; those come
        back as :class:`~guildscan.core.models.TransientError`.
        """
        client = self._ensure_client()
        url = self.url_for(item)

        try:
            response = await client.get(url, params=_QUERY_PARAMS)
        except httpx.TimeoutException as exc:
            logger.debug("Timeout fetching %s.", url)
            return TransientError(f"timeout: {type(exc).__name__}")
        except httpx.HTTPError as exc:
            logger.debug("Transport error fetching %s.", url, exc_info=True)
            return TransientError(f"{type(exc).__name__}: {exc}")

        logger.debug(
            "GET %s → %d (%d bytes)",
            url,
            response.status_code,
            len(response.content),
        )
        return self.classify(response)

    @staticmethod
    def classify(response: httpx.Response) -> FetchOutcome:
        """Map a received response to a :data:`FetchOutcome`."""
        if response.status_code == 429:
            return RateLimited(retry_after=parse_retry_after(response))

        if not response.is_success:
            return TransientError(f"HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            return TransientError(f"malformed JSON body: {exc}")

        count = extract_count(body)
        if count is None:
            return NoValue()
        return Value(count=count)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the open HTTP client, creating it lazily if needed."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                headers={
                    "Accept": "application/json",
                    "User-Agent": "guildscan/0.1",
                    **self._default_headers,
                },
                transport=self._transport,
            )
            logger.debug("GuildCountFetcher session opened (base_url=%r).", self._base_url)
        return self._http
