"""Per-item retry loop.

:class:`ItemResolver` wraps a single-attempt fetcher with the retry rules of
a :class:`~guildscan.core.policy.RetryPolicy`, driven by tenacity's
:class:`~tenacity.AsyncRetrying`:

* ``Value`` / ``NoValue`` — terminal; the item resolved successfully.
* ``RateLimited`` — sleep the server's ``Retry-After`` hint when present,
  otherwise the current backoff delay.  Does not consume the attempt budget
  unless ``count_rate_limits`` is set.
* ``TransientError`` — consumes one attempt; back off and retry until the
  budget is spent.

The backoff delay doubles after every sleep (1 s, 2 s, 4 s, … capped at
``max_delay_s``), rate-limit sleeps included.

Each :meth:`ItemResolver.resolve` call builds its own ``AsyncRetrying`` and
failure counter, so concurrent resolutions share no mutable state.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Protocol

from tenacity import AsyncRetrying, RetryCallState, retry_if_result

from guildscan.core import events
from guildscan.core.models import (
    FetchOutcome,
    ItemResult,
    NoValue,
    RateLimited,
    TransientError,
    Value,
    WorkItem,
)
from guildscan.core.policy import RetryPolicy

__all__ = ["Fetcher", "ItemResolver", "SleepFn"]

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class Fetcher(Protocol):
    """Anything that performs one classified fetch attempt for an item."""

    async def fetch(self, item: WorkItem) -> FetchOutcome: ...


def _is_retryable(outcome: FetchOutcome) -> bool:
    return isinstance(outcome, RateLimited | TransientError)


def _describe(outcome: FetchOutcome) -> str:
    if isinstance(outcome, TransientError):
        return outcome.cause
    if isinstance(outcome, RateLimited):
        return "rate limited"
    return type(outcome).__name__


class _FailureBudget:
    """tenacity stop condition that counts only budget-consuming failures."""

    def __init__(self, policy: RetryPolicy) -> None:
        self._policy = policy
        self.failures = 0

    def __call__(self, retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome.result() if retry_state.outcome else None
        if isinstance(outcome, RateLimited) and not self._policy.count_rate_limits:
            return False
        self.failures += 1
        if self._policy.max_attempts is None:
            return False
        return self.failures >= self._policy.max_attempts


class ItemResolver:
    """Resolve one work item to an :class:`~guildscan.core.models.ItemResult`.

    Args:
        fetcher: Single-attempt fetcher (usually
            :class:`~guildscan.fetcher.client.GuildCountFetcher`).
        policy: Retry budget and backoff curve.  Defaults to 5 attempts,
            1 s initial delay, 60 s cap.
        sleep: Awaitable sleep used for backoff; injectable for tests.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        policy: RetryPolicy | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._fetcher = fetcher
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def _wait(self, retry_state: RetryCallState) -> float:
        """Seconds to sleep after the attempt that just finished."""
        outcome = retry_state.outcome.result() if retry_state.outcome else None
        if isinstance(outcome, RateLimited) and outcome.retry_after:
            return float(outcome.retry_after)
        return self._policy.delay_for(retry_state.attempt_number)

    async def resolve(self, item: WorkItem, index: int = 0) -> ItemResult:
        """Fetch *item* until it succeeds or the retry budget is spent.

        Args:
            item: The work item to resolve.
            index: Position of the item in the run, carried into the result.

        Returns:
            An :class:`ItemResult` with ``recorded=False``; persisting the
            value is the caller's job.

        Raises:
            Exception: Whatever the fetcher raises unexpectedly.  Classified
                failures never raise.
        """
        started = time.monotonic()
        attempts = 0

        async def _attempt() -> FetchOutcome:
            nonlocal attempts
            attempts += 1
            return await self._fetcher.fetch(item)

        def _before_sleep(rs: RetryCallState) -> None:
            outcome = rs.outcome.result() if rs.outcome else None
            wait = rs.next_action.sleep if rs.next_action else 0.0
            if isinstance(outcome, RateLimited):
                logger.warning(
                    "Rate limited for app %s, retrying in %.1fs",
                    item.id,
                    wait,
                    extra={"event": events.FETCH_RATE_LIMITED, "app_id": item.id},
                )
            else:
                logger.warning(
                    "Error fetching for app %s (attempt %d): %s; retrying in %.1fs",
                    item.id,
                    rs.attempt_number,
                    _describe(outcome) if outcome is not None else "?",
                    wait,
                    extra={"event": events.FETCH_RETRY, "app_id": item.id},
                )

        retrying = AsyncRetrying(
            retry=retry_if_result(_is_retryable),
            stop=_FailureBudget(self._policy),
            wait=self._wait,
            sleep=self._sleep,
            before_sleep=_before_sleep,
            retry_error_callback=lambda rs: rs.outcome.result(),
        )
        outcome: FetchOutcome = await retrying(_attempt)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        if isinstance(outcome, Value):
            return ItemResult(
                item=item,
                index=index,
                success=True,
                value=outcome.count,
                elapsed_ms=elapsed_ms,
                attempts=attempts,
            )
        if isinstance(outcome, NoValue):
            return ItemResult(
                item=item,
                index=index,
                success=True,
                elapsed_ms=elapsed_ms,
                attempts=attempts,
            )

        logger.warning(
            "Giving up on app %s after %d attempt(s): %s",
            item.id,
            attempts,
            _describe(outcome),
        )
        return ItemResult(
            item=item,
            index=index,
            success=False,
            elapsed_ms=elapsed_ms,
            attempts=attempts,
            error=_describe(outcome),
        )
