"""Unit tests for :class:`~guildscan.orchestrator.retry.ItemResolver`.

The fetcher is a scripted stub and ``sleep`` is a recorder, so every test
runs instantly and can assert the exact backoff sequence.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

import pytest

from guildscan.core.models import (
    FetchOutcome,
    NoValue,
    RateLimited,
    TransientError,
    Value,
    WorkItem,
)
from guildscan.core.policy import RetryPolicy
from guildscan.orchestrator.retry import ItemResolver

ITEM = WorkItem(id="app-1", correlation_key="bot-1")


class ScriptedFetcher:
    """Returns the scripted outcomes in order; repeats the last one forever."""

    def __init__(self, outcomes: Iterable[FetchOutcome]) -> None:
        self._outcomes = list(outcomes)
        self.calls = 0

    async def fetch(self, item: WorkItem) -> FetchOutcome:
        outcome = self._outcomes[min(self.calls, len(self._outcomes) - 1)]
        self.calls += 1
        return outcome


class TestTerminalOutcomes:
    async def test_value_on_first_attempt(self, fake_sleep: Any) -> None:
        fetcher = ScriptedFetcher([Value(42)])
        result = await ItemResolver(fetcher, sleep=fake_sleep).resolve(ITEM, index=3)

        assert result.success
        assert result.value == 42
        assert result.attempts == 1
        assert result.index == 3
        assert result.item is ITEM
        assert not result.recorded
        assert fake_sleep.calls == []

    async def test_no_value_is_terminal_success(self, fake_sleep: Any) -> None:
        fetcher = ScriptedFetcher([NoValue(), Value(1)])
        result = await ItemResolver(fetcher, sleep=fake_sleep).resolve(ITEM)

        assert result.success
        assert result.value is None
        assert fetcher.calls == 1
        assert fake_sleep.calls == []


class TestTransientFailures:
    async def test_gives_up_after_max_attempts(self, fake_sleep: Any) -> None:
        fetcher = ScriptedFetcher([TransientError("HTTP 500")])
        result = await ItemResolver(fetcher, RetryPolicy(), sleep=fake_sleep).resolve(ITEM)

        assert not result.success
        assert result.attempts == 5
        assert fetcher.calls == 5
        assert result.error == "HTTP 500"
        # Sleeps happen between attempts only.
        assert fake_sleep.calls == [1.0, 2.0, 4.0, 8.0]

    async def test_recovers_after_transient_failures(self, fake_sleep: Any) -> None:
        fetcher = ScriptedFetcher(
            [TransientError("timeout"), TransientError("HTTP 502"), Value(7)]
        )
        result = await ItemResolver(fetcher, sleep=fake_sleep).resolve(ITEM)

        assert result.success
        assert result.value == 7
        assert result.attempts == 3
        assert fake_sleep.calls == [1.0, 2.0]

    async def test_backoff_is_capped(self, fake_sleep: Any) -> None:
        policy = RetryPolicy(max_attempts=9, initial_delay_s=1.0, max_delay_s=60.0)
        fetcher = ScriptedFetcher([TransientError("x")])
        await ItemResolver(fetcher, policy, sleep=fake_sleep).resolve(ITEM)

        assert fake_sleep.calls == [1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 60.0, 60.0]

    async def test_unbounded_retries_until_success(self, fake_sleep: Any) -> None:
        outcomes: list[FetchOutcome] = [TransientError("x")] * 20 + [Value(5)]
        fetcher = ScriptedFetcher(outcomes)
        policy = RetryPolicy(max_attempts=None)
        result = await ItemResolver(fetcher, policy, sleep=fake_sleep).resolve(ITEM)

        assert result.success
        assert result.attempts == 21
        assert len(fake_sleep.calls) == 20
        assert max(fake_sleep.calls) == 60.0


class TestRateLimits:
    async def test_retry_after_hint_is_honoured(self, fake_sleep: Any) -> None:
        fetcher = ScriptedFetcher([RateLimited(retry_after=5), Value(9)])
        result = await ItemResolver(fetcher, sleep=fake_sleep).resolve(ITEM)

        assert result.success
        assert result.value == 9
        assert fake_sleep.calls == [5.0]

    async def test_no_hint_uses_current_backoff(self, fake_sleep: Any) -> None:
        fetcher = ScriptedFetcher([RateLimited(), RateLimited(), Value(9)])
        await ItemResolver(fetcher, sleep=fake_sleep).resolve(ITEM)

        assert fake_sleep.calls == [1.0, 2.0]

    async def test_zero_hint_falls_back_to_backoff(self, fake_sleep: Any) -> None:
        fetcher = ScriptedFetcher([RateLimited(retry_after=0), Value(9)])
        await ItemResolver(fetcher, sleep=fake_sleep).resolve(ITEM)

        assert fake_sleep.calls == [1.0]

    async def test_rate_limits_do_not_consume_budget(self, fake_sleep: Any) -> None:
        outcomes: list[FetchOutcome] = [RateLimited()] * 8 + [Value(1)]
        fetcher = ScriptedFetcher(outcomes)
        policy = RetryPolicy(max_attempts=2)
        result = await ItemResolver(fetcher, policy, sleep=fake_sleep).resolve(ITEM)

        assert result.success
        assert result.attempts == 9

    async def test_rate_limits_counted_when_configured(self, fake_sleep: Any) -> None:
        fetcher = ScriptedFetcher([RateLimited()])
        policy = RetryPolicy(max_attempts=3, count_rate_limits=True)
        result = await ItemResolver(fetcher, policy, sleep=fake_sleep).resolve(ITEM)

        assert not result.success
        assert result.attempts == 3
        assert result.error == "rate limited"

    async def test_backoff_keeps_doubling_across_rate_limits(self, fake_sleep: Any) -> None:
        fetcher = ScriptedFetcher(
            [RateLimited(retry_after=5), TransientError("x"), Value(1)]
        )
        await ItemResolver(fetcher, sleep=fake_sleep).resolve(ITEM)

        assert fake_sleep.calls == [5.0, 2.0]


class TestIsolation:
    async def test_unexpected_exception_propagates(self, fake_sleep: Any) -> None:
        class Boom:
            async def fetch(self, item: WorkItem) -> FetchOutcome:
                raise RuntimeError("bug in fetcher")

        with pytest.raises(RuntimeError, match="bug in fetcher"):
            await ItemResolver(Boom(), sleep=fake_sleep).resolve(ITEM)

    async def test_concurrent_resolutions_are_independent(self, fake_sleep: Any) -> None:
        policy = RetryPolicy(max_attempts=2)
        failing = ItemResolver(ScriptedFetcher([TransientError("x")]), policy, sleep=fake_sleep)
        ok = ItemResolver(ScriptedFetcher([TransientError("x"), Value(3)]), policy, sleep=fake_sleep)

        r1, r2 = await asyncio.gather(
            failing.resolve(WorkItem(id="a", correlation_key="a")),
            ok.resolve(WorkItem(id="b", correlation_key="b")),
        )

        assert not r1.success and r1.attempts == 2
        assert r2.success and r2.attempts == 2

    async def test_one_resolver_reused_across_items(self, fake_sleep: Any) -> None:
        fetcher = ScriptedFetcher([TransientError("x"), TransientError("x"), Value(1)])
        resolver = ItemResolver(fetcher, RetryPolicy(max_attempts=2), sleep=fake_sleep)

        first = await resolver.resolve(ITEM)
        second = await resolver.resolve(ITEM)

        assert not first.success and first.attempts == 2
        assert second.success and second.attempts == 1
