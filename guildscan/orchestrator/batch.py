"""Batched, bounded-concurrency scheduler for one full pass over the work list.

Algorithm
---------
1. Partition the ordered work list into consecutive batches of
   ``batch_size`` items.
2. For each batch, strictly in sequence:

   a. Resolve every pending item concurrently via ``asyncio.gather`` (at most
      ``batch_size`` fetches in flight).  Each item that resolves with a
      value is handed to the result sink exactly once, inside its own task.
   b. Items whose retry loop gave up stay pending.  After
      ``sub_round_delay_s`` only those items are resubmitted, up to
      ``max_sub_rounds`` times (``None`` = until they succeed).  Whatever is
      still failing when the budget runs out is recorded as failed.
   c. Every item's final result is appended to the
      :class:`~guildscan.orchestrator.report.RunReport` in input order.
   d. Sleep ``batch_delay_s`` if more batches remain.

A sink failure is logged and counted as a failed item, but never causes the
item to be fetched again.  The report is only touched after a batch's
concurrent phase has finished, so it needs no locking.

Typical usage::

    resolver = ItemResolver(fetcher, settings.retry_policy())
    scheduler = BatchScheduler(resolver, GuildCountRepository(conn), settings.batch_policy())
    report = await scheduler.run(items)
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Sequence
from typing import Protocol

from guildscan.core import events
from guildscan.core.models import ItemResult, WorkItem
from guildscan.core.policy import BatchPolicy
from guildscan.orchestrator.report import RunReport
from guildscan.orchestrator.retry import ItemResolver, SleepFn

__all__ = ["BatchScheduler", "ResultSink", "partition"]

logger = logging.getLogger(__name__)


class ResultSink(Protocol):
    """Persists one observation; raises on failure."""

    async def record(self, bot_id: str, guild_count: int) -> None: ...


def partition(items: Sequence[WorkItem], size: int) -> list[Sequence[WorkItem]]:
    """Split *items* into consecutive, order-preserving chunks of *size*."""
    if size < 1:
        raise ValueError(f"batch size must be >= 1, got {size!r}")
    return [items[i : i + size] for i in range(0, len(items), size)]


class BatchScheduler:
    """Run every work item through the retry loop, batch by batch.

    Args:
        resolver: Per-item retry loop.
        sink: Where fetched values are persisted.
        policy: Batch size, pacing delays and sub-round budget.
        sleep: Awaitable sleep for the pacing delays; injectable for tests.
    """

    def __init__(
        self,
        resolver: ItemResolver,
        sink: ResultSink,
        policy: BatchPolicy | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._resolver = resolver
        self._sink = sink
        self._policy = policy or BatchPolicy()
        self._sleep = sleep

    @property
    def policy(self) -> BatchPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Full pass
    # ------------------------------------------------------------------

    async def run(self, items: Sequence[WorkItem]) -> RunReport:
        """Process *items* and return the finished :class:`RunReport`."""
        total = len(items)
        size = self._policy.batch_size
        report = RunReport(
            total=total,
            count_no_value_as_failure=self._policy.count_no_value_as_failure,
        )
        batches = partition(items, size)

        logger.info(
            "Starting concurrent update for %d apps (%d batch(es) of up to %d).",
            total,
            len(batches),
            size,
            extra={"event": events.RUN_START, "total": total},
        )

        for number, batch in enumerate(batches):
            offset = number * size
            logger.info(
                "[BATCH] Processing apps %d-%d of %d",
                offset + 1,
                offset + len(batch),
                total,
                extra={"event": events.BATCH_START, "batch": number + 1},
            )

            results, sub_rounds = await self.run_batch(batch, offset=offset, total=total)
            report.batches += 1
            report.sub_rounds += sub_rounds
            for result in results:
                report.add(result)

            if number + 1 < len(batches):
                logger.info(
                    "[BATCH] Waiting %.0f seconds before next batch...",
                    self._policy.batch_delay_s,
                )
                await self._sleep(self._policy.batch_delay_s)

        report.finish()
        return report

    # ------------------------------------------------------------------
    # One batch
    # ------------------------------------------------------------------

    async def run_batch(
        self,
        batch: Sequence[WorkItem],
        *,
        offset: int = 0,
        total: int | None = None,
    ) -> tuple[list[ItemResult], int]:
        """Resolve one batch, resubmitting failed items in sub-rounds.

        Args:
            batch: The batch's work items.
            offset: Index of the batch's first item in the full work list.
            total: Size of the full work list, for ``[i/total]`` log prefixes.

        Returns:
            The final result of every item, in batch order, and the number of
            sub-rounds that were run.
        """
        total = total if total is not None else len(batch)
        final: dict[int, ItemResult] = {}
        pending = list(range(len(batch)))
        sub_round = 0

        while True:
            gathered = await asyncio.gather(
                *(self._process_item(batch[i], offset + i, total) for i in pending),
                return_exceptions=True,
            )

            still_failing: list[int] = []
            for i, outcome in zip(pending, gathered, strict=True):
                if isinstance(outcome, Exception):
                    logger.error(
                        "[%d/%d] Unexpected error resolving app %s: %s",
                        offset + i + 1,
                        total,
                        batch[i].id,
                        outcome,
                        exc_info=outcome,
                        extra={"event": events.ITEM_FAILED},
                    )
                    outcome = ItemResult(
                        item=batch[i],
                        index=offset + i,
                        success=False,
                        error=f"{type(outcome).__name__}: {outcome}",
                    )
                elif isinstance(outcome, BaseException):
                    raise outcome

                final[i] = outcome
                if not outcome.success:
                    still_failing.append(i)

            if not still_failing:
                break

            budget = self._policy.max_sub_rounds
            if budget is not None and sub_round >= budget:
                logger.warning(
                    "[BATCH] Giving up on %d app(s) after %d sub-round(s): %s",
                    len(still_failing),
                    sub_round,
                    ", ".join(batch[i].id for i in still_failing),
                    extra={"event": events.BATCH_GIVE_UP},
                )
                break

            sub_round += 1
            logger.info(
                "[BATCH] Retrying %d failed apps in this batch (sub-round %d)...",
                len(still_failing),
                sub_round,
                extra={"event": events.BATCH_RETRY},
            )
            await self._sleep(self._policy.sub_round_delay_s)
            pending = still_failing

        return [final[i] for i in range(len(batch))], sub_round

    # ------------------------------------------------------------------
    # One item
    # ------------------------------------------------------------------

    async def _process_item(self, item: WorkItem, index: int, total: int) -> ItemResult:
        """Resolve *item* and persist its value, if it has one."""
        prefix = f"[{index + 1}/{total}]"
        logger.debug(
            "%s Fetching guild count for app id=%s, bot_id=%s",
            prefix,
            item.id,
            item.correlation_key,
        )

        result = await self._resolver.resolve(item, index)
        took = result.elapsed_ms / 1000

        if not result.success:
            logger.warning(
                "%s ✗ Fetch failed for app id=%s after %d attempt(s) (took %.2fs)",
                prefix,
                item.id,
                result.attempts,
                took,
                extra={"event": events.ITEM_FAILED},
            )
            return result

        if result.value is None:
            logger.info(
                "%s ✗ No guild count recorded for bot_id=%s (took %.2fs)",
                prefix,
                item.correlation_key,
                took,
                extra={"event": events.ITEM_NO_VALUE},
            )
            return result

        if item.correlation_key is None:
            logger.warning(
                "%s ✗ App id=%s has no bot_id; guild_count=%d not recorded",
                prefix,
                item.id,
                result.value,
                extra={"event": events.ITEM_FAILED},
            )
            return dataclasses.replace(result, error="missing bot_id")

        try:
            await self._sink.record(item.correlation_key, result.value)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "%s ✗ Failed to record guild_count=%d for bot_id=%s: %s",
                prefix,
                result.value,
                item.correlation_key,
                exc,
                exc_info=True,
                extra={"event": events.ITEM_SINK_ERROR},
            )
            return dataclasses.replace(result, error=f"sink: {exc}")

        logger.info(
            "%s ✓ Recorded guild_count=%d for bot_id=%s (took %.2fs)",
            prefix,
            result.value,
            item.correlation_key,
            took,
            extra={"event": events.ITEM_RECORDED},
        )
        return dataclasses.replace(result, recorded=True)
