"""Per-run outcome aggregation.

:class:`RunReport` is a pure accumulator: the batch scheduler appends each
item's final :class:`~guildscan.core.models.ItemResult` once the batch's
concurrent phase has finished, and the caller logs
:meth:`RunReport.format_report` at the end of the run.

Tally rules:

* ``successful`` — a value was fetched **and** persisted.
* ``failed`` — retries exhausted, sink failure, no correlation key, and
  (by default) responses that carried no value.
* ``skipped`` — no-value responses, only when
  ``count_no_value_as_failure`` is ``False``.

``successful + failed + skipped == total`` always holds once every item has
been added.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime

from guildscan.core.models import ItemResult

__all__ = ["RunReport"]


@dataclass
class RunReport:
    """Aggregate counters and timing for one full pass over the work list.

    Attributes:
        total: Number of work items in the run.
        successful: Items whose value was persisted.
        failed: Items counted as failures (see module docstring).
        skipped: No-value items excluded from the tally by policy.
        batches: Batches executed.
        sub_rounds: Retry passes executed across all batches.
        started_at: UTC wall-clock start.
        finished_at: UTC wall-clock end; ``None`` until :meth:`finish`.
        count_no_value_as_failure: Tally policy for no-value outcomes.
        results: Every item's final result, in input order.
    """

    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    batches: int = 0
    sub_rounds: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    count_no_value_as_failure: bool = True
    results: list[ItemResult] = field(default_factory=list, repr=False)

    _start_monotonic: float = field(default_factory=time.monotonic, repr=False)
    _duration_s: float | None = field(default=None, repr=False)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add(self, result: ItemResult) -> None:
        """Tally one item's final result."""
        self.results.append(result)
        if result.recorded:
            self.successful += 1
        elif result.success and not result.has_value and not self.count_no_value_as_failure:
            self.skipped += 1
        else:
            self.failed += 1

    def finish(self) -> None:
        """Freeze the end time.  Idempotent."""
        if self.finished_at is None:
            self.finished_at = datetime.now(UTC)
            self._duration_s = time.monotonic() - self._start_monotonic

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def completed(self) -> int:
        return self.successful + self.failed + self.skipped

    @property
    def duration_s(self) -> float:
        """Run duration; still ticking until :meth:`finish` is called."""
        if self._duration_s is not None:
            return self._duration_s
        return time.monotonic() - self._start_monotonic

    @property
    def avg_seconds_per_item(self) -> float:
        return self.duration_s / self.total if self.total else 0.0

    @property
    def success_rate(self) -> float:
        """Fraction of tallied (non-skipped) items that succeeded."""
        counted = self.successful + self.failed
        return self.successful / counted if counted else 0.0

    @property
    def failed_items(self) -> list[ItemResult]:
        return [r for r in self.results if not r.recorded and not self._is_skipped(r)]

    def _is_skipped(self, result: ItemResult) -> bool:
        return (
            result.success
            and not result.has_value
            and not self.count_no_value_as_failure
        )

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    def format_report(self) -> str:
        """Return the multi-line end-of-run summary for a single log call.

        Example output::

            Completed update for 120 apps in 1.42 minutes.
              Results: 117 successful, 3 failed out of 120 total apps.
              Average time per app: 0.71 seconds (batches=12 sub_rounds=2)
        """
        lines = [
            f"Completed update for {self.total} apps in {self.duration_s / 60:.2f} minutes.",
            f"  Results: {self.successful} successful, {self.failed} failed"
            + (f", {self.skipped} skipped" if self.skipped else "")
            + f" out of {self.total} total apps.",
            f"  Average time per app: {self.avg_seconds_per_item:.2f} seconds "
            f"(batches={self.batches} sub_rounds={self.sub_rounds})",
        ]
        return "\n".join(lines)

    def as_dict(self) -> dict[str, object]:
        """JSON-serialisable summary (item results are not included)."""
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "batches": self.batches,
            "sub_rounds": self.sub_rounds,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_s": round(self.duration_s, 3),
        }
