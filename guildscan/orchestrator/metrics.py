"""Cumulative cross-run statistics.

Tracks lifetime totals across all scheduled runs and provides two output
paths:

1. **Log summary**: :meth:`LifetimeStats.format_summary`.
2. **JSON stats file**: :func:`write_stats_file` serialises
   :meth:`LifetimeStats.as_dict` to ``/tmp/guildscan_stats.json`` (override
   with ``GUILDSCAN_STATS_PATH``), rewritten after every run so operators can
   ``cat`` a fresh snapshot.

Typical usage::

    stats = LifetimeStats()
    stats.update(report)        # or stats.record_abort() on failure
    write_stats_file(stats)
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime

from guildscan.orchestrator.report import RunReport

__all__ = ["STATS_PATH", "LifetimeStats", "write_stats_file"]

logger = logging.getLogger(__name__)

STATS_PATH: str = os.environ.get("GUILDSCAN_STATS_PATH", "/tmp/guildscan_stats.json")


@dataclass
class LifetimeStats:
    """Totals accumulated across every run of this process.

    Attributes:
        runs: Completed runs.
        aborted_runs: Runs that raised before producing a report.
        total_items: Work items processed across completed runs.
        total_successful: Values persisted.
        total_failed: Items counted as failed.
        total_skipped: No-value items excluded by policy.
        last_run_at: UTC end time of the most recent completed run.
        last_duration_s: Duration of the most recent completed run.
    """

    runs: int = 0
    aborted_runs: int = 0
    total_items: int = 0
    total_successful: int = 0
    total_failed: int = 0
    total_skipped: int = 0
    last_run_at: datetime | None = None
    last_duration_s: float | None = None

    _start_monotonic: float = field(default_factory=time.monotonic, repr=False)
    _started_at: datetime = field(default_factory=lambda: datetime.now(UTC), repr=False)

    @property
    def uptime_s(self) -> float:
        return time.monotonic() - self._start_monotonic

    def update(self, report: RunReport) -> None:
        """Fold a finished run's report into the lifetime totals."""
        self.runs += 1
        self.total_items += report.total
        self.total_successful += report.successful
        self.total_failed += report.failed
        self.total_skipped += report.skipped
        self.last_run_at = report.finished_at or datetime.now(UTC)
        self.last_duration_s = report.duration_s

    def record_abort(self) -> None:
        self.aborted_runs += 1

    def format_summary(self) -> str:
        """Single-line lifetime summary.

        Example::

            lifetime stats, uptime: 18h00m05s | runs=4 aborted=0 items=480 successful=471 failed=9
        """
        hours, rem = divmod(int(self.uptime_s), 3600)
        minutes, seconds = divmod(rem, 60)
        return (
            f"lifetime stats, uptime: {hours}h{minutes:02d}m{seconds:02d}s | "
            f"runs={self.runs} aborted={self.aborted_runs} items={self.total_items} "
            f"successful={self.total_successful} failed={self.total_failed}"
            + (f" skipped={self.total_skipped}" if self.total_skipped else "")
        )

    def as_dict(self) -> dict[str, object]:
        return {
            "started_at": self._started_at.isoformat(),
            "uptime_s": round(self.uptime_s, 1),
            "runs": self.runs,
            "aborted_runs": self.aborted_runs,
            "total_items": self.total_items,
            "total_successful": self.total_successful,
            "total_failed": self.total_failed,
            "total_skipped": self.total_skipped,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_duration_s": (
                round(self.last_duration_s, 1) if self.last_duration_s is not None else None
            ),
        }


def write_stats_file(stats: LifetimeStats, path: str = STATS_PATH) -> None:
    """Write a JSON snapshot of *stats* to *path*.

    Errors are logged at WARNING level and never propagated.
    """
    try:
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(stats.as_dict(), fh, indent=2)
    except OSError:
        logger.warning("Failed to write stats file '%s'.", path, exc_info=True)
