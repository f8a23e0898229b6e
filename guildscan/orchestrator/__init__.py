"""Run orchestration: retry loop, batching, reporting and scheduling.

Public API
----------
* :func:`~guildscan.orchestrator.scheduler.run_continuous` — default runtime
  entry-point; one run at startup, then one per aligned UTC slot.
* :func:`~guildscan.orchestrator.runner.run_once` — one full pass over the
  registered applications; used by :func:`run_continuous` and ``--once``.
* :class:`~guildscan.orchestrator.batch.BatchScheduler` — batched,
  bounded-concurrency execution with failed-item sub-rounds.
* :class:`~guildscan.orchestrator.retry.ItemResolver` — per-item retry loop
  with exponential backoff and ``Retry-After`` handling.
* :class:`~guildscan.orchestrator.report.RunReport` — per-run tallies.
* :class:`~guildscan.orchestrator.metrics.LifetimeStats` and
  :func:`~guildscan.orchestrator.metrics.write_stats_file` — cumulative
  cross-run statistics.
"""

from guildscan.orchestrator.batch import BatchScheduler, ResultSink, partition
from guildscan.orchestrator.metrics import LifetimeStats, write_stats_file
from guildscan.orchestrator.report import RunReport
from guildscan.orchestrator.retry import Fetcher, ItemResolver
from guildscan.orchestrator.runner import run_once
from guildscan.orchestrator.scheduler import (
    next_run_at,
    run_continuous,
    seconds_until_next_run,
)

__all__ = [
    # Continuous scheduler
    "run_continuous",
    "next_run_at",
    "seconds_until_next_run",
    # Single-run entry-point
    "run_once",
    # Execution primitives
    "BatchScheduler",
    "ResultSink",
    "partition",
    "ItemResolver",
    "Fetcher",
    # Reporting
    "RunReport",
    "LifetimeStats",
    "write_stats_file",
]
