"""Continuous scheduler for guildscan.

Runs one full pass immediately at startup, then one pass at every UTC hour
that is a multiple of ``RUN_INTERVAL_HOURS`` (default 6: 00:00, 06:00,
12:00 and 18:00 UTC).

Architecture
~~~~~~~~~~~~
The scheduler uses ``asyncio.sleep`` for interval management; no external
scheduler library is required.  Unlike ``--once`` mode, the database
connection is opened once here and shared by every run until shutdown.
Runs never overlap: the next sleep is only computed after the current run
has returned.

After every run (success *and* failure) the scheduler writes:

* a heartbeat file (epoch timestamp) to :data:`HEARTBEAT_PATH`;
* a lifetime stats snapshot via
  :func:`~guildscan.orchestrator.metrics.write_stats_file`.

Typical usage::

    import asyncio
    from guildscan.core.run_context import RunContext
    from guildscan.orchestrator.scheduler import run_continuous

    asyncio.run(run_continuous(RunContext()))
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import time
from datetime import UTC, datetime, timedelta
from typing import NoReturn

import aiosqlite

from guildscan.core.exceptions import OrchestratorError
from guildscan.core.run_context import RunContext
from guildscan.core.settings import Settings, load_settings
from guildscan.orchestrator.metrics import LifetimeStats, write_stats_file
from guildscan.orchestrator.runner import run_once
from guildscan.storage.database import open_db

__all__ = [
    "HEARTBEAT_PATH",
    "next_run_at",
    "run_continuous",
    "seconds_until_next_run",
]

logger = logging.getLogger(__name__)

#: Heartbeat file written after each run.  Override with
#: ``GUILDSCAN_HEARTBEAT_PATH`` if ``/tmp`` is not writable.
HEARTBEAT_PATH: str = os.environ.get("GUILDSCAN_HEARTBEAT_PATH", "/tmp/guildscan_heartbeat")


def _write_heartbeat(path: str = HEARTBEAT_PATH) -> None:
    """Write the current epoch timestamp to the heartbeat file.

    Errors are logged at WARNING level and never propagated.
    """
    try:
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(str(time.time()))
    except OSError:
        logger.warning("Failed to write heartbeat file '%s'.", path, exc_info=True)


# ---------------------------------------------------------------------------
# Schedule arithmetic (pure)
# ---------------------------------------------------------------------------


def next_run_at(now: datetime, interval_hours: int) -> datetime:
    """Return the first UTC hour boundary after *now* divisible by *interval_hours*.

    The last slot of the day wraps to 00:00 of the next day, so an interval
    that does not divide 24 still restarts at midnight.

    Args:
        now: Reference time.  Naive values are taken to be UTC.
        interval_hours: Hours between runs, 1-24.

    Raises:
        ValueError: If *interval_hours* is outside 1-24.
    """
    if not 1 <= interval_hours <= 24:
        raise ValueError(f"interval_hours must be in 1..24, got {interval_hours!r}")
    now = now.replace(tzinfo=UTC) if now.tzinfo is None else now.astimezone(UTC)
    top_of_hour = now.replace(minute=0, second=0, microsecond=0)
    next_hour = (now.hour // interval_hours + 1) * interval_hours
    if next_hour >= 24:
        return top_of_hour.replace(hour=0) + timedelta(days=1)
    return top_of_hour.replace(hour=next_hour)


def seconds_until_next_run(now: datetime, interval_hours: int) -> float:
    """Seconds from *now* until :func:`next_run_at`."""
    return (next_run_at(now, interval_hours) - now.astimezone(UTC)).total_seconds()


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------


async def _run_and_record(
    ctx: RunContext,
    settings: Settings,
    conn: aiosqlite.Connection,
    stats: LifetimeStats,
) -> None:
    """Execute one run and fold its outcome into *stats*.

    Any exception from the run is logged and swallowed so that the next
    scheduled run still happens.
    """
    try:
        report = await run_once(ctx=ctx, settings=settings, conn=conn)
    except Exception:
        stats.record_abort()
        logger.exception("Unhandled exception in scheduled run; will retry at next slot.")
    else:
        stats.update(report)

    _write_heartbeat()
    write_stats_file(stats)
    logger.info("%s", stats.format_summary())


async def _scan_loop(
    ctx: RunContext,
    settings: Settings,
    conn: aiosqlite.Connection,
) -> NoReturn:
    stats = LifetimeStats()
    logger.info("Running initial scan on startup.")
    while True:
        await _run_and_record(ctx, settings, conn, stats)

        now = datetime.now(UTC)
        target = next_run_at(now, settings.run_interval_hours)
        delay = (target - now).total_seconds()
        logger.info("Next run at %s (in %.0f s).", target.isoformat(), delay)
        await asyncio.sleep(delay)


async def run_continuous(
    ctx: RunContext,
    settings: Settings | None = None,
) -> NoReturn:
    """Run guildscan forever on the aligned UTC schedule.

    A ``SIGTERM`` handler cancels the loop task; the current run stops at its
    next ``await`` point, the database connection is closed, and
    :exc:`asyncio.CancelledError` propagates to the caller.  ``SIGINT`` is
    left to asyncio's default behaviour.

    Args:
        ctx: Runtime operating-mode flags.
        settings: Application settings.  Loaded from environment if ``None``.

    Raises:
        asyncio.CancelledError: On shutdown via SIGTERM or Ctrl+C.
        aiosqlite.Error: If the database cannot be opened at startup.
    """
    if settings is None:
        settings = load_settings()

    logger.info(
        "guildscan entering continuous mode, one run every %d h (UTC-aligned).",
        settings.run_interval_hours,
    )

    conn = await open_db(settings.database_path)
    task = asyncio.create_task(
        _scan_loop(ctx=ctx, settings=settings, conn=conn),
        name="guildscan-scan-loop",
    )

    loop = asyncio.get_running_loop()
    _shutdown_signal: list[str] = []

    def _request_graceful_shutdown(signame: str) -> None:
        if not _shutdown_signal:
            _shutdown_signal.append(signame)
            logger.info("Received %s, graceful shutdown requested.", signame)
        task.cancel()

    loop.add_signal_handler(signal.SIGTERM, lambda: _request_graceful_shutdown("SIGTERM"))

    try:
        await task
    except (asyncio.CancelledError, KeyboardInterrupt):
        if _shutdown_signal:
            logger.info("Graceful shutdown complete (signal: %s).", _shutdown_signal[0])
        else:
            logger.info("Continuous loop cancelled, stopping.")
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise
    finally:
        with contextlib.suppress(Exception):
            loop.remove_signal_handler(signal.SIGTERM)
        await conn.close()
        logger.debug("Database connection closed.")

    raise OrchestratorError("run_continuous exited unexpectedly")
