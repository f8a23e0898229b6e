"""Orchestrator entry-point: assemble all components and execute one run.

Each call to :func:`run_once`:

1. Generates an 8-char run ID and binds it to
   :data:`~guildscan.core.logging_config.RUN_ID_CTX` for log correlation.
2. Uses the injected database connection, or opens (and later closes) its
   own when none is given (``--once`` mode).
3. Loads the registered applications.  A failure here aborts the run before
   any batch executes.
4. Opens one :class:`~guildscan.fetcher.client.GuildCountFetcher` session and
   hands the work list to :class:`~guildscan.orchestrator.batch.BatchScheduler`.
5. Logs and returns the :class:`~guildscan.orchestrator.report.RunReport`.

Typical usage::

    import asyncio
    from guildscan.core.run_context import RunContext
    from guildscan.orchestrator.runner import run_once

    report = asyncio.run(run_once(RunContext(dry_run=True)))
    print(report.format_report())
"""

from __future__ import annotations

import logging
import uuid

import aiosqlite

from guildscan.core import events
from guildscan.core.exceptions import WorkSourceError
from guildscan.core.logging_config import RUN_ID_CTX
from guildscan.core.run_context import RunContext
from guildscan.core.settings import Settings, load_settings
from guildscan.fetcher.client import GuildCountFetcher
from guildscan.orchestrator.batch import BatchScheduler, ResultSink
from guildscan.orchestrator.report import RunReport
from guildscan.orchestrator.retry import ItemResolver
from guildscan.storage.database import open_db
from guildscan.storage.repository import (
    ApplicationRepository,
    DryRunSink,
    GuildCountRepository,
)

__all__ = ["run_once"]

logger = logging.getLogger(__name__)


def _build_fetcher(settings: Settings) -> GuildCountFetcher:
    return GuildCountFetcher(
        base_url=settings.base_url,
        timeout=settings.request_timeout_s,
    )


def _build_sink(ctx: RunContext, conn: aiosqlite.Connection) -> ResultSink:
    if ctx.should_persist:
        return GuildCountRepository(conn)
    return DryRunSink()


async def run_once(
    ctx: RunContext,
    settings: Settings | None = None,
    conn: aiosqlite.Connection | None = None,
) -> RunReport:
    """Execute one full pass over every registered application.

    Args:
        ctx: Runtime operating-mode flags.
        settings: Pre-loaded settings; loaded from the environment if ``None``.
        conn: Open database handle shared across runs.  When ``None`` a
            connection is opened for this run only and closed on exit.

    Returns:
        The finished :class:`RunReport`.

    Raises:
        ConfigError: If settings must be loaded and are invalid.
        WorkSourceError: If the application list cannot be loaded.
    """
    if settings is None:
        settings = load_settings()

    token = RUN_ID_CTX.set(uuid.uuid4().hex[:8])
    try:
        logger.info("run_once starting, mode=%s endpoint=%s", ctx.mode_label, settings.base_url)

        owns_conn = conn is None
        if conn is None:
            conn = await open_db(settings.database_path)
        try:
            try:
                items = await ApplicationRepository(conn).list_applications()
            except WorkSourceError as exc:
                logger.error(
                    "Run aborted, could not load applications: %s",
                    exc,
                    extra={"event": events.RUN_ABORT},
                )
                raise

            if not items:
                logger.warning("No registered applications; nothing to fetch.")

            sink = _build_sink(ctx, conn)
            async with _build_fetcher(settings) as fetcher:
                resolver = ItemResolver(fetcher, settings.retry_policy())
                scheduler = BatchScheduler(resolver, sink, settings.batch_policy())
                report = await scheduler.run(items)

            logger.info(
                "%s",
                report.format_report(),
                extra={"event": events.RUN_COMPLETE, "report": report.as_dict()},
            )
            for failed in report.failed_items:
                logger.debug(
                    "  failed app id=%s bot_id=%s attempts=%d error=%s",
                    failed.item.id,
                    failed.item.correlation_key,
                    failed.attempts,
                    failed.error or "no value",
                )
            return report
        finally:
            if owns_conn:
                await conn.close()
                logger.debug("Database connection closed.")
    finally:
        RUN_ID_CTX.reset(token)
