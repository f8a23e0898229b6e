"""guildscan process entry-point.

Usage:
    python -m guildscan [--once] [--dry-run] [--log-level LEVEL] [--log-format FORMAT]

The orchestration logic lives in ``guildscan.orchestrator``.  This module
calls ``configure_logging()`` first so that every subsequent import already
has a working logger, validates the configuration, then hands off.

Default behaviour is continuous: one run at startup, then one at every UTC
hour divisible by ``RUN_INTERVAL_HOURS``.  Pass ``--once`` to execute a
single run and exit.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from guildscan.core import configure_logging
from guildscan.core.exceptions import ConfigError, StorageError
from guildscan.core.run_context import RunContext
from guildscan.core.settings import load_settings


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="guildscan",
        description="Periodically record guild counts for every registered application.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single pass over all applications and exit.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch everything but log observations instead of writing them.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Log level; overrides $LOG_LEVEL (default INFO).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Log format, text or json; overrides $LOG_FORMAT.",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    args = _build_parser().parse_args(argv)

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"guildscan: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger = logging.getLogger(__name__)
    logger.info("guildscan starting up")

    try:
        settings = load_settings()
    except ConfigError as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)

    ctx = RunContext(dry_run=args.dry_run)
    logger.info("Run context: %s", ctx)

    from guildscan.orchestrator.runner import run_once  # noqa: PLC0415
    from guildscan.orchestrator.scheduler import run_continuous  # noqa: PLC0415

    try:
        if args.once:
            logger.info("Running a single pass (--once mode).")
            asyncio.run(run_once(ctx=ctx, settings=settings))
        else:
            logger.info("Running in continuous mode (Ctrl+C to stop).")
            asyncio.run(run_continuous(ctx=ctx, settings=settings))
    except StorageError as exc:
        logger.critical("Storage error: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting.")
        sys.exit(0)
    except asyncio.CancelledError:
        # SIGTERM path; the scheduler already logged the shutdown.
        logger.info("Shutdown complete, exiting.")
        sys.exit(0)


if __name__ == "__main__":
    main()
