"""Smoke tests: verify the test harness itself is wired up correctly.

These tests assert nothing about business logic.  Their sole purpose is to
confirm:

1. pytest discovers and runs tests in this suite.
2. pytest-asyncio's ``asyncio_mode = "auto"`` setting works.
3. Core guildscan modules import without errors.
4. ``configure_logging()`` executes without raising.
5. The exception taxonomy is importable and the hierarchy is intact.
"""

from __future__ import annotations

import asyncio
import json
import logging

import pytest

from guildscan.core import (
    ConfigError,
    GuildscanError,
    JsonFormatter,
    OrchestratorError,
    SinkError,
    StorageError,
    WorkSourceError,
    configure_logging,
)
from guildscan.core.logging_config import RUN_ID_CTX, RunContextFilter

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Import & startup smoke
# ---------------------------------------------------------------------------


def test_package_imports_succeed() -> None:
    import guildscan.__main__  # noqa: F401
    import guildscan.orchestrator  # noqa: F401

    assert configure_logging is not None
    assert JsonFormatter is not None


def test_configure_logging_text() -> None:
    configure_logging(level="INFO", fmt="text", force=True)


def test_configure_logging_json() -> None:
    configure_logging(level="DEBUG", fmt="json", force=True)
    configure_logging(level="DEBUG", fmt="text", force=True)


def test_configure_logging_invalid_level() -> None:
    with pytest.raises(ValueError, match="Unknown LOG_LEVEL"):
        configure_logging(level="VERBOSE", force=True)


def test_configure_logging_invalid_format() -> None:
    with pytest.raises(ValueError, match="Unknown LOG_FORMAT"):
        configure_logging(fmt="xml", force=True)


def test_json_formatter_includes_event_and_run_id() -> None:
    record = logging.LogRecord(
        name="guildscan.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Recorded guild_count=%d",
        args=(42,),
        exc_info=None,
    )
    record.event = "ITEM_RECORDED"

    token = RUN_ID_CTX.set("abcd1234")
    try:
        RunContextFilter().filter(record)
    finally:
        RUN_ID_CTX.reset(token)

    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "Recorded guild_count=42"
    assert payload["level"] == "INFO"
    assert payload["event"] == "ITEM_RECORDED"
    assert payload["run_id"] == "abcd1234"
    assert payload["extra"] == {}
    assert payload["ts"].endswith("Z")


def test_run_context_filter_defaults_to_dash() -> None:
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "m", (), None)
    RunContextFilter().filter(record)
    assert record.run_id == "-"


# ---------------------------------------------------------------------------
# Exception taxonomy
# ---------------------------------------------------------------------------


def test_exception_hierarchy_base() -> None:
    for exc_class in (ConfigError, StorageError, SinkError, WorkSourceError, OrchestratorError):
        assert issubclass(exc_class, GuildscanError), (
            f"{exc_class.__name__} is not a subclass of GuildscanError"
        )


def test_exception_hierarchy_layers() -> None:
    assert issubclass(SinkError, StorageError)
    assert issubclass(WorkSourceError, StorageError)


def test_sink_error_carries_bot_id() -> None:
    exc = SinkError("9876543210", "insert failed")
    assert exc.bot_id == "9876543210"
    assert "9876543210" in str(exc)
    assert "insert failed" in str(exc)


# ---------------------------------------------------------------------------
# Async harness
# ---------------------------------------------------------------------------


async def test_async_test_runs() -> None:
    await asyncio.sleep(0)
    assert True
