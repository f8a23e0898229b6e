"""Shared pytest fixtures and configuration for the guildscan test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across unit and integration tests.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator

import aiosqlite
import pytest
from pydantic_settings import SettingsConfigDict

from guildscan.core import configure_logging
from guildscan.core.settings import Settings
from guildscan.storage.database import MEMORY_DB, open_db


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test."""
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every guildscan-related env var for the duration of a test.

    Also disables pydantic-settings ``.env`` file loading so that values in a
    developer's local ``.env`` do not leak into Settings isolation tests.
    """
    sensitive_prefixes = (
        "BASE_URL",
        "CONNECTION_STRING",
        "REQUEST_TIMEOUT",
        "MAX_",
        "INITIAL_BACKOFF",
        "COUNT_",
        "BATCH_",
        "SUB_ROUND",
        "UNBOUNDED_",
        "RUN_INTERVAL",
        "LOG_LEVEL",
        "LOG_FORMAT",
        "GUILDSCAN_",
    )
    for key in list(os.environ):
        if any(key.startswith(prefix) for prefix in sensitive_prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
        ),
    )


@pytest.fixture()
def fast_settings(clean_env: None) -> Settings:
    """Settings with every delay zeroed, pointing at an in-memory database."""
    return Settings(
        base_url="https://stats.example.com/applications",
        connection_string=MEMORY_DB,
        initial_backoff_s=0.0,
        max_backoff_s=0.0,
        sub_round_delay_s=0.0,
        batch_delay_s=0.0,
    )


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture()
async def db() -> AsyncIterator[aiosqlite.Connection]:
    """An in-memory SQLite connection with the guildscan schema applied."""
    conn = await open_db(MEMORY_DB)
    try:
        yield conn
    finally:
        await conn.close()


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


class FakeSleep:
    """Awaitable stand-in for :func:`asyncio.sleep` that records every delay."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(float(seconds))


@pytest.fixture()
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture()
def logger() -> logging.Logger:
    """Return a ``logging.Logger`` scoped to the running test."""
    return logging.getLogger("tests")
