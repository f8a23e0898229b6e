"""SQLite database initialisation for Guildscan.

This module is responsible for:

* Opening (or creating) the SQLite file named by ``CONNECTION_STRING``.
* Configuring PRAGMA settings (WAL journal mode, foreign keys).
* Bootstrapping the schema via ``CREATE TABLE IF NOT EXISTS``.

The connection is a process-lifetime handle: the scheduler opens it once at
startup, injects it into the repositories, and closes it on shutdown.

Typical usage::

    from guildscan.storage.database import open_db

    async def main() -> None:
        conn = await open_db("data/guildscan.db")
        try:
            ...  # pass conn to ApplicationRepository / GuildCountRepository
        finally:
            await conn.close()
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

__all__ = [
    "MEMORY_DB",
    "open_db",
    "create_schema",
]

logger = logging.getLogger(__name__)

MEMORY_DB: str = ":memory:"

# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

#: Registered applications; the work source for every run.
#:
#: id      Application ID interpolated into the statistics endpoint URL.
#: bot_id  Key the observations are recorded against.  Nullable: an
#:         application without a bot is fetched but nothing is recorded.
_DDL_APPLICATIONS = """\
CREATE TABLE IF NOT EXISTS applications (
    id      TEXT NOT NULL,
    bot_id  TEXT,
    PRIMARY KEY (id)
)"""

#: One row per successful observation.  Append-only; duplicates after a
#: crash-and-restart are acceptable.
_DDL_APPLICATION_STATS = """\
CREATE TABLE IF NOT EXISTS application_stats (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    bot_id       TEXT    NOT NULL,
    guild_count  INTEGER NOT NULL,
    recorded_at  TEXT    NOT NULL
)"""

_DDL_STATS_INDEX = """\
CREATE INDEX IF NOT EXISTS idx_application_stats_bot_id
    ON application_stats (bot_id, recorded_at)"""

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def open_db(path: str | Path) -> aiosqlite.Connection:
    """Open (or create) the SQLite database and bootstrap the schema.

    Args:
        path: Filesystem path of the database, or ``":memory:"``.  Parent
            directories are created when missing.

    Returns:
        An open, configured :class:`aiosqlite.Connection`.  The caller owns
        it and must close it.

    Raises:
        aiosqlite.OperationalError: If the file cannot be opened or created.
    """
    if str(path) != MEMORY_DB:
        db_path = Path(path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        target: str | Path = db_path
    else:
        target = MEMORY_DB

    logger.debug("Opening SQLite database at %s", target)

    conn: aiosqlite.Connection = await aiosqlite.connect(target)
    conn.row_factory = aiosqlite.Row

    await _configure_pragmas(conn)
    await create_schema(conn)

    logger.info("SQLite database ready at %s (schema verified)", target)
    return conn


async def create_schema(conn: aiosqlite.Connection) -> None:
    """Create all required tables if they do not already exist.

    Idempotent; existing data is untouched.
    """
    await conn.execute(_DDL_APPLICATIONS)
    await conn.execute(_DDL_APPLICATION_STATS)
    await conn.execute(_DDL_STATS_INDEX)
    await conn.commit()
    logger.debug("Schema bootstrap complete (applications, application_stats)")


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


async def _configure_pragmas(conn: aiosqlite.Connection) -> None:
    """Enable WAL journalling and foreign-key enforcement."""
    result = await conn.execute("PRAGMA journal_mode=WAL")
    row = await result.fetchone()
    mode = row[0] if row else "unknown"
    if mode != "wal":
        logger.debug("SQLite journal_mode is %r (expected for in-memory databases)", mode)

    await conn.execute("PRAGMA foreign_keys=ON")
