"""Data-access objects for the work source and the result sink.

* :class:`ApplicationRepository` — reads the ordered list of registered
  applications (the work source for a run).
* :class:`GuildCountRepository` — appends one ``application_stats`` row per
  observation (the result sink).
* :class:`DryRunSink` — a sink that only logs, used in ``--dry-run`` mode.

None of these own the connection lifecycle: the caller supplies an open
:class:`aiosqlite.Connection` and closes it when done (see
:func:`~guildscan.storage.database.open_db`).

Typical usage::

    conn = await open_db(settings.database_path)
    apps = await ApplicationRepository(conn).list_applications()
    sink = GuildCountRepository(conn)
    await sink.record("9876543210", 5120)
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

import aiosqlite
from pydantic import ValidationError

from guildscan.core.exceptions import SinkError, WorkSourceError
from guildscan.core.models import WorkItem

__all__ = [
    "ApplicationRepository",
    "GuildCountRepository",
    "DryRunSink",
]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Work source
# ---------------------------------------------------------------------------


class ApplicationRepository:
    """Read access to the ``applications`` table.

    Args:
        conn: Open :class:`aiosqlite.Connection`.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def list_applications(self) -> list[WorkItem]:
        """Return every registered application, in insertion order.

        Rows with an unusable ``id`` are skipped with a warning.

        Raises:
            WorkSourceError: If the query itself fails.
        """
        try:
            cursor = await self._conn.execute(
                "SELECT id, bot_id FROM applications ORDER BY rowid"
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise WorkSourceError(f"Could not list applications: {exc}") from exc

        items: list[WorkItem] = []
        for row in rows:
            try:
                items.append(WorkItem(id=row["id"], correlation_key=row["bot_id"]))
            except ValidationError as exc:
                logger.warning("Skipping malformed application row %r: %s", tuple(row), exc)

        logger.debug("Loaded %d application(s) from the work source", len(items))
        return items

    async def add(self, app_id: str, bot_id: str | None) -> None:
        """Register an application (no-op if the ID already exists)."""
        await self._conn.execute(
            "INSERT OR IGNORE INTO applications (id, bot_id) VALUES (?, ?)",
            (app_id, bot_id),
        )
        await self._conn.commit()


# ---------------------------------------------------------------------------
# Result sink
# ---------------------------------------------------------------------------


class GuildCountRepository:
    """Append-only writer for the ``application_stats`` table.

    Shared by every concurrently resolving item of a batch.  Each
    insert-and-commit pair runs under an :class:`asyncio.Lock` so commits
    from different coroutines never interleave on the single connection.

    Args:
        conn: Open :class:`aiosqlite.Connection`.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn
        self._write_lock = asyncio.Lock()

    async def record(self, bot_id: str, guild_count: int) -> None:
        """Insert one observation.

        Raises:
            SinkError: If the insert or commit fails.
        """
        recorded_at = datetime.now(UTC).isoformat()
        async with self._write_lock:
            try:
                await self._conn.execute(
                    "INSERT INTO application_stats (bot_id, guild_count, recorded_at) "
                    "VALUES (?, ?, ?)",
                    (bot_id, guild_count, recorded_at),
                )
                await self._conn.commit()
            except aiosqlite.Error as exc:
                raise SinkError(bot_id, f"insert failed: {exc}") from exc

        logger.debug("Inserted guild_count=%d for bot_id=%s", guild_count, bot_id)

    async def latest(self, bot_id: str) -> int | None:
        """Return the most recently recorded count for *bot_id*, if any."""
        cursor = await self._conn.execute(
            "SELECT guild_count FROM application_stats WHERE bot_id = ? "
            "ORDER BY id DESC LIMIT 1",
            (bot_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row is not None else None


class DryRunSink:
    """Sink that logs observations instead of writing them."""

    async def record(self, bot_id: str, guild_count: int) -> None:
        logger.info("[dry-run] would record guild_count=%d for bot_id=%s", guild_count, bot_id)
