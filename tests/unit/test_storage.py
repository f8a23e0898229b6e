"""Unit tests for the SQLite work source and result sink."""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite
import pytest

from guildscan.core.exceptions import SinkError, WorkSourceError
from guildscan.storage.database import open_db
from guildscan.storage.repository import (
    ApplicationRepository,
    DryRunSink,
    GuildCountRepository,
)


class TestOpenDb:
    async def test_creates_file_and_parent_dirs(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "guildscan.db"
        conn = await open_db(path)
        try:
            cursor = await conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
            )
            tables = {row[0] for row in await cursor.fetchall()}
        finally:
            await conn.close()

        assert path.exists()
        assert {"applications", "application_stats"} <= tables

    async def test_reopen_is_idempotent(self, tmp_path: Path) -> None:
        path = tmp_path / "guildscan.db"
        conn = await open_db(path)
        await ApplicationRepository(conn).add("1", "b1")
        await conn.close()

        conn = await open_db(path)
        try:
            apps = await ApplicationRepository(conn).list_applications()
        finally:
            await conn.close()
        assert [a.id for a in apps] == ["1"]


class TestApplicationRepository:
    async def test_lists_in_insertion_order(self, db: aiosqlite.Connection) -> None:
        repo = ApplicationRepository(db)
        for app_id, bot_id in (("30", "b30"), ("10", "b10"), ("20", None)):
            await repo.add(app_id, bot_id)

        apps = await repo.list_applications()
        assert [a.id for a in apps] == ["30", "10", "20"]
        assert apps[0].correlation_key == "b30"
        assert apps[2].correlation_key is None

    async def test_add_ignores_duplicates(self, db: aiosqlite.Connection) -> None:
        repo = ApplicationRepository(db)
        await repo.add("1", "a")
        await repo.add("1", "b")
        apps = await repo.list_applications()
        assert len(apps) == 1
        assert apps[0].correlation_key == "a"

    async def test_malformed_rows_are_skipped(self, db: aiosqlite.Connection) -> None:
        await db.execute("INSERT INTO applications (id, bot_id) VALUES ('', 'b')")
        await db.execute("INSERT INTO applications (id, bot_id) VALUES ('2', 'c')")
        await db.commit()

        apps = await ApplicationRepository(db).list_applications()
        assert [a.id for a in apps] == ["2"]

    async def test_query_failure_raises_work_source_error(
        self, db: aiosqlite.Connection
    ) -> None:
        await db.execute("DROP TABLE applications")
        with pytest.raises(WorkSourceError, match="Could not list applications"):
            await ApplicationRepository(db).list_applications()


class TestGuildCountRepository:
    async def test_record_and_latest(self, db: aiosqlite.Connection) -> None:
        sink = GuildCountRepository(db)
        await sink.record("bot", 10)
        await sink.record("bot", 12)
        assert await sink.latest("bot") == 12
        assert await sink.latest("other") is None

    async def test_concurrent_records_all_land(self, db: aiosqlite.Connection) -> None:
        sink = GuildCountRepository(db)
        await asyncio.gather(*(sink.record(f"bot-{i}", i) for i in range(10)))

        cursor = await db.execute("SELECT COUNT(*) FROM application_stats")
        row = await cursor.fetchone()
        assert row[0] == 10

    async def test_failure_raises_sink_error(self, db: aiosqlite.Connection) -> None:
        await db.execute("DROP TABLE application_stats")
        sink = GuildCountRepository(db)
        with pytest.raises(SinkError) as excinfo:
            await sink.record("bot-9", 1)
        assert excinfo.value.bot_id == "bot-9"


class TestDryRunSink:
    async def test_logs_instead_of_writing(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level("INFO"):
            await DryRunSink().record("bot", 3)
        assert "would record guild_count=3 for bot_id=bot" in caplog.text
