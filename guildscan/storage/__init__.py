"""SQLite-backed work source and result sink."""

from guildscan.storage.database import MEMORY_DB, create_schema, open_db
from guildscan.storage.repository import (
    ApplicationRepository,
    DryRunSink,
    GuildCountRepository,
)

__all__ = [
    "MEMORY_DB",
    "open_db",
    "create_schema",
    "ApplicationRepository",
    "GuildCountRepository",
    "DryRunSink",
]
