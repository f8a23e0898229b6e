"""Guildscan exception taxonomy.

Every custom exception inherits from :class:`GuildscanError`.  Exceptions are
organised by architectural layer so callers can catch at the right granularity:

    Layer hierarchy
    ---------------
    GuildscanError
    ├── ConfigError
    ├── StorageError
    │   ├── SinkError
    │   └── WorkSourceError
    └── OrchestratorError

Remote fetches are deliberately absent from the hierarchy: the fetcher
classifies every HTTP outcome into a
:data:`~guildscan.core.models.FetchOutcome` value instead of raising.

Usage:

    from guildscan.core.exceptions import SinkError

    raise SinkError(bot_id, "insert into application_stats failed") from exc
"""

from __future__ import annotations

__all__ = [
    "GuildscanError",
    # Config
    "ConfigError",
    # Storage
    "StorageError",
    "SinkError",
    "WorkSourceError",
    # Orchestrator
    "OrchestratorError",
]

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class GuildscanError(Exception):
    """Root exception for all Guildscan errors."""


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(GuildscanError):
    """Raised when the application configuration is invalid or incomplete.

    Examples:
        - ``BASE_URL`` or ``CONNECTION_STRING`` is not set.
        - The connection string names a database engine we cannot open.
    """


# ---------------------------------------------------------------------------
# Storage layer
# ---------------------------------------------------------------------------


class StorageError(GuildscanError):
    """Raised when a database or persistence operation fails."""


class SinkError(StorageError):
    """Raised when a guild-count observation cannot be written.

    The batch scheduler catches this per item: the observation is lost for
    this run, the item is counted as failed, and the fetch is *not* retried.

    Args:
        bot_id: Correlation key of the observation that failed to persist.
        message: Human-readable error description.
    """

    def __init__(self, bot_id: str, message: str) -> None:
        self.bot_id = bot_id
        super().__init__(f"[{bot_id}] {message}")


class WorkSourceError(StorageError):
    """Raised when the registered-application list cannot be loaded.

    Fatal for the current run: no batch is executed.  The next scheduled
    trigger starts a fresh attempt.
    """


# ---------------------------------------------------------------------------
# Orchestrator layer
# ---------------------------------------------------------------------------


class OrchestratorError(GuildscanError):
    """Raised for errors originating in the scheduling or orchestration layer.

    Examples:
        - Invalid scheduler parameters (e.g. a batch size below 1).
        - The continuous loop exits unexpectedly.
    """
