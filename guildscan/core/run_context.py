"""Runtime context for a single Guildscan process.

Encapsulates user-selected operating modes that alter pipeline behaviour
without changing any configuration values.  One :class:`RunContext` is
created in :mod:`guildscan.__main__` and threaded through the orchestrator.

Current flags
-------------
dry_run
    Run the full fetch pipeline (batching, retries, classification) but
    **log each observation** instead of inserting it into
    ``application_stats``.  Useful against a production endpoint from a
    developer machine.

:attr:`should_persist` is the single property layers should read:

    >>> RunContext().should_persist
    True
    >>> RunContext(dry_run=True).should_persist
    False
"""

from __future__ import annotations

from dataclasses import dataclass, field

__all__ = ["RunContext"]


@dataclass(frozen=True)
class RunContext:
    """Immutable container for per-process operating-mode flags.

    Attributes:
        dry_run: When ``True``, observations are logged, not written.
    """

    dry_run: bool = field(default=False)

    @property
    def should_persist(self) -> bool:
        """``True`` if observations should be written to the result store."""
        return not self.dry_run

    @property
    def mode_label(self) -> str:
        """``"dry-run"`` or ``"live"``, for log lines."""
        return "dry-run" if self.dry_run else "live"

    def __str__(self) -> str:
        return f"RunContext(mode={self.mode_label})"
