"""Guildscan core domain models.

* :class:`WorkItem` — one registered application to poll during a run.
* :data:`FetchOutcome` — the tagged result of a single fetch attempt:
  :class:`Value`, :class:`NoValue`, :class:`RateLimited` or
  :class:`TransientError`.
* :class:`ItemResult` — the terminal outcome for one work item after the
  retry loop stopped.

Typical usage::

    from guildscan.core.models import Value, WorkItem

    item = WorkItem(id="1234567890", correlation_key="9876543210")
    outcome = Value(count=5120)
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, Field, field_validator

__all__ = [
    "WorkItem",
    "Value",
    "NoValue",
    "RateLimited",
    "TransientError",
    "FetchOutcome",
    "ItemResult",
]


# ---------------------------------------------------------------------------
# Work items
# ---------------------------------------------------------------------------


class WorkItem(BaseModel):
    """A registered application, as loaded from the ``applications`` table.

    Frozen so it can be shared between concurrently resolving tasks.

    Attributes:
        id: Application identifier interpolated into the remote URL.
        correlation_key: The application's ``bot_id``; key of the persisted
            ``application_stats`` row.  ``None`` when the application has no
            bot attached, in which case nothing can be recorded for it.
    """

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1, description="Remote application ID.")
    correlation_key: str | None = Field(
        None,
        description="bot_id the observation is recorded against.",
    )

    @field_validator("id", "correlation_key", mode="before")
    @classmethod
    def _coerce_str(cls, v: object) -> object:
        """Accept integer IDs from the database driver."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("correlation_key", mode="after")
    @classmethod
    def _blank_to_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v


# ---------------------------------------------------------------------------
# Fetch outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Value:
    """The remote endpoint returned a usable count."""

    count: int

    def __post_init__(self) -> None:
        if self.count < 0:
            raise ValueError(f"count must be >= 0, got {self.count!r}")


@dataclass(frozen=True)
class NoValue:
    """A 2xx response whose body carried no usable count."""


@dataclass(frozen=True)
class RateLimited:
    """HTTP 429.  ``retry_after`` is the server's wait hint in seconds."""

    retry_after: int | None = None


@dataclass(frozen=True)
class TransientError:
    """Timeout, network failure, non-429 error status or malformed body."""

    cause: str


FetchOutcome = Value | NoValue | RateLimited | TransientError


# ---------------------------------------------------------------------------
# Item results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ItemResult:
    """Terminal outcome for one work item.

    Attributes:
        item: The resolved work item.
        index: Zero-based position of the item in the run's input list.
        success: ``True`` when the retry loop terminated normally, with or
            without a value.
        value: The fetched count, if any.
        elapsed_ms: Wall time spent in the retry loop, backoff included.
        attempts: Number of fetch calls made.
        recorded: ``True`` once the value has been persisted by the sink.
        error: Description of the last failure, if any.
    """

    item: WorkItem
    index: int
    success: bool
    value: int | None = None
    elapsed_ms: int = 0
    attempts: int = 0
    recorded: bool = False
    error: str | None = field(default=None)

    @property
    def has_value(self) -> bool:
        return self.value is not None
