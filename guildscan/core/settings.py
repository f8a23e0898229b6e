"""Guildscan application settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated settings object.  The field name is the
**lowercase** version of the env-var name (e.g. ``BASE_URL`` → ``base_url``).

``BASE_URL`` and ``CONNECTION_STRING`` have no default: :func:`load_settings`
raises :class:`~guildscan.core.exceptions.ConfigError` when either is
missing, so the process fails fast at startup.

Typical usage::

    from guildscan.core.settings import load_settings

    settings = load_settings()
    policy = settings.retry_policy()
    print(settings.database_path)
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from guildscan.core.exceptions import ConfigError
from guildscan.core.policy import BatchPolicy, RetryPolicy

__all__ = ["Settings", "load_settings", "parse_connection_string"]

logger = logging.getLogger(__name__)

_SQLITE_PREFIXES: tuple[str, ...] = ("sqlite+aiosqlite:///", "sqlite:///")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_connection_string(value: str) -> str:
    """Return the SQLite database path named by *value*.

    Accepted forms: ``sqlite:///relative.db``, ``sqlite:////abs/path.db``,
    ``sqlite+aiosqlite:///...``, ``:memory:`` and a bare filesystem path.

    Raises:
        ValueError: For any other URL scheme (e.g. ``mysql://``) or a URL with
            an empty path.
    """
    value = value.strip()
    for prefix in _SQLITE_PREFIXES:
        if value.startswith(prefix):
            path = value[len(prefix):]
            if not path:
                raise ValueError(f"connection string {value!r} has an empty database path")
            return path
    if "://" in value:
        scheme = value.split("://", 1)[0]
        raise ValueError(
            f"unsupported database scheme {scheme!r}; use sqlite:///<path>"
        )
    return value


# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order: environment variables, then the
    ``.env`` file in the working directory, then field defaults.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Required endpoints
    # ------------------------------------------------------------------
    base_url: str = Field(
        ...,
        description="Root of the per-application statistics endpoint.",
    )
    connection_string: str = Field(
        ...,
        description="Result store, e.g. sqlite:///data/guildscan.db.",
    )

    # ------------------------------------------------------------------
    # Remote fetch
    # ------------------------------------------------------------------
    request_timeout_s: float = Field(
        default=10.0,
        gt=0.0,
        description="Timeout for one fetch attempt, in seconds.",
    )
    max_attempts: int = Field(
        default=5,
        ge=0,
        description="Failed attempts per item before giving up (0 = unbounded).",
    )
    initial_backoff_s: float = Field(default=1.0, ge=0.0)
    max_backoff_s: float = Field(default=60.0, ge=0.0)
    count_rate_limits: bool = Field(
        default=False,
        description="Whether HTTP 429 responses consume the attempt budget.",
    )

    # ------------------------------------------------------------------
    # Batching
    # ------------------------------------------------------------------
    batch_size: int = Field(default=10, ge=1, description="Items fetched concurrently.")
    sub_round_delay_s: float = Field(default=2.0, ge=0.0)
    batch_delay_s: float = Field(default=2.0, ge=0.0)
    max_sub_rounds: int = Field(
        default=3,
        ge=0,
        description="Retry passes over a batch's failed items.",
    )
    unbounded_sub_rounds: bool = Field(
        default=False,
        description="Keep resubmitting failed items until the whole batch succeeds.",
    )
    count_no_value_as_failure: bool = Field(default=True)

    # ------------------------------------------------------------------
    # Schedule
    # ------------------------------------------------------------------
    run_interval_hours: int = Field(
        default=6,
        ge=1,
        le=24,
        description="Runs fire at every UTC hour divisible by this value.",
    )

    # ------------------------------------------------------------------
    # Runtime flags
    # ------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("base_url")
    @classmethod
    def _validate_base_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got {v!r}")
        return v.rstrip("/")

    @field_validator("connection_string")
    @classmethod
    def _validate_connection_string(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("connection_string must not be blank")
        parse_connection_string(v)
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got {v!r}")
        return v_lower

    @model_validator(mode="after")
    def _validate_backoff(self) -> Settings:
        if self.initial_backoff_s > self.max_backoff_s:
            raise ValueError(
                f"initial_backoff_s ({self.initial_backoff_s}) "
                f"> max_backoff_s ({self.max_backoff_s})"
            )
        return self

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def database_path(self) -> str:
        """Filesystem path (or ``:memory:``) of the SQLite result store."""
        return parse_connection_string(self.connection_string)

    def retry_policy(self) -> RetryPolicy:
        """Build the per-item :class:`RetryPolicy`.

        Convention: ``max_attempts=0`` means *no bound*.
        """
        return RetryPolicy(
            max_attempts=self.max_attempts or None,
            initial_delay_s=self.initial_backoff_s,
            max_delay_s=self.max_backoff_s,
            count_rate_limits=self.count_rate_limits,
        )

    def batch_policy(self) -> BatchPolicy:
        """Build the :class:`BatchPolicy` for the batch scheduler."""
        return BatchPolicy(
            batch_size=self.batch_size,
            sub_round_delay_s=self.sub_round_delay_s,
            batch_delay_s=self.batch_delay_s,
            max_sub_rounds=None if self.unbounded_sub_rounds else self.max_sub_rounds,
            count_no_value_as_failure=self.count_no_value_as_failure,
        )


def load_settings(**overrides: Any) -> Settings:
    """Load :class:`Settings`, converting validation failures to :class:`ConfigError`.

    Args:
        **overrides: Explicit field values taking precedence over the
            environment (handy in tests and one-off scripts).

    Raises:
        ConfigError: If a required variable is missing or any value is invalid.
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigError(f"Invalid configuration: {problems}") from exc
