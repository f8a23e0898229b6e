"""Core domain models, policies, settings, logging configuration and exceptions."""

from guildscan.core.exceptions import (
    ConfigError,
    GuildscanError,
    OrchestratorError,
    SinkError,
    StorageError,
    WorkSourceError,
)
from guildscan.core.logging_config import JsonFormatter, configure_logging
from guildscan.core.models import (
    FetchOutcome,
    ItemResult,
    NoValue,
    RateLimited,
    TransientError,
    Value,
    WorkItem,
)
from guildscan.core.policy import BatchPolicy, RetryPolicy
from guildscan.core.settings import Settings, load_settings

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Domain models
    "WorkItem",
    "FetchOutcome",
    "Value",
    "NoValue",
    "RateLimited",
    "TransientError",
    "ItemResult",
    # Policies
    "RetryPolicy",
    "BatchPolicy",
    # Settings
    "Settings",
    "load_settings",
    # Exceptions
    "GuildscanError",
    "ConfigError",
    "StorageError",
    "SinkError",
    "WorkSourceError",
    "OrchestratorError",
]
