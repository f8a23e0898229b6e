"""Guildscan logging configuration.

Call ``configure_logging()`` once at process startup (``guildscan.__main__``
does this before anything else).  Every other module defines its own logger
at module scope::

    import logging
    logger = logging.getLogger(__name__)

Supported environment variables (read at call time):
    LOG_LEVEL   DEBUG | INFO | WARNING | ERROR | CRITICAL   (default: INFO)
    LOG_FORMAT  text | json                                 (default: text)

Every record carries the current run ID (see :data:`RUN_ID_CTX`), so all
lines emitted while one run is in progress can be grouped together, including
those from the concurrently resolving per-item tasks.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

__all__ = ["configure_logging", "JsonFormatter", "RUN_ID_CTX", "RunContextFilter"]

#: Current run identifier.  :func:`~guildscan.orchestrator.runner.run_once`
#: binds ``uuid4().hex[:8]`` for the duration of a run; tasks created by
#: ``asyncio.gather`` inherit it.  ``"-"`` outside of a run.
RUN_ID_CTX: ContextVar[str] = ContextVar("run_id", default="-")

_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_FORMATS: tuple[str, ...] = ("text", "json")

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(run_id)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

#: Chatty dependencies held at WARNING unless DEBUG is requested.
_QUIET_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "asyncio", "aiosqlite")


class RunContextFilter(logging.Filter):
    """Copy :data:`RUN_ID_CTX` onto each record as ``record.run_id``.

    Installed on the handler, so it also covers records propagated from
    third-party loggers.  Never drops a record.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.run_id = RUN_ID_CTX.get()
        return True


def _resolve(value: str | None, env_var: str, default: str, allowed: tuple[str, ...]) -> str:
    raw = value or os.environ.get(env_var, default)
    for option in allowed:
        if raw.casefold() == option.casefold():
            return option
    raise ValueError(f"Unknown {env_var} {raw!r}. Must be one of: {', '.join(allowed)}")


def _build_handler(level: str, fmt: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(RunContextFilter())
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_DATE_FORMAT))
    return handler


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Level name; falls back to ``$LOG_LEVEL``, then ``INFO``.
        fmt: ``"text"`` or ``"json"``; falls back to ``$LOG_FORMAT``, then
            ``"text"``.
        force: Replace existing root handlers.  Without it an already
            configured root logger (e.g. pytest's) only has its level changed.

    Raises:
        ValueError: If *level* or *fmt* is not recognised.
    """
    resolved_level = _resolve(level, "LOG_LEVEL", "INFO", _LEVELS)
    resolved_fmt = _resolve(fmt, "LOG_FORMAT", "text", _FORMATS)

    root = logging.getLogger()
    root.setLevel(resolved_level)

    if root.handlers and not force:
        return

    root.handlers.clear()
    root.addHandler(_build_handler(resolved_level, resolved_fmt))

    quiet_level = logging.NOTSET if resolved_level == "DEBUG" else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------


def _standard_record_attrs() -> frozenset[str]:
    blank = logging.LogRecord("", logging.NOTSET, "", 0, "", (), None)
    return frozenset(vars(blank)) | {"message", "asctime", "run_id", "event"}


class JsonFormatter(logging.Formatter):
    """Emit one JSON object per log record.

    Output shape::

        {
            "ts":      "2026-10-17T06:00:01.234Z",
            "level":   "INFO",
            "logger":  "guildscan.orchestrator.batch",
            "run_id":  "a3f2b1c0",
            "event":   "ITEM_RECORDED",
            "message": "[3/120] ✓ Recorded guild_count=5120 for bot_id=...",
            "extra":   {}
        }

    ``event`` is ``null`` for records logged without one.  Any other
    ``extra=`` keys passed to the logging call land under ``"extra"``;
    ``exc_info`` and ``stack_info`` are added only when present.
    """

    _RECORD_ATTRS: frozenset[str] = _standard_record_attrs()

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        record.message = record.getMessage()
        ts = datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds")

        payload: dict[str, Any] = {
            "ts": ts.replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "run_id": getattr(record, "run_id", RUN_ID_CTX.get()),
            "event": getattr(record, "event", None),
            "message": record.message,
            "extra": {
                key: value
                for key, value in vars(record).items()
                if key not in self._RECORD_ATTRS
            },
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exc_info"] = record.exc_text
        if record.stack_info:
            payload["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(payload, default=str, ensure_ascii=False)
