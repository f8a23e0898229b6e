"""Structured log event names.

Key transitions emit a log record carrying an ``event`` field via
``extra={"event": events.X}``.  In ``LOG_FORMAT=json`` mode it surfaces as
``extra.event``; in text mode the message text is self-describing.

Usage example::

    import logging
    from guildscan.core import events

    logger = logging.getLogger(__name__)
    logger.info("Run started", extra={"event": events.RUN_START})
"""

from __future__ import annotations

__all__ = [
    # Run lifecycle
    "RUN_START",
    "RUN_COMPLETE",
    "RUN_ABORT",
    # Batch lifecycle
    "BATCH_START",
    "BATCH_RETRY",
    "BATCH_GIVE_UP",
    # Items
    "ITEM_RECORDED",
    "ITEM_NO_VALUE",
    "ITEM_FAILED",
    "ITEM_SINK_ERROR",
    # Fetch attempts
    "FETCH_RATE_LIMITED",
    "FETCH_RETRY",
]

# ---------------------------------------------------------------------------
# Run lifecycle
# ---------------------------------------------------------------------------

#: Emitted once the application list is loaded and batching begins.
RUN_START: str = "RUN_START"

#: Emitted with the end-of-run report.
RUN_COMPLETE: str = "RUN_COMPLETE"

#: The run aborted before any batch executed (work-source failure).
RUN_ABORT: str = "RUN_ABORT"

# ---------------------------------------------------------------------------
# Batch lifecycle
# ---------------------------------------------------------------------------

BATCH_START: str = "BATCH_START"

#: Some items in the batch failed; a sub-round is about to resubmit them.
BATCH_RETRY: str = "BATCH_RETRY"

#: Sub-round budget exhausted; the remaining items are recorded as failed.
BATCH_GIVE_UP: str = "BATCH_GIVE_UP"

# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

ITEM_RECORDED: str = "ITEM_RECORDED"

#: Fetch succeeded but the response carried no usable count.
ITEM_NO_VALUE: str = "ITEM_NO_VALUE"

ITEM_FAILED: str = "ITEM_FAILED"

ITEM_SINK_ERROR: str = "ITEM_SINK_ERROR"

# ---------------------------------------------------------------------------
# Fetch attempts
# ---------------------------------------------------------------------------

FETCH_RATE_LIMITED: str = "FETCH_RATE_LIMITED"

#: A transient failure; the retry loop is backing off.
FETCH_RETRY: str = "FETCH_RETRY"
