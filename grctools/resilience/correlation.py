#!/usr/bin/env python3
# CUI // SP-CTI
"""GRC Toolkit Resilience: Run Correlation IDs.

Each assessment run carries a short correlation ID. It is kept in a
context variable while the run executes so that every log record emitted
by the pipeline stages can be tied back to the run. Each asyncio task works
on its own copy of the context, so concurrent runs in one event loop never
see each other's ID.

Usage:
    from grctools.resilience.correlation import set_correlation_id, reset_correlation_id

    token = set_correlation_id(run_id)
    try:
        ...
    finally:
        reset_correlation_id(token)
"""

import contextvars
import logging
import uuid
from typing import Optional

logger = logging.getLogger("grctools.resilience.correlation")

_correlation_id: contextvars.ContextVar = contextvars.ContextVar(
    "grctools_correlation_id", default=None,
)


def generate_correlation_id() -> str:
    """Generate a 12-character correlation ID (UUID prefix)."""
    return uuid.uuid4().hex[:12]


def get_correlation_id() -> Optional[str]:
    """Return the correlation ID of the current run, or None outside a run."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Bind a correlation ID to the current context.

    Returns the token that reset_correlation_id() needs to restore the
    previous value.
    """
    return _correlation_id.set(correlation_id)


def reset_correlation_id(token: contextvars.Token):
    """Restore the correlation ID that was current before set_correlation_id()."""
    _correlation_id.reset(token)


def clear_correlation_id():
    """Unbind the correlation ID in the current context."""
    _correlation_id.set(None)


class CorrelationLogFilter(logging.Filter):
    """Logging filter that injects correlation_id into log records.

    Usage:
        handler = logging.StreamHandler()
        handler.addFilter(CorrelationLogFilter())
        formatter = logging.Formatter(
            "%(asctime)s [%(correlation_id)s] %(name)s: %(message)s"
        )
        handler.setFormatter(formatter)
    """

    def filter(self, record):
        record.correlation_id = get_correlation_id() or "-"
        return True
