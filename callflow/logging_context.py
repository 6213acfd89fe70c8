"""Correlation ID logging context for tracing a call across modules.

Provides a call_id-aware logger that attaches the active call's ID to
every log message, so the detector, dispatcher, context store and
interruption tracker lines for one caller can be followed together even
when many calls are handled concurrently.

Usage:
    from callflow.logging_context import bind_call_id, get_call_logger

    logger = get_call_logger(__name__)
    with bind_call_id("CA123"):
        logger.info("Processing utterance")  # record.call_id == "CA123"
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

_call_id: ContextVar[str] = ContextVar("call_id", default="NO_CALL_ID")


def set_call_id(call_id: str) -> None:
    """Set the correlation ID for the current thread or async context."""
    _call_id.set(call_id)


def get_call_id() -> str:
    """Retrieve the current correlation ID."""
    return _call_id.get()


@contextmanager
def bind_call_id(call_id: str) -> Iterator[None]:
    """Scope the correlation ID to a block, restoring the previous one on exit."""
    token = _call_id.set(call_id)
    try:
        yield
    finally:
        _call_id.reset(token)


class CallIdFilter(logging.Filter):
    """Injects call_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.call_id = _call_id.get()  # type: ignore[attr-defined]
        return True


def get_call_logger(name: str) -> logging.Logger:
    """Return a logger with the CallIdFilter attached.

    The filter adds ``call_id`` to each record so formatters can
    include ``%(call_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, CallIdFilter) for f in logger.filters):
        logger.addFilter(CallIdFilter())
    return logger
