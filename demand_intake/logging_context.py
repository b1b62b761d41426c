"""Sender-scoped logging context for tracing a citizen's turns across modules.

Provides a sender-aware logger that attaches the sender id of the turn
being processed to every log record, so concurrent conversations can be
told apart in the log stream.

Usage:
    from demand_intake.logging_context import get_sender_logger, set_sender_id

    set_sender_id("5584999990000")
    logger = get_sender_logger(__name__)
    logger.info("Turn started")  # record.sender_id == "5584999990000"
"""

import logging
from contextvars import ContextVar
from typing import Optional

_sender_id: ContextVar[str] = ContextVar("sender_id", default="NO_SENDER")


def set_sender_id(sender_id: str) -> None:
    """Set the sender id for the current async context."""
    _sender_id.set(sender_id)


def get_sender_id() -> str:
    """Retrieve the current sender id."""
    return _sender_id.get()


class SenderIdFilter(logging.Filter):
    """Injects sender_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.sender_id = _sender_id.get()  # type: ignore[attr-defined]
        return True


def get_sender_logger(name: str) -> logging.Logger:
    """Return a logger with the SenderIdFilter attached.

    The filter adds ``sender_id`` to each record so formatters can
    include ``%(sender_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, SenderIdFilter) for f in logger.filters):
        logger.addFilter(SenderIdFilter())
    return logger


def install_sender_filter(logger: Optional[logging.Logger] = None) -> None:
    """Attach a SenderIdFilter to every handler of ``logger`` (the root logger by default).

    Handler filters also see records propagated from loggers that never went
    through ``get_sender_logger``, so ``%(sender_id)s`` is always defined.
    """
    logger = logger or logging.getLogger()
    for handler in logger.handlers:
        if not any(isinstance(f, SenderIdFilter) for f in handler.filters):
            handler.addFilter(SenderIdFilter())
