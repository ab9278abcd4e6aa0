"""Correlation ID logging context for tracing a conversation across modules.

Provides a conversation-aware logger that attaches the conversation id to
every log record, making it easy to follow one customer's booking attempt
through detection, extraction and commit.

Usage:
    from appointment_bot.logging_context import get_conversation_logger, set_conversation_id

    set_conversation_id("conv-42")
    logger = get_conversation_logger(__name__)
    logger.info("Processing message")  # record.conversation_id == "conv-42"
"""

import logging
from contextvars import ContextVar

_conversation_id: ContextVar[str] = ContextVar("conversation_id", default="NO_CONVERSATION")


def set_conversation_id(conversation_id: str) -> None:
    """Set the correlation ID for the current async context."""
    _conversation_id.set(conversation_id)


def get_conversation_id() -> str:
    """Retrieve the current correlation ID."""
    return _conversation_id.get()


class ConversationIdFilter(logging.Filter):
    """Injects conversation_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.conversation_id = _conversation_id.get()  # type: ignore[attr-defined]
        return True


def get_conversation_logger(name: str) -> logging.Logger:
    """Return a logger with the ConversationIdFilter attached.

    The filter adds ``conversation_id`` to each record so formatters can
    include ``%(conversation_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, ConversationIdFilter) for f in logger.filters):
        logger.addFilter(ConversationIdFilter())
    return logger
