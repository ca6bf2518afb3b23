"""Removal of messages left behind by interrupted tool invocations."""

import logging
from typing import List

from persona_engine.models.chat import ChatMessage, ToolPart

logger = logging.getLogger(__name__)


def has_incomplete_tool_call(message: ChatMessage) -> bool:
    """True if any tool part of the message never produced output or an error."""
    return any(
        isinstance(part, ToolPart) and part.is_incomplete()
        for part in message.parts
    )


def sanitize_history(messages: List[ChatMessage]) -> List[ChatMessage]:
    """
    Drop messages carrying an unfinished tool invocation.

    A tool part still streaming its input, or with input but neither output
    nor error text, means the turn was interrupted; sending it to the model
    would present a call that never returned. Everything else is kept as is,
    in order.
    """
    sanitized = [message for message in messages if not has_incomplete_tool_call(message)]
    dropped = len(messages) - len(sanitized)
    if dropped:
        logger.debug(f"Dropped {dropped} message(s) with incomplete tool calls")
    return sanitized
