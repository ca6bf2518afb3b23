"""Recovery of conversation state from control messages in the log."""

import logging
from dataclasses import dataclass
from typing import List, Optional

from pydantic import ValidationError

from persona_engine.models.chat import CharacterContext, ChatMessage
from persona_engine.models.conversation import MessageKind, MessageRole
from persona_engine.services.retrieval import RetrievalResult

logger = logging.getLogger(__name__)


@dataclass
class ConversationState:
    """What the log says about the conversation right now."""
    active_character: Optional[CharacterContext] = None
    last_retrieval: Optional[RetrievalResult] = None


def character_context_message(character: CharacterContext) -> ChatMessage:
    """Build the control message that selects a conversation's character."""
    return ChatMessage(
        role=MessageRole.SYSTEM,
        kind=MessageKind.CHARACTER_CONTEXT,
        payload=character.model_dump(),
    )


def extract_character_context(
    messages: List[ChatMessage],
    conversation_id: Optional[str] = None,
) -> Optional[CharacterContext]:
    """
    Find the active character, newest marker first.

    A marker whose payload does not validate is logged and skipped; the
    scan carries on with older markers.

    Args:
        messages: Sanitized conversation log, oldest first
        conversation_id: Used for log context only

    Returns:
        CharacterContext or None if no valid marker exists
    """
    for message in reversed(messages):
        if message.kind != MessageKind.CHARACTER_CONTEXT:
            continue
        try:
            return CharacterContext.model_validate(message.payload or {})
        except ValidationError as e:
            logger.warning(
                f"Ignoring malformed character context (conversation={conversation_id}, "
                f"message={message.id}): {e.error_count()} error(s)"
            )
    return None


def extract_last_retrieval(
    messages: List[ChatMessage],
    conversation_id: Optional[str] = None,
) -> Optional[RetrievalResult]:
    """Latest retrieval context recorded in the log, if any."""
    for message in reversed(messages):
        if message.kind != MessageKind.RETRIEVAL_CONTEXT:
            continue
        try:
            return RetrievalResult.from_payload(message.payload or {})
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                f"Ignoring malformed retrieval context (conversation={conversation_id}, "
                f"message={message.id}): {e}"
            )
    return None


def extract_conversation_state(
    messages: List[ChatMessage],
    conversation_id: Optional[str] = None,
) -> ConversationState:
    """Derive the explicit conversation state from a sanitized log."""
    return ConversationState(
        active_character=extract_character_context(messages, conversation_id),
        last_retrieval=extract_last_retrieval(messages, conversation_id),
    )
