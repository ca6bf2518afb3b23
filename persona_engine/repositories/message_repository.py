"""Repository for message operations."""

import logging
from typing import List
from sqlalchemy import func
from sqlalchemy.orm import Session

from persona_engine.models.chat import ChatMessage
from persona_engine.models.conversation import Message, MessageKind

logger = logging.getLogger(__name__)


def to_chat_message(message: Message) -> ChatMessage:
    """Convert an ORM row into the pipeline's message model."""
    return ChatMessage(
        id=message.id,
        role=message.role,
        kind=message.kind,
        parts=message.parts or [],
        payload=message.payload,
        created_at=message.created_at,
    )


class MessageRepository:
    """Handle database operations for conversation message logs."""

    def __init__(self, db: Session):
        self.db = db

    def append(self, conversation_id: str, message: ChatMessage) -> ChatMessage:
        """
        Append a message to the end of a conversation log.

        Args:
            conversation_id: Parent conversation ID
            message: Message to store (its id is kept)

        Returns:
            The stored message, with created_at filled in
        """
        last_sequence = (
            self.db.query(func.max(Message.sequence))
            .filter(Message.conversation_id == conversation_id)
            .scalar()
        )
        row = Message(
            id=message.id,
            conversation_id=conversation_id,
            sequence=(last_sequence or 0) + 1,
            role=message.role,
            kind=message.kind,
            parts=[part.model_dump(mode="json") for part in message.parts],
            payload=message.payload,
        )
        if message.created_at is not None:
            row.created_at = message.created_at
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        logger.debug(
            f"Appended {row.kind.value} message {row.id} to conversation {conversation_id} (seq={row.sequence})"
        )
        return to_chat_message(row)

    def list_by_conversation(self, conversation_id: str, include_control: bool = True) -> List[ChatMessage]:
        """
        List a conversation's messages in log order.

        Args:
            conversation_id: Conversation ID
            include_control: Include control-signal messages

        Returns:
            Messages, oldest first
        """
        query = self.db.query(Message).filter(Message.conversation_id == conversation_id)
        if not include_control:
            query = query.filter(Message.kind == MessageKind.CHAT)
        return [to_chat_message(row) for row in query.order_by(Message.sequence).all()]

    def count(self, conversation_id: str) -> int:
        return self.db.query(Message).filter(Message.conversation_id == conversation_id).count()

    def delete_except_kinds(self, conversation_id: str, keep_kinds: List[MessageKind]) -> int:
        """
        Delete a conversation's messages except those of the given kinds.

        Returns:
            Number of messages deleted
        """
        deleted = (
            self.db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .filter(Message.kind.notin_(keep_kinds))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted
