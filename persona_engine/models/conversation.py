"""Database models for conversations and their message logs."""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, Enum, JSON, Integer, UniqueConstraint
from sqlalchemy.orm import relationship
import enum
import uuid

from persona_engine.db.database import Base


def generate_uuid():
    """Generate a UUID string."""
    return str(uuid.uuid4())


class MessageRole(str, enum.Enum):
    """Message role types."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class MessageKind(str, enum.Enum):
    """
    What a logged message is.

    CHAT messages are ordinary turns. The other kinds are control signals
    that carry pipeline state in a structured payload; they are never shown
    as chat turns and never forwarded to the model.
    """
    CHAT = "chat"
    CHARACTER_CONTEXT = "character_context"
    RETRIEVAL_CONTEXT = "retrieval_context"


class ToolState(str, enum.Enum):
    """Lifecycle of a tool invocation part."""
    INPUT_STREAMING = "input-streaming"
    INPUT_AVAILABLE = "input-available"
    OUTPUT_AVAILABLE = "output-available"
    OUTPUT_ERROR = "output-error"


class Conversation(Base):
    """
    A conversation is one linear message log with a character.

    The active character is not a column: it is recovered from the latest
    character-context message in the log.
    """
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    title = Column(String(200), nullable=False, default="New Conversation")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.sequence",
    )

    def __repr__(self):
        return f"<Conversation(id={self.id}, title={self.title})>"


class Message(Base):
    """
    A single entry in a conversation log.

    Messages have:
    - A role (system, user, assistant)
    - A kind (chat turn or control signal)
    - Typed parts (text or tool invocation), stored as JSON
    - An optional structured payload for control signals
    - A per-conversation sequence number fixing log order
    """
    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("conversation_id", "sequence", name="uq_messages_conversation_sequence"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    conversation_id = Column(String(36), ForeignKey("conversations.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    role = Column(Enum(MessageRole), nullable=False)
    kind = Column(Enum(MessageKind), nullable=False, default=MessageKind.CHAT)
    parts = Column(JSON, nullable=False, default=list)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    conversation = relationship("Conversation", back_populates="messages")

    def __repr__(self):
        return f"<Message(id={self.id}, role={self.role}, kind={self.kind}, seq={self.sequence})>"
