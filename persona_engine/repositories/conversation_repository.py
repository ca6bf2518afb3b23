"""Repository for conversation operations."""

from typing import List, Optional
from datetime import datetime
from sqlalchemy.orm import Session

from persona_engine.models.conversation import Conversation


class ConversationRepository:
    """Handle database operations for conversations."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, title: Optional[str] = None) -> Conversation:
        """
        Create a new conversation.

        Args:
            title: Optional title (timestamped default if not provided)

        Returns:
            Created conversation
        """
        if not title:
            title = f"Conversation - {datetime.utcnow().strftime('%Y-%m-%d %H:%M')}"

        conversation = Conversation(title=title)
        self.db.add(conversation)
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def get_by_id(self, conversation_id: str) -> Optional[Conversation]:
        """
        Get conversation by ID.

        Args:
            conversation_id: Conversation ID

        Returns:
            Conversation or None if not found
        """
        return self.db.query(Conversation).filter(Conversation.id == conversation_id).first()

    def list_all(self, skip: int = 0, limit: int = 100) -> List[Conversation]:
        """List conversations, most recently updated first."""
        return (
            self.db.query(Conversation)
            .order_by(Conversation.updated_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def touch(self, conversation_id: str) -> None:
        """Bump updated_at after the log changes."""
        conversation = self.get_by_id(conversation_id)
        if conversation:
            conversation.updated_at = datetime.utcnow()
            self.db.commit()
