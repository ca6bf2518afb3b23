"""Repository pattern for database operations."""

from .character_repository import CharacterRepository
from .conversation_repository import ConversationRepository
from .message_repository import MessageRepository

__all__ = [
    "CharacterRepository",
    "ConversationRepository",
    "MessageRepository",
]
