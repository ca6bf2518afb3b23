"""Models package for Persona Engine."""

from .character import Character, CharacterRecord, CharacterDataItem
from .conversation import Conversation, Message, MessageRole, MessageKind, ToolState
from .chat import ChatMessage, CharacterContext, TextPart, ToolPart

__all__ = [
    "Character",
    "CharacterRecord",
    "CharacterDataItem",
    "Conversation",
    "Message",
    "MessageRole",
    "MessageKind",
    "ToolState",
    "ChatMessage",
    "CharacterContext",
    "TextPart",
    "ToolPart",
]
