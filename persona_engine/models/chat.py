"""Domain models for chat messages and control payloads."""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from persona_engine.models.conversation import MessageKind, MessageRole, ToolState, generate_uuid


class TextPart(BaseModel):
    """Plain text content."""
    type: Literal["text"] = "text"
    text: str


class ToolPart(BaseModel):
    """A tool invocation and whatever state it reached."""
    type: Literal["tool"] = "tool"
    tool_name: str
    tool_call_id: str = ""
    state: ToolState
    input: Optional[Any] = None
    output: Optional[Any] = None
    error_text: Optional[str] = None

    def is_incomplete(self) -> bool:
        """True if the invocation was left mid-flight (no output and no error)."""
        if self.state == ToolState.INPUT_STREAMING:
            return True
        if self.state == ToolState.INPUT_AVAILABLE:
            return self.output is None and not self.error_text
        return False


MessagePart = Annotated[Union[TextPart, ToolPart], Field(discriminator="type")]


class ChatMessage(BaseModel):
    """A message as the chat pipeline sees it."""

    id: str = Field(default_factory=generate_uuid)
    role: MessageRole
    kind: MessageKind = MessageKind.CHAT
    parts: list[MessagePart] = Field(default_factory=list)
    payload: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_text(cls, role: MessageRole, text: str, **kwargs) -> "ChatMessage":
        """Build a single-text-part message."""
        return cls(role=role, parts=[TextPart(text=text)], **kwargs)

    @property
    def is_control(self) -> bool:
        return self.kind != MessageKind.CHAT

    @property
    def text(self) -> str:
        """Text parts joined with single spaces."""
        return " ".join(part.text for part in self.parts if isinstance(part, TextPart))


class CharacterContext(BaseModel):
    """Identity of the character a conversation is with."""

    model_config = ConfigDict(extra='ignore')

    id: int
    name: str = Field(min_length=1)
    personality: str = ""
