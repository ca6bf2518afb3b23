"""Database and import models for characters."""

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import Column, Integer, String, Text, JSON

from persona_engine.db.database import Base


class Character(Base):
    """
    A character the user can chat with.

    Rows are written by the bulk importer and read by the chat API and the
    indexer; nothing in the chat pipeline mutates them.
    """
    __tablename__ = "characters"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(200), nullable=False, index=True)
    href = Column(String(500), nullable=True)
    image_url = Column(String(500), nullable=True)
    summary = Column(Text, nullable=True)
    personality = Column(Text, nullable=True)
    summarized_personality = Column(Text, nullable=True)
    data = Column(JSON, nullable=True)  # List of {"text": ..., ...} items
    data_length = Column(Integer, nullable=True)

    def __repr__(self):
        return f"<Character(id={self.id}, name={self.name})>"


class CharacterDataItem(BaseModel):
    """One free-text data item of a character (e.g. a wiki section)."""

    model_config = ConfigDict(extra='allow')

    text: str = ""


class CharacterRecord(BaseModel):
    """
    A character row as accepted by the bulk importer.

    Unknown keys are ignored; `data` keeps extra per-item keys so they
    round-trip through the store unchanged.
    """

    model_config = ConfigDict(extra='ignore')

    id: int = Field(ge=0)
    name: str = Field(min_length=1, max_length=200)
    href: Optional[str] = None
    image_url: Optional[str] = None
    summary: Optional[str] = None
    personality: Optional[str] = None
    summarized_personality: Optional[str] = None
    data: list[CharacterDataItem] = Field(default_factory=list)
    data_length: Optional[int] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Names are displayed and sorted, so surrounding whitespace is dropped."""
        v = v.strip()
        if not v:
            raise ValueError('name must not be blank')
        return v

    def to_row(self) -> dict[str, Any]:
        """Column values for the characters table."""
        return {
            "id": self.id,
            "name": self.name,
            "href": self.href,
            "image_url": self.image_url,
            "summary": self.summary,
            "personality": self.personality,
            "summarized_personality": self.summarized_personality,
            "data": [item.model_dump() for item in self.data],
            "data_length": self.data_length if self.data_length is not None else len(self.data),
        }
