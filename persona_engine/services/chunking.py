"""Character text chunking.

Splits a character's summary, personality and each data item into
fixed-size, overlapping windows and names every window with a stable
composite ID so a rebuild of unchanged input reproduces the same IDs.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChunkSpec:
    """A chunk ready to embed."""
    chunk_id: str
    character_id: int
    text: str

    def __len__(self) -> int:
        return len(self.text)


def chunk_text(text: Any, size: int = 500, overlap: int = 50) -> List[str]:
    """
    Split text into windows of `size` characters, each starting
    `size - overlap` characters after the previous one.

    Args:
        text: Text to split (anything that is not a non-empty string yields [])
        size: Window length in characters
        overlap: Characters shared by consecutive windows

    Returns:
        List of chunks; the last one may be shorter than `size`
    """
    if not isinstance(text, str) or not text:
        return []
    if len(text) <= size:
        return [text]

    step = max(size - overlap, 1)
    chunks = []
    start = 0
    while start < len(text):
        chunks.append(text[start:start + size])
        start += step
    return chunks


def summary_chunk_id(character_id: int, index: int) -> str:
    return f"char:{character_id}:summary:{index}"


def personality_chunk_id(character_id: int, index: int) -> str:
    return f"char:{character_id}:personality:{index}"


def data_chunk_id(character_id: int, data_index: int, index: int) -> str:
    return f"char:{character_id}:data:{data_index}:{index}"


def _item_text(item: Any) -> Optional[str]:
    # Data items come back from the JSON column as dicts, from the importer as models
    if isinstance(item, dict):
        return item.get("text")
    return getattr(item, "text", None)


class ChunkingService:
    """Service for chunking character records."""

    DEFAULT_CHUNK_SIZE = 500  # characters
    DEFAULT_OVERLAP = 50  # characters

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        overlap: int = DEFAULT_OVERLAP
    ):
        """
        Initialize chunking service.

        Args:
            chunk_size: Target chunk size in characters
            overlap: Overlap between chunks in characters

        Raises:
            ValueError: If the parameters cannot make progress
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0 or overlap >= chunk_size:
            raise ValueError(
                f"overlap must be >= 0 and smaller than chunk_size "
                f"(got overlap={overlap}, chunk_size={chunk_size})"
            )
        self.chunk_size = chunk_size
        self.overlap = overlap

        logger.debug(f"ChunkingService initialized (size: {chunk_size}, overlap: {overlap})")

    def chunk(self, text: Any) -> List[str]:
        return chunk_text(text, self.chunk_size, self.overlap)

    def chunk_character(self, character: Any) -> List[ChunkSpec]:
        """
        Chunk one character's summary, personality and data items.

        Each field has its own chunk-index space. Order is summary chunks,
        personality chunks, then data items in list order.

        Args:
            character: Character row or record (needs id, summary,
                personality and data attributes)

        Returns:
            List of ChunkSpec objects
        """
        character_id = character.id
        specs: List[ChunkSpec] = []

        for index, text in enumerate(self.chunk(character.summary)):
            specs.append(ChunkSpec(summary_chunk_id(character_id, index), character_id, text))

        for index, text in enumerate(self.chunk(character.personality)):
            specs.append(ChunkSpec(personality_chunk_id(character_id, index), character_id, text))

        for data_index, item in enumerate(character.data or []):
            for index, text in enumerate(self.chunk(_item_text(item))):
                specs.append(ChunkSpec(data_chunk_id(character_id, data_index, index), character_id, text))

        logger.debug(f"Character {character_id}: {len(specs)} chunks")
        return specs

    def chunk_characters(self, characters: List[Any]) -> List[ChunkSpec]:
        """Chunk a whole corpus, characters in the given order."""
        specs: List[ChunkSpec] = []
        for character in characters:
            specs.extend(self.chunk_character(character))
        return specs
