"""Chat-time retrieval of character chunks."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from persona_engine.models.chat import CharacterContext, ChatMessage
from persona_engine.models.conversation import MessageKind, MessageRole

logger = logging.getLogger(__name__)


@dataclass
class RetrievedChunk:
    """One chunk returned for a query."""
    chunk_id: str
    text: str
    character_id: Optional[int]
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.chunk_id,
            "text": self.text,
            "character_id": self.character_id,
            "score": self.score,
        }


@dataclass
class RetrievalResult:
    """Chunks retrieved for one turn, best match first."""
    chunks: List[RetrievedChunk] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.chunks

    @property
    def chunk_ids(self) -> List[str]:
        return [chunk.chunk_id for chunk in self.chunks]

    def format_snippets(self) -> str:
        """Chunks as a bulleted list, one `- text` line each."""
        return "\n".join(f"- {chunk.text}" for chunk in self.chunks)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "snippets": self.format_snippets(),
            "chunk_ids": self.chunk_ids,
            "chunks": [chunk.to_dict() for chunk in self.chunks],
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "RetrievalResult":
        chunks = [
            RetrievedChunk(
                chunk_id=item["id"],
                text=item["text"],
                character_id=item.get("character_id"),
                score=float(item.get("score", 0.0)),
            )
            for item in payload["chunks"]
        ]
        return cls(chunks=chunks)


def retrieval_context_message(result: RetrievalResult) -> ChatMessage:
    """Build the control message recording what a turn retrieved."""
    return ChatMessage(
        role=MessageRole.SYSTEM,
        kind=MessageKind.RETRIEVAL_CONTEXT,
        payload=result.to_payload(),
    )


def latest_user_text(messages: List[ChatMessage]) -> str:
    """Text of the newest ordinary user message, parts joined with spaces."""
    for message in reversed(messages):
        if message.kind == MessageKind.CHAT and message.role == MessageRole.USER:
            return message.text
    return ""


class Retriever:
    """
    Finds the chunks of the active character closest to the user's message.

    Failures never break the turn: they are logged and the reply is
    generated without grounding.
    """

    def __init__(self, embedding_service, vector_index, top_k: int = 3):
        """
        Args:
            embedding_service: EmbeddingService used for the query vector
            vector_index: VectorIndex to search
            top_k: Maximum chunks per query
        """
        self.embedding_service = embedding_service
        self.vector_index = vector_index
        self.top_k = top_k

    def retrieve(
        self,
        character: Optional[CharacterContext],
        user_text: str,
        conversation_id: Optional[str] = None,
    ) -> RetrievalResult:
        """
        Retrieve up to top_k chunks of `character` similar to `user_text`.

        Returns an empty result without calling any service when there is no
        character or nothing to search for.
        """
        if character is None or not user_text or not user_text.strip():
            return RetrievalResult()

        try:
            vector = self.embedding_service.embed_batch([user_text])[0]
        except Exception as e:
            logger.error(
                f"Query embedding failed (conversation={conversation_id}, character={character.id}): {e}"
            )
            return RetrievalResult()

        try:
            matches = self.vector_index.query(
                vector,
                top_k=self.top_k,
                where={"character_id": character.id},
            )
        except Exception as e:
            logger.error(
                f"Vector query failed (conversation={conversation_id}, character={character.id}): {e}"
            )
            return RetrievalResult()

        chunks = [
            RetrievedChunk(
                chunk_id=match.id,
                text=match.metadata.get("text", ""),
                character_id=match.metadata.get("character_id"),
                score=match.score,
            )
            for match in matches
            if match.metadata.get("text")
        ]
        logger.debug(
            f"Retrieved {len(chunks)} chunks for character {character.id} "
            f"(conversation={conversation_id})"
        )
        return RetrievalResult(chunks=chunks[:self.top_k])
