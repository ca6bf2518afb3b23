"""Offline indexing of the character corpus."""

import logging
from dataclasses import dataclass
from typing import List, Sequence

from persona_engine.db.vector_store import VectorRecord
from persona_engine.services.chunking import ChunkingService, ChunkSpec
from persona_engine.services.embedding_service import EmbeddingError, EmbeddingService
from persona_engine.services.index_writer import IndexingError, IndexWriter, RebuildResult

logger = logging.getLogger(__name__)


@dataclass
class IndexingReport:
    """What an indexing run did."""
    characters: int
    chunks: int
    rebuild: RebuildResult


class CharacterIndexer:
    """
    Chunks every character, embeds the chunks and rebuilds the vector index.

    All vectors are computed before the index is touched, so an embedding
    failure leaves the previous index intact.
    """

    def __init__(
        self,
        chunker: ChunkingService,
        embedding_service: EmbeddingService,
        index_writer: IndexWriter,
    ):
        self.chunker = chunker
        self.embedding_service = embedding_service
        self.index_writer = index_writer

    def build_records(self, characters: Sequence) -> List[VectorRecord]:
        """
        Chunk and embed a corpus into vector records.

        Raises:
            IndexingError: If embedding fails or chunk IDs collide
        """
        specs = self.chunker.chunk_characters(list(characters))
        self._check_unique(specs)
        logger.info(f"Prepared {len(specs)} chunks from {len(characters)} characters")

        try:
            vectors = self.embedding_service.embed_batch([spec.text for spec in specs])
        except EmbeddingError as e:
            raise IndexingError(f"Embedding failed, index left unchanged: {e}") from e

        return [
            VectorRecord(
                id=spec.chunk_id,
                values=vector,
                metadata={"character_id": spec.character_id, "text": spec.text},
            )
            for spec, vector in zip(specs, vectors)
        ]

    def reindex(self, characters: Sequence) -> IndexingReport:
        """
        Rebuild the index from the given characters.

        Args:
            characters: Complete corpus (rows or records)

        Returns:
            IndexingReport

        Raises:
            IndexingError: On any embedding or index failure
        """
        records = self.build_records(characters)
        result = self.index_writer.rebuild(records)
        return IndexingReport(characters=len(characters), chunks=len(records), rebuild=result)

    @staticmethod
    def _check_unique(specs: List[ChunkSpec]) -> None:
        seen = set()
        for spec in specs:
            if spec.chunk_id in seen:
                raise IndexingError(f"Duplicate chunk ID {spec.chunk_id} (duplicate character id?)")
            seen.add(spec.chunk_id)
