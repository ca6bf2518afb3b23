"""Vector index wrapper for character chunk storage."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Dict, Optional, Any
import logging
import os

# Disable ChromaDB telemetry to avoid noisy warnings
os.environ["ANONYMIZED_TELEMETRY"] = "False"

try:
    import chromadb
    from chromadb.config import Settings
    CHROMADB_AVAILABLE = True
except ImportError:
    CHROMADB_AVAILABLE = False
    chromadb = None

logger = logging.getLogger(__name__)


class VectorStoreError(Exception):
    """Raised when the vector index cannot serve a request."""
    pass


@dataclass
class VectorRecord:
    """A vector ready to be written: chunk ID, embedding and metadata."""
    id: str
    values: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorMatch:
    """A query hit. Score is cosine similarity (1.0 = identical)."""
    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


class VectorIndex:
    """
    Wrapper for a single ChromaDB collection holding every character's chunks.

    Chunks of all characters share one collection and are told apart by the
    `character_id` metadata key, which queries filter on.
    """

    supports_native_clear = True

    def __init__(
        self,
        persist_directory: Path,
        collection_name: str = "character_chunks",
        client: Optional[Any] = None,
    ):
        """
        Initialize vector index with persistent storage.

        Args:
            persist_directory: Path to store ChromaDB data
            collection_name: Collection holding the chunk vectors
            client: Pre-built ChromaDB client (skips creating a persistent one)
        """
        if client is None and not CHROMADB_AVAILABLE:
            raise ImportError(
                "ChromaDB not installed. Install with: pip install chromadb"
            )

        self.persist_directory = Path(persist_directory)
        self.collection_name = collection_name

        if client is None:
            self.persist_directory.mkdir(parents=True, exist_ok=True)
            client = chromadb.PersistentClient(
                path=str(self.persist_directory),
                settings=Settings(
                    anonymized_telemetry=False,
                    allow_reset=True
                )
            )
        self.client = client
        self.collection = self._get_or_create_collection()

        logger.info(
            f"VectorIndex initialized at {self.persist_directory} "
            f"(collection '{collection_name}', count: {self.collection.count()})"
        )

    def _get_or_create_collection(self) -> Any:
        return self.client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"}  # Use cosine similarity
        )

    def query(
        self,
        vector: List[float],
        top_k: int = 3,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[VectorMatch]:
        """
        Find the top-K nearest vectors.

        Args:
            vector: Query embedding
            top_k: Number of results to return
            where: Metadata equality filter, e.g. {"character_id": 7}

        Returns:
            Matches ordered by similarity, best first
        """
        try:
            results = self.collection.query(
                query_embeddings=[vector],
                n_results=top_k,
                where=where,
                include=["metadatas", "distances"],
            )
        except Exception as e:
            raise VectorStoreError(f"Vector query failed on '{self.collection_name}': {e}") from e

        ids = results["ids"][0] if results.get("ids") else []
        distances = results["distances"][0] if results.get("distances") else []
        metadatas = results["metadatas"][0] if results.get("metadatas") else []

        matches = []
        for i, vector_id in enumerate(ids):
            distance = distances[i] if i < len(distances) else 1.0
            metadata = metadatas[i] if i < len(metadatas) and metadatas[i] else {}
            # Cosine space: distance = 1 - cosine similarity
            matches.append(VectorMatch(id=vector_id, score=1.0 - distance, metadata=dict(metadata)))

        matches.sort(key=lambda m: m.score, reverse=True)
        return matches

    def peek_ids(self, limit: int = 100) -> List[str]:
        """
        Broad, unfiltered fetch of up to `limit` vector IDs.

        Used by the drain strategy to empty the index page by page.
        """
        try:
            results = self.collection.get(limit=limit, include=[])
        except Exception as e:
            raise VectorStoreError(f"Failed to list vector IDs in '{self.collection_name}': {e}") from e
        return list(results.get("ids") or [])

    def delete_by_ids(self, ids: List[str]) -> None:
        """Delete vectors by ID."""
        if not ids:
            return
        try:
            self.collection.delete(ids=ids)
            logger.debug(f"Deleted {len(ids)} vectors from '{self.collection_name}'")
        except Exception as e:
            raise VectorStoreError(f"Failed to delete {len(ids)} vectors: {e}") from e

    def upsert(self, records: List[VectorRecord]) -> None:
        """Insert or replace vectors by ID."""
        if not records:
            return
        try:
            self.collection.upsert(
                ids=[record.id for record in records],
                embeddings=[record.values for record in records],
                metadatas=[record.metadata for record in records],
            )
            logger.debug(f"Upserted {len(records)} vectors into '{self.collection_name}'")
        except Exception as e:
            raise VectorStoreError(f"Failed to upsert {len(records)} vectors: {e}") from e

    def describe(self) -> Dict[str, Any]:
        """Summary stats for the index."""
        try:
            count = self.collection.count()
        except Exception as e:
            raise VectorStoreError(f"Failed to describe '{self.collection_name}': {e}") from e
        return {
            "name": self.collection_name,
            "vectors": count,
            "persist_directory": str(self.persist_directory),
        }

    def clear(self) -> None:
        """
        Drop and recreate the collection (native delete-all).

        Raises:
            VectorStoreError: If the drop fails for any reason other than the
                collection not existing, or vectors survive the recreate
        """
        try:
            self.client.delete_collection(name=self.collection_name)
        except Exception as e:
            if not _is_missing_collection(e):
                raise VectorStoreError(f"Failed to drop '{self.collection_name}': {e}") from e
            logger.info(f"Collection '{self.collection_name}' did not exist, nothing to drop")
        try:
            self.collection = self._get_or_create_collection()
            remaining = self.collection.count()
        except Exception as e:
            raise VectorStoreError(f"Failed to recreate '{self.collection_name}': {e}") from e
        if remaining:
            raise VectorStoreError(
                f"Collection '{self.collection_name}' still holds {remaining} vectors after clear"
            )
        logger.warning(f"Vector index cleared - collection '{self.collection_name}' recreated")


def _is_missing_collection(error: Exception) -> bool:
    # chromadb raises ValueError (0.4) or NotFoundError (0.5+) with this wording
    return "does not exist" in str(error).lower()
