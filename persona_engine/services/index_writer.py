"""Full-rebuild writer for the character vector index."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, List

from persona_engine.db.vector_store import VectorRecord, VectorStoreError

logger = logging.getLogger(__name__)


class IndexingError(Exception):
    """Raised when an indexing run aborts. The index may be partially rebuilt."""
    pass


@dataclass
class RebuildResult:
    """Outcome of a rebuild."""
    deleted: int
    inserted: int
    vector_count: int


class IndexWriter:
    """
    Replaces the whole contents of a vector index.

    A rebuild clears the index, then upserts the new records in fixed-size
    batches. It is not transactional: a failure part way through leaves the
    index partially rebuilt and the caller retries the whole rebuild.
    """

    def __init__(
        self,
        vector_index,
        upsert_batch_size: int = 100,
        drain_page_size: int = 100,
        settle_seconds: float = 2.0,
        clear_strategy: str = "native",
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            vector_index: VectorIndex (or anything with the same methods)
            upsert_batch_size: Records per upsert call
            drain_page_size: IDs fetched per round of the drain loop
            settle_seconds: Pause before the post-rebuild stats read
            clear_strategy: "native" or "drain"
            sleep: Sleep function used for the settle pause
        """
        if clear_strategy not in ("native", "drain"):
            raise ValueError(f"Unknown clear strategy: '{clear_strategy}'")
        self.vector_index = vector_index
        self.upsert_batch_size = upsert_batch_size
        self.drain_page_size = drain_page_size
        self.settle_seconds = settle_seconds
        self.clear_strategy = clear_strategy
        self._sleep = sleep

    def clear(self) -> int:
        """
        Empty the index.

        Returns:
            Number of vectors removed
        """
        use_native = (
            self.clear_strategy == "native"
            and getattr(self.vector_index, "supports_native_clear", False)
        )
        if use_native:
            existing = self.vector_index.describe().get("vectors", 0)
            self.vector_index.clear()
            logger.info(f"Cleared vector index natively ({existing} vectors)")
            return existing
        return self._drain()

    def _drain(self) -> int:
        """Fetch a page of IDs and delete it until a fetch comes back empty."""
        deleted = 0
        rounds = 0
        while True:
            ids = self.vector_index.peek_ids(self.drain_page_size)
            if not ids:
                break
            self.vector_index.delete_by_ids(ids)
            deleted += len(ids)
            rounds += 1
            logger.debug(f"Drain round {rounds}: deleted {len(ids)} vectors")
        logger.info(f"Drained vector index: {deleted} vectors in {rounds} rounds")
        return deleted

    def insert(self, records: List[VectorRecord]) -> int:
        """
        Upsert records in sequential batches.

        Returns:
            Number of records written
        """
        size = self.upsert_batch_size
        total_batches = (len(records) + size - 1) // size
        for batch_number, start in enumerate(range(0, len(records), size), start=1):
            batch = records[start:start + size]
            try:
                self.vector_index.upsert(batch)
            except VectorStoreError as e:
                logger.error(f"Upsert batch {batch_number}/{total_batches} failed: {e}")
                raise IndexingError(
                    f"Insert failed at batch {batch_number}/{total_batches} "
                    f"({(batch_number - 1) * size} of {len(records)} records written): {e}"
                ) from e
            logger.debug(f"Upserted batch {batch_number}/{total_batches} ({len(batch)} records)")
        return len(records)

    def rebuild(self, records: List[VectorRecord]) -> RebuildResult:
        """
        Clear the index and insert exactly `records`.

        Args:
            records: The complete new contents of the index

        Returns:
            RebuildResult with the post-rebuild vector count

        Raises:
            IndexingError: If clearing or inserting fails, or vectors from
                before the rebuild are still counted afterwards
        """
        logger.info(f"Rebuilding vector index with {len(records)} records (clear: {self.clear_strategy})")

        try:
            deleted = self.clear()
        except VectorStoreError as e:
            logger.error(f"Clearing vector index failed: {e}")
            raise IndexingError(f"Clear failed: {e}") from e

        inserted = self.insert(records)

        if inserted and self.settle_seconds > 0:
            self._sleep(self.settle_seconds)

        try:
            vector_count = self.vector_index.describe().get("vectors", 0)
        except VectorStoreError as e:
            raise IndexingError(f"Index stats unavailable after rebuild: {e}") from e

        if vector_count > inserted:
            logger.error(f"Vector index reports {vector_count} vectors after inserting {inserted}")
            raise IndexingError(
                f"Index holds {vector_count} vectors after inserting {inserted}; "
                f"{vector_count - inserted} stale vectors survived the clear"
            )
        if vector_count < inserted:
            logger.warning(f"Vector index reports {vector_count} vectors after inserting {inserted}")
        logger.info(f"Rebuild complete: deleted={deleted}, inserted={inserted}, vectors={vector_count}")

        return RebuildResult(deleted=deleted, inserted=inserted, vector_count=vector_count)
