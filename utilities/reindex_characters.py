"""
Rebuild the character vector index from the character store.

Usage:
  python utilities/reindex_characters.py --dry-run
  python utilities/reindex_characters.py --yes
"""

import argparse
import logging
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from persona_engine.api.app import build_indexer
from persona_engine.config import ConfigLoader
from persona_engine.db.database import SessionLocal, configure_engine, init_db
from persona_engine.db.vector_store import VectorIndex
from persona_engine.repositories import CharacterRepository
from persona_engine.services.embedding_service import create_embedding_service
from persona_engine.services.index_writer import IndexingError


def main() -> int:
    parser = argparse.ArgumentParser(description="Rebuild the character vector index (full rebuild).")
    parser.add_argument("--yes", action="store_true", help="Skip confirmation prompt.")
    parser.add_argument("--dry-run", action="store_true", help="Chunk the corpus and show counts without changes.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    system_config = ConfigLoader(project_root).load_system_config()
    configure_engine(system_config.database.url, system_config.database.busy_timeout_seconds)
    init_db()

    db = SessionLocal()
    try:
        characters = CharacterRepository(db).list_all()
    finally:
        db.close()

    if not characters:
        print("No characters in the store. Import some first.")
        return 0

    vector_index = VectorIndex(
        persist_directory=system_config.vector_store.persist_directory,
        collection_name=system_config.vector_store.collection_name,
    )
    print(f"Characters: {len(characters)}")
    print(f"Vectors currently indexed: {vector_index.describe()['vectors']}")

    if args.dry_run:
        from persona_engine.services.chunking import ChunkingService
        chunker = ChunkingService(system_config.chunking.chunk_size, system_config.chunking.chunk_overlap)
        print(f"Chunks to index: {len(chunker.chunk_characters(characters))}")
        print("Dry run complete. No changes applied.")
        return 0

    if not args.yes:
        confirm = input("Type YES to wipe and rebuild the vector index: ").strip()
        if confirm != "YES":
            print("Aborted.")
            return 0

    embedding_service = create_embedding_service(system_config.embedding)
    indexer = build_indexer(system_config, embedding_service, vector_index)
    try:
        report = indexer.reindex(characters)
    except IndexingError as e:
        print(f"Rebuild failed: {e}")
        print("The index may be partially rebuilt; run the rebuild again.")
        return 1
    finally:
        embedding_service.close()

    print(f"Chunks: {report.chunks}")
    print(f"Deleted: {report.rebuild.deleted}, inserted: {report.rebuild.inserted}")
    print(f"Vectors indexed after rebuild: {report.rebuild.vector_count}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
