"""
Bulk import characters from a JSON file into the character store.

Usage:
  python utilities/import_characters.py characters.json
  python utilities/import_characters.py characters.json --batch-size 10
"""

import argparse
import json
import logging
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from persona_engine.config import ConfigLoader
from persona_engine.db.database import SessionLocal, configure_engine, init_db
from persona_engine.services.character_import import (
    CharacterImporter,
    CharacterImportError,
    InvalidCharacterPayloadError,
)


def main() -> int:
    parser = argparse.ArgumentParser(description="Import characters from a JSON array file.")
    parser.add_argument("file", type=Path, help="JSON file holding an array of character objects.")
    parser.add_argument("--batch-size", type=int, help="Characters per transaction (default: config importer.batch_size).")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    system_config = ConfigLoader(project_root).load_system_config()
    configure_engine(system_config.database.url, system_config.database.busy_timeout_seconds)
    init_db()

    try:
        payload = json.loads(args.file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Could not read {args.file}: {e}")
        return 1

    db = SessionLocal()
    try:
        importer = CharacterImporter(db, batch_size=args.batch_size or system_config.importer.batch_size)
        result = importer.import_payload(payload)
    except InvalidCharacterPayloadError as e:
        print(f"Rejected: {e}")
        for error in e.errors:
            print(f"  • {error}")
        return 1
    except CharacterImportError as e:
        print(f"Import failed: {e} ({e.committed} of {e.total} committed)")
        return 1
    finally:
        db.close()

    print(f"Imported {result.count} characters in {result.batches} batches.")
    print("Run utilities/reindex_characters.py to rebuild the vector index.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
