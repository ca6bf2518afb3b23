"""Bulk import of character records into the relational store."""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from persona_engine.models.character import CharacterRecord
from persona_engine.repositories.character_repository import CharacterRepository

logger = logging.getLogger(__name__)

EMPTY_PAYLOAD_MESSAGE = "Request body must be a non-empty JSON array."


class CharacterImportError(Exception):
    """Base exception for character import failures."""

    def __init__(self, message: str, committed: int = 0, total: int = 0):
        self.committed = committed
        self.total = total
        super().__init__(message)


class InvalidCharacterPayloadError(CharacterImportError):
    """The payload was rejected before anything was written."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)


@dataclass
class ImportResult:
    """Outcome of a successful import."""
    count: int
    batches: int


def parse_records(payload: Any) -> List[CharacterRecord]:
    """
    Validate an import payload.

    Args:
        payload: Decoded JSON body

    Returns:
        Validated records, in payload order

    Raises:
        InvalidCharacterPayloadError: If the payload is not a non-empty
            list of valid character objects with distinct ids
    """
    if not isinstance(payload, list) or not payload:
        raise InvalidCharacterPayloadError(EMPTY_PAYLOAD_MESSAGE)

    records: List[CharacterRecord] = []
    errors: List[str] = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            errors.append(f"[{index}]: expected an object, got {type(item).__name__}")
            continue
        try:
            records.append(CharacterRecord.model_validate(item))
        except ValidationError as e:
            for error in e.errors():
                loc = " → ".join(str(l) for l in error['loc'])
                errors.append(f"[{index}] {loc}: {error['msg']}")

    seen = set()
    for record in records:
        if record.id in seen:
            errors.append(f"duplicate id {record.id}")
        seen.add(record.id)

    if errors:
        raise InvalidCharacterPayloadError(f"Invalid character records ({len(errors)} errors)", errors)
    return records


class CharacterImporter:
    """Inserts validated character records in small transactional batches."""

    def __init__(self, db: Session, batch_size: int = 5):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.db = db
        self.batch_size = batch_size
        self.repo = CharacterRepository(db)

    def import_payload(self, payload: Any) -> ImportResult:
        """
        Validate and insert a whole payload.

        Nothing is written if validation fails. A batch that fails to insert
        is rolled back; earlier batches stay committed.

        Raises:
            InvalidCharacterPayloadError: On validation failure
            CharacterImportError: If a batch cannot be stored
        """
        records = parse_records(payload)
        return self.import_records(records)

    def import_records(self, records: List[CharacterRecord]) -> ImportResult:
        size = self.batch_size
        total_batches = (len(records) + size - 1) // size
        committed = 0

        for batch_number, start in enumerate(range(0, len(records), size), start=1):
            batch = records[start:start + size]
            try:
                committed += self.repo.insert_batch(batch)
            except SQLAlchemyError as e:
                logger.error(
                    f"Character import batch {batch_number}/{total_batches} failed "
                    f"(ids {[r.id for r in batch]}): {e}"
                )
                raise CharacterImportError(
                    f"Batch {batch_number}/{total_batches} failed: {e.__class__.__name__}",
                    committed=committed,
                    total=len(records),
                ) from e
            logger.debug(f"Imported batch {batch_number}/{total_batches} ({len(batch)} characters)")

        logger.info(f"Imported {committed} characters in {total_batches} batches")
        return ImportResult(count=committed, batches=total_batches)
