"""Repository for character operations."""

import logging
from typing import List, Optional
from sqlalchemy.orm import Session

from persona_engine.models.character import Character, CharacterRecord

logger = logging.getLogger(__name__)


class CharacterRepository:
    """Handle database operations for characters."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, character_id: int) -> Optional[Character]:
        """
        Get character by ID.

        Args:
            character_id: Character ID

        Returns:
            Character or None if not found
        """
        return self.db.query(Character).filter(Character.id == character_id).first()

    def list_all(self) -> List[Character]:
        """List all characters, ordered by name."""
        return self.db.query(Character).order_by(Character.name, Character.id).all()

    def count(self) -> int:
        return self.db.query(Character).count()

    def insert_batch(self, records: List[CharacterRecord]) -> int:
        """
        Insert a batch of characters in one transaction.

        Args:
            records: Validated character records

        Returns:
            Number of rows committed

        Raises:
            sqlalchemy.exc.SQLAlchemyError: If the batch fails (nothing from
                this batch is committed)
        """
        try:
            self.db.add_all([Character(**record.to_row()) for record in records])
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return len(records)
