"""
Database migration management for Persona Engine.

Handles both fresh installs and incremental migrations for existing databases.
Uses Alembic for migration tracking and execution.
"""

import logging
from pathlib import Path
from typing import Optional
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import make_url
from alembic.config import Config
from alembic import command
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory

logger = logging.getLogger(__name__)


class MigrationManager:
    """
    Manage database migrations for Persona Engine.

    Supports two scenarios:
    1. Fresh install: Create schema directly and stamp the head revision
    2. Existing install: Apply incremental migrations from current version
    """

    def __init__(self, db_url: str, migrations_dir: Optional[Path] = None):
        """
        Initialize migration manager.

        Args:
            db_url: SQLAlchemy database URL (e.g., "sqlite:///data/persona.db")
            migrations_dir: Path to migrations directory (defaults to alembic/)
        """
        self.db_url = db_url
        self.engine = create_engine(db_url)

        if migrations_dir is None:
            migrations_dir = Path(__file__).parent.parent.parent / "alembic"
        self.migrations_dir = migrations_dir

        self.alembic_cfg = Config()
        self.alembic_cfg.set_main_option("script_location", str(self.migrations_dir))
        self.alembic_cfg.set_main_option("sqlalchemy.url", db_url)
        self.alembic_cfg.attributes["configure_logger"] = False  # Use our logger

    def table_names(self) -> list[str]:
        return inspect(self.engine).get_table_names()

    def is_fresh_database(self) -> bool:
        """True if the database has no tables."""
        tables = self.table_names()
        if not tables:
            logger.info("Fresh database detected - no tables exist")
            return True
        logger.info(f"Existing database detected - {len(tables)} tables found")
        return False

    def get_current_revision(self) -> Optional[str]:
        """Current migration revision recorded in the database, if any."""
        with self.engine.connect() as connection:
            context = MigrationContext.configure(connection)
            return context.get_current_revision()

    def get_head_revision(self) -> str:
        """Latest migration revision among the migration scripts."""
        script = ScriptDirectory.from_config(self.alembic_cfg)
        return script.get_current_head()

    def has_pending_migrations(self) -> bool:
        current = self.get_current_revision()
        head = self.get_head_revision()
        if current != head:
            logger.info(f"Pending migrations detected: {current} -> {head}")
            return True
        logger.info("Database is up to date - no pending migrations")
        return False

    def initialize_fresh_database(self) -> None:
        """Create the latest schema with create_all() and stamp it as head."""
        from persona_engine.db.database import Base
        from persona_engine.models import character, conversation  # noqa: F401

        logger.info("Initializing fresh database with latest schema...")
        Base.metadata.create_all(self.engine)
        command.stamp(self.alembic_cfg, "head")
        logger.info("Database stamped - ready to use")

    def apply_migrations(self) -> None:
        """Upgrade to the head revision."""
        if not self.has_pending_migrations():
            return

        logger.info("Applying pending migrations...")
        try:
            command.upgrade(self.alembic_cfg, "head")
            logger.info("All migrations applied successfully")
        except Exception as e:
            logger.error(f"Migration failed: {e}", exc_info=True)
            raise RuntimeError(f"Failed to apply migrations: {e}") from e

    def ensure_database_ready(self) -> None:
        """
        Ensure the schema is current. Call this on application startup.

        A database with tables but no version table predates migration
        tracking; it is stamped at the initial revision before upgrading.
        """
        logger.info("Checking database state...")

        if self.is_fresh_database():
            self.initialize_fresh_database()
        elif "alembic_version" not in self.table_names():
            logger.info("Existing database without migration tracking - stamping initial revision")
            command.stamp(self.alembic_cfg, "001_initial_schema")
            self.apply_migrations()
        else:
            self.apply_migrations()

        logger.info("Database is ready")

    def dispose(self) -> None:
        self.engine.dispose()


def ensure_database_ready(db_url: str) -> None:
    """
    Ensure a file-backed database is ready for use (call this on startup).

    In-memory databases are skipped; init_db() creates their tables.
    """
    url = make_url(db_url)
    if url.get_backend_name() == "sqlite":
        if not url.database or url.database == ":memory:":
            return
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    manager = MigrationManager(db_url)
    try:
        manager.ensure_database_ready()
    finally:
        manager.dispose()
