"""Database configuration and session management."""

import os
from pathlib import Path
import logging
from typing import Optional
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

# Base class for all models
Base = declarative_base()

# Default database location (overridden by SystemConfig.database.url at startup)
DATABASE_URL = "sqlite:///data/persona.db"
SQLITE_BUSY_TIMEOUT_SECONDS = 30

engine: Optional[Engine] = None

# Session factory, bound by configure_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def configure_engine(database_url: str = DATABASE_URL, busy_timeout: int = SQLITE_BUSY_TIMEOUT_SECONDS) -> Engine:
    """
    Create the engine and bind the session factory to it.

    In-memory SQLite URLs get a single shared connection so every session
    sees the same database.
    """
    global engine

    url = make_url(database_url)
    kwargs = {"echo": False}  # Set to True for SQL debugging

    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {
            "check_same_thread": False,  # Needed for SQLite
            "timeout": busy_timeout,
        }
        if not url.database or url.database == ":memory:":
            kwargs["poolclass"] = StaticPool

    if engine is not None:
        engine.dispose()

    engine = create_engine(database_url, **kwargs)
    SessionLocal.configure(bind=engine)
    return engine


configure_engine(DATABASE_URL)


def get_db() -> Session:
    """
    Get a database session.

    Usage in FastAPI endpoints:
        @app.get("/endpoint")
        def endpoint(db: Session = Depends(get_db)):
            # Use db here
            pass

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Initialize the database.

    Creates all tables if they don't exist.
    Should be called on application startup.
    """
    url = engine.url
    is_file_sqlite = url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:")

    if is_file_sqlite:
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    # Import all models so they're registered with Base
    from persona_engine.models import character, conversation  # noqa: F401

    Base.metadata.create_all(bind=engine)

    # Enable WAL mode for better concurrency (allows readers during writes)
    if is_file_sqlite:
        with engine.connect() as conn:
            conn.execute(text("PRAGMA journal_mode=WAL"))
            conn.execute(text("PRAGMA synchronous=NORMAL"))  # Faster, still safe in WAL mode
            conn.commit()

    logger.info(
        "Database config: url=%s pid=%s wal=%s",
        url.render_as_string(hide_password=True),
        os.getpid(),
        is_file_sqlite,
    )
