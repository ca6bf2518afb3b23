"""Database package for Persona Engine."""

from .database import get_db, init_db, configure_engine

__all__ = ["get_db", "init_db", "configure_engine"]
