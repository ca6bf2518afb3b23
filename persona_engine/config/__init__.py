"""Configuration loading and validation."""

from .models import (
    SystemConfig,
    LLMConfig,
    EmbeddingConfig,
    VectorStoreConfig,
    ChunkingConfig,
    RetrievalConfig,
    ImporterConfig,
    DatabaseConfig,
)
from .loader import ConfigLoader, ConfigLoadError, ConfigValidationError

__all__ = [
    "SystemConfig",
    "LLMConfig",
    "EmbeddingConfig",
    "VectorStoreConfig",
    "ChunkingConfig",
    "RetrievalConfig",
    "ImporterConfig",
    "DatabaseConfig",
    "ConfigLoader",
    "ConfigLoadError",
    "ConfigValidationError",
]
