"""Pydantic models for configuration validation."""

from pathlib import Path
from typing import Optional, Literal
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict


class LLMConfig(BaseModel):
    """LLM backend configuration."""

    provider: Literal["ollama", "lmstudio"] = "ollama"
    base_url: str = "http://localhost:11434"
    model: str = "llama3.1:8b-instruct-q8_0"
    context_window: int = Field(default=8192, gt=0, le=128000)
    max_response_tokens: int = Field(default=1024, gt=0, le=8192)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    timeout_seconds: int = Field(default=120, gt=0)

    @field_validator('base_url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Ensure URL is properly formatted."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('base_url must start with http:// or https://')
        return v.rstrip('/')


class EmbeddingConfig(BaseModel):
    """Embedding model configuration.

    The model decides the vector dimensionality, so both live here instead of
    being hard-coded in the indexer or retriever.
    """

    provider: Literal["sentence-transformers", "ollama"] = "sentence-transformers"
    model: str = "BAAI/bge-base-en-v1.5"
    dimensions: Optional[int] = Field(
        default=768,
        gt=0,
        description="Expected vector size (None = accept whatever the model returns)"
    )
    batch_size: int = Field(default=50, gt=0, le=1024)
    device: str = "cpu"
    base_url: str = "http://localhost:11434"
    timeout_seconds: int = Field(default=60, gt=0)

    @field_validator('base_url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Ensure URL is properly formatted."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('base_url must start with http:// or https://')
        return v.rstrip('/')


class VectorStoreConfig(BaseModel):
    """Vector index configuration."""

    persist_directory: Path = Path("data/vector_store")
    collection_name: str = Field(default="character_chunks", min_length=3, max_length=63)
    clear_strategy: Literal["native", "drain"] = Field(
        default="native",
        description="How a rebuild empties the index: drop the collection, or query-and-delete in pages"
    )
    upsert_batch_size: int = Field(default=100, gt=0, le=5000)
    drain_page_size: int = Field(default=100, gt=0, le=5000)
    settle_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Pause after the last insert batch before reading index stats"
    )


class ChunkingConfig(BaseModel):
    """Chunking parameters shared by every indexed text field."""

    chunk_size: int = Field(default=500, gt=0)
    chunk_overlap: int = Field(default=50, ge=0)

    @model_validator(mode='after')
    def validate_overlap(self) -> "ChunkingConfig":
        """Overlap must leave room for the window to advance."""
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError('chunk_overlap must be smaller than chunk_size')
        return self


class RetrievalConfig(BaseModel):
    """Chat-time retrieval settings."""

    top_k: int = Field(default=3, gt=0, le=50)


class ImporterConfig(BaseModel):
    """Character bulk import settings."""

    batch_size: int = Field(default=5, gt=0, le=1000)


class DatabaseConfig(BaseModel):
    """Relational store configuration."""

    url: str = "sqlite:///data/persona.db"
    busy_timeout_seconds: int = Field(default=30, gt=0)


class SystemConfig(BaseModel):
    """Top-level system configuration."""

    model_config = ConfigDict(extra='ignore')

    llm: LLMConfig = Field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    importer: ImporterConfig = Field(default_factory=ImporterConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    debug: bool = False
    api_host: str = "localhost"
    api_port: int = Field(default=8080, gt=0, le=65535)
