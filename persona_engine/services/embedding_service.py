"""Embedding service for converting text to vectors."""

from typing import TYPE_CHECKING, Any, List, Optional
import logging

import httpx

try:
    from sentence_transformers import SentenceTransformer
    SENTENCE_TRANSFORMERS_AVAILABLE = True
except ImportError:
    SENTENCE_TRANSFORMERS_AVAILABLE = False
    SentenceTransformer = None

if TYPE_CHECKING:
    from persona_engine.config.models import EmbeddingConfig

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """Raised when an embedding batch cannot be produced."""
    pass


class EmbeddingService:
    """
    Base embedding service.

    Splits input into batches, issues one inference call per batch and
    concatenates the results in request order. Providers implement
    `_encode_batch`.
    """

    def __init__(
        self,
        model_name: str,
        batch_size: int = 50,
        dimensions: Optional[int] = None,
    ):
        """
        Args:
            model_name: Model identifier understood by the provider
            batch_size: Texts per inference call
            dimensions: Expected vector length (None = accept any)
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.model_name = model_name
        self.batch_size = batch_size
        self.dimensions = dimensions

    def _encode_batch(self, texts: List[str]) -> List[List[float]]:
        raise NotImplementedError

    def embed(self, text: str) -> List[float]:
        """Generate embedding for a single text (a batch of one)."""
        return self.embed_batch([text])[0]

    def embed_batch(
        self,
        texts: List[str],
        batch_size: Optional[int] = None
    ) -> List[List[float]]:
        """
        Generate embeddings for multiple texts.

        Args:
            texts: Texts to embed
            batch_size: Override the configured batch size

        Returns:
            One vector per input text, in input order

        Raises:
            EmbeddingError: If any batch fails or returns malformed vectors
        """
        if not texts:
            return []

        size = batch_size or self.batch_size
        total_batches = (len(texts) + size - 1) // size
        embeddings: List[List[float]] = []

        for batch_number, start in enumerate(range(0, len(texts), size), start=1):
            batch = texts[start:start + size]
            try:
                vectors = self._encode_batch(batch)
            except EmbeddingError:
                raise
            except Exception as e:
                logger.error(f"Embedding batch {batch_number}/{total_batches} failed ({self.model_name}): {e}")
                raise EmbeddingError(
                    f"Embedding batch {batch_number}/{total_batches} failed: {e}"
                ) from e

            if len(vectors) != len(batch):
                raise EmbeddingError(
                    f"Embedding batch {batch_number}/{total_batches} returned "
                    f"{len(vectors)} vectors for {len(batch)} texts"
                )
            if self.dimensions is not None:
                for vector in vectors:
                    if len(vector) != self.dimensions:
                        raise EmbeddingError(
                            f"Model {self.model_name} returned {len(vector)}-dim vectors, "
                            f"expected {self.dimensions}"
                        )

            embeddings.extend(vectors)
            if total_batches > 1:
                logger.debug(f"Embedded batch {batch_number}/{total_batches} ({len(batch)} texts)")

        return embeddings

    def close(self) -> None:
        """Release provider resources. No-op for local models."""
        pass


class SentenceTransformerEmbeddingService(EmbeddingService):
    """Embeddings computed in-process with sentence-transformers."""

    # Class-level cache for the model (shared across instances)
    _model_cache = {}

    def __init__(
        self,
        model_name: str = "BAAI/bge-base-en-v1.5",
        batch_size: int = 50,
        dimensions: Optional[int] = None,
        device: str = "cpu",
        model: Optional[Any] = None,
    ):
        """
        Initialize embedding service with specified model.

        Args:
            model_name: Name of the sentence-transformers model to use
            batch_size: Texts per encode call
            dimensions: Expected vector length (defaults to the model's own)
            device: Torch device for the model
            model: Pre-loaded model object exposing `encode` (skips loading)
        """
        super().__init__(model_name, batch_size, dimensions)

        if model is None:
            if not SENTENCE_TRANSFORMERS_AVAILABLE:
                raise ImportError(
                    "sentence-transformers not installed. "
                    "Install with: pip install sentence-transformers"
                )
            cache_key = (model_name, device)
            if cache_key not in self._model_cache:
                logger.info(f"Loading embedding model: {model_name}")
                self._model_cache[cache_key] = SentenceTransformer(model_name, device=device)
                logger.info(f"Model loaded: {model_name} (device: {device})")
            model = self._model_cache[cache_key]

        self.model = model

        if self.dimensions is None and hasattr(self.model, "get_sentence_embedding_dimension"):
            self.dimensions = self.model.get_sentence_embedding_dimension()
        logger.debug(f"Embedding dimensions: {self.dimensions}")

    def _encode_batch(self, texts: List[str]) -> List[List[float]]:
        vectors = self.model.encode(
            texts,
            convert_to_numpy=True,
            show_progress_bar=False,
            batch_size=len(texts)
        )
        return [[float(x) for x in vector] for vector in vectors]


class OllamaEmbeddingService(EmbeddingService):
    """Embeddings from Ollama's /api/embed endpoint."""

    def __init__(
        self,
        model_name: str,
        base_url: str = "http://localhost:11434",
        batch_size: int = 50,
        dimensions: Optional[int] = None,
        timeout_seconds: float = 60,
        client: Optional[httpx.Client] = None,
    ):
        super().__init__(model_name, batch_size, dimensions)
        self.base_url = base_url.rstrip('/')
        self.client = client or httpx.Client(timeout=timeout_seconds)

    def _encode_batch(self, texts: List[str]) -> List[List[float]]:
        response = self.client.post(
            f"{self.base_url}/api/embed",
            json={"model": self.model_name, "input": texts}
        )
        response.raise_for_status()
        data = response.json()
        if "embeddings" not in data:
            raise EmbeddingError(f"Ollama embed response has no 'embeddings' (keys={list(data.keys())})")
        return data["embeddings"]

    def close(self) -> None:
        self.client.close()


def create_embedding_service(config: "EmbeddingConfig") -> EmbeddingService:
    """
    Factory function to create the embedding service for a provider.

    Args:
        config: Embedding configuration

    Returns:
        Provider-specific embedding service

    Raises:
        ValueError: If provider is unknown
    """
    if config.provider == "sentence-transformers":
        return SentenceTransformerEmbeddingService(
            model_name=config.model,
            batch_size=config.batch_size,
            dimensions=config.dimensions,
            device=config.device,
        )
    if config.provider == "ollama":
        return OllamaEmbeddingService(
            model_name=config.model,
            base_url=config.base_url,
            batch_size=config.batch_size,
            dimensions=config.dimensions,
            timeout_seconds=config.timeout_seconds,
        )
    raise ValueError(
        f"Unknown embedding provider: '{config.provider}'. "
        f"Supported providers: sentence-transformers, ollama"
    )
