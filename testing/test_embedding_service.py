"""
Tests for the embedding service.

Usage:
    pytest testing/test_embedding_service.py
"""

import json

import httpx
import pytest

from conftest import FAKE_DIMENSIONS, FakeEmbeddingModel, fake_vector
from persona_engine.config.models import EmbeddingConfig
from persona_engine.services.embedding_service import (
    EmbeddingError,
    OllamaEmbeddingService,
    SentenceTransformerEmbeddingService,
    create_embedding_service,
)


def _service(model, batch_size=2, dimensions=FAKE_DIMENSIONS):
    return SentenceTransformerEmbeddingService(
        model_name="fake-model",
        batch_size=batch_size,
        dimensions=dimensions,
        model=model,
    )


def test_batches_preserve_order():
    model = FakeEmbeddingModel()
    texts = [f"text {i}" for i in range(5)]

    vectors = _service(model).embed_batch(texts)

    assert model.calls == [["text 0", "text 1"], ["text 2", "text 3"], ["text 4"]]
    assert vectors == [fake_vector(text) for text in texts]


def test_batch_size_override():
    model = FakeEmbeddingModel()
    _service(model, batch_size=50).embed_batch(["a", "b", "c"], batch_size=1)
    assert len(model.calls) == 3


def test_empty_input_makes_no_calls():
    model = FakeEmbeddingModel()
    assert _service(model).embed_batch([]) == []
    assert model.calls == []


def test_embed_single_text():
    model = FakeEmbeddingModel()
    assert _service(model).embed("hello") == fake_vector("hello")


def test_batch_failure_raises_embedding_error():
    model = FakeEmbeddingModel(fail_on_call=2)
    with pytest.raises(EmbeddingError) as exc_info:
        _service(model).embed_batch(["a", "b", "c", "d", "e"])
    assert "batch 2/3" in str(exc_info.value)


def test_dimension_mismatch_raises():
    model = FakeEmbeddingModel(dims=4)
    with pytest.raises(EmbeddingError):
        _service(model, dimensions=768).embed_batch(["a"])


def test_dimensions_default_to_model():
    model = FakeEmbeddingModel(dims=6)
    service = _service(model, dimensions=None)
    assert service.dimensions == 6


def _ollama_transport(seen):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen.append(body)
        assert request.url.path == "/api/embed"
        return httpx.Response(200, json={"embeddings": [fake_vector(text) for text in body["input"]]})
    return httpx.MockTransport(handler)


def test_ollama_provider_posts_batches():
    seen = []
    service = OllamaEmbeddingService(
        model_name="nomic-embed-text",
        base_url="http://ollama:11434",
        batch_size=2,
        dimensions=FAKE_DIMENSIONS,
        client=httpx.Client(transport=_ollama_transport(seen)),
    )

    vectors = service.embed_batch(["a", "b", "c"])

    assert [body["input"] for body in seen] == [["a", "b"], ["c"]]
    assert all(body["model"] == "nomic-embed-text" for body in seen)
    assert vectors == [fake_vector(text) for text in ["a", "b", "c"]]
    service.close()


def test_ollama_http_error_is_embedding_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"error": "boom"}))
    service = OllamaEmbeddingService(model_name="m", client=httpx.Client(transport=transport))
    with pytest.raises(EmbeddingError):
        service.embed_batch(["a"])


def test_factory_builds_ollama_provider():
    service = create_embedding_service(EmbeddingConfig(provider="ollama", model="nomic-embed-text", dimensions=None))
    try:
        assert isinstance(service, OllamaEmbeddingService)
        assert service.model_name == "nomic-embed-text"
    finally:
        service.close()
