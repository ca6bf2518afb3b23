"""Shared fixtures and fakes for the test suite."""

import hashlib
import math
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from persona_engine.db.vector_store import VectorMatch, VectorRecord, VectorStoreError
from persona_engine.services.embedding_service import SentenceTransformerEmbeddingService
from persona_engine.llm.base import BaseLLMClient, LLMError

FAKE_DIMENSIONS = 8


def fake_vector(text: str, dims: int = FAKE_DIMENSIONS) -> List[float]:
    """Deterministic non-zero vector for a text."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [b / 255.0 + 0.01 for b in digest[:dims]]


class FakeEmbeddingModel:
    """Stands in for a SentenceTransformer: records encode calls."""

    def __init__(self, dims: int = FAKE_DIMENSIONS, fail_on_call: Optional[int] = None):
        self.dims = dims
        self.fail_on_call = fail_on_call
        self.calls: List[List[str]] = []

    def encode(self, texts, **kwargs):
        self.calls.append(list(texts))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise RuntimeError("model exploded")
        return [fake_vector(text, self.dims) for text in texts]

    def get_sentence_embedding_dimension(self):
        return self.dims


class FakeVectorIndex:
    """In-memory vector index with the VectorIndex interface."""

    def __init__(self, supports_native_clear: bool = True):
        self.supports_native_clear = supports_native_clear
        self.vectors: Dict[str, VectorRecord] = {}
        self.upsert_calls: List[List[str]] = []
        self.query_calls: List[Dict[str, Any]] = []
        self.peek_calls = 0
        self.clear_calls = 0
        self.fail_upsert_on_call: Optional[int] = None
        self.fail_queries = False

    def query(self, vector, top_k=3, where=None):
        self.query_calls.append({"vector": vector, "top_k": top_k, "where": where})
        if self.fail_queries:
            raise VectorStoreError("index offline")
        matches = []
        for record in self.vectors.values():
            if where and any(record.metadata.get(k) != v for k, v in where.items()):
                continue
            matches.append(VectorMatch(record.id, _cosine(vector, record.values), dict(record.metadata)))
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:top_k]

    def peek_ids(self, limit=100):
        self.peek_calls += 1
        return list(self.vectors.keys())[:limit]

    def delete_by_ids(self, ids):
        for vector_id in ids:
            self.vectors.pop(vector_id, None)

    def upsert(self, records):
        self.upsert_calls.append([record.id for record in records])
        if self.fail_upsert_on_call is not None and len(self.upsert_calls) == self.fail_upsert_on_call:
            raise VectorStoreError("upsert rejected")
        for record in records:
            self.vectors[record.id] = record

    def describe(self):
        return {"name": "fake", "vectors": len(self.vectors)}

    def clear(self):
        self.clear_calls += 1
        self.vectors.clear()


def _cosine(a, b):
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeLLMClient(BaseLLMClient):
    """Streams canned chunks and records what it was sent."""

    def __init__(
        self,
        chunks: Optional[List[str]] = None,
        fail_after: Optional[int] = None,
        abort_event=None,
        abort_after: Optional[int] = None,
    ):
        self.base_url = "http://fake-llm"
        self.model = "fake-model"
        self.chunks = chunks if chunks is not None else ["Hello", " there", "!"]
        self.fail_after = fail_after
        self.abort_event = abort_event
        self.abort_after = abort_after
        self.requests: List[list] = []
        self.closed = False

    async def health_check(self) -> bool:
        return True

    async def stream_with_history(self, messages, temperature=None, max_tokens=None, model=None):
        self.requests.append(messages)
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index == self.fail_after:
                raise LLMError("model went away")
            if self.abort_after is not None and index == self.abort_after:
                self.abort_event.set()
            yield chunk
        if self.fail_after is not None and self.fail_after >= len(self.chunks):
            raise LLMError("model went away")

    async def close(self) -> None:
        self.closed = True

    @property
    def last_system_prompt(self) -> str:
        return self.requests[-1][0]["content"]


@pytest.fixture
def fake_model():
    return FakeEmbeddingModel()


@pytest.fixture
def embedding_service(fake_model):
    return SentenceTransformerEmbeddingService(
        model_name="fake-model",
        batch_size=50,
        dimensions=FAKE_DIMENSIONS,
        model=fake_model,
    )


@pytest.fixture
def fake_index():
    return FakeVectorIndex()


@pytest.fixture
def fake_llm():
    return FakeLLMClient()


@pytest.fixture
def db_session(tmp_path):
    """Fresh file-backed SQLite database per test."""
    from persona_engine.db.database import SessionLocal, configure_engine, init_db

    engine = configure_engine(f"sqlite:///{tmp_path / 'persona.db'}")
    init_db()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


def character_payload(character_id: int = 1, name: str = "Ada", **overrides) -> Dict[str, Any]:
    payload = {
        "id": character_id,
        "name": name,
        "href": f"https://example.org/characters/{character_id}",
        "image_url": f"https://example.org/images/{character_id}.png",
        "summary": f"{name} is a mathematician.",
        "personality": "Curious and precise.",
        "data": [{"text": f"{name} wrote the first program.", "section": "history"}],
    }
    payload.update(overrides)
    return payload
