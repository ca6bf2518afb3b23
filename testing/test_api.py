"""
Tests for the HTTP API.

The app lifespan is not run; services are swapped into app_state with fakes.

Usage:
    pytest testing/test_api.py
"""

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from conftest import FakeLLMClient, character_payload
from persona_engine.api.app import app, app_state, build_indexer, build_orchestrator
from persona_engine.config import SystemConfig
from persona_engine.services.stream_generator import FALLBACK_MESSAGE


@pytest.fixture
def client(db_session, embedding_service, fake_index, fake_llm):
    saved = dict(app_state)
    system_config = SystemConfig(vector_store={"settle_seconds": 0})
    app_state.update({
        "system_config": system_config,
        "llm_client": fake_llm,
        "embedding_service": embedding_service,
        "vector_index": fake_index,
        "orchestrator": build_orchestrator(system_config, embedding_service, fake_index, fake_llm),
        "indexer": build_indexer(system_config, embedding_service, fake_index),
        "reindex_lock": asyncio.Lock(),
        "active_streams": {},
    })
    try:
        yield TestClient(app)
    finally:
        app_state.clear()
        app_state.update(saved)


def _sse_events(response):
    return [
        json.loads(line[len("data: "):])
        for line in response.text.splitlines()
        if line.startswith("data: ")
    ]


def _import(client, *characters):
    response = client.post("/api/import-characters", json=list(characters))
    assert response.status_code == 200, response.text
    return response.json()


def test_health(client):
    _import(client, character_payload(1))
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["llm_available"] is True
    assert body["characters_loaded"] == 1
    assert body["vectors"] == 0


def test_import_then_list_and_get(client):
    assert _import(client, character_payload(1)) == {"success": True, "count": 1}

    characters = client.get("/api/characters").json()["characters"]
    assert characters == [{
        "id": 1,
        "name": "Ada",
        "summary": "Ada is a mathematician.",
        "image_url": "https://example.org/images/1.png",
    }]

    character = client.get("/api/character/1").json()["character"]
    assert character["personality"] == "Curious and precise."


def test_get_character_errors(client):
    assert client.get("/api/character/99").status_code == 404
    assert client.get("/api/character/abc").json()["detail"] == "Character not found"
    response = client.get("/api/character/%20")
    assert response.status_code == 400
    assert response.json()["detail"] == "Character ID is required"


@pytest.mark.parametrize("body", ["[]", "{}", ""])
def test_import_rejects_empty_or_non_array(client, body):
    response = client.post(
        "/api/import-characters", content=body, headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Request body must be a non-empty JSON array."


def test_import_reports_item_errors(client):
    response = client.post("/api/import-characters", json=[{"name": "No id"}])
    assert response.status_code == 400
    assert response.json()["detail"]["errors"][0].startswith("[0] id")


def test_import_malformed_json(client):
    response = client.post(
        "/api/import-characters", content="[{", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 500
    assert response.json()["detail"]["error"] == "Failed to import characters"


def test_import_duplicate_of_stored_character(client):
    _import(client, character_payload(1))
    response = client.post("/api/import-characters", json=[character_payload(1)])
    assert response.status_code == 500
    detail = response.json()["detail"]
    assert detail["committed"] == 0
    assert detail["total"] == 1
    assert len(client.get("/api/characters").json()["characters"]) == 1


def test_reindex(client, fake_index):
    _import(client, character_payload(1), character_payload(2, name="Bo"))

    response = client.post("/api/reindex")
    assert response.status_code == 200
    body = response.json()
    assert body["characters"] == 2
    assert body["inserted"] == body["chunks"] == body["vectors"]
    assert "char:1:summary:0" in fake_index.vectors

    again = client.post("/api/reindex").json()
    assert again["deleted"] == body["vectors"]
    assert again["vectors"] == body["vectors"]


def test_reindex_conflict(client):
    class HeldLock:
        def locked(self):
            return True

    app_state["reindex_lock"] = HeldLock()
    assert client.post("/api/reindex").status_code == 409


def test_conversation_lifecycle(client):
    _import(client, character_payload(1), character_payload(2, name="Bo", personality="Calm."))

    assert client.post("/conversations", json={"character_id": 42}).status_code == 404

    conversation = client.post("/conversations", json={"title": "Chat", "character_id": 1}).json()
    conversation_id = conversation["id"]
    assert conversation["active_character"] == {"id": 1, "name": "Ada", "personality": "Curious and precise."}

    switched = client.put(f"/conversations/{conversation_id}/character", json={"character_id": 2}).json()
    assert switched["active_character"]["name"] == "Bo"

    assert client.get(f"/conversations/{conversation_id}/messages").json() == []
    control = client.get(f"/conversations/{conversation_id}/messages", params={"include_control": True}).json()
    assert [m["kind"] for m in control] == ["character_context", "character_context"]

    assert client.get("/conversations/missing").status_code == 404


def test_stream_turn(client, fake_llm):
    _import(client, character_payload(1))
    client.post("/api/reindex")
    conversation_id = client.post("/conversations", json={"character_id": 1}).json()["id"]

    response = client.post(
        f"/conversations/{conversation_id}/messages/stream", json={"content": "What did you write?"}
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")

    events = _sse_events(response)
    assert events[0]["type"] == "user_message"
    assert events[1]["type"] == "retrieval_context"
    assert "".join(e["content"] for e in events if e["type"] == "content") == "Hello there!"
    assert events[-1]["type"] == "done"
    assert "You are Ada." in fake_llm.last_system_prompt

    messages = client.get(f"/conversations/{conversation_id}/messages").json()
    assert [(m["role"], m["content"]) for m in messages] == [
        ("user", "What did you write?"),
        ("assistant", "Hello there!"),
    ]

    state = client.get(f"/conversations/{conversation_id}/state").json()
    assert state["active_character"]["id"] == 1
    assert state["last_retrieval"]["chunk_ids"] == events[1]["chunk_ids"]
    assert state["streaming"] is False


def test_stream_failure_returns_fallback(client):
    app_state["orchestrator"] = build_orchestrator(
        app_state["system_config"],
        app_state["embedding_service"],
        app_state["vector_index"],
        FakeLLMClient(fail_after=0),
    )
    conversation_id = client.post("/conversations", json={}).json()["id"]

    events = _sse_events(client.post(
        f"/conversations/{conversation_id}/messages/stream", json={"content": "hi"}
    ))
    assert events[-2] == {
        "type": "error",
        "error": FALLBACK_MESSAGE,
        "message_id": events[-1]["message_id"],
        "discard_partial": False,
    }
    assert events[-1]["state"] == "errored"


def test_stream_guards(client):
    conversation_id = client.post("/conversations", json={}).json()["id"]

    assert client.post("/conversations/missing/messages/stream", json={"content": "hi"}).status_code == 404
    assert client.post(
        f"/conversations/{conversation_id}/messages/stream", json={"content": ""}
    ).status_code == 422

    app_state["active_streams"][conversation_id] = asyncio.Event()
    assert client.post(
        f"/conversations/{conversation_id}/messages/stream", json={"content": "hi"}
    ).status_code == 409


def test_cancel_stream(client):
    conversation_id = client.post("/conversations", json={}).json()["id"]
    assert client.post(f"/conversations/{conversation_id}/messages/stream/cancel").status_code == 404

    abort_event = asyncio.Event()
    app_state["active_streams"][conversation_id] = abort_event
    response = client.post(f"/conversations/{conversation_id}/messages/stream/cancel")
    assert response.status_code == 200
    assert abort_event.is_set()


def test_clear_keeps_character(client):
    _import(client, character_payload(1))
    conversation_id = client.post("/conversations", json={"character_id": 1}).json()["id"]
    client.post(f"/conversations/{conversation_id}/messages/stream", json={"content": "hi"})

    response = client.delete(f"/conversations/{conversation_id}/messages")
    assert response.json() == {"success": True, "deleted": 2}
    assert client.get(f"/conversations/{conversation_id}/messages").json() == []
    assert client.get(f"/conversations/{conversation_id}").json()["active_character"]["name"] == "Ada"
