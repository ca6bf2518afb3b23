"""
Tests for the chat turn pipeline and stream lifecycle.

Usage:
    pytest testing/test_chat_orchestrator.py
"""

import asyncio

import pytest

from conftest import FakeLLMClient, fake_vector
from persona_engine.db.vector_store import VectorRecord
from persona_engine.models import CharacterContext, ChatMessage, MessageKind, MessageRole
from persona_engine.repositories import ConversationRepository, MessageRepository
from persona_engine.services.character_context import character_context_message
from persona_engine.services.chat_orchestrator import ChatOrchestrator
from persona_engine.services.prompt_assembly import PromptAssembler
from persona_engine.services.retrieval import Retriever
from persona_engine.services.stream_generator import FALLBACK_MESSAGE, StreamGenerator, StreamState

ADA = CharacterContext(id=1, name="Ada", personality="Curious and precise.")


def _collect(agen):
    async def run():
        return [event async for event in agen]
    return asyncio.run(run())


def _conversation(db, character=ADA):
    conversation = ConversationRepository(db).create(title="Test")
    if character is not None:
        MessageRepository(db).append(conversation.id, character_context_message(character))
    return conversation.id


def _orchestrator(embedding_service, index, llm):
    return ChatOrchestrator(Retriever(embedding_service, index), PromptAssembler(), llm)


def _seed_ada(index):
    index.upsert([
        VectorRecord(
            id="char:1:data:0:0",
            values=fake_vector("Ada wrote the first program."),
            metadata={"character_id": 1, "text": "Ada wrote the first program."},
        )
    ])


def test_turn_with_retrieval(db_session, embedding_service, fake_index, fake_llm):
    _seed_ada(fake_index)
    conversation_id = _conversation(db_session)
    orchestrator = _orchestrator(embedding_service, fake_index, fake_llm)

    events = _collect(orchestrator.handle_turn(
        conversation_id, ChatMessage.from_text(MessageRole.USER, "What did you write?")
    ))

    types = [event["type"] for event in events]
    assert types == ["user_message", "retrieval_context", "content", "content", "content", "done"]
    assert events[1]["chunk_ids"] == ["char:1:data:0:0"]
    assert events[1]["snippets"] == "- Ada wrote the first program."
    assert events[-1]["state"] == "completed"
    assert events[-1]["cancelled"] is False

    prompt = fake_llm.last_system_prompt
    assert prompt.startswith("You are Ada.\n")
    assert "**ADDITIONAL CONTEXT (for your reference only):**\n- Ada wrote the first program." in prompt
    assert fake_llm.requests[-1][1:] == [{"role": "user", "content": "What did you write?"}]

    stored = MessageRepository(db_session).list_by_conversation(conversation_id)
    assert [m.kind for m in stored] == [
        MessageKind.CHARACTER_CONTEXT,
        MessageKind.CHAT,
        MessageKind.RETRIEVAL_CONTEXT,
        MessageKind.CHAT,
    ]
    assert stored[2].payload["chunk_ids"] == ["char:1:data:0:0"]
    assert stored[3].role == MessageRole.ASSISTANT
    assert stored[3].text == "Hello there!"
    assert stored[3].id == events[-1]["message_id"]


def test_turn_without_vectors(db_session, embedding_service, fake_index, fake_llm):
    conversation_id = _conversation(db_session)
    orchestrator = _orchestrator(embedding_service, fake_index, fake_llm)

    events = _collect(orchestrator.handle_turn(conversation_id, ChatMessage.from_text(MessageRole.USER, "hi")))

    assert "retrieval_context" not in [event["type"] for event in events]
    assert fake_llm.last_system_prompt.startswith("You are Ada.")
    assert "ADDITIONAL CONTEXT" not in fake_llm.last_system_prompt
    kinds = [m.kind for m in MessageRepository(db_session).list_by_conversation(conversation_id)]
    assert MessageKind.RETRIEVAL_CONTEXT not in kinds


def test_turn_without_character_uses_generic_persona(db_session, embedding_service, fake_index, fake_llm):
    _seed_ada(fake_index)
    conversation_id = _conversation(db_session, character=None)
    orchestrator = _orchestrator(embedding_service, fake_index, fake_llm)

    _collect(orchestrator.handle_turn(conversation_id, ChatMessage.from_text(MessageRole.USER, "hi")))

    assert fake_llm.last_system_prompt == "You are a role-playing chatbot."
    assert fake_index.query_calls == []


def test_model_failure_persists_fallback(db_session, embedding_service, fake_index):
    llm = FakeLLMClient(fail_after=1)
    conversation_id = _conversation(db_session)
    orchestrator = _orchestrator(embedding_service, fake_index, llm)

    events = _collect(orchestrator.handle_turn(conversation_id, ChatMessage.from_text(MessageRole.USER, "hi")))

    assert [event["type"] for event in events] == ["user_message", "content", "error", "done"]
    assert events[-2]["error"] == FALLBACK_MESSAGE
    assert events[-2]["discard_partial"] is True
    assert events[-1]["state"] == "errored"

    stored = MessageRepository(db_session).list_by_conversation(conversation_id, include_control=False)
    assert [m.text for m in stored] == ["hi", FALLBACK_MESSAGE]


def test_cancel_keeps_partial_reply(db_session, embedding_service, fake_index):
    abort_event = asyncio.Event()
    llm = FakeLLMClient(chunks=["Once", " upon", " a time"], abort_event=abort_event, abort_after=2)
    conversation_id = _conversation(db_session)
    orchestrator = _orchestrator(embedding_service, fake_index, llm)

    events = _collect(orchestrator.handle_turn(
        conversation_id, ChatMessage.from_text(MessageRole.USER, "story?"), abort_event
    ))

    assert [event["content"] for event in events if event["type"] == "content"] == ["Once", " upon"]
    assert events[-1]["cancelled"] is True
    assert events[-1]["state"] == "completed"
    stored = MessageRepository(db_session).list_by_conversation(conversation_id, include_control=False)
    assert stored[-1].text == "Once upon"


def test_empty_turn_is_skipped(db_session, embedding_service, fake_index, fake_llm):
    conversation_id = _conversation(db_session)
    orchestrator = _orchestrator(embedding_service, fake_index, fake_llm)

    assert _collect(orchestrator.handle_turn(conversation_id)) == []
    assert _collect(orchestrator.handle_turn(
        conversation_id, ChatMessage.from_text(MessageRole.USER, "   ")
    )) == []

    assert fake_llm.requests == []
    assert MessageRepository(db_session).count(conversation_id) == 1


def test_history_is_forwarded_in_order(db_session, embedding_service, fake_index, fake_llm):
    conversation_id = _conversation(db_session)
    repo = MessageRepository(db_session)
    repo.append(conversation_id, ChatMessage.from_text(MessageRole.USER, "first"))
    repo.append(conversation_id, ChatMessage.from_text(MessageRole.ASSISTANT, "reply"))
    orchestrator = _orchestrator(embedding_service, fake_index, fake_llm)

    _collect(orchestrator.handle_turn(conversation_id, ChatMessage.from_text(MessageRole.USER, "second")))

    assert fake_llm.requests[-1][1:] == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "reply"},
        {"role": "user", "content": "second"},
    ]


def test_stream_generator_states(fake_llm):
    generator = StreamGenerator(fake_llm)
    assert generator.state == StreamState.IDLE

    chunks = _collect(generator.stream([{"role": "user", "content": "hi"}]))

    assert chunks == ["Hello", " there", "!"]
    outcome = generator.outcome()
    assert outcome.state == StreamState.COMPLETED
    assert outcome.content == "Hello there!"
    assert outcome.error is None


def test_stream_generator_error_before_first_token():
    generator = StreamGenerator(FakeLLMClient(fail_after=0))
    assert _collect(generator.stream([])) == []
    assert generator.state == StreamState.ERRORED
    assert generator.error == "model went away"


def test_stream_generator_cannot_restart(fake_llm):
    generator = StreamGenerator(fake_llm)
    _collect(generator.stream([]))
    with pytest.raises(RuntimeError):
        _collect(generator.stream([]))
