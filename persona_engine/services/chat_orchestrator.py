"""
Chat Orchestrator

Runs one chat turn end to end:
sanitize history -> recover character -> retrieve -> assemble -> stream.

Events are yielded as dicts with a `type` key; the API serializes each one
as an SSE `data:` line.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Callable, Dict, Optional

from sqlalchemy.orm import Session

from persona_engine.db.database import SessionLocal
from persona_engine.models.chat import ChatMessage
from persona_engine.models.conversation import MessageRole
from persona_engine.repositories.conversation_repository import ConversationRepository
from persona_engine.repositories.message_repository import MessageRepository
from persona_engine.services.character_context import extract_character_context
from persona_engine.services.history_sanitizer import sanitize_history
from persona_engine.services.prompt_assembly import PromptAssembler
from persona_engine.services.retrieval import (
    RetrievalResult,
    Retriever,
    latest_user_text,
    retrieval_context_message,
)
from persona_engine.services.stream_generator import FALLBACK_MESSAGE, StreamGenerator, StreamState
from persona_engine.utils.debug_logger import log_llm_call

logger = logging.getLogger(__name__)


class ChatOrchestrator:
    """
    Coordinates a chat turn and keeps the stored log consistent with it.

    Every turn appends, in order: the user message, a retrieval-context
    control message (only when something was retrieved), and the assistant
    reply (or the fallback message if generation failed).
    """

    def __init__(
        self,
        retriever: Retriever,
        assembler: PromptAssembler,
        llm_client,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        """
        Args:
            retriever: Retriever for grounding chunks
            assembler: PromptAssembler for the system instruction and history
            llm_client: BaseLLMClient used for generation
            session_factory: Creates the DB session used for the turn
        """
        self.retriever = retriever
        self.assembler = assembler
        self.llm_client = llm_client
        self.session_factory = session_factory

    async def handle_turn(
        self,
        conversation_id: str,
        user_message: Optional[ChatMessage] = None,
        abort_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Run one turn.

        Args:
            conversation_id: Conversation to append to
            user_message: New user message (None re-runs on the stored log)
            abort_event: Set to stop the stream early

        Yields:
            Event dicts: user_message, retrieval_context, content, error, done.
            An error event after content events has discard_partial=True:
            only the fallback is stored, so the partial reply is to be dropped.
        """
        db = self.session_factory()
        try:
            async for event in self._run_turn(db, conversation_id, user_message, abort_event):
                yield event
        finally:
            db.close()

    async def _run_turn(
        self,
        db: Session,
        conversation_id: str,
        user_message: Optional[ChatMessage],
        abort_event: Optional[asyncio.Event],
    ) -> AsyncIterator[Dict[str, Any]]:
        msg_repo = MessageRepository(db)

        history = msg_repo.list_by_conversation(conversation_id)
        if user_message is not None:
            history.append(user_message)
        history = sanitize_history(history)

        if not self.assembler.forwardable_messages(history):
            logger.info(f"Conversation {conversation_id}: nothing to send to the model, skipping turn")
            return

        if user_message is not None:
            msg_repo.append(conversation_id, user_message)
            yield {"type": "user_message", "id": user_message.id, "content": user_message.text}

        generator = StreamGenerator(self.llm_client, abort_event)
        character = None
        retrieval = RetrievalResult()
        api_messages: list = []

        try:
            character = extract_character_context(history, conversation_id)

            retrieval = await asyncio.to_thread(
                self.retriever.retrieve,
                character,
                latest_user_text(history),
                conversation_id,
            )
            if not retrieval.is_empty:
                control = msg_repo.append(conversation_id, retrieval_context_message(retrieval))
                yield {
                    "type": "retrieval_context",
                    "id": control.id,
                    "snippets": retrieval.format_snippets(),
                    "chunk_ids": retrieval.chunk_ids,
                }

            components = self.assembler.assemble(history, character, retrieval)
            api_messages = self.assembler.format_for_api(components)

            async for chunk in generator.stream(api_messages):
                yield {"type": "content", "content": chunk}

        except Exception as e:
            logger.error(f"Turn failed before streaming finished (conversation={conversation_id}): {e}", exc_info=True)
            db.rollback()
            generator.error = str(e) or e.__class__.__name__
            generator.state = StreamState.ERRORED

        outcome = generator.outcome()

        log_llm_call(
            conversation_id=conversation_id,
            interaction_type="chat_stream",
            model=getattr(self.llm_client, "model", "unknown"),
            messages=api_messages,
            response=outcome.content,
            retrieved_chunk_ids=retrieval.chunk_ids,
            metadata={
                "character_id": character.id if character else None,
                "state": outcome.state.value,
                "cancelled": outcome.cancelled,
            },
            error=outcome.error,
        )

        if outcome.state == StreamState.ERRORED:
            reply = ChatMessage.from_text(MessageRole.ASSISTANT, FALLBACK_MESSAGE)
            message_id = None
            try:
                message_id = msg_repo.append(conversation_id, reply).id
            except Exception as e:
                db.rollback()
                logger.error(f"Could not persist fallback reply (conversation={conversation_id}): {e}")
            # The stored reply is the fallback only; clients drop any content already shown
            yield {
                "type": "error",
                "error": FALLBACK_MESSAGE,
                "message_id": message_id,
                "discard_partial": bool(outcome.content),
            }
            yield {"type": "done", "state": outcome.state.value, "message_id": message_id, "cancelled": False}
            return

        message_id = None
        if outcome.content:
            reply = ChatMessage.from_text(MessageRole.ASSISTANT, outcome.content)
            message_id = msg_repo.append(conversation_id, reply).id
        ConversationRepository(db).touch(conversation_id)

        yield {
            "type": "done",
            "state": outcome.state.value,
            "message_id": message_id,
            "cancelled": outcome.cancelled,
        }
