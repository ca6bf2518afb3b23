"""FastAPI application and routes."""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from persona_engine.config import ConfigLoader, SystemConfig
from persona_engine.db import configure_engine, get_db, init_db
from persona_engine.db.migrations import ensure_database_ready
from persona_engine.db.vector_store import VectorIndex
from persona_engine.llm import create_llm_client
from persona_engine.models import Character, CharacterContext, ChatMessage, MessageKind, MessageRole
from persona_engine.repositories import CharacterRepository, ConversationRepository, MessageRepository
from persona_engine.services.character_context import (
    ConversationState,
    character_context_message,
    extract_conversation_state,
)
from persona_engine.services.character_import import (
    CharacterImporter,
    CharacterImportError,
    InvalidCharacterPayloadError,
)
from persona_engine.services.character_indexer import CharacterIndexer
from persona_engine.services.chat_orchestrator import ChatOrchestrator
from persona_engine.services.chunking import ChunkingService
from persona_engine.services.embedding_service import create_embedding_service
from persona_engine.services.history_sanitizer import sanitize_history
from persona_engine.services.index_writer import IndexingError, IndexWriter
from persona_engine.services.prompt_assembly import PromptAssembler
from persona_engine.services.retrieval import Retriever
from persona_engine.utils.debug_logger import initialize_debug_logger

logger = logging.getLogger(__name__)


# Global state
app_state: Dict[str, Any] = {
    "system_config": None,
    "llm_client": None,
    "embedding_service": None,
    "vector_index": None,
    "orchestrator": None,
    "indexer": None,
    "reindex_lock": asyncio.Lock(),  # One rebuild at a time
    "active_streams": {},  # conversation_id -> abort event
}


def build_indexer(system_config: SystemConfig, embedding_service, vector_index) -> CharacterIndexer:
    """Wire chunker, embedder and index writer from configuration."""
    chunker = ChunkingService(
        chunk_size=system_config.chunking.chunk_size,
        overlap=system_config.chunking.chunk_overlap,
    )
    writer = IndexWriter(
        vector_index,
        upsert_batch_size=system_config.vector_store.upsert_batch_size,
        drain_page_size=system_config.vector_store.drain_page_size,
        settle_seconds=system_config.vector_store.settle_seconds,
        clear_strategy=system_config.vector_store.clear_strategy,
    )
    return CharacterIndexer(chunker, embedding_service, writer)


def build_orchestrator(system_config: SystemConfig, embedding_service, vector_index, llm_client) -> ChatOrchestrator:
    """Wire the per-turn pipeline from configuration."""
    retriever = Retriever(embedding_service, vector_index, top_k=system_config.retrieval.top_k)
    return ChatOrchestrator(retriever, PromptAssembler(), llm_client)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    logger.info("Starting Persona Engine...")

    try:
        system_config = ConfigLoader().load_system_config()

        ensure_database_ready(system_config.database.url)
        configure_engine(system_config.database.url, system_config.database.busy_timeout_seconds)
        init_db()
        logger.info("✓ Database initialized")

        initialize_debug_logger(enabled=system_config.debug)
        logger.info(f"Debug logging: {'enabled' if system_config.debug else 'disabled'}")

        llm_client = create_llm_client(system_config.llm)
        if await llm_client.health_check():
            logger.info(f"✓ Connected to LLM: {system_config.llm.model}")
        else:
            logger.warning(f"⚠ LLM not available at {system_config.llm.base_url}")

        embedding_service = create_embedding_service(system_config.embedding)
        logger.info(f"✓ Embedding service ready ({system_config.embedding.provider}: {system_config.embedding.model})")

        vector_index = VectorIndex(
            persist_directory=system_config.vector_store.persist_directory,
            collection_name=system_config.vector_store.collection_name,
        )
        logger.info("✓ Vector index initialized")

        app_state["system_config"] = system_config
        app_state["llm_client"] = llm_client
        app_state["embedding_service"] = embedding_service
        app_state["vector_index"] = vector_index
        app_state["indexer"] = build_indexer(system_config, embedding_service, vector_index)
        app_state["orchestrator"] = build_orchestrator(system_config, embedding_service, vector_index, llm_client)

        logger.info("✓ Persona Engine ready")

    except Exception as e:
        logger.error(f"Failed to start Persona Engine: {e}")
        raise

    yield

    logger.info("Shutting down Persona Engine...")
    if app_state["llm_client"]:
        await app_state["llm_client"].close()
    if app_state["embedding_service"]:
        app_state["embedding_service"].close()


# Create FastAPI app
app = FastAPI(
    title="Persona Engine",
    description="Retrieval-augmented character chat",
    version="0.1.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response models
class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    llm_available: bool
    characters_loaded: int
    vectors: Optional[int] = None


class ConversationCreate(BaseModel):
    """Create conversation request."""
    title: Optional[str] = None
    character_id: Optional[int] = None


class CharacterSelect(BaseModel):
    """Select the conversation's character."""
    character_id: int


class ConversationResponse(BaseModel):
    """Conversation response."""
    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    active_character: Optional[CharacterContext] = None


class MessageCreate(BaseModel):
    """Create message request."""
    content: str = Field(min_length=1)


class MessageResponse(BaseModel):
    """Message response."""
    id: str
    role: str
    kind: str
    content: str
    parts: List[Dict[str, Any]]
    payload: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_message(cls, message: ChatMessage) -> "MessageResponse":
        return cls(
            id=message.id,
            role=message.role.value,
            kind=message.kind.value,
            content=message.text,
            parts=[part.model_dump(mode="json") for part in message.parts],
            payload=message.payload,
            created_at=message.created_at,
        )


# Helpers

def _character_summary(character: Character) -> Dict[str, Any]:
    return {
        "id": character.id,
        "name": character.name,
        "summary": character.summary,
        "image_url": character.image_url,
    }


def _get_conversation_or_404(db: Session, conversation_id: str):
    conversation = ConversationRepository(db).get_by_id(conversation_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


def _get_character_context_or_404(db: Session, character_id: int) -> CharacterContext:
    character = CharacterRepository(db).get_by_id(character_id)
    if not character:
        raise HTTPException(status_code=404, detail="Character not found")
    return CharacterContext(id=character.id, name=character.name, personality=character.personality or "")


def _conversation_state(db: Session, conversation_id: str) -> ConversationState:
    messages = MessageRepository(db).list_by_conversation(conversation_id)
    return extract_conversation_state(sanitize_history(messages), conversation_id)


def _conversation_response(db: Session, conversation) -> ConversationResponse:
    state = _conversation_state(db, conversation.id)
    return ConversationResponse(
        id=conversation.id,
        title=conversation.title,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
        active_character=state.active_character,
    )


# Routes

@app.get("/health", response_model=HealthResponse)
async def health_check(db: Session = Depends(get_db)):
    """Check system health."""
    llm_available = False
    if app_state["llm_client"]:
        llm_available = await app_state["llm_client"].health_check()

    vectors = None
    if app_state["vector_index"]:
        try:
            stats = await asyncio.to_thread(app_state["vector_index"].describe)
            vectors = stats.get("vectors")
        except Exception as e:
            logger.warning(f"Vector index stats unavailable: {e}")

    return HealthResponse(
        status="ok",
        llm_available=llm_available,
        characters_loaded=CharacterRepository(db).count(),
        vectors=vectors,
    )


@app.get("/api/characters")
async def list_characters(db: Session = Depends(get_db)):
    """List all characters, ordered by name."""
    characters = CharacterRepository(db).list_all()
    return {"characters": [_character_summary(character) for character in characters]}


@app.get("/api/character/{character_id}")
async def get_character(character_id: str, db: Session = Depends(get_db)):
    """Get one character with its personality."""
    character_id = character_id.strip()
    if not character_id:
        raise HTTPException(status_code=400, detail="Character ID is required")
    try:
        numeric_id = int(character_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Character not found")

    character = CharacterRepository(db).get_by_id(numeric_id)
    if not character:
        raise HTTPException(status_code=404, detail="Character not found")

    return {
        "character": {
            **_character_summary(character),
            "personality": character.personality,
        }
    }


@app.post("/api/import-characters")
async def import_characters(request: Request, db: Session = Depends(get_db)):
    """Bulk import characters from a JSON array body."""
    body = await request.body()
    try:
        payload = json.loads(body) if body else None
    except json.JSONDecodeError as e:
        logger.error(f"Character import body is not valid JSON: {e}")
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to import characters", "message": str(e), "committed": 0, "total": 0},
        )

    importer = CharacterImporter(db, batch_size=_importer_batch_size())
    try:
        result = importer.import_payload(payload)
    except InvalidCharacterPayloadError as e:
        if not e.errors:
            raise HTTPException(status_code=400, detail=str(e))
        raise HTTPException(status_code=400, detail={"error": str(e), "errors": e.errors})
    except CharacterImportError as e:
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Failed to import characters",
                "message": str(e),
                "committed": e.committed,
                "total": e.total,
            },
        )

    return {"success": True, "count": result.count}


def _importer_batch_size() -> int:
    system_config = app_state["system_config"]
    return system_config.importer.batch_size if system_config else 5


@app.post("/api/reindex")
async def reindex_characters(db: Session = Depends(get_db)):
    """Rebuild the vector index from every stored character."""
    indexer = app_state["indexer"]
    if indexer is None:
        raise HTTPException(status_code=503, detail="Indexer not initialized")

    lock: asyncio.Lock = app_state["reindex_lock"]
    if lock.locked():
        raise HTTPException(status_code=409, detail="A rebuild is already running")

    async with lock:
        characters = CharacterRepository(db).list_all()
        try:
            report = await asyncio.to_thread(indexer.reindex, characters)
        except IndexingError as e:
            logger.error(f"Reindex failed: {e}")
            raise HTTPException(status_code=500, detail=f"Reindex failed: {e}")

    return {
        "success": True,
        "characters": report.characters,
        "chunks": report.chunks,
        "deleted": report.rebuild.deleted,
        "inserted": report.rebuild.inserted,
        "vectors": report.rebuild.vector_count,
    }


@app.post("/conversations", response_model=ConversationResponse)
async def create_conversation(request: ConversationCreate, db: Session = Depends(get_db)):
    """Create a conversation, optionally with its character already selected."""
    character = None
    if request.character_id is not None:
        character = _get_character_context_or_404(db, request.character_id)

    conversation = ConversationRepository(db).create(title=request.title)
    if character is not None:
        MessageRepository(db).append(conversation.id, character_context_message(character))
        logger.info(f"Conversation {conversation.id} started with character {character.id}")

    return _conversation_response(db, conversation)


@app.get("/conversations/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(conversation_id: str, db: Session = Depends(get_db)):
    """Get conversation metadata and its active character."""
    conversation = _get_conversation_or_404(db, conversation_id)
    return _conversation_response(db, conversation)


@app.put("/conversations/{conversation_id}/character", response_model=ConversationResponse)
async def select_character(conversation_id: str, request: CharacterSelect, db: Session = Depends(get_db)):
    """Select or replace the conversation's character."""
    conversation = _get_conversation_or_404(db, conversation_id)
    character = _get_character_context_or_404(db, request.character_id)
    MessageRepository(db).append(conversation_id, character_context_message(character))
    ConversationRepository(db).touch(conversation_id)
    logger.info(f"Conversation {conversation_id} switched to character {character.id}")
    return _conversation_response(db, conversation)


@app.get("/conversations/{conversation_id}/messages", response_model=List[MessageResponse])
async def list_messages(
    conversation_id: str,
    include_control: bool = Query(False, description="Include control messages"),
    db: Session = Depends(get_db),
):
    """List a conversation's messages, oldest first."""
    _get_conversation_or_404(db, conversation_id)
    messages = MessageRepository(db).list_by_conversation(conversation_id, include_control=include_control)
    return [MessageResponse.from_message(message) for message in messages]


@app.get("/conversations/{conversation_id}/state")
async def get_conversation_state(conversation_id: str, db: Session = Depends(get_db)):
    """Conversation state derived from the log (debug inspection)."""
    _get_conversation_or_404(db, conversation_id)
    state = _conversation_state(db, conversation_id)
    return {
        "conversation_id": conversation_id,
        "active_character": state.active_character.model_dump() if state.active_character else None,
        "last_retrieval": state.last_retrieval.to_payload() if state.last_retrieval else None,
        "streaming": conversation_id in app_state["active_streams"],
    }


@app.delete("/conversations/{conversation_id}/messages")
async def clear_messages(conversation_id: str, db: Session = Depends(get_db)):
    """Clear history, keeping the character selection."""
    _get_conversation_or_404(db, conversation_id)
    deleted = MessageRepository(db).delete_except_kinds(conversation_id, [MessageKind.CHARACTER_CONTEXT])
    logger.info(f"Cleared {deleted} messages from conversation {conversation_id}")
    return {"success": True, "deleted": deleted}


@app.post("/conversations/{conversation_id}/messages/stream")
async def send_message_stream(
    conversation_id: str,
    request: MessageCreate,
    db: Session = Depends(get_db)
):
    """Send a message and stream the response."""
    _get_conversation_or_404(db, conversation_id)

    orchestrator: Optional[ChatOrchestrator] = app_state["orchestrator"]
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Chat pipeline not initialized")

    active_streams = app_state["active_streams"]
    if conversation_id in active_streams:
        raise HTTPException(status_code=409, detail="A reply is already streaming for this conversation")

    user_message = ChatMessage.from_text(MessageRole.USER, request.content)
    abort_event = asyncio.Event()
    active_streams[conversation_id] = abort_event

    async def generate_stream():
        """Stream generator that yields SSE-formatted events."""
        try:
            async for event in orchestrator.handle_turn(conversation_id, user_message, abort_event):
                yield f"data: {json.dumps(event)}\n\n"
        except Exception as e:
            logger.error(f"Streaming error (conversation={conversation_id}): {e}", exc_info=True)
            yield f"data: {json.dumps({'type': 'error', 'error': str(e)})}\n\n"
        finally:
            active_streams.pop(conversation_id, None)

    return StreamingResponse(
        generate_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        }
    )


@app.post("/conversations/{conversation_id}/messages/stream/cancel")
async def cancel_message_stream(conversation_id: str):
    """Stop the reply currently streaming for a conversation."""
    abort_event = app_state["active_streams"].get(conversation_id)
    if abort_event is None:
        raise HTTPException(status_code=404, detail="No active stream for this conversation")
    abort_event.set()
    logger.info(f"Cancel requested for conversation {conversation_id}")
    return {"success": True}
