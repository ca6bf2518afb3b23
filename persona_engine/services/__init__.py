"""Services package."""

from .chunking import ChunkingService, ChunkSpec, chunk_text
from .embedding_service import EmbeddingError, EmbeddingService, create_embedding_service
from .index_writer import IndexingError, IndexWriter, RebuildResult
from .character_indexer import CharacterIndexer
from .retrieval import Retriever, RetrievalResult
from .prompt_assembly import PromptAssembler
from .chat_orchestrator import ChatOrchestrator
from .character_import import CharacterImporter, CharacterImportError

__all__ = [
    'ChunkingService',
    'ChunkSpec',
    'chunk_text',
    'EmbeddingError',
    'EmbeddingService',
    'create_embedding_service',
    'IndexingError',
    'IndexWriter',
    'RebuildResult',
    'CharacterIndexer',
    'Retriever',
    'RetrievalResult',
    'PromptAssembler',
    'ChatOrchestrator',
    'CharacterImporter',
    'CharacterImportError',
]
