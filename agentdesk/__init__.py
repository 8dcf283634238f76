"""
AgentDesk - Knowledge Core

This package contains the components behind multi-tenant AI agents:
- TextChunker: Sentence-aligned document chunking
- EmbeddingService: Embedding generation (OpenAI / local)
- cosine_similarity / rankers: Similarity scoring (exact or FAISS)
- DocumentStore: Agents, knowledge documents and conversation log (JSON/MongoDB)
- DocumentProcessor / KnowledgeIngestor: File extraction and indexing
- KnowledgeRetriever: Semantic search with keyword fallback
- ResponseComposer / LLMService: Prompt assembly and completion
- AgentService: Public facade
- InboundDispatcher: WhatsApp webhook/polling transports
"""

from .exceptions import (
    AgentDeskError,
    AgentNotFound,
    ExtractionError,
    EmbeddingFailure,
    DimensionMismatch,
    GenerationFailure,
    GatewayError,
)
from .models import Agent, KnowledgeDocument, ChunkRecord, Conversation, ConversationMessage
from .cache import TTLCache
from .chunker import TextChunker
from .embeddings import EmbeddingService
from .similarity import cosine_similarity, rank, ExactRanker, FAISSRanker, RankedCandidate
from .document_store import DocumentStore, JSONDocumentStore, MongoDBDocumentStore
from .extractors import DocumentProcessor, ProcessedDocument
from .ingestion import KnowledgeIngestor
from .retriever import KnowledgeRetriever, RetrievalResult
from .llm_service import LLMService, LLMResponse
from .memory import ConversationMemory, ConversationManager
from .composer import ResponseComposer
from .agent_service import AgentService, create_service

__all__ = [
    # Errors
    "AgentDeskError",
    "AgentNotFound",
    "ExtractionError",
    "EmbeddingFailure",
    "DimensionMismatch",
    "GenerationFailure",
    "GatewayError",
    # Models
    "Agent",
    "KnowledgeDocument",
    "ChunkRecord",
    "Conversation",
    "ConversationMessage",
    # Knowledge core
    "TTLCache",
    "TextChunker",
    "EmbeddingService",
    "cosine_similarity",
    "rank",
    "ExactRanker",
    "FAISSRanker",
    "RankedCandidate",
    "DocumentStore",
    "JSONDocumentStore",
    "MongoDBDocumentStore",
    "DocumentProcessor",
    "ProcessedDocument",
    "KnowledgeIngestor",
    "KnowledgeRetriever",
    "RetrievalResult",
    # Generation
    "LLMService",
    "LLMResponse",
    "ConversationMemory",
    "ConversationManager",
    "ResponseComposer",
    "AgentService",
    "create_service",
]
