"""
Shared fixtures for the knowledge-core tests.

Everything here runs offline: the embedding backend maps a few vocabulary
words onto vector axes, and the document store lives in memory.
"""

import sys
from pathlib import Path
from typing import List
from unittest.mock import Mock

import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.settings import (
    ChunkingConfig,
    EmbeddingConfig,
    IngestionConfig,
    LLMConfig,
    RetrievalConfig,
)
from agentdesk.document_store import DocumentStore, JSONDocumentStore
from agentdesk.embeddings import BaseEmbeddingProvider, EmbeddingService
from agentdesk.llm_service import LLMResponse, LLMService


class KeywordEmbedder(BaseEmbeddingProvider):
    """Deterministic embedder: one axis per vocabulary stem, value = occurrences."""

    VOCABULARY = ["open", "hour", "price", "deliver", "refund", "pizza"]

    def __init__(self):
        self.calls: List[str] = []

    def embed_text(self, text: str) -> List[float]:
        self.calls.append(text)
        lowered = text.lower()
        return [float(lowered.count(word)) for word in self.VOCABULARY]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        return [self.embed_text(t) for t in texts]

    @property
    def dimension(self) -> int:
        return len(self.VOCABULARY)

    @property
    def model_name(self) -> str:
        return "keyword-test"


@pytest.fixture
def keyword_embedder():
    return KeywordEmbedder()


@pytest.fixture
def embedding_service(keyword_embedder):
    return EmbeddingService(config=EmbeddingConfig(), backend=keyword_embedder)


@pytest.fixture
def store():
    """In-memory document store."""
    return DocumentStore(provider="json", backend=JSONDocumentStore())


@pytest.fixture
def retrieval_config():
    return RetrievalConfig()


@pytest.fixture
def chunking_config():
    return ChunkingConfig(chunk_size=200, min_chunk_length=10, overlap_sentences=0)


@pytest.fixture
def ingestion_config():
    return IngestionConfig(min_content_length=50, embedding_delay=0.0)


@pytest.fixture
def llm_backend():
    """Completion backend that always answers "Hello!"."""
    backend = Mock()
    backend.default_model = "mock-model"
    backend.complete.return_value = LLMResponse(content="Hello!", model="mock-model")
    return backend


@pytest.fixture
def llm_service(llm_backend):
    return LLMService(config=LLMConfig(), backend=llm_backend)
