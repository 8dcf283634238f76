"""
Tests for knowledge ingestion.

Run with: pytest tests/test_ingestion.py -v
"""

import pytest
from unittest.mock import Mock
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.settings import IngestionConfig
from agentdesk.cache import TTLCache
from agentdesk.chunker import TextChunker
from agentdesk.exceptions import EmbeddingFailure
from agentdesk.ingestion import INLINE_KNOWLEDGE_NAME, KnowledgeIngestor

FAQ = (
    "Our store opens at 9am and closes at 6pm on weekdays. "
    "We deliver pizza within the city for free. "
    "Refunds are accepted within thirty days of purchase."
)


class TestKnowledgeIngestor:
    """Tests for KnowledgeIngestor."""

    @pytest.fixture
    def sleep(self):
        return Mock()

    @pytest.fixture
    def ingestor(self, store, embedding_service, chunking_config, sleep):
        return KnowledgeIngestor(
            store=store,
            embedding_service=embedding_service,
            chunker=TextChunker(config=chunking_config),
            config=IngestionConfig(min_content_length=50, embedding_delay=0.1),
            sleep=sleep,
        )

    def test_ingest_text_file(self, ingestor, store):
        """A text upload is stored with content and chunk vectors."""
        document = ingestor.ingest(1, FAQ.encode("utf-8"), "faq.txt", "text/plain", uploaded_by=7)

        assert document.id is not None
        assert document.processing_status == "success"
        assert document.original_name == "faq.txt"
        assert document.filename.endswith(".txt") and document.filename != "faq.txt"
        assert document.file_size == len(FAQ.encode("utf-8"))
        assert document.has_embeddings
        assert all(r.is_well_formed(dimension=6) for r in document.embedding)
        assert store.get_documents(1)[0].id == document.id

    def test_embedding_throttled(self, ingestor, sleep, chunking_config):
        """The delay is applied between chunk calls, not before the first."""
        document = ingestor.ingest(1, (FAQ + " " + FAQ).encode(), "faq.txt", "text/plain", 7)

        assert len(document.embedding) > 1
        assert sleep.call_count == len(document.embedding) - 1
        sleep.assert_called_with(0.1)

    def test_embedding_failure_not_fatal(self, ingestor, keyword_embedder):
        """A failing embedding call stores the document without vectors."""
        keyword_embedder.embed_text = Mock(side_effect=RuntimeError("429 Too Many Requests"))

        document = ingestor.ingest(1, FAQ.encode(), "faq.txt", "text/plain", 7)

        assert document.processing_status == "success"
        assert document.embedding is None
        assert document.content == FAQ

    def test_too_short_rejected(self, ingestor, store):
        with pytest.raises(ValueError):
            ingestor.ingest(1, b"Too short.", "faq.txt", "text/plain", 7)
        assert store.count_documents() == 0

    def test_too_large_rejected(self, store, embedding_service):
        ingestor = KnowledgeIngestor(
            store, embedding_service, config=IngestionConfig(max_upload_bytes=10)
        )
        with pytest.raises(ValueError):
            ingestor.ingest(1, FAQ.encode(), "faq.txt", "text/plain", 7)

    def test_unsupported_saved_with_placeholder(self, ingestor, keyword_embedder):
        """Unsupported files are kept as placeholders without embeddings."""
        document = ingestor.ingest(1, b"\x89PNG....", "logo.png", "image/png", 7)

        assert document.processing_status == "unsupported"
        assert document.content.startswith("[UNSUPPORTED FORMAT")
        assert document.embedding is None
        assert keyword_embedder.calls == []

    def test_default_mime_type(self, ingestor):
        document = ingestor.ingest(1, FAQ.encode(), "faq.txt", None, 7)
        assert document.mime_type == "application/octet-stream"

    def test_cache_invalidated(self, store, embedding_service):
        cache = TTLCache()
        cache.set(1, ["stale"])
        ingestor = KnowledgeIngestor(
            store, embedding_service,
            config=IngestionConfig(embedding_delay=0), cache=cache,
        )

        ingestor.ingest(1, FAQ.encode(), "faq.txt", "text/plain", 7)

        assert 1 not in cache

    def test_embed_chunks_empty(self, ingestor):
        assert ingestor.embed_chunks("   ") is None

    def test_embed_chunks_failure(self, store, chunking_config):
        service = Mock()
        service.embed.side_effect = EmbeddingFailure("down")
        ingestor = KnowledgeIngestor(
            store, service, chunker=TextChunker(config=chunking_config),
            config=IngestionConfig(embedding_delay=0),
        )
        assert ingestor.embed_chunks(FAQ) is None

    def test_ingest_text_replaces(self, ingestor, store):
        """Inline knowledge replaces the previous inline document."""
        first = ingestor.ingest_text(1, FAQ, uploaded_by=7)
        second = ingestor.ingest_text(1, FAQ + " Parking is free.", uploaded_by=7)

        documents = store.get_documents(1)

        assert [d.id for d in documents] == [second.id]
        assert documents[0].original_name == INLINE_KNOWLEDGE_NAME
        assert first.id != second.id

    def test_ingest_text_keep_existing(self, ingestor, store):
        ingestor.ingest_text(1, FAQ, uploaded_by=7)
        ingestor.ingest_text(1, FAQ, uploaded_by=7, replace=False)
        assert store.count_documents(1) == 2

    def test_rejected_text_keeps_previous(self, ingestor, store):
        """A replacement that fails validation leaves the old document in place."""
        first = ingestor.ingest_text(1, FAQ, uploaded_by=7)

        with pytest.raises(ValueError):
            ingestor.ingest_text(1, "Too short.", uploaded_by=7)

        assert [d.id for d in store.get_documents(1)] == [first.id]

    def test_remove_text(self, ingestor, store):
        """Only inline documents of the same owner are removed."""
        ingestor.ingest_text(1, FAQ, uploaded_by=7)
        upload = ingestor.ingest(1, FAQ.encode(), "faq.txt", "text/plain", uploaded_by=7)

        assert ingestor.remove_text(1, uploaded_by=8) == 0
        assert ingestor.remove_text(1, uploaded_by=7) == 1
        assert [d.id for d in store.get_documents(1)] == [upload.id]

    def test_remove_text_invalidates_cache(self, store, embedding_service):
        cache = TTLCache()
        ingestor = KnowledgeIngestor(
            store, embedding_service,
            config=IngestionConfig(embedding_delay=0), cache=cache,
        )
        ingestor.ingest_text(1, FAQ, uploaded_by=7)
        cache.set(1, ["stale"])

        ingestor.remove_text(1, uploaded_by=7)

        assert 1 not in cache
