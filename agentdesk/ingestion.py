"""
Knowledge Ingestion Module

Turns an uploaded file into a stored KnowledgeDocument:

    bytes -> extract text -> check length -> chunk -> embed chunk by chunk -> save once

Embedding is throttled with a short pause between calls to respect provider
rate limits. An embedding failure is not fatal: the document is stored with
its text but without vectors and stays reachable through keyword matching.
"""

import logging
import time
import uuid
from pathlib import Path
from typing import Callable, List, Optional

from config.settings import get_settings, IngestionConfig
from agentdesk.cache import TTLCache
from agentdesk.chunker import TextChunker
from agentdesk.document_store import DocumentStore
from agentdesk.embeddings import EmbeddingService
from agentdesk.exceptions import EmbeddingFailure
from agentdesk.extractors import DocumentProcessor
from agentdesk.models import ChunkRecord, KnowledgeDocument

logger = logging.getLogger(__name__)

INLINE_KNOWLEDGE_NAME = "knowledge_base.txt"


class KnowledgeIngestor:
    """
    Ingests documents into an agent's knowledge base.

    Example:
        ingestor = KnowledgeIngestor(store, embedding_service)
        with open("faq.pdf", "rb") as f:
            doc = ingestor.ingest(agent_id=1, data=f.read(), filename="faq.pdf",
                                  mime_type="application/pdf", uploaded_by=7)
        print(doc.processing_status, doc.has_embeddings)
    """

    def __init__(
        self,
        store: DocumentStore,
        embedding_service: EmbeddingService,
        chunker: Optional[TextChunker] = None,
        processor: Optional[DocumentProcessor] = None,
        config: Optional[IngestionConfig] = None,
        cache: Optional[TTLCache] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the ingestor.

        Args:
            store: Document store to save into
            embedding_service: Embeds each chunk
            chunker: Text chunker (default from config)
            processor: File-to-text processor
            config: Optional IngestionConfig
            cache: Retriever document cache to invalidate after writes
            sleep: Pause function between embedding calls
        """
        self.config = config or get_settings().ingestion
        self.store = store
        self.embedding_service = embedding_service
        self.chunker = chunker or TextChunker()
        self.processor = processor or DocumentProcessor()
        self.cache = cache
        self._sleep = sleep

    def embed_chunks(self, text: str) -> Optional[List[ChunkRecord]]:
        """
        Chunk text and embed every chunk.

        Returns:
            Chunk records, or None if there was nothing to embed or the
            embedding provider failed
        """
        chunks = self.chunker.chunk(text)
        if not chunks:
            return None

        records = []
        for i, chunk in enumerate(chunks):
            if i > 0 and self.config.embedding_delay > 0:
                self._sleep(self.config.embedding_delay)
            try:
                vector = self.embedding_service.embed(chunk)
            except EmbeddingFailure as e:
                logger.warning(
                    f"Embedding failed at chunk {i + 1}/{len(chunks)}; "
                    f"document will be stored without vectors: {e}"
                )
                return None
            records.append(ChunkRecord(text=chunk, embedding=vector))

        logger.debug(f"Embedded {len(records)} chunks")
        return records

    def ingest(
        self,
        agent_id: int,
        data: bytes,
        filename: str,
        mime_type: Optional[str],
        uploaded_by: int,
    ) -> KnowledgeDocument:
        """
        Extract, chunk, embed and store one uploaded file.

        Args:
            agent_id: Agent the document belongs to
            data: Raw file bytes
            filename: Original file name
            mime_type: Declared MIME type
            uploaded_by: Uploading user (required to delete it later)

        Returns:
            The saved KnowledgeDocument (failed extractions are saved too,
            with a placeholder content and status error/unsupported)

        Raises:
            ValueError: If the file is too large, or extraction succeeded
                but produced too little text
        """
        if len(data) > self.config.max_upload_bytes:
            raise ValueError(
                f"File too large: {len(data)} bytes (limit {self.config.max_upload_bytes})"
            )

        logger.info(f"Ingesting {filename} ({len(data)} bytes) for agent {agent_id}")
        processed = self.processor.process(data, filename, mime_type)

        embedding = None
        if processed.ok:
            if len(processed.content.strip()) < self.config.min_content_length:
                raise ValueError(
                    f"Extracted content of {filename} is too short "
                    f"({len(processed.content.strip())} chars, minimum "
                    f"{self.config.min_content_length})"
                )
            embedding = self.embed_chunks(processed.content)

        document = KnowledgeDocument(
            agent_id=agent_id,
            filename=f"{uuid.uuid4().hex}{Path(filename).suffix.lower()}",
            original_name=filename,
            content=processed.content,
            file_size=len(data),
            mime_type=mime_type or "application/octet-stream",
            uploaded_by=uploaded_by,
            embedding=embedding,
            processing_status=processed.status,
            error=processed.error,
        )
        saved = self.store.save(document)

        if self.cache is not None:
            self.cache.invalidate(agent_id)

        logger.info(
            f"Ingested {filename} as document {saved.id}: status={saved.processing_status}, "
            f"chunks={len(saved.embedding or [])}"
        )
        return saved

    def remove_text(
        self,
        agent_id: int,
        uploaded_by: int,
        name: str = INLINE_KNOWLEDGE_NAME,
        keep_id: Optional[int] = None,
    ) -> int:
        """
        Delete an agent's inline knowledge documents named `name`.

        Args:
            keep_id: Document id to leave in place

        Returns:
            Number of documents deleted
        """
        removed = 0
        for existing in self.store.get_documents(agent_id):
            if existing.id == keep_id:
                continue
            if existing.original_name == name and existing.uploaded_by == uploaded_by:
                if self.store.delete(existing.id, uploaded_by):
                    removed += 1

        if removed and self.cache is not None:
            self.cache.invalidate(agent_id)
        return removed

    def ingest_text(
        self,
        agent_id: int,
        text: str,
        uploaded_by: int,
        name: str = INLINE_KNOWLEDGE_NAME,
        replace: bool = True,
    ) -> KnowledgeDocument:
        """
        Index inline knowledge text (for example an agent's knowledge_base field).

        The earlier document is only removed once the new one is saved, so a
        rejected text leaves the previous knowledge in place.

        Args:
            agent_id: Agent the text belongs to
            text: Plain text
            uploaded_by: Owning user
            name: Document name shown in retrieved context
            replace: Delete earlier documents with the same name
        """
        saved = self.ingest(
            agent_id=agent_id,
            data=text.encode("utf-8"),
            filename=name,
            mime_type="text/plain",
            uploaded_by=uploaded_by,
        )
        if replace:
            self.remove_text(agent_id, uploaded_by, name=name, keep_id=saved.id)
        return saved
