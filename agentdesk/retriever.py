"""
Knowledge Retriever Module

Finds reference text for a user message in an agent's knowledge base.

Two strategies, tried in order:
1. Semantic: embed the query, score every stored chunk with cosine
   similarity, keep chunks above the similarity threshold, return the top-K
2. Keyword fallback: score whole documents by the fraction of query keywords
   they contain and return the best ones, truncated to a context budget

Design Rationale:
- Embeddings can be missing per document (provider errors, cost control), so
  lexical matching keeps the agent useful instead of answering blind
- Any error in the semantic path is logged and downgraded to the fallback;
  retrieval never aborts response generation

Retrieval Flow:
    Load documents (cached) → Semantic attempt → Keyword fallback → None
"""

import logging
import string
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from config.settings import get_settings, RetrievalConfig
from agentdesk.cache import TTLCache
from agentdesk.document_store import DocumentStore
from agentdesk.embeddings import EmbeddingService
from agentdesk.extractors import is_failure_placeholder
from agentdesk.models import KnowledgeDocument
from agentdesk.similarity import BaseRanker, ExactRanker

logger = logging.getLogger(__name__)

SEMANTIC_SEPARATOR = "\n\n"
KEYWORD_SEPARATOR = "\n\n---\n\n"


@dataclass
class RetrievalResult:
    """
    Outcome of one retrieval.

    Attributes:
        context: Text to inject into the prompt (None if nothing relevant)
        strategy: "semantic", "keyword" or "none"
        matches: Per-match details (document, score, chunk text)
    """
    context: Optional[str]
    strategy: str = "none"
    matches: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.context is not None


def extract_keywords(query: str, min_length: int = 3) -> List[str]:
    """
    Split a query into lowercase keywords.

    Punctuation is stripped from word edges, words shorter than min_length
    are dropped, and duplicates removed (first occurrence kept).
    """
    keywords = []
    for word in query.lower().split():
        word = word.strip(string.punctuation)
        if len(word) >= min_length and word not in keywords:
            keywords.append(word)
    return keywords


class KnowledgeRetriever:
    """
    Retrieves knowledge-base context for an agent.

    Example:
        retriever = KnowledgeRetriever(store, embedding_service)
        context = retriever.retrieve(agent_id=1, query="What time do you open?")
        if context:
            print(context)
    """

    def __init__(
        self,
        store: DocumentStore,
        embedding_service: EmbeddingService,
        ranker: Optional[BaseRanker] = None,
        cache: Optional[TTLCache] = None,
        config: Optional[RetrievalConfig] = None,
    ):
        """
        Initialize the retriever.

        Args:
            store: Source of the agent's documents
            embedding_service: Embeds the query for the semantic path
            ranker: Similarity ranker (exact full sort by default)
            cache: Optional cache of document lists keyed by agent id
            config: Optional RetrievalConfig (thresholds and caps)
        """
        self.config = config or get_settings().retrieval
        self.store = store
        self.embedding_service = embedding_service
        self.ranker = ranker or ExactRanker()
        self.cache = cache

        logger.info(
            f"KnowledgeRetriever initialized: top_k={self.config.top_k}, "
            f"similarity_threshold={self.config.similarity_threshold}, "
            f"keyword_threshold={self.config.keyword_threshold}, ranker={self.ranker.name}"
        )

    def _load_documents(self, agent_id: int) -> List[KnowledgeDocument]:
        if self.cache is None:
            return self.store.get_documents(agent_id)
        return self.cache.get_or_load(agent_id, lambda: self.store.get_documents(agent_id))

    def invalidate(self, agent_id: int) -> None:
        """Forget cached documents of an agent (after uploads/deletes)."""
        if self.cache is not None:
            self.cache.invalidate(agent_id)

    def _semantic_search(
        self, documents: List[KnowledgeDocument], query: str
    ) -> Optional[RetrievalResult]:
        """Score every well-formed chunk; None if no chunk clears the threshold."""
        dimension = None
        candidates = []
        records = {}

        for doc_index, document in enumerate(documents):
            for chunk_index, record in enumerate(document.embedding or []):
                if not record.is_well_formed():
                    continue
                if dimension is None:
                    dimension = len(record.embedding)
                elif len(record.embedding) != dimension:
                    logger.warning(
                        f"Skipping chunk {chunk_index} of document {document.id}: "
                        f"dimension {len(record.embedding)} != {dimension}"
                    )
                    continue
                key = (doc_index, chunk_index)
                candidates.append((key, record.embedding))
                records[key] = (document, record)

        if not candidates:
            logger.debug("No embedded chunks available, skipping semantic search")
            return None

        query_vector = self.embedding_service.embed_query(query)
        ranked = self.ranker.rank(query_vector, candidates)

        relevant = [r for r in ranked if r.score > self.config.similarity_threshold]
        if not relevant:
            logger.debug(
                f"No chunk above similarity threshold {self.config.similarity_threshold} "
                f"(best={ranked[0].score:.3f})"
            )
            return None

        blocks = []
        matches = []
        for result in relevant[:self.config.top_k]:
            document, record = records[result.id]
            blocks.append(f"[{document.display_name}]\n{record.text}")
            matches.append({
                "document_id": document.id,
                "document": document.display_name,
                "chunk_index": result.id[1],
                "score": result.score,
                "text": record.text,
            })

        return RetrievalResult(
            context=SEMANTIC_SEPARATOR.join(blocks),
            strategy="semantic",
            matches=matches,
        )

    def _keyword_search(
        self, documents: List[KnowledgeDocument], query: str
    ) -> Optional[RetrievalResult]:
        """Score whole documents by keyword coverage."""
        keywords = extract_keywords(query, self.config.min_keyword_length)
        if not keywords:
            return None

        scored = []
        for document in documents:
            if document.processing_status != "success":
                continue
            if not document.content or is_failure_placeholder(document.content):
                continue

            content = document.content.lower()
            hits = sum(1 for keyword in keywords if keyword in content)
            score = hits / len(keywords)
            if score > self.config.keyword_threshold:
                scored.append((score, document))

        if not scored:
            return None

        scored.sort(key=lambda item: item[0], reverse=True)
        blocks = [f"[{doc.display_name}]\n{doc.content}" for _, doc in scored]
        context = KEYWORD_SEPARATOR.join(blocks)[:self.config.max_context_chars]

        return RetrievalResult(
            context=context,
            strategy="keyword",
            matches=[
                {"document_id": doc.id, "document": doc.display_name, "score": score}
                for score, doc in scored
            ],
        )

    def retrieve_with_details(self, agent_id: int, query: str) -> RetrievalResult:
        """
        Retrieve context and report which strategy produced it.

        Args:
            agent_id: Agent whose knowledge base is searched
            query: The user's message

        Returns:
            RetrievalResult (context None when nothing relevant was found)
        """
        documents = self._load_documents(agent_id)
        if not documents:
            logger.debug(f"Agent {agent_id} has no knowledge documents")
            return RetrievalResult(context=None)

        try:
            result = self._semantic_search(documents, query)
        except Exception as e:
            logger.warning(f"Semantic retrieval failed for agent {agent_id}, using keywords: {e}")
            result = None

        if result is None:
            result = self._keyword_search(documents, query)

        if result is None:
            logger.info(f"No relevant knowledge found for agent {agent_id}")
            return RetrievalResult(context=None)

        logger.info(
            f"Retrieved {len(result.matches)} {result.strategy} matches for agent {agent_id} "
            f"({len(result.context)} chars)"
        )
        return result

    def retrieve(self, agent_id: int, query: str) -> Optional[str]:
        """Return the context string for a query, or None."""
        return self.retrieve_with_details(agent_id, query).context
