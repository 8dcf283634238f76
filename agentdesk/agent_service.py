"""
Agent Service Module

The public facade of the knowledge core. Transports (chat/test endpoints, the
WhatsApp dispatcher) and admin tooling talk to this class only.

    class AgentService:
        def create_agent(owner_id, name, system_prompt, **fields) -> Agent
        def upload_document(agent_id, owner_id, data, filename, mime_type) -> KnowledgeDocument
        def test_agent(agent, message) -> str
        def respond(agent, contact_id, text, metadata=None) -> str

Design Rationale:
- Wires store, embeddings, chunker, extraction, retrieval and composition once
- Owner scoping is enforced here (owner id is supplied by the caller)
- The document cache is owned by the service and shared by retriever and
  ingestor, so uploads and deletes are visible on the next turn
"""

import dataclasses
import logging
from typing import Any, Dict, List, Optional, Sequence

from config.settings import get_settings, Settings
from agentdesk.cache import TTLCache
from agentdesk.chunker import TextChunker
from agentdesk.composer import ResponseComposer, HistoryItem
from agentdesk.document_store import DocumentStore
from agentdesk.embeddings import EmbeddingService
from agentdesk.exceptions import AgentNotFound
from agentdesk.extractors import DocumentProcessor
from agentdesk.ingestion import KnowledgeIngestor
from agentdesk.llm_service import LLMService
from agentdesk.memory import ConversationManager
from agentdesk.models import Agent, Conversation, ConversationMessage, KnowledgeDocument
from agentdesk.retriever import KnowledgeRetriever
from agentdesk.similarity import BaseRanker, get_ranker

logger = logging.getLogger(__name__)

# Agent fields an owner may change through update_agent
UPDATABLE_FIELDS = {
    "name",
    "description",
    "system_prompt",
    "model",
    "temperature",
    "max_tokens",
    "top_p",
    "status",
    "knowledge_base",
    "language",
}


class AgentService:
    """
    Owner-scoped agent management and reply generation.

    Example:
        service = create_service()
        agent = service.create_agent(owner_id=1, name="Store bot",
                                     system_prompt="You are helpful.")
        service.upload_document(agent.id, 1, pdf_bytes, "hours.pdf", "application/pdf")
        print(service.test_agent(agent, "What time do you open?"))
    """

    def __init__(
        self,
        store: DocumentStore,
        embedding_service: EmbeddingService,
        llm_service: LLMService,
        chunker: Optional[TextChunker] = None,
        processor: Optional[DocumentProcessor] = None,
        ranker: Optional[BaseRanker] = None,
        cache: Optional[TTLCache] = None,
        conversations: Optional[ConversationManager] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the service.

        Args:
            store: Agents, documents and conversation log
            embedding_service: Embeds chunks and queries
            llm_service: Completion provider
            chunker: Text chunker (default from config)
            processor: File extraction dispatcher
            ranker: Similarity ranker (default from config)
            cache: Document cache shared by retrieval and ingestion
            conversations: Per-contact sliding-window memories
            settings: Settings (default: get_settings())
        """
        self.settings = settings or get_settings()
        self.store = store
        self.embedding_service = embedding_service
        self.llm_service = llm_service

        self.cache = cache or TTLCache(
            max_entries=self.settings.retrieval.cache_max_entries,
            ttl_seconds=self.settings.retrieval.cache_ttl_seconds,
        )
        self.conversations = conversations or ConversationManager()

        self.ingestor = KnowledgeIngestor(
            store=store,
            embedding_service=embedding_service,
            chunker=chunker or TextChunker(config=self.settings.chunking),
            processor=processor or DocumentProcessor(),
            config=self.settings.ingestion,
            cache=self.cache,
        )
        self.retriever = KnowledgeRetriever(
            store=store,
            embedding_service=embedding_service,
            ranker=ranker or get_ranker(self.settings.vector_store.ranker),
            cache=self.cache,
            config=self.settings.retrieval,
        )
        self.composer = ResponseComposer(
            retriever=self.retriever,
            llm_service=llm_service,
            config=self.settings.llm,
        )

        logger.info("AgentService initialized")

    # Agents

    def _require_agent(self, agent_id: int, owner_id: int) -> Agent:
        agent = self.store.get_agent(agent_id, owner_id)
        if agent is None:
            raise AgentNotFound(agent_id)
        return agent

    def _index_inline_knowledge(self, agent: Agent) -> None:
        text = (agent.knowledge_base or "").strip()
        if len(text) < self.settings.ingestion.min_content_length:
            if text:
                logger.info(
                    f"Inline knowledge of agent {agent.id} too short to index ({len(text)} chars)"
                )
            removed = self.ingestor.remove_text(agent.id, agent.owner_id)
            if removed:
                logger.info(f"Removed inline knowledge of agent {agent.id}")
            return
        self.ingestor.ingest_text(agent.id, text, uploaded_by=agent.owner_id)

    def create_agent(self, owner_id: int, name: str, system_prompt: str, **fields) -> Agent:
        """
        Create an agent for an owner.

        Inline knowledge_base text is indexed as a document named
        knowledge_base.txt.

        Raises:
            ValueError: On out-of-range generation parameters or unknown status
        """
        agent = Agent(owner_id=owner_id, name=name, system_prompt=system_prompt, **fields)
        agent = self.store.save_agent(agent)
        self._index_inline_knowledge(agent)

        logger.info(f"Created agent {agent.id} ({agent.name}) for owner {owner_id}")
        return agent

    def update_agent(self, agent_id: int, owner_id: int, **changes) -> Agent:
        """
        Apply changes to an owner's agent.

        Raises:
            AgentNotFound: If the agent is missing or not owned by owner_id
            ValueError: On unknown fields or invalid values
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")

        current = self._require_agent(agent_id, owner_id)
        updated = dataclasses.replace(current, **changes)
        updated = self.store.save_agent(updated)

        if "knowledge_base" in changes and changes["knowledge_base"] != current.knowledge_base:
            self._index_inline_knowledge(updated)

        logger.info(f"Updated agent {agent_id}: {sorted(changes)}")
        return updated

    def get_agent(self, agent_id: int, owner_id: Optional[int] = None) -> Optional[Agent]:
        return self.store.get_agent(agent_id, owner_id)

    def list_agents(self, owner_id: int) -> List[Agent]:
        return self.store.list_agents(owner_id)

    def delete_agent(self, agent_id: int, owner_id: int) -> bool:
        """Delete an agent with its documents, conversations and memories."""
        deleted = self.store.delete_agent(agent_id, owner_id)
        if deleted:
            self.cache.invalidate(agent_id)
            self.conversations.delete_agent(agent_id)
        return deleted

    # Documents

    def upload_document(
        self,
        agent_id: int,
        owner_id: int,
        data: bytes,
        filename: str,
        mime_type: Optional[str] = None,
    ) -> KnowledgeDocument:
        """
        Add a file to an agent's knowledge base.

        Raises:
            AgentNotFound: If the agent is missing or not owned by owner_id
            ValueError: If the file is too large or yields too little text
        """
        self._require_agent(agent_id, owner_id)
        return self.ingestor.ingest(
            agent_id=agent_id,
            data=data,
            filename=filename,
            mime_type=mime_type,
            uploaded_by=owner_id,
        )

    def list_documents(self, agent_id: int, owner_id: int) -> List[Dict[str, Any]]:
        """Documents of an agent, without their vectors."""
        self._require_agent(agent_id, owner_id)
        documents = []
        for document in self.store.get_documents(agent_id):
            data = document.to_dict(include_embedding=False)
            data["chunk_count"] = len(document.embedding or [])
            documents.append(data)
        return documents

    def delete_document(self, document_id: int, owner_id: int) -> bool:
        document = self.store.get_document(document_id)
        if document is None:
            return False
        deleted = self.store.delete(document_id, owner_id)
        if deleted:
            self.cache.invalidate(document.agent_id)
        return deleted

    # Replies

    def test_agent(self, agent: Agent, message: str) -> str:
        """One-shot reply, nothing recorded."""
        return self.composer.compose_single(agent, message)

    def generate_conversation_response(
        self, agent: Agent, history: Sequence[HistoryItem]
    ) -> str:
        """Reply to a caller-supplied history, nothing recorded."""
        return self.composer.compose(agent, history)

    def respond(
        self,
        agent: Agent,
        contact_id: str,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Reply to a contact's message and log the exchange.

        The contact's recent history is kept in memory and sent with the
        message; each exchange is appended to the store as a Conversation row.

        Raises:
            GenerationFailure: If the completion provider fails (nothing is logged)
        """
        memory = self.conversations.get_memory(agent.id, contact_id)
        history = memory.get_messages_for_llm() + [{"role": "user", "content": text}]

        reply = self.composer.compose(agent, history)

        memory.add_user_message(text, metadata=metadata)
        memory.add_assistant_message(reply)

        self.store.append_conversation(Conversation(
            agent_id=agent.id,
            contact_id=contact_id,
            messages=[
                ConversationMessage(role="user", content=text, metadata=metadata or {}),
                ConversationMessage(role="assistant", content=reply),
            ],
        ))
        return reply

    def get_stats(self) -> Dict[str, Any]:
        """Statistics about the knowledge core."""
        return {
            "knowledge_base": {
                "documents": self.store.count_documents(),
                "provider": self.store.provider,
                "ranker": self.retriever.ranker.name,
                "cache": self.cache.stats(),
            },
            "embedding": {
                "provider": self.embedding_service.provider_name,
                "model": self.embedding_service.model_name,
            },
            "llm": {
                "provider": self.llm_service.provider_name,
                "default_model": self.llm_service.default_model,
            },
            "conversations": {
                "logged": self.store.count_conversations(),
                "active": len(self.conversations),
            },
        }


def create_service(settings: Optional[Settings] = None) -> AgentService:
    """
    Build a fully configured AgentService from settings.

    Args:
        settings: Settings (default: get_settings())
    """
    settings = settings or get_settings()

    store = DocumentStore(config=settings.vector_store)
    embedding_service = EmbeddingService(config=settings.embedding)
    llm_service = LLMService(config=settings.llm)

    return AgentService(
        store=store,
        embedding_service=embedding_service,
        llm_service=llm_service,
        settings=settings,
    )
