"""
Document Store Module

Persists agents, knowledge documents (raw text + serialized chunk vectors) and
conversation logs.

Backends:
- JSON: in-process dictionaries, optionally persisted to a JSON file
- MongoDB: pymongo collections for agents, documents and conversations

Design Rationale:
- The chunk list is stored as a JSON string, one text column per document,
  so a document is written once at the end of ingestion
- The read path never raises on a malformed chunk list; the document comes
  back with embedding=None so one bad upload cannot break retrieval for
  the whole agent
- Deletes are ownership-checked against the uploading user
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Dict, Any

from config.settings import get_settings, VectorStoreConfig
from agentdesk.models import (
    Agent,
    ChunkRecord,
    Conversation,
    KnowledgeDocument,
    utcnow,
)

logger = logging.getLogger(__name__)


def encode_chunks(records: Optional[List[ChunkRecord]]) -> Optional[str]:
    """Serialize chunk records to the stored JSON text form."""
    if records is None:
        return None
    return json.dumps([record.to_dict() for record in records])


def decode_chunks(raw: Any, document_id: Any = None) -> Optional[List[ChunkRecord]]:
    """
    Parse a stored chunk list.

    Accepts the JSON text form or an already-decoded list. Anything that is
    not a list of {text, embedding} objects yields None with a warning.
    """
    if raw is None or raw == "":
        return None

    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
    except (TypeError, ValueError) as e:
        logger.warning(f"Document {document_id}: unparseable chunk list ({e})")
        return None

    if not isinstance(data, list):
        logger.warning(f"Document {document_id}: chunk list is not a list")
        return None

    records = []
    for item in data:
        if not isinstance(item, dict) or "text" not in item or "embedding" not in item:
            logger.warning(f"Document {document_id}: malformed chunk record, ignoring vectors")
            return None
        records.append(ChunkRecord(text=item["text"], embedding=item["embedding"]))
    return records


def document_from_row(row: Dict[str, Any]) -> KnowledgeDocument:
    """Build a KnowledgeDocument from a stored row, tolerating bad vectors."""
    data = dict(row)
    data.pop("_id", None)
    embedding = decode_chunks(data.pop("embedding", None), data.get("id"))
    document = KnowledgeDocument.from_dict(data)
    document.embedding = embedding
    return document


def document_to_row(document: KnowledgeDocument) -> Dict[str, Any]:
    row = document.to_dict(include_embedding=False)
    row["embedding"] = encode_chunks(document.embedding)
    return row


class BaseDocumentStore(ABC):
    """
    Abstract base class for document stores.

    All stores must implement the document contract (get_documents,
    get_document, save, delete) plus the agent and conversation records
    the composer and dispatcher rely on.
    """

    # Documents

    @abstractmethod
    def get_documents(self, agent_id: int) -> List[KnowledgeDocument]:
        """Return all documents of an agent, oldest first."""
        pass

    @abstractmethod
    def get_document(self, document_id: int) -> Optional[KnowledgeDocument]:
        pass

    @abstractmethod
    def save(self, document: KnowledgeDocument) -> KnowledgeDocument:
        """Insert or replace a document; assigns id and upload time when missing."""
        pass

    @abstractmethod
    def delete(self, document_id: int, owner_id: int) -> bool:
        """Delete a document if owner_id uploaded it. Returns True if deleted."""
        pass

    @abstractmethod
    def count_documents(self, agent_id: Optional[int] = None) -> int:
        pass

    # Agents

    @abstractmethod
    def save_agent(self, agent: Agent) -> Agent:
        pass

    @abstractmethod
    def get_agent(self, agent_id: int, owner_id: Optional[int] = None) -> Optional[Agent]:
        """Fetch an agent; with owner_id, agents of other owners are invisible."""
        pass

    @abstractmethod
    def list_agents(self, owner_id: Optional[int] = None) -> List[Agent]:
        pass

    @abstractmethod
    def delete_agent(self, agent_id: int, owner_id: int) -> bool:
        """Delete an agent with its documents and conversations."""
        pass

    # Conversations

    @abstractmethod
    def append_conversation(self, conversation: Conversation) -> Conversation:
        pass

    @abstractmethod
    def get_conversations(
        self, agent_id: int, contact_id: Optional[str] = None
    ) -> List[Conversation]:
        pass

    @abstractmethod
    def count_conversations(self, agent_id: Optional[int] = None) -> int:
        pass


class JSONDocumentStore(BaseDocumentStore):
    """
    In-process store with optional JSON file persistence.

    Best for:
    - Development and tests (path=None keeps everything in memory)
    - Single-process deployments with small knowledge bases
    """

    def __init__(self, path: Optional[str] = None):
        """
        Initialize the JSON store.

        Args:
            path: File to load from and save to (optional)
        """
        self.path = Path(path) if path else None
        self._lock = threading.RLock()

        self._agents: Dict[int, Dict[str, Any]] = {}
        self._documents: Dict[int, Dict[str, Any]] = {}
        self._conversations: Dict[int, Dict[str, Any]] = {}
        self._counters = {"agents": 0, "documents": 0, "conversations": 0}

        if self.path and self.path.exists():
            self._load()

        logger.info(f"JSONDocumentStore initialized: path={self.path}")

    def _next_id(self, table: str) -> int:
        self._counters[table] += 1
        return self._counters[table]

    def _load(self):
        """Load all tables from disk."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load document store {self.path}: {e}")
            raise

        self._agents = {int(k): v for k, v in data.get("agents", {}).items()}
        self._documents = {int(k): v for k, v in data.get("documents", {}).items()}
        self._conversations = {int(k): v for k, v in data.get("conversations", {}).items()}
        self._counters.update(data.get("counters", {}))

        logger.info(
            f"Loaded {len(self._agents)} agents, {len(self._documents)} documents, "
            f"{len(self._conversations)} conversations from {self.path}"
        )

    def _save(self):
        """Write all tables to disk (no-op when memory-only)."""
        if not self.path:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "agents": {str(k): v for k, v in self._agents.items()},
            "documents": {str(k): v for k, v in self._documents.items()},
            "conversations": {str(k): v for k, v in self._conversations.items()},
            "counters": self._counters,
        }
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        tmp_path.replace(self.path)

        logger.debug(f"Saved document store to {self.path}")

    # Documents

    def get_documents(self, agent_id: int) -> List[KnowledgeDocument]:
        with self._lock:
            rows = [
                row for _, row in sorted(self._documents.items())
                if row.get("agent_id") == agent_id
            ]
        return [document_from_row(row) for row in rows]

    def get_document(self, document_id: int) -> Optional[KnowledgeDocument]:
        with self._lock:
            row = self._documents.get(document_id)
        return document_from_row(row) if row else None

    def save(self, document: KnowledgeDocument) -> KnowledgeDocument:
        with self._lock:
            if document.id is None:
                document.id = self._next_id("documents")
            if document.uploaded_at is None:
                document.uploaded_at = utcnow()
            self._documents[document.id] = document_to_row(document)
            self._save()

        logger.info(
            f"Saved document {document.id} ({document.display_name}) for agent "
            f"{document.agent_id}: {len(document.embedding or [])} chunk vectors"
        )
        return document

    def delete(self, document_id: int, owner_id: int) -> bool:
        with self._lock:
            row = self._documents.get(document_id)
            if row is None:
                return False
            if row.get("uploaded_by") != owner_id:
                logger.warning(
                    f"Refusing to delete document {document_id}: not uploaded by {owner_id}"
                )
                return False
            del self._documents[document_id]
            self._save()

        logger.info(f"Deleted document {document_id}")
        return True

    def count_documents(self, agent_id: Optional[int] = None) -> int:
        with self._lock:
            if agent_id is None:
                return len(self._documents)
            return sum(1 for row in self._documents.values() if row.get("agent_id") == agent_id)

    # Agents

    def save_agent(self, agent: Agent) -> Agent:
        with self._lock:
            if agent.id is None:
                agent.id = self._next_id("agents")
            agent.updated_at = utcnow()
            self._agents[agent.id] = agent.to_dict()
            self._save()
        return agent

    def get_agent(self, agent_id: int, owner_id: Optional[int] = None) -> Optional[Agent]:
        with self._lock:
            row = self._agents.get(agent_id)
        if row is None:
            return None
        if owner_id is not None and row.get("owner_id") != owner_id:
            return None
        return Agent.from_dict(row)

    def list_agents(self, owner_id: Optional[int] = None) -> List[Agent]:
        with self._lock:
            rows = [row for _, row in sorted(self._agents.items())]
        return [
            Agent.from_dict(row) for row in rows
            if owner_id is None or row.get("owner_id") == owner_id
        ]

    def delete_agent(self, agent_id: int, owner_id: int) -> bool:
        with self._lock:
            row = self._agents.get(agent_id)
            if row is None or row.get("owner_id") != owner_id:
                return False

            del self._agents[agent_id]
            doc_ids = [k for k, v in self._documents.items() if v.get("agent_id") == agent_id]
            conv_ids = [k for k, v in self._conversations.items() if v.get("agent_id") == agent_id]
            for key in doc_ids:
                del self._documents[key]
            for key in conv_ids:
                del self._conversations[key]
            self._save()

        logger.info(
            f"Deleted agent {agent_id} with {len(doc_ids)} documents and "
            f"{len(conv_ids)} conversations"
        )
        return True

    # Conversations

    def append_conversation(self, conversation: Conversation) -> Conversation:
        with self._lock:
            conversation.id = self._next_id("conversations")
            self._conversations[conversation.id] = conversation.to_dict()
            self._save()
        return conversation

    def get_conversations(
        self, agent_id: int, contact_id: Optional[str] = None
    ) -> List[Conversation]:
        with self._lock:
            rows = [row for _, row in sorted(self._conversations.items())]
        return [
            Conversation.from_dict(row) for row in rows
            if row.get("agent_id") == agent_id
            and (contact_id is None or row.get("contact_id") == contact_id)
        ]

    def count_conversations(self, agent_id: Optional[int] = None) -> int:
        with self._lock:
            if agent_id is None:
                return len(self._conversations)
            return sum(
                1 for row in self._conversations.values() if row.get("agent_id") == agent_id
            )


class MongoDBDocumentStore(BaseDocumentStore):
    """
    MongoDB-backed store for production use.

    Collections:
    - agents, knowledge_documents, conversations (names from config)
    - counters: integer id sequences per collection

    Requires a reachable MongoDB server (MONGODB_URI).
    """

    def __init__(
        self,
        uri: Optional[str] = None,
        database: Optional[str] = None,
        config: Optional[VectorStoreConfig] = None,
    ):
        """
        Initialize MongoDB document store.

        Args:
            uri: MongoDB connection URI (or from config)
            database: Database name
            config: Optional VectorStoreConfig
        """
        self.config = config or get_settings().vector_store

        self.uri = uri or self.config.mongodb_uri
        self.database_name = database or self.config.mongodb_database
        self.agents_collection_name = self.config.mongodb_agents_collection
        self.documents_collection_name = self.config.mongodb_documents_collection
        self.conversations_collection_name = self.config.mongodb_conversations_collection

        self._client = None
        self._db = None

        logger.info(
            f"MongoDBDocumentStore initialized: db={self.database_name}, "
            f"documents={self.documents_collection_name}"
        )

    def _connect(self):
        """Establish connection to MongoDB."""
        if self._db is not None:
            return

        if not self.uri:
            raise ValueError(
                "MongoDB URI not configured. Set MONGODB_URI environment variable."
            )

        try:
            from pymongo import MongoClient
        except ImportError:
            raise ImportError(
                "pymongo is required for MongoDB. "
                "Install with: pip install 'pymongo[srv]'"
            )

        self._client = MongoClient(self.uri)
        self._db = self._client[self.database_name]

        # Test connection
        self._client.admin.command("ping")
        logger.info("Connected to MongoDB")

    @property
    def agents(self):
        self._connect()
        return self._db[self.agents_collection_name]

    @property
    def documents(self):
        self._connect()
        return self._db[self.documents_collection_name]

    @property
    def conversations(self):
        self._connect()
        return self._db[self.conversations_collection_name]

    def _next_id(self, name: str) -> int:
        from pymongo import ReturnDocument

        self._connect()
        counter = self._db["counters"].find_one_and_update(
            {"_id": name},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(counter["seq"])

    # Documents

    def get_documents(self, agent_id: int) -> List[KnowledgeDocument]:
        rows = self.documents.find({"agent_id": agent_id}).sort("id", 1)
        return [document_from_row(row) for row in rows]

    def get_document(self, document_id: int) -> Optional[KnowledgeDocument]:
        row = self.documents.find_one({"id": document_id})
        return document_from_row(row) if row else None

    def save(self, document: KnowledgeDocument) -> KnowledgeDocument:
        if document.id is None:
            document.id = self._next_id(self.documents_collection_name)
        if document.uploaded_at is None:
            document.uploaded_at = utcnow()

        self.documents.replace_one(
            {"id": document.id}, document_to_row(document), upsert=True
        )
        logger.info(
            f"Saved document {document.id} ({document.display_name}) for agent "
            f"{document.agent_id} to MongoDB"
        )
        return document

    def delete(self, document_id: int, owner_id: int) -> bool:
        result = self.documents.delete_one({"id": document_id, "uploaded_by": owner_id})
        if result.deleted_count == 0:
            logger.warning(f"Document {document_id} not deleted (missing or not owned by {owner_id})")
            return False
        logger.info(f"Deleted document {document_id} from MongoDB")
        return True

    def count_documents(self, agent_id: Optional[int] = None) -> int:
        query = {} if agent_id is None else {"agent_id": agent_id}
        return self.documents.count_documents(query)

    # Agents

    def save_agent(self, agent: Agent) -> Agent:
        if agent.id is None:
            agent.id = self._next_id(self.agents_collection_name)
        agent.updated_at = utcnow()
        self.agents.replace_one({"id": agent.id}, agent.to_dict(), upsert=True)
        return agent

    def get_agent(self, agent_id: int, owner_id: Optional[int] = None) -> Optional[Agent]:
        query: Dict[str, Any] = {"id": agent_id}
        if owner_id is not None:
            query["owner_id"] = owner_id
        row = self.agents.find_one(query)
        if row is None:
            return None
        row.pop("_id", None)
        return Agent.from_dict(row)

    def list_agents(self, owner_id: Optional[int] = None) -> List[Agent]:
        query = {} if owner_id is None else {"owner_id": owner_id}
        agents = []
        for row in self.agents.find(query).sort("id", 1):
            row.pop("_id", None)
            agents.append(Agent.from_dict(row))
        return agents

    def delete_agent(self, agent_id: int, owner_id: int) -> bool:
        result = self.agents.delete_one({"id": agent_id, "owner_id": owner_id})
        if result.deleted_count == 0:
            return False

        docs = self.documents.delete_many({"agent_id": agent_id})
        convs = self.conversations.delete_many({"agent_id": agent_id})
        logger.info(
            f"Deleted agent {agent_id} with {docs.deleted_count} documents and "
            f"{convs.deleted_count} conversations"
        )
        return True

    # Conversations

    def append_conversation(self, conversation: Conversation) -> Conversation:
        conversation.id = self._next_id(self.conversations_collection_name)
        self.conversations.insert_one(conversation.to_dict())
        return conversation

    def get_conversations(
        self, agent_id: int, contact_id: Optional[str] = None
    ) -> List[Conversation]:
        query: Dict[str, Any] = {"agent_id": agent_id}
        if contact_id is not None:
            query["contact_id"] = contact_id
        conversations = []
        for row in self.conversations.find(query).sort("id", 1):
            row.pop("_id", None)
            conversations.append(Conversation.from_dict(row))
        return conversations

    def count_conversations(self, agent_id: Optional[int] = None) -> int:
        query = {} if agent_id is None else {"agent_id": agent_id}
        return self.conversations.count_documents(query)


class DocumentStore:
    """
    Main document store with unified interface.

    This is the class that other components should use.
    It handles backend selection based on configuration.

    Example:
        store = DocumentStore()                  # Uses config
        store = DocumentStore(provider="json", path=None)  # In-memory
        docs = store.get_documents(agent_id=1)
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        config: Optional[VectorStoreConfig] = None,
        backend: Optional[BaseDocumentStore] = None,
        **kwargs,
    ):
        """
        Initialize the document store.

        Args:
            provider: "json" or "mongodb" (default from config)
            config: Optional VectorStoreConfig
            backend: Pre-built backend (takes precedence over provider)
            **kwargs: Backend overrides (path for json; uri, database for mongodb)
        """
        self.config = config or get_settings().vector_store
        self.provider = provider or self.config.provider

        if backend is not None:
            self._store = backend
        elif self.provider == "json":
            self._store = JSONDocumentStore(path=kwargs.get("path", self.config.json_path))
        elif self.provider == "mongodb":
            self._store = MongoDBDocumentStore(
                uri=kwargs.get("uri"),
                database=kwargs.get("database"),
                config=self.config,
            )
        else:
            raise ValueError(f"Unknown document store provider: {self.provider}")

        logger.info(f"DocumentStore initialized with {self.provider} backend")

    @property
    def backend(self) -> BaseDocumentStore:
        return self._store

    def get_documents(self, agent_id: int) -> List[KnowledgeDocument]:
        return self._store.get_documents(agent_id)

    def get_document(self, document_id: int) -> Optional[KnowledgeDocument]:
        return self._store.get_document(document_id)

    def save(self, document: KnowledgeDocument) -> KnowledgeDocument:
        return self._store.save(document)

    def delete(self, document_id: int, owner_id: int) -> bool:
        return self._store.delete(document_id, owner_id)

    def count_documents(self, agent_id: Optional[int] = None) -> int:
        return self._store.count_documents(agent_id)

    def save_agent(self, agent: Agent) -> Agent:
        return self._store.save_agent(agent)

    def get_agent(self, agent_id: int, owner_id: Optional[int] = None) -> Optional[Agent]:
        return self._store.get_agent(agent_id, owner_id)

    def list_agents(self, owner_id: Optional[int] = None) -> List[Agent]:
        return self._store.list_agents(owner_id)

    def delete_agent(self, agent_id: int, owner_id: int) -> bool:
        return self._store.delete_agent(agent_id, owner_id)

    def append_conversation(self, conversation: Conversation) -> Conversation:
        return self._store.append_conversation(conversation)

    def get_conversations(
        self, agent_id: int, contact_id: Optional[str] = None
    ) -> List[Conversation]:
        return self._store.get_conversations(agent_id, contact_id)

    def count_conversations(self, agent_id: Optional[int] = None) -> int:
        return self._store.count_conversations(agent_id)
