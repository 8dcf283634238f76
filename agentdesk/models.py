"""
Domain Models

Plain dataclasses for the records the knowledge core works with:
- Agent: a configured persona (prompt + model parameters)
- KnowledgeDocument: an uploaded file's extracted text plus its chunk vectors
- ChunkRecord: one {text, embedding} pair inside a document
- Conversation / ConversationMessage: append-only exchange log

Every model round-trips through to_dict()/from_dict() so the stores can
persist them as JSON or MongoDB documents.
"""

import logging
import numbers
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Dict, Any

logger = logging.getLogger(__name__)

AGENT_STATUSES = ("draft", "active", "testing")
PROCESSING_STATUSES = ("success", "error", "unsupported")


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Agent:
    """
    An AI agent persona owned by a user.

    Attributes:
        id: Store-assigned identifier (None until saved)
        owner_id: Opaque id of the owning user
        name: Display name
        system_prompt: Instructions sent as the first system message
        model: Completion model name
        temperature: Sampling temperature, 0-2
        max_tokens: Reply length limit, 1-4096
        top_p: Nucleus sampling, 0-1
        status: "draft", "active" or "testing"
        knowledge_base: Optional inline knowledge text
        language: Language tag
    """

    owner_id: int
    name: str
    system_prompt: str
    id: Optional[int] = None
    description: Optional[str] = None
    model: str = "gpt-4o"
    temperature: float = 0.7
    max_tokens: int = 2048
    top_p: float = 1.0
    status: str = "draft"
    knowledge_base: Optional[str] = None
    language: str = "pt"
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        """Validate generation parameters."""
        if not 0 <= self.temperature <= 2:
            raise ValueError(f"temperature must be in [0, 2], got {self.temperature}")
        if not 1 <= self.max_tokens <= 4096:
            raise ValueError(f"max_tokens must be in [1, 4096], got {self.max_tokens}")
        if not 0 <= self.top_p <= 1:
            raise ValueError(f"top_p must be in [0, 1], got {self.top_p}")
        if self.status not in AGENT_STATUSES:
            raise ValueError(
                f"Unknown agent status: {self.status}. Expected one of {AGENT_STATUSES}"
            )

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def to_dict(self) -> Dict[str, Any]:
        """Convert agent to dictionary for storage."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "description": self.description,
            "system_prompt": self.system_prompt,
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
            "status": self.status,
            "knowledge_base": self.knowledge_base,
            "language": self.language,
            "created_at": _format_datetime(self.created_at),
            "updated_at": _format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Agent":
        """Create Agent from dictionary."""
        return cls(
            id=data.get("id"),
            owner_id=data["owner_id"],
            name=data["name"],
            description=data.get("description"),
            system_prompt=data["system_prompt"],
            model=data.get("model", "gpt-4o"),
            temperature=data.get("temperature", 0.7),
            max_tokens=data.get("max_tokens", 2048),
            top_p=data.get("top_p", 1.0),
            status=data.get("status", "draft"),
            knowledge_base=data.get("knowledge_base"),
            language=data.get("language", "pt"),
            created_at=_parse_datetime(data.get("created_at")) or utcnow(),
            updated_at=_parse_datetime(data.get("updated_at")) or utcnow(),
        )


@dataclass
class ChunkRecord:
    """A bounded slice of document text and its embedding vector."""

    text: str
    embedding: List[float]

    def is_well_formed(self, dimension: Optional[int] = None) -> bool:
        """
        Check that the record can take part in similarity scoring.

        Args:
            dimension: Required vector length (any length if None)
        """
        if not isinstance(self.text, str) or not self.text.strip():
            return False
        if not isinstance(self.embedding, (list, tuple)) or not self.embedding:
            return False
        if not all(
            isinstance(x, numbers.Real) and not isinstance(x, bool)
            for x in self.embedding
        ):
            return False
        if dimension is not None and len(self.embedding) != dimension:
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "embedding": list(self.embedding)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChunkRecord":
        return cls(text=data["text"], embedding=data["embedding"])


@dataclass
class KnowledgeDocument:
    """
    A document in an agent's knowledge base.

    Attributes:
        agent_id: Owning agent
        filename: Stored filename
        original_name: Name of the uploaded file
        content: Extracted plain text (or a failure placeholder)
        embedding: Chunk records, None if embedding never succeeded
        processing_status: "success", "error" or "unsupported"
        uploaded_by: Id of the uploading user (checked on delete)
    """

    agent_id: int
    filename: str
    original_name: str
    content: str
    file_size: int
    mime_type: str
    uploaded_by: int
    id: Optional[int] = None
    embedding: Optional[List[ChunkRecord]] = None
    processing_status: str = "success"
    error: Optional[str] = None
    uploaded_at: Optional[datetime] = None

    def __post_init__(self):
        if self.processing_status not in PROCESSING_STATUSES:
            raise ValueError(f"Unknown processing status: {self.processing_status}")

    @property
    def has_embeddings(self) -> bool:
        return bool(self.embedding)

    @property
    def display_name(self) -> str:
        return self.original_name or self.filename

    def to_dict(self, include_embedding: bool = True) -> Dict[str, Any]:
        """Convert document to dictionary (optionally without vectors)."""
        data = {
            "id": self.id,
            "agent_id": self.agent_id,
            "filename": self.filename,
            "original_name": self.original_name,
            "content": self.content,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "processing_status": self.processing_status,
            "error": self.error,
            "uploaded_by": self.uploaded_by,
            "uploaded_at": _format_datetime(self.uploaded_at),
        }
        if include_embedding:
            data["embedding"] = (
                [record.to_dict() for record in self.embedding]
                if self.embedding is not None
                else None
            )
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KnowledgeDocument":
        """Create document from dictionary; chunk records must be well-typed."""
        embedding = data.get("embedding")
        return cls(
            id=data.get("id"),
            agent_id=data["agent_id"],
            filename=data.get("filename", ""),
            original_name=data.get("original_name", ""),
            content=data.get("content") or "",
            file_size=data.get("file_size", 0),
            mime_type=data.get("mime_type", ""),
            processing_status=data.get("processing_status", "success"),
            error=data.get("error"),
            uploaded_by=data["uploaded_by"],
            uploaded_at=_parse_datetime(data.get("uploaded_at")),
            embedding=(
                [ChunkRecord.from_dict(item) for item in embedding]
                if embedding is not None
                else None
            ),
        )


@dataclass
class ConversationMessage:
    """A single role-tagged message in a logged exchange."""

    role: str  # "user", "assistant", "system"
    content: str
    timestamp: datetime = field(default_factory=utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": _format_datetime(self.timestamp),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationMessage":
        return cls(
            role=data["role"],
            content=data["content"],
            timestamp=_parse_datetime(data.get("timestamp")) or utcnow(),
            metadata=data.get("metadata") or {},
        )


@dataclass
class Conversation:
    """One logged exchange between a contact and an agent (append-only)."""

    agent_id: int
    contact_id: str
    messages: List[ConversationMessage] = field(default_factory=list)
    id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "contact_id": self.contact_id,
            "messages": [m.to_dict() for m in self.messages],
            "created_at": _format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Conversation":
        return cls(
            id=data.get("id"),
            agent_id=data["agent_id"],
            contact_id=data.get("contact_id", ""),
            messages=[ConversationMessage.from_dict(m) for m in data.get("messages", [])],
            created_at=_parse_datetime(data.get("created_at")) or utcnow(),
        )
