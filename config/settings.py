"""
Configuration settings for the AgentDesk knowledge core.

This module handles all configuration management using environment variables.
No hardcoded values - everything is configurable via .env file.
"""

import os
from dataclasses import dataclass, field
from typing import Literal, Optional
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass
class EmbeddingConfig:
    """Configuration for embedding models."""

    provider: Literal["openai", "local"] = "openai"
    openai_model: str = "text-embedding-3-small"
    openai_api_key: Optional[str] = None
    local_model: str = "all-MiniLM-L6-v2"

    # Requested output size for models that support shortening
    dimensions: int = 1536

    # Longer inputs are truncated before they reach the provider
    max_input_chars: int = 8000

    @property
    def dimension(self) -> int:
        """Return embedding dimension based on selected model."""
        if self.provider == "local":
            model_dimensions = {
                "all-MiniLM-L6-v2": 384,
                "all-mpnet-base-v2": 768,
                "paraphrase-MiniLM-L6-v2": 384,
            }
            return model_dimensions.get(self.local_model, 384)
        return self.dimensions


@dataclass
class LLMConfig:
    """Configuration for completion providers."""

    provider: Literal["openai", "ollama", "gemini", "mistral"] = "openai"

    # OpenAI settings
    openai_api_key: Optional[str] = None

    # Ollama settings
    ollama_base_url: str = "http://localhost:11434"

    # Gemini settings
    gemini_api_key: Optional[str] = None

    # Mistral settings
    mistral_api_key: Optional[str] = None

    # Replies used when the model returns nothing / generation fails
    fallback_reply: str = "I apologize, but I couldn't generate a response."
    error_reply: str = "Sorry, I could not generate a response right now. Please try again later."


@dataclass
class VectorStoreConfig:
    """Configuration for the knowledge document store."""

    provider: Literal["json", "mongodb"] = "json"

    # JSON file store settings
    json_path: Optional[str] = "./data/agentdesk.json"

    # MongoDB settings
    mongodb_uri: Optional[str] = None
    mongodb_database: str = "agentdesk"
    mongodb_agents_collection: str = "agents"
    mongodb_documents_collection: str = "knowledge_documents"
    mongodb_conversations_collection: str = "conversations"

    # Similarity ranking backend: "exact" (full sort) or "faiss"
    ranker: Literal["exact", "faiss"] = "exact"


@dataclass
class ChunkingConfig:
    """Configuration for document chunking."""

    chunk_size: int = 1000  # Target characters per chunk
    min_chunk_length: int = 10  # Shorter chunks are dropped as noise
    overlap_sentences: int = 0  # Trailing sentences repeated in the next chunk


@dataclass
class RetrievalConfig:
    """Configuration for knowledge retrieval."""

    top_k: int = 3  # Number of chunks injected on a semantic hit
    similarity_threshold: float = 0.2  # Cosine score a chunk must exceed
    keyword_threshold: float = 0.1  # Keyword fraction a document must exceed
    min_keyword_length: int = 3  # Query words shorter than this are ignored
    max_context_chars: int = 3000  # Hard cap for keyword-fallback context

    # Per-agent document cache
    cache_ttl_seconds: float = 60.0
    cache_max_entries: int = 256


@dataclass
class IngestionConfig:
    """Configuration for document upload and indexing."""

    min_content_length: int = 50  # Extracted text shorter than this is rejected
    embedding_delay: float = 0.1  # Seconds between per-chunk embedding calls
    max_upload_bytes: int = 10 * 1024 * 1024


@dataclass
class WhatsAppConfig:
    """Configuration for the Evolution API WhatsApp gateway."""

    base_url: str = "http://localhost:8080"
    api_key: Optional[str] = None
    instances: str = ""  # "instance:agent_id,instance2:agent_id2"
    poll_interval: float = 2.0
    poll_limit: int = 5
    max_message_age: float = 30.0
    dedup_capacity: int = 1000
    request_timeout: float = 30.0


@dataclass
class Settings:
    """
    Main settings class that aggregates all configurations.

    Usage:
        settings = get_settings()
        print(settings.embedding.provider)
        print(settings.retrieval.similarity_threshold)
    """

    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    vector_store: VectorStoreConfig = field(default_factory=VectorStoreConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    whatsapp: WhatsAppConfig = field(default_factory=WhatsAppConfig)

    # Paths
    project_root: Path = field(default_factory=lambda: Path(__file__).parent.parent)
    data_dir: Path = field(default_factory=lambda: Path(__file__).parent.parent / "data")

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Create Settings instance from environment variables.

        This is the primary way to instantiate Settings.
        """
        embedding = EmbeddingConfig(
            provider=os.getenv("EMBEDDING_PROVIDER", "openai"),  # type: ignore
            openai_model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            local_model=os.getenv("LOCAL_EMBEDDING_MODEL", "all-MiniLM-L6-v2"),
            dimensions=int(os.getenv("EMBEDDING_DIMENSIONS", "1536")),
            max_input_chars=int(os.getenv("EMBEDDING_MAX_INPUT_CHARS", "8000")),
        )

        llm = LLMConfig(
            provider=os.getenv("LLM_PROVIDER", "openai"),  # type: ignore
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            mistral_api_key=os.getenv("MISTRAL_API_KEY"),
            fallback_reply=os.getenv(
                "LLM_FALLBACK_REPLY",
                "I apologize, but I couldn't generate a response.",
            ),
            error_reply=os.getenv(
                "LLM_ERROR_REPLY",
                "Sorry, I could not generate a response right now. Please try again later.",
            ),
        )

        vector_store = VectorStoreConfig(
            provider=os.getenv("DOCUMENT_STORE_PROVIDER", "json"),  # type: ignore
            json_path=os.getenv("DOCUMENT_STORE_PATH", "./data/agentdesk.json") or None,
            mongodb_uri=os.getenv("MONGODB_URI"),
            mongodb_database=os.getenv("MONGODB_DATABASE", "agentdesk"),
            mongodb_agents_collection=os.getenv("MONGODB_AGENTS_COLLECTION", "agents"),
            mongodb_documents_collection=os.getenv(
                "MONGODB_DOCUMENTS_COLLECTION", "knowledge_documents"
            ),
            mongodb_conversations_collection=os.getenv(
                "MONGODB_CONVERSATIONS_COLLECTION", "conversations"
            ),
            ranker=os.getenv("SIMILARITY_RANKER", "exact"),  # type: ignore
        )

        chunking = ChunkingConfig(
            chunk_size=int(os.getenv("CHUNK_SIZE", "1000")),
            min_chunk_length=int(os.getenv("MIN_CHUNK_LENGTH", "10")),
            overlap_sentences=int(os.getenv("CHUNK_OVERLAP_SENTENCES", "0")),
        )

        retrieval = RetrievalConfig(
            top_k=int(os.getenv("TOP_K_RESULTS", "3")),
            similarity_threshold=float(os.getenv("SIMILARITY_THRESHOLD", "0.2")),
            keyword_threshold=float(os.getenv("KEYWORD_THRESHOLD", "0.1")),
            min_keyword_length=int(os.getenv("MIN_KEYWORD_LENGTH", "3")),
            max_context_chars=int(os.getenv("MAX_CONTEXT_CHARS", "3000")),
            cache_ttl_seconds=float(os.getenv("DOCUMENT_CACHE_TTL", "60")),
            cache_max_entries=int(os.getenv("DOCUMENT_CACHE_SIZE", "256")),
        )

        ingestion = IngestionConfig(
            min_content_length=int(os.getenv("MIN_CONTENT_LENGTH", "50")),
            embedding_delay=float(os.getenv("EMBEDDING_DELAY", "0.1")),
            max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024))),
        )

        whatsapp = WhatsAppConfig(
            base_url=os.getenv("EVOLUTION_API_URL", "http://localhost:8080"),
            api_key=os.getenv("EVOLUTION_API_KEY"),
            instances=os.getenv("WHATSAPP_INSTANCES", ""),
            poll_interval=float(os.getenv("WHATSAPP_POLL_INTERVAL", "2")),
            poll_limit=int(os.getenv("WHATSAPP_POLL_LIMIT", "5")),
            max_message_age=float(os.getenv("WHATSAPP_MAX_MESSAGE_AGE", "30")),
            dedup_capacity=int(os.getenv("WHATSAPP_DEDUP_CAPACITY", "1000")),
            request_timeout=float(os.getenv("WHATSAPP_REQUEST_TIMEOUT", "30")),
        )

        return cls(
            embedding=embedding,
            llm=llm,
            vector_store=vector_store,
            chunking=chunking,
            retrieval=retrieval,
            ingestion=ingestion,
            whatsapp=whatsapp,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


# Singleton pattern for settings
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the singleton Settings instance.

    Returns:
        Settings: The application settings loaded from environment.
    """
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reload_settings() -> Settings:
    """
    Reload settings from environment (useful for testing).

    Returns:
        Settings: Fresh settings instance.
    """
    global _settings
    load_dotenv(override=True)
    _settings = Settings.from_env()
    return _settings
