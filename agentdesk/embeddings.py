"""
Embedding Service Module

Turns chunk text and user queries into fixed-length vectors.

Providers:
- OpenAI (text-embedding-3-small, 1536 dims) - production default
- Local: Sentence Transformers (all-MiniLM-L6-v2) - offline development

Design Rationale:
- One service instance always produces one dimensionality, so vectors written
  at ingestion time can be compared with query vectors at retrieval time
- Inputs are truncated to a character budget before they reach the provider
- Every provider error surfaces as EmbeddingFailure so callers can degrade
  (ingestion stores the document without vectors, retrieval falls back to
  keyword matching)
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import List, Optional

from config.settings import get_settings, EmbeddingConfig
from agentdesk.exceptions import EmbeddingFailure

logger = logging.getLogger(__name__)


class BaseEmbeddingProvider(ABC):
    """
    Abstract base class for embedding providers.

    All embedding providers must implement:
    - embed_text: Embed a single text string
    - embed_batch: Embed multiple texts
    - dimension / model_name properties
    """

    @abstractmethod
    def embed_text(self, text: str) -> List[float]:
        pass

    @abstractmethod
    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        pass


class LocalEmbeddingProvider(BaseEmbeddingProvider):
    """
    Local embedding provider using Sentence Transformers.

    The model is downloaded on first use; set HF_TOKEN to authenticate
    against the Hugging Face Hub for gated or rate-limited models.
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self._model_name = model_name
        self._model = None
        self._dimension = None

        logger.info(f"Initializing LocalEmbeddingProvider with model: {model_name}")

    def _load_model(self):
        """Lazy load the model (only when first needed)."""
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError:
                raise ImportError(
                    "sentence-transformers is required for local embeddings. "
                    "Install with: pip install sentence-transformers"
                )

            if hf_token := os.getenv("HF_TOKEN"):
                from huggingface_hub import login

                login(token=hf_token)

            logger.info(f"Loading sentence-transformers model: {self._model_name}")
            self._model = SentenceTransformer(self._model_name)
            self._dimension = self._model.get_sentence_embedding_dimension()
            logger.info(f"Model loaded. Embedding dimension: {self._dimension}")

    def embed_text(self, text: str) -> List[float]:
        self._load_model()
        return self._model.encode(text, convert_to_numpy=True).tolist()

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        self._load_model()

        logger.debug(f"Embedding batch of {len(texts)} texts")
        embeddings = self._model.encode(
            texts,
            convert_to_numpy=True,
            show_progress_bar=len(texts) > 10,
            batch_size=32,
        )
        return embeddings.tolist()

    @property
    def dimension(self) -> int:
        self._load_model()
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model_name


class OpenAIEmbeddingProvider(BaseEmbeddingProvider):
    """
    OpenAI embedding provider using the embeddings API.

    text-embedding-3 models accept a `dimensions` argument; it is always sent
    so the stored vector length is pinned by configuration rather than by
    the model's native size.
    """

    # Native sizes; `dimensions` may shorten but never lengthen them
    MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    BATCH_SIZE = 100

    def __init__(
        self,
        model_name: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        dimensions: int = 1536,
    ):
        """
        Initialize the OpenAI embedding provider.

        Args:
            model_name: Name of the OpenAI embedding model
            api_key: OpenAI API key (or from environment)
            dimensions: Requested vector length
        """
        self._model_name = model_name
        self._api_key = api_key
        self._dimensions = dimensions
        self._client = None

        native = self.MODEL_DIMENSIONS.get(model_name)
        if native is None:
            logger.warning(
                f"Unknown model {model_name}, trusting requested dimensions={dimensions}. "
                f"Known models: {list(self.MODEL_DIMENSIONS.keys())}"
            )
        elif dimensions > native:
            raise ValueError(
                f"{model_name} produces at most {native} dimensions, got {dimensions}"
            )

        logger.info(
            f"Initializing OpenAIEmbeddingProvider with model: {model_name} "
            f"(dimensions={dimensions})"
        )

    def _get_client(self):
        """Get or create the OpenAI client."""
        if self._client is None:
            try:
                from openai import OpenAI
            except ImportError:
                raise ImportError(
                    "openai package is required for OpenAI embeddings. "
                    "Install with: pip install openai"
                )

            api_key = self._api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ValueError(
                    "OpenAI API key not found. Set OPENAI_API_KEY environment "
                    "variable or pass api_key parameter."
                )

            self._client = OpenAI(api_key=api_key)
            logger.info("OpenAI client initialized")

        return self._client

    def _supports_dimensions(self) -> bool:
        # ada-002 rejects the parameter
        return self._model_name != "text-embedding-ada-002"

    def _create(self, payload):
        kwargs = {"input": payload, "model": self._model_name}
        if self._supports_dimensions():
            kwargs["dimensions"] = self._dimensions
        return self._get_client().embeddings.create(**kwargs)

    def embed_text(self, text: str) -> List[float]:
        response = self._create(text)
        return response.data[0].embedding

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        logger.debug(f"Embedding batch of {len(texts)} texts via OpenAI")
        all_embeddings = []
        for i in range(0, len(texts), self.BATCH_SIZE):
            response = self._create(texts[i:i + self.BATCH_SIZE])
            # Sort by index to maintain order
            sorted_data = sorted(response.data, key=lambda x: x.index)
            all_embeddings.extend(item.embedding for item in sorted_data)
        return all_embeddings

    @property
    def dimension(self) -> int:
        return self._dimensions

    @property
    def model_name(self) -> str:
        return self._model_name


class EmbeddingService:
    """
    Main embedding service that provides a unified interface.

    This is the class that other components should use.

    Example:
        service = EmbeddingService()  # Uses config
        vector = service.embed("What time do you open?")
        vectors = service.embed_batch(["chunk one", "chunk two"])
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        config: Optional[EmbeddingConfig] = None,
        backend: Optional[BaseEmbeddingProvider] = None,
    ):
        """
        Initialize the embedding service.

        Args:
            provider: "openai" or "local" (default from config)
            config: Optional EmbeddingConfig instance
            backend: Pre-built provider (takes precedence over provider)
        """
        self.config = config or get_settings().embedding
        self.provider_name = provider or self.config.provider
        self.max_input_chars = self.config.max_input_chars

        if backend is not None:
            self._provider = backend
        elif self.provider_name == "local":
            self._provider = LocalEmbeddingProvider(model_name=self.config.local_model)
        elif self.provider_name == "openai":
            self._provider = OpenAIEmbeddingProvider(
                model_name=self.config.openai_model,
                api_key=self.config.openai_api_key,
                dimensions=self.config.dimensions,
            )
        else:
            raise ValueError(f"Unknown embedding provider: {self.provider_name}")

        logger.info(
            f"EmbeddingService initialized with {self.provider_name} provider, "
            f"model={self._provider.model_name}"
        )

    def _prepare(self, text: str) -> str:
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        if len(text) > self.max_input_chars:
            logger.debug(
                f"Truncating embedding input from {len(text)} to {self.max_input_chars} chars"
            )
            return text[:self.max_input_chars]
        return text

    def embed(self, text: str) -> List[float]:
        """
        Generate the embedding vector for one text.

        Args:
            text: Input text (truncated to max_input_chars)

        Returns:
            Embedding vector

        Raises:
            ValueError: If text is empty
            EmbeddingFailure: If the provider call fails
        """
        prepared = self._prepare(text)
        try:
            return list(self._provider.embed_text(prepared))
        except Exception as e:
            logger.error(f"Embedding request failed ({self._provider.model_name}): {e}")
            raise EmbeddingFailure(f"Embedding request failed: {e}") from e

    def embed_query(self, query: str) -> List[float]:
        """Embed a user query (alias of embed)."""
        return self.embed(query)

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for several texts; empty texts are skipped.

        Raises:
            EmbeddingFailure: If the provider call fails
        """
        valid_texts = [self._prepare(t) for t in texts if t and t.strip()]
        if not valid_texts:
            return []
        try:
            return [list(v) for v in self._provider.embed_batch(valid_texts)]
        except Exception as e:
            logger.error(f"Batch embedding request failed: {e}")
            raise EmbeddingFailure(f"Batch embedding request failed: {e}") from e

    @property
    def dimension(self) -> int:
        return self._provider.dimension

    @property
    def model_name(self) -> str:
        return self._provider.model_name
