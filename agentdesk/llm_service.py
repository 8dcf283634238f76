"""
LLM Service Module

Chat-completion abstraction used by the response composer.

Providers:
- Cloud: OpenAI (gpt-4o family) - production default
- Local: Ollama - development without API costs
- Cloud: Google Gemini
- Cloud: Mistral

Every provider implements the same call:

    complete(messages, model, temperature, max_tokens, top_p) -> LLMResponse

where messages is an ordered list of {"role": ..., "content": ...} dicts.
The model and sampling parameters come from the Agent being answered, so a
single service instance serves every agent of a tenant.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Dict, Any

from google import genai
from google.genai import types

from config.settings import get_settings, LLMConfig

logger = logging.getLogger(__name__)

Messages = List[Dict[str, str]]


@dataclass
class LLMResponse:
    """
    Standardized response from LLM providers.

    Attributes:
        content: The generated text ("" when the provider returned nothing)
        model: Model name used for generation
        usage: Token usage statistics (if available)
        finish_reason: Why generation stopped
    """
    content: str
    model: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None

    def __str__(self) -> str:
        return self.content


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    All providers must implement complete() over a role-tagged message list.
    """

    default_model: str = ""

    @abstractmethod
    def complete(
        self,
        messages: Messages,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        top_p: Optional[float] = None,
    ) -> LLMResponse:
        """
        Generate the next assistant message.

        Args:
            messages: Ordered {"role", "content"} dicts
            model: Model name (provider default if None)
            temperature: Sampling temperature
            max_tokens: Maximum tokens in the reply
            top_p: Nucleus sampling

        Returns:
            LLMResponse object
        """
        pass


class OpenAIProvider(BaseLLMProvider):
    """OpenAI chat completions provider."""

    default_model = "gpt-4o"

    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key
        self._client = None

        logger.info("Initializing OpenAIProvider")

    def _get_client(self):
        """Get or create OpenAI client."""
        if self._client is None:
            try:
                from openai import OpenAI
            except ImportError:
                raise ImportError(
                    "openai package required. Install with: pip install openai"
                )

            api_key = self._api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ValueError(
                    "OpenAI API key not found. Set OPENAI_API_KEY environment variable."
                )

            self._client = OpenAI(api_key=api_key)
            logger.info("OpenAI client initialized")
        return self._client

    def complete(
        self,
        messages: Messages,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        top_p: Optional[float] = None,
    ) -> LLMResponse:
        client = self._get_client()

        kwargs: Dict[str, Any] = {
            "model": model or self.default_model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if top_p is not None:
            kwargs["top_p"] = top_p

        try:
            response = client.chat.completions.create(**kwargs)
        except Exception as e:
            logger.error(f"OpenAI generation error: {e}")
            raise

        choice = response.choices[0]
        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            usage=usage,
            finish_reason=choice.finish_reason,
        )


class OllamaProvider(BaseLLMProvider):
    """
    Ollama provider for local LLM inference.

    Requirements:
    - Ollama installed: https://ollama.ai
    - Model pulled: ollama pull llama3
    """

    default_model = "llama3"

    def __init__(self, base_url: str = "http://localhost:11434"):
        self._base_url = base_url.rstrip("/")
        self._client = None

        logger.info(f"Initializing OllamaProvider: url={base_url}")

    def _get_client(self):
        """Get or create Ollama client."""
        if self._client is None:
            try:
                import ollama
            except ImportError:
                raise ImportError(
                    "ollama package required. Install with: pip install ollama"
                )
            self._client = ollama.Client(host=self._base_url)
            logger.info("Ollama client initialized")
        return self._client

    def complete(
        self,
        messages: Messages,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        top_p: Optional[float] = None,
    ) -> LLMResponse:
        client = self._get_client()
        model = model or self.default_model

        options: Dict[str, Any] = {"temperature": temperature}
        if max_tokens:
            options["num_predict"] = max_tokens
        if top_p is not None:
            options["top_p"] = top_p

        try:
            response = client.chat(model=model, messages=messages, options=options)
        except Exception as e:
            logger.error(f"Ollama generation error: {e}")
            raise

        return LLMResponse(
            content=response["message"]["content"] or "",
            model=model,
            usage={
                "prompt_tokens": response.get("prompt_eval_count", 0),
                "completion_tokens": response.get("eval_count", 0),
            },
            finish_reason="stop",
        )


class GeminiProvider(BaseLLMProvider):
    """
    Google Gemini provider (google-genai package).

    System messages become the system instruction; assistant turns are sent
    with Gemini's "model" role.
    """

    default_model = "gemini-2.0-flash"

    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key
        self._client = None

        logger.info("Initializing GeminiProvider")

    def _get_client(self):
        """Get or create Gemini client."""
        if self._client is None:
            api_key = self._api_key or os.getenv("GEMINI_API_KEY")
            if not api_key:
                raise ValueError(
                    "Gemini API key not found. Set GEMINI_API_KEY environment variable."
                )
            self._client = genai.Client(api_key=api_key)
            logger.info("Gemini client initialized")
        return self._client

    @staticmethod
    def _split_messages(messages: Messages):
        system_parts = []
        contents = []
        for message in messages:
            if message["role"] == "system":
                system_parts.append(message["content"])
                continue
            role = "model" if message["role"] == "assistant" else "user"
            contents.append(
                types.Content(role=role, parts=[types.Part(text=message["content"])])
            )
        return "\n\n".join(system_parts) or None, contents

    def complete(
        self,
        messages: Messages,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        top_p: Optional[float] = None,
    ) -> LLMResponse:
        client = self._get_client()
        model = model or self.default_model
        system_instruction, contents = self._split_messages(messages)

        config = types.GenerateContentConfig(
            temperature=temperature,
            system_instruction=system_instruction,
            max_output_tokens=max_tokens,
            top_p=top_p,
        )

        try:
            response = client.models.generate_content(
                model=model,
                contents=contents,
                config=config,
            )
        except Exception as e:
            logger.error(f"Gemini generation error: {e}")
            raise

        return LLMResponse(content=response.text or "", model=model, finish_reason="stop")


class MistralProvider(BaseLLMProvider):
    """Mistral AI chat provider."""

    default_model = "mistral-small-latest"

    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key
        self._client = None

        logger.info("Initializing MistralProvider")

    def _get_client(self):
        """Get or create Mistral client."""
        if self._client is None:
            try:
                from mistralai import Mistral
            except ImportError:
                raise ImportError(
                    "mistralai package required. Install with: pip install mistralai"
                )

            api_key = self._api_key or os.getenv("MISTRAL_API_KEY")
            if not api_key:
                raise ValueError(
                    "Mistral API key not found. Set MISTRAL_API_KEY environment variable."
                )

            self._client = Mistral(api_key=api_key)
            logger.info("Mistral client initialized")
        return self._client

    def complete(
        self,
        messages: Messages,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        top_p: Optional[float] = None,
    ) -> LLMResponse:
        client = self._get_client()
        model = model or self.default_model

        try:
            response = client.chat.complete(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                top_p=top_p,
            )
        except Exception as e:
            logger.error(f"Mistral generation error: {e}")
            raise

        choice = response.choices[0]
        return LLMResponse(
            content=choice.message.content or "",
            model=model,
            usage={
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            } if response.usage else None,
            finish_reason=choice.finish_reason,
        )


class LLMService:
    """
    Main LLM Service with unified interface.

    This is the class that other components should use.
    It handles provider selection based on configuration.

    Example:
        llm = LLMService()  # provider from config
        response = llm.complete(
            [{"role": "system", "content": "You are helpful."},
             {"role": "user", "content": "Hi"}],
            model="gpt-4o",
            temperature=0.7,
        )
        print(response.content)
    """

    PROVIDERS = ("openai", "ollama", "gemini", "mistral")

    def __init__(
        self,
        provider: Optional[str] = None,
        config: Optional[LLMConfig] = None,
        backend: Optional[BaseLLMProvider] = None,
    ):
        """
        Initialize the LLM service.

        Args:
            provider: "openai", "ollama", "gemini", or "mistral" (default from config)
            config: Optional LLMConfig instance
            backend: Pre-built provider (takes precedence over provider)
        """
        self.config = config or get_settings().llm
        provider = provider or self.config.provider

        if backend is not None:
            self._provider = backend
        elif provider == "openai":
            self._provider = OpenAIProvider(api_key=self.config.openai_api_key)
        elif provider == "ollama":
            self._provider = OllamaProvider(base_url=self.config.ollama_base_url)
        elif provider == "gemini":
            self._provider = GeminiProvider(api_key=self.config.gemini_api_key)
        elif provider == "mistral":
            self._provider = MistralProvider(api_key=self.config.mistral_api_key)
        else:
            raise ValueError(f"Unknown LLM provider: {provider}")

        self._provider_name = provider
        logger.info(f"LLMService initialized with {provider} provider")

    def complete(
        self,
        messages: Messages,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        top_p: Optional[float] = None,
    ) -> LLMResponse:
        """
        Generate the next assistant message for a conversation.

        Args:
            messages: Ordered {"role", "content"} dicts
            model: Model name (provider default if None)
            temperature: Sampling temperature
            max_tokens: Maximum tokens in the reply
            top_p: Nucleus sampling

        Returns:
            LLMResponse object
        """
        logger.debug(
            f"Completing {len(messages)} messages with {self._provider_name}/"
            f"{model or self._provider.default_model}"
        )
        return self._provider.complete(
            messages=messages,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            top_p=top_p,
        )

    @property
    def provider_name(self) -> str:
        return self._provider_name

    @property
    def default_model(self) -> str:
        return self._provider.default_model
