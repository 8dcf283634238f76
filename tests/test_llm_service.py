"""
Tests for LLM Service Module

Tests the LLMService, providers, and LLMResponse dataclass.
Provider clients are mocked; no network calls are made.
"""

import pytest
from unittest.mock import Mock, patch, MagicMock
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.settings import LLMConfig
from agentdesk.llm_service import (
    LLMService,
    LLMResponse,
    BaseLLMProvider,
    OllamaProvider,
    OpenAIProvider,
    GeminiProvider,
    MistralProvider,
)

MESSAGES = [
    {"role": "system", "content": "You are helpful."},
    {"role": "system", "content": "Knowledge Base:\n\nStore hours: 9-6"},
    {"role": "user", "content": "Hi"},
    {"role": "assistant", "content": "Hello!"},
    {"role": "user", "content": "When do you open?"},
]


class TestLLMResponse:
    """Tests for LLMResponse dataclass."""

    def test_response_creation(self):
        """Test basic response creation."""
        response = LLMResponse(content="Test response", model="test-model")
        assert response.content == "Test response"
        assert response.model == "test-model"
        assert response.usage is None
        assert response.finish_reason is None

    def test_response_str(self):
        """Test string representation."""
        assert str(LLMResponse(content="Hello world", model="test")) == "Hello world"


class TestOpenAIProvider:
    """Tests for the OpenAI chat provider."""

    def _completion(self, content="We open at 9am."):
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.content = content
        response.choices[0].finish_reason = "stop"
        response.model = "gpt-4o"
        response.usage.prompt_tokens = 10
        response.usage.completion_tokens = 5
        response.usage.total_tokens = 15
        return response

    def test_complete_passes_parameters(self):
        """Model and sampling parameters are forwarded unchanged."""
        provider = OpenAIProvider(api_key="sk-test")
        provider._client = MagicMock()
        provider._client.chat.completions.create.return_value = self._completion()

        response = provider.complete(
            MESSAGES, model="gpt-4o-mini", temperature=0.2, max_tokens=300, top_p=0.9
        )

        provider._client.chat.completions.create.assert_called_once_with(
            model="gpt-4o-mini",
            messages=MESSAGES,
            temperature=0.2,
            max_tokens=300,
            top_p=0.9,
        )
        assert response.content == "We open at 9am."
        assert response.usage["total_tokens"] == 15

    def test_default_model(self):
        provider = OpenAIProvider(api_key="sk-test")
        provider._client = MagicMock()
        provider._client.chat.completions.create.return_value = self._completion()

        provider.complete(MESSAGES)

        assert provider._client.chat.completions.create.call_args.kwargs["model"] == "gpt-4o"

    def test_null_content(self):
        """A None message content becomes an empty string."""
        provider = OpenAIProvider(api_key="sk-test")
        provider._client = MagicMock()
        provider._client.chat.completions.create.return_value = self._completion(content=None)

        assert provider.complete(MESSAGES).content == ""

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ValueError):
            OpenAIProvider().complete(MESSAGES)


class TestOllamaProvider:
    """Tests for Ollama provider."""

    def test_initialization_custom_url(self):
        """Test with custom base URL."""
        provider = OllamaProvider(base_url="http://custom:11434/")
        assert provider._base_url == "http://custom:11434"

    def test_options(self):
        """Sampling parameters map to Ollama options."""
        provider = OllamaProvider()
        provider._client = MagicMock()
        provider._client.chat.return_value = {
            "message": {"content": "Hi there"},
            "prompt_eval_count": 12,
            "eval_count": 3,
        }

        response = provider.complete(MESSAGES, temperature=0.3, max_tokens=64, top_p=0.8)

        provider._client.chat.assert_called_once_with(
            model="llama3",
            messages=MESSAGES,
            options={"temperature": 0.3, "num_predict": 64, "top_p": 0.8},
        )
        assert response.content == "Hi there"
        assert response.usage == {"prompt_tokens": 12, "completion_tokens": 3}


class TestGeminiProvider:
    """Tests for Gemini provider."""

    def test_split_messages(self):
        """System messages become the instruction; assistant maps to model."""
        system, contents = GeminiProvider._split_messages(MESSAGES)

        assert system == "You are helpful.\n\nKnowledge Base:\n\nStore hours: 9-6"
        assert [c.role for c in contents] == ["user", "model", "user"]
        assert contents[-1].parts[0].text == "When do you open?"

    def test_complete(self):
        provider = GeminiProvider(api_key="test-key")
        provider._client = MagicMock()
        provider._client.models.generate_content.return_value = MagicMock(text="We open at 9am.")

        response = provider.complete(MESSAGES, model="gemini-2.0-flash", max_tokens=100)

        kwargs = provider._client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.0-flash"
        assert kwargs["config"].max_output_tokens == 100
        assert response.content == "We open at 9am."

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with pytest.raises(ValueError):
            GeminiProvider()._get_client()


class TestMistralProvider:
    """Tests for Mistral provider."""

    def test_complete(self):
        provider = MistralProvider(api_key="test-key")
        provider._client = MagicMock()
        choice = MagicMock()
        choice.message.content = "Bonjour"
        choice.finish_reason = "stop"
        provider._client.chat.complete.return_value = MagicMock(choices=[choice], usage=None)

        response = provider.complete(MESSAGES, temperature=0.1)

        assert response.content == "Bonjour"
        assert response.model == "mistral-small-latest"
        assert provider._client.chat.complete.call_args.kwargs["temperature"] == 0.1


class TestLLMService:
    """Tests for main LLMService class."""

    def test_backend_injection(self):
        backend = Mock(spec=BaseLLMProvider)
        backend.default_model = "mock-model"
        backend.complete.return_value = LLMResponse(content="ok", model="mock-model")
        service = LLMService(config=LLMConfig(), backend=backend)

        response = service.complete(MESSAGES, model="m", temperature=0.5, max_tokens=10, top_p=1.0)

        assert response.content == "ok"
        backend.complete.assert_called_once_with(
            messages=MESSAGES, model="m", temperature=0.5, max_tokens=10, top_p=1.0
        )
        assert service.default_model == "mock-model"

    @pytest.mark.parametrize("name,provider_class", [
        ("openai", OpenAIProvider),
        ("ollama", OllamaProvider),
        ("gemini", GeminiProvider),
        ("mistral", MistralProvider),
    ])
    def test_provider_selection(self, name, provider_class):
        service = LLMService(config=LLMConfig(provider=name))
        assert isinstance(service._provider, provider_class)
        assert service.provider_name == name

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            LLMService(provider="claude-local", config=LLMConfig())

    def test_errors_propagate(self):
        """Provider errors are not swallowed by the service."""
        with patch.object(OpenAIProvider, "_get_client") as get_client:
            get_client.return_value.chat.completions.create.side_effect = RuntimeError("503")
            service = LLMService(config=LLMConfig(provider="openai"))
            with pytest.raises(RuntimeError):
                service.complete(MESSAGES)


@pytest.mark.integration
class TestOllamaIntegration:
    """Integration tests requiring a running Ollama server."""

    def test_real_completion(self):
        provider = OllamaProvider()
        try:
            response = provider.complete(
                [{"role": "user", "content": "Reply with the word OK."}], max_tokens=10
            )
        except Exception as e:
            pytest.skip(f"Ollama not available: {e}")
        assert isinstance(response.content, str)
