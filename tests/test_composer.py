"""
Tests for ResponseComposer module.

Run with: pytest tests/test_composer.py -v
"""

import pytest
from unittest.mock import Mock
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.settings import LLMConfig
from agentdesk.composer import ResponseComposer
from agentdesk.exceptions import GenerationFailure
from agentdesk.llm_service import LLMResponse
from agentdesk.models import Agent, ConversationMessage


@pytest.fixture
def agent():
    return Agent(
        id=1, owner_id=7, name="Store bot", system_prompt="You are helpful.",
        model="gpt-4o-mini", temperature=0.3, max_tokens=256, top_p=0.9,
    )


@pytest.fixture
def retriever():
    retriever = Mock()
    retriever.retrieve.return_value = "Store hours: 9-6"
    return retriever


@pytest.fixture
def composer(retriever, llm_service):
    return ResponseComposer(retriever, llm_service, config=LLMConfig(fallback_reply="Sorry!"))


class TestBuildMessages:
    """Tests for prompt assembly."""

    def test_with_context(self, composer, agent, retriever):
        """System prompt, knowledge block, then the conversation."""
        messages = composer.build_messages(agent, [{"role": "user", "content": "Hi"}])

        assert messages == [
            {"role": "system", "content": "You are helpful."},
            {"role": "system", "content": "Knowledge Base:\n\nStore hours: 9-6"},
            {"role": "user", "content": "Hi"},
        ]
        retriever.retrieve.assert_called_once_with(1, "Hi")

    def test_without_context(self, composer, agent, retriever):
        retriever.retrieve.return_value = None

        messages = composer.build_messages(agent, [{"role": "user", "content": "Hi"}])

        assert messages == [
            {"role": "system", "content": "You are helpful."},
            {"role": "user", "content": "Hi"},
        ]

    def test_query_is_last_user_message(self, composer, agent, retriever):
        history = [
            ConversationMessage(role="user", content="Hi"),
            ConversationMessage(role="assistant", content="Hello!"),
            {"role": "user", "content": "When do you open?"},
        ]

        messages = composer.build_messages(agent, history)

        retriever.retrieve.assert_called_once_with(1, "When do you open?")
        assert [m["role"] for m in messages] == ["system", "system", "user", "assistant", "user"]

    def test_no_user_message_no_retrieval(self, composer, agent, retriever):
        composer.build_messages(agent, [{"role": "assistant", "content": "Welcome!"}])
        retriever.retrieve.assert_not_called()

    def test_unsaved_agent_no_retrieval(self, composer, retriever):
        draft = Agent(owner_id=7, name="Draft", system_prompt="p")
        composer.build_messages(draft, [{"role": "user", "content": "Hi"}])
        retriever.retrieve.assert_not_called()

    def test_retrieval_disabled(self, agent, llm_service):
        composer = ResponseComposer(None, llm_service, config=LLMConfig())
        messages = composer.build_messages(agent, [{"role": "user", "content": "Hi"}])
        assert len(messages) == 2


class TestCompose:
    """Tests for reply generation."""

    def test_agent_parameters_forwarded(self, composer, agent, llm_backend):
        reply = composer.compose(agent, [{"role": "user", "content": "Hi"}])

        assert reply == "Hello!"
        kwargs = llm_backend.complete.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 256
        assert kwargs["top_p"] == 0.9
        assert kwargs["messages"][1]["content"] == "Knowledge Base:\n\nStore hours: 9-6"

    @pytest.mark.parametrize("content", ["", "   \n", None])
    def test_empty_reply_uses_fallback(self, composer, agent, llm_backend, content):
        llm_backend.complete.return_value = LLMResponse(content=content, model="m")
        assert composer.compose(agent, [{"role": "user", "content": "Hi"}]) == "Sorry!"

    def test_provider_error(self, composer, agent, llm_backend):
        """Completion errors surface as GenerationFailure."""
        llm_backend.complete.side_effect = ConnectionError("provider down")

        with pytest.raises(GenerationFailure) as exc_info:
            composer.compose(agent, [{"role": "user", "content": "Hi"}])
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_compose_single(self, composer, agent, llm_backend):
        assert composer.compose_single(agent, "Hi") == "Hello!"
        assert llm_backend.complete.call_args.kwargs["messages"][-1] == {
            "role": "user", "content": "Hi"
        }
