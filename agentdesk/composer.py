"""
Response Composer Module

Builds the prompt for an agent turn and delegates it to the completion provider.

Message layout:
    system: <agent.system_prompt>
    system: "Knowledge Base:\\n\\n<retrieved context>"   (only when retrieval finds something)
    <conversation history, oldest first>

The retrieval query is the most recent user message of the history.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from config.settings import get_settings, LLMConfig
from agentdesk.exceptions import GenerationFailure
from agentdesk.llm_service import LLMService
from agentdesk.models import Agent, ConversationMessage
from agentdesk.retriever import KnowledgeRetriever

logger = logging.getLogger(__name__)

HistoryItem = Union[ConversationMessage, Dict[str, Any]]

KNOWLEDGE_PREFIX = "Knowledge Base:\n\n"


def _as_message(item: HistoryItem) -> Dict[str, str]:
    if isinstance(item, ConversationMessage):
        return {"role": item.role, "content": item.content}
    return {"role": item["role"], "content": item["content"]}


class ResponseComposer:
    """
    Composes agent replies with knowledge-base context.

    Example:
        composer = ResponseComposer(retriever, llm_service)
        reply = composer.compose(agent, [{"role": "user", "content": "Hi"}])
    """

    def __init__(
        self,
        retriever: Optional[KnowledgeRetriever],
        llm_service: LLMService,
        config: Optional[LLMConfig] = None,
    ):
        """
        Initialize the composer.

        Args:
            retriever: Knowledge retriever (None disables retrieval)
            llm_service: Completion provider
            config: Optional LLMConfig (fallback reply text)
        """
        self.config = config or get_settings().llm
        self.retriever = retriever
        self.llm_service = llm_service
        self.fallback_reply = self.config.fallback_reply

    def build_messages(
        self, agent: Agent, history: Sequence[HistoryItem]
    ) -> List[Dict[str, str]]:
        """
        Assemble the message list sent to the model, without calling it.

        Args:
            agent: Agent answering
            history: Conversation so far (ConversationMessage or role/content dicts)

        Returns:
            Ordered list of {"role", "content"} dicts
        """
        conversation = [_as_message(item) for item in history]
        messages = [{"role": "system", "content": agent.system_prompt}]

        query = next(
            (m["content"] for m in reversed(conversation) if m["role"] == "user"),
            None,
        )
        if query and self.retriever is not None and agent.id is not None:
            context = self.retriever.retrieve(agent.id, query)
            if context is not None:
                messages.append({"role": "system", "content": f"{KNOWLEDGE_PREFIX}{context}"})

        messages.extend(conversation)
        return messages

    def compose(self, agent: Agent, history: Sequence[HistoryItem]) -> str:
        """
        Generate the agent's next reply.

        Args:
            agent: Agent answering (model parameters come from it)
            history: Conversation so far, ending with the user's message

        Returns:
            Reply text, or the fallback reply if the model returned nothing

        Raises:
            GenerationFailure: If the completion provider fails
        """
        messages = self.build_messages(agent, history)

        try:
            response = self.llm_service.complete(
                messages,
                model=agent.model,
                temperature=agent.temperature,
                max_tokens=agent.max_tokens,
                top_p=agent.top_p,
            )
        except Exception as e:
            logger.error(f"Generation failed for agent {agent.id} ({agent.model}): {e}")
            raise GenerationFailure(f"Could not generate a response: {e}") from e

        content = response.content or ""
        if not content.strip():
            logger.warning(f"Empty completion for agent {agent.id}, using fallback reply")
            return self.fallback_reply
        return content

    def compose_single(self, agent: Agent, user_message: str) -> str:
        """One-shot reply to a single message (agent test calls)."""
        return self.compose(agent, [{"role": "user", "content": user_message}])
