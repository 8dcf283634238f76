"""
Conversation Memory Module

Sliding-window history per (agent, contact) pair, used to give the model the
recent turns of a WhatsApp or chat conversation.

Design Rationale:
- Bounded by turn count and an approximate token budget
- Thread-safe; the dispatcher answers several contacts concurrently
- Owned by the AgentService instance, no module-level state

Usage:
    memory = ConversationMemory(max_turns=10)
    memory.add_user_message("What time do you open?")
    memory.add_assistant_message("We open at 9am.")
    history = memory.get_messages_for_llm()
"""

import logging
import threading
from collections import deque
from datetime import timedelta
from typing import List, Optional, Dict, Any

from agentdesk.models import ConversationMessage, utcnow

logger = logging.getLogger(__name__)


class ConversationMemory:
    """
    Recent history of a single conversation thread.

    Example:
        memory = ConversationMemory(max_turns=10, conversation_id="1:5511999")
        memory.add_user_message("Hi")
        memory.get_last_user_message()  # "Hi"
    """

    def __init__(
        self,
        max_turns: int = 10,
        max_tokens: int = 2000,
        conversation_id: Optional[str] = None,
    ):
        """
        Initialize conversation memory.

        Args:
            max_turns: Maximum number of user/assistant turns to keep
            max_tokens: Approximate max tokens kept (4 chars per token)
            conversation_id: Identifier for logging
        """
        self.max_turns = max_turns
        self.max_tokens = max_tokens
        self.conversation_id = conversation_id or "anonymous"

        self._messages: deque = deque(maxlen=max_turns * 2)
        self._lock = threading.Lock()

    def _add(self, role: str, content: str, metadata: Optional[Dict[str, Any]]) -> None:
        message = ConversationMessage(role=role, content=content, metadata=metadata or {})
        with self._lock:
            self._messages.append(message)
            self._trim_to_token_limit()
        logger.debug(f"Added {role} message to {self.conversation_id}")

    def add_user_message(self, content: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._add("user", content, metadata)

    def add_assistant_message(
        self, content: str, metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        self._add("assistant", content, metadata)

    @staticmethod
    def _estimate_tokens(text: str) -> int:
        return len(text) // 4

    def _trim_to_token_limit(self) -> None:
        """Drop oldest messages while over budget, always keeping the last two."""
        total_tokens = sum(self._estimate_tokens(m.content) for m in self._messages)
        while total_tokens > self.max_tokens and len(self._messages) > 2:
            removed = self._messages.popleft()
            total_tokens -= self._estimate_tokens(removed.content)

    def get_messages(self) -> List[ConversationMessage]:
        with self._lock:
            return list(self._messages)

    def get_messages_for_llm(self) -> List[Dict[str, str]]:
        """History as [{"role": ..., "content": ...}] in chronological order."""
        with self._lock:
            return [{"role": m.role, "content": m.content} for m in self._messages]

    def get_last_user_message(self) -> Optional[str]:
        with self._lock:
            for msg in reversed(self._messages):
                if msg.role == "user":
                    return msg.content
            return None

    @property
    def last_activity(self):
        with self._lock:
            return self._messages[-1].timestamp if self._messages else None

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)

    def to_dict(self) -> Dict[str, Any]:
        """Export memory to dictionary for persistence."""
        with self._lock:
            return {
                "conversation_id": self.conversation_id,
                "messages": [m.to_dict() for m in self._messages],
                "max_turns": self.max_turns,
                "max_tokens": self.max_tokens,
            }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationMemory":
        memory = cls(
            max_turns=data.get("max_turns", 10),
            max_tokens=data.get("max_tokens", 2000),
            conversation_id=data.get("conversation_id"),
        )
        for msg_data in data.get("messages", []):
            memory._messages.append(ConversationMessage.from_dict(msg_data))
        return memory


class ConversationManager:
    """
    Holds one ConversationMemory per (agent, contact) pair.

    Example:
        manager = ConversationManager()
        memory = manager.get_memory(agent_id=1, contact_id="5511999990000")
        manager.cleanup_old_conversations(max_age_hours=24)
    """

    def __init__(self, default_max_turns: int = 10, default_max_tokens: int = 2000):
        self._memories: Dict[str, ConversationMemory] = {}
        self._lock = threading.Lock()
        self.default_max_turns = default_max_turns
        self.default_max_tokens = default_max_tokens

    @staticmethod
    def key(agent_id: int, contact_id: str) -> str:
        return f"{agent_id}:{contact_id}"

    def get_memory(
        self,
        agent_id: int,
        contact_id: str,
        create_if_missing: bool = True,
    ) -> Optional[ConversationMemory]:
        """
        Get the memory of a contact's conversation with an agent.

        Returns:
            ConversationMemory, or None if missing and create_if_missing is False
        """
        key = self.key(agent_id, contact_id)
        with self._lock:
            if key not in self._memories:
                if not create_if_missing:
                    return None
                self._memories[key] = ConversationMemory(
                    max_turns=self.default_max_turns,
                    max_tokens=self.default_max_tokens,
                    conversation_id=key,
                )
                logger.debug(f"Created new memory for {key}")
            return self._memories[key]

    def delete_memory(self, agent_id: int, contact_id: str) -> bool:
        with self._lock:
            return self._memories.pop(self.key(agent_id, contact_id), None) is not None

    def delete_agent(self, agent_id: int) -> int:
        """Forget every conversation of an agent. Returns the number removed."""
        prefix = f"{agent_id}:"
        with self._lock:
            keys = [k for k in self._memories if k.startswith(prefix)]
            for key in keys:
                del self._memories[key]
        return len(keys)

    def cleanup_old_conversations(self, max_age_hours: float = 24) -> int:
        """
        Remove conversations with no recent activity.

        Returns:
            Number of conversations removed
        """
        cutoff = utcnow() - timedelta(hours=max_age_hours)
        with self._lock:
            stale = [
                key for key, memory in self._memories.items()
                if memory.last_activity is None or memory.last_activity < cutoff
            ]
            for key in stale:
                del self._memories[key]

        if stale:
            logger.info(f"Cleaned up {len(stale)} old conversations")
        return len(stale)

    def __len__(self) -> int:
        return len(self._memories)
