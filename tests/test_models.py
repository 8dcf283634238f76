"""
Tests for the domain models.

Run with: pytest tests/test_models.py -v
"""

import pytest
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from agentdesk.models import (
    Agent,
    ChunkRecord,
    Conversation,
    ConversationMessage,
    KnowledgeDocument,
)


class TestAgent:
    """Tests for the Agent model."""

    def test_defaults(self):
        """New agents are drafts with the default generation parameters."""
        agent = Agent(owner_id=1, name="Bot", system_prompt="You are helpful.")

        assert agent.id is None
        assert agent.model == "gpt-4o"
        assert agent.temperature == 0.7
        assert agent.max_tokens == 2048
        assert agent.status == "draft"
        assert not agent.is_active

    @pytest.mark.parametrize("field,value", [
        ("temperature", -0.1),
        ("temperature", 2.5),
        ("max_tokens", 0),
        ("max_tokens", 5000),
        ("top_p", 1.5),
        ("status", "deleted"),
    ])
    def test_invalid_values_rejected(self, field, value):
        """Out-of-range parameters raise ValueError."""
        with pytest.raises(ValueError):
            Agent(owner_id=1, name="Bot", system_prompt="p", **{field: value})

    def test_boundaries_accepted(self):
        """Range limits themselves are valid."""
        agent = Agent(
            owner_id=1, name="Bot", system_prompt="p",
            temperature=2, max_tokens=4096, top_p=0, status="active",
        )
        assert agent.is_active

    def test_dict_round_trip(self):
        """to_dict/from_dict keep every field."""
        agent = Agent(
            owner_id=3, name="Store", system_prompt="Be brief.", id=9,
            knowledge_base="We sell pizza.", language="en",
        )
        restored = Agent.from_dict(agent.to_dict())

        assert restored == agent


class TestChunkRecord:
    """Tests for chunk record validation."""

    def test_well_formed(self):
        assert ChunkRecord("Store hours", [0.1, 0.2]).is_well_formed()

    def test_dimension_check(self):
        """A required dimension must match the vector length."""
        record = ChunkRecord("Store hours", [0.1, 0.2])
        assert record.is_well_formed(dimension=2)
        assert not record.is_well_formed(dimension=3)

    @pytest.mark.parametrize("text,embedding", [
        ("", [0.1]),
        ("   ", [0.1]),
        ("text", []),
        ("text", "0.1,0.2"),
        ("text", [0.1, "x"]),
        ("text", [True, False]),
        ("text", None),
    ])
    def test_malformed(self, text, embedding):
        """Empty text, empty or non-numeric vectors are malformed."""
        assert not ChunkRecord(text, embedding).is_well_formed()


class TestKnowledgeDocument:
    """Tests for the KnowledgeDocument model."""

    def _document(self, **overrides):
        data = dict(
            agent_id=1, filename="abc.txt", original_name="faq.txt",
            content="Store hours are 9-6.", file_size=20,
            mime_type="text/plain", uploaded_by=7,
        )
        data.update(overrides)
        return KnowledgeDocument(**data)

    def test_display_name(self):
        """The original name is shown, falling back to the stored name."""
        assert self._document().display_name == "faq.txt"
        assert self._document(original_name="").display_name == "abc.txt"

    def test_has_embeddings(self):
        assert not self._document().has_embeddings
        assert not self._document(embedding=[]).has_embeddings
        assert self._document(embedding=[ChunkRecord("a chunk", [1.0])]).has_embeddings

    def test_invalid_status(self):
        with pytest.raises(ValueError):
            self._document(processing_status="pending")

    def test_to_dict_without_embedding(self):
        """Vectors can be left out of the dict form."""
        document = self._document(embedding=[ChunkRecord("a chunk", [1.0])])

        assert "embedding" not in document.to_dict(include_embedding=False)
        assert document.to_dict()["embedding"] == [{"text": "a chunk", "embedding": [1.0]}]

    def test_round_trip(self):
        document = self._document(id=4, embedding=[ChunkRecord("a chunk", [1.0, 0.0])])
        restored = KnowledgeDocument.from_dict(document.to_dict())

        assert restored == document


class TestConversation:
    """Tests for the conversation log models."""

    def test_round_trip(self):
        conversation = Conversation(
            agent_id=1,
            contact_id="5511999990000",
            messages=[
                ConversationMessage(role="user", content="Hi", metadata={"media": "image"}),
                ConversationMessage(role="assistant", content="Hello!"),
            ],
        )
        restored = Conversation.from_dict(conversation.to_dict())

        assert restored.contact_id == "5511999990000"
        assert [m.role for m in restored.messages] == ["user", "assistant"]
        assert restored.messages[0].metadata == {"media": "image"}
        assert restored.created_at == conversation.created_at
