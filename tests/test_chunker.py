"""
Tests for TextChunker module.

Run with: pytest tests/test_chunker.py -v
"""

import pytest
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.settings import ChunkingConfig
from agentdesk.chunker import TextChunker


def _non_whitespace(text: str) -> str:
    return "".join(text.split())


class TestTextChunker:
    """Tests for TextChunker class."""

    @pytest.fixture
    def chunker(self):
        """Create a chunker with a small target size."""
        return TextChunker(config=ChunkingConfig(chunk_size=80, min_chunk_length=10))

    @pytest.fixture
    def faq_text(self):
        """Sample FAQ text with several sentences."""
        return """
        Our store opens at 9am and closes at 6pm. We are closed on Sundays!
        Do you deliver? Yes, we deliver within the city limits for free.
        Refunds are accepted within thirty days of purchase. Keep your receipt.
        Gift cards never expire and can be used online or in the store.
        """

    def test_empty_input(self, chunker):
        """Empty or whitespace-only text yields no chunks."""
        assert chunker.chunk("") == []
        assert chunker.chunk("   \n\t  ") == []
        assert chunker.chunk(None) == []

    def test_chunks_respect_target_size(self, chunker, faq_text):
        """No chunk exceeds the target size."""
        chunks = chunker.chunk(faq_text)

        assert len(chunks) > 1
        assert all(len(c) <= 80 for c in chunks)

    def test_sentence_boundaries(self, chunker, faq_text):
        """Chunks end on a sentence terminator when sentences fit."""
        for chunk in chunker.chunk(faq_text):
            assert chunk[-1] in ".!?"

    def test_greedy_accumulation(self):
        """Sentences are packed together until the next one would overflow."""
        chunker = TextChunker(config=ChunkingConfig(chunk_size=40, min_chunk_length=1))
        text = "First sentence here. Second one. Third sentence is longer."

        chunks = chunker.chunk(text)

        assert chunks == ["First sentence here. Second one.", "Third sentence is longer."]

    def test_round_trip_preserves_characters(self, chunker, faq_text):
        """Joining the chunks keeps every non-whitespace character."""
        chunks = chunker.chunk(faq_text)
        assert _non_whitespace("".join(chunks)) == _non_whitespace(faq_text)

    def test_round_trip_with_long_sentence(self):
        """Oversized sentences are split without losing punctuation."""
        chunker = TextChunker(config=ChunkingConfig(chunk_size=30, min_chunk_length=1))
        text = (
            "We sell pizza, pasta, salads; desserts, drinks and coffee every day, "
            "including holidays. Call us."
        )

        chunks = chunker.chunk(text)

        assert all(len(c) <= 30 for c in chunks)
        assert _non_whitespace("".join(chunks)) == _non_whitespace(text)

    def test_short_chunks_dropped(self):
        """Chunks shorter than min_chunk_length are discarded."""
        chunker = TextChunker(config=ChunkingConfig(chunk_size=20, min_chunk_length=10))
        chunks = chunker.chunk("Ok. This sentence is long enough.")

        assert "Ok." not in chunks
        assert all(len(c) >= 10 for c in chunks)

    def test_text_without_terminator(self, chunker):
        """An unterminated tail still forms a chunk."""
        assert chunker.chunk("Opening hours nine to six") == ["Opening hours nine to six"]

    def test_whitespace_normalized(self, chunker):
        """Runs of whitespace collapse to single spaces."""
        chunks = chunker.chunk("Line one\n\n   continues here.")
        assert chunks == ["Line one continues here."]

    def test_target_size_override(self, chunker, faq_text):
        """target_size argument overrides the configured size."""
        chunks = chunker.chunk(faq_text, target_size=500)
        assert len(chunks) == 1

    def test_invalid_target_size(self, chunker):
        with pytest.raises(ValueError):
            TextChunker(config=ChunkingConfig(chunk_size=0))
        with pytest.raises(ValueError):
            chunker.chunk("Some text.", target_size=-5)

    def test_overlap_repeats_last_sentence(self):
        """With overlap, the next chunk starts with the previous chunk's tail."""
        chunker = TextChunker(
            config=ChunkingConfig(chunk_size=50, min_chunk_length=1, overlap_sentences=1)
        )
        text = "Alpha sentence one. Beta sentence two. Gamma sentence three."

        chunks = chunker.chunk(text)

        assert chunks[0] == "Alpha sentence one. Beta sentence two."
        assert chunks[1] == "Beta sentence two. Gamma sentence three."

    def test_overlap_never_emits_duplicate_chunk(self):
        """A buffer holding only carried sentences is not emitted again."""
        chunker = TextChunker(
            config=ChunkingConfig(chunk_size=45, min_chunk_length=1, overlap_sentences=1)
        )
        text = "Short one here. " + "x" * 60 + ". Final sentence."

        chunks = chunker.chunk(text)

        assert len(chunks) == len(set(chunks))
        assert chunks[0] == "Short one here."


class TestSentenceSplitting:
    """Tests for the sentence splitter."""

    def test_terminators_kept(self):
        sentences = TextChunker.split_sentences("Hi! How are you? Fine.")
        assert sentences == ["Hi!", "How are you?", "Fine."]

    def test_repeated_terminators(self):
        sentences = TextChunker.split_sentences("Really?! Yes... ok")
        assert sentences == ["Really?!", "Yes...", "ok"]
