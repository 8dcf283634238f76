"""
Text Chunker Module

Splits extracted document text into bounded, sentence-aligned chunks that are
embedded one by one during ingestion.

Chunking Strategy:
- Whitespace is normalized first
- Sentences (terminated by ., ! or ?) are accumulated greedily up to the target size
- A sentence that alone exceeds the target is split further on clause/word
  boundaries with LangChain's RecursiveCharacterTextSplitter
- Very short chunks (< min_chunk_length) are dropped as noise
"""

import logging
import re
from typing import List, Optional

from langchain_text_splitters import RecursiveCharacterTextSplitter

from config.settings import get_settings, ChunkingConfig

logger = logging.getLogger(__name__)

# A sentence is a run of non-terminators followed by its terminator(s),
# or the unterminated tail of the text.
SENTENCE_PATTERN = re.compile(r"[^.!?]+(?:[.!?]+|$)|[.!?]+")


class TextChunker:
    """
    Sentence-aligned chunker for knowledge documents.

    Example:
        chunker = TextChunker()
        chunks = chunker.chunk(document_text)
        for i, chunk in enumerate(chunks):
            print(f"Chunk {i}: {chunk[:80]}...")
    """

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        min_chunk_length: Optional[int] = None,
        overlap_sentences: Optional[int] = None,
        config: Optional[ChunkingConfig] = None,
    ):
        """
        Initialize the TextChunker.

        Args:
            chunk_size: Target characters per chunk (default from config)
            min_chunk_length: Chunks shorter than this are discarded
            overlap_sentences: Trailing sentences repeated in the next chunk
            config: Optional ChunkingConfig instance
        """
        self.config = config or get_settings().chunking

        self.chunk_size = chunk_size or self.config.chunk_size
        self.min_chunk_length = (
            min_chunk_length
            if min_chunk_length is not None
            else self.config.min_chunk_length
        )
        self.overlap_sentences = (
            overlap_sentences
            if overlap_sentences is not None
            else self.config.overlap_sentences
        )

        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

        logger.info(
            f"TextChunker initialized: chunk_size={self.chunk_size}, "
            f"min_length={self.min_chunk_length}, overlap={self.overlap_sentences}"
        )

    @staticmethod
    def normalize(text: str) -> str:
        """Collapse all whitespace runs to single spaces."""
        return " ".join(text.split())

    @staticmethod
    def split_sentences(text: str) -> List[str]:
        """Split normalized text into sentences, keeping terminators."""
        return [s.strip() for s in SENTENCE_PATTERN.findall(text) if s.strip()]

    def _split_long_sentence(self, sentence: str, target_size: int) -> List[str]:
        splitter = RecursiveCharacterTextSplitter(
            chunk_size=target_size,
            chunk_overlap=0,
            length_function=len,
            separators=["; ", ", ", " ", ""],
            keep_separator="end",
        )
        return [piece.strip() for piece in splitter.split_text(sentence) if piece.strip()]

    def chunk(self, text: str, target_size: Optional[int] = None) -> List[str]:
        """
        Split text into chunks of at most target_size characters.

        Args:
            text: Raw document text
            target_size: Maximum characters per chunk (default: chunk_size)

        Returns:
            List of chunk strings (empty for empty input)
        """
        target_size = target_size or self.chunk_size
        if target_size <= 0:
            raise ValueError(f"target_size must be positive, got {target_size}")

        cleaned = self.normalize(text or "")
        if not cleaned:
            return []

        chunks: List[str] = []
        buffer: List[str] = []
        carried = 0  # leading sentences of buffer repeated from the previous chunk

        for sentence in self.split_sentences(cleaned):
            if len(sentence) > target_size:
                if len(buffer) > carried:
                    chunks.append(" ".join(buffer))
                buffer, carried = [], 0
                chunks.extend(self._split_long_sentence(sentence, target_size))
                continue

            candidate = " ".join(buffer + [sentence])
            if buffer and len(candidate) > target_size:
                if len(buffer) > carried:
                    chunks.append(" ".join(buffer))
                tail = buffer[-self.overlap_sentences:] if self.overlap_sentences > 0 else []
                # Overlap is kept only if the next sentence still fits after it
                if tail and len(" ".join(tail + [sentence])) <= target_size:
                    buffer, carried = list(tail), len(tail)
                else:
                    buffer, carried = [], 0

            buffer.append(sentence)

        if len(buffer) > carried:
            chunks.append(" ".join(buffer))

        kept = [c for c in chunks if len(c) >= self.min_chunk_length]

        logger.debug(
            f"Chunked {len(cleaned)} chars into {len(kept)} chunks "
            f"({len(chunks) - len(kept)} dropped as too short)"
        )
        return kept


def chunk_text(text: str, target_size: Optional[int] = None) -> List[str]:
    """
    Quick function to chunk text with default settings.

    Args:
        text: Text to chunk
        target_size: Optional maximum chunk size

    Returns:
        List of chunk strings
    """
    return TextChunker().chunk(text, target_size)
