"""
Similarity Engine

Cosine similarity and candidate ranking for chunk retrieval.

Two rankers share the same contract:
- ExactRanker: scores every candidate with numpy and fully sorts them (default)
- FAISSRanker: builds a FAISS inner-product index over normalized vectors,
  which yields the same cosine ordering and scales better for large corpora

Both raise DimensionMismatch when a candidate's length differs from the query's.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np

from agentdesk.exceptions import DimensionMismatch

logger = logging.getLogger(__name__)

Candidate = Tuple[Any, Sequence[float]]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Calculate cosine similarity between two vectors.

    Args:
        a: First vector
        b: Second vector

    Returns:
        Similarity in [-1, 1]; 0.0 when either vector has zero magnitude

    Raises:
        DimensionMismatch: If the vectors have different lengths
    """
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))

    arr1 = np.asarray(a, dtype=np.float64)
    arr2 = np.asarray(b, dtype=np.float64)

    norm1 = np.linalg.norm(arr1)
    norm2 = np.linalg.norm(arr2)
    if norm1 == 0 or norm2 == 0:
        return 0.0

    score = float(np.dot(arr1, arr2) / (norm1 * norm2))
    # Floating-point drift can push identical vectors just past 1
    return max(-1.0, min(1.0, score))


@dataclass
class RankedCandidate:
    """A candidate id with its similarity to the query (rank is 1-indexed)."""

    id: Any
    score: float
    rank: int = 0

    def __repr__(self) -> str:
        return f"RankedCandidate(id={self.id!r}, score={self.score:.4f}, rank={self.rank})"


class BaseRanker(ABC):
    """Orders candidates by descending similarity to a query vector."""

    name: str = "base"

    @abstractmethod
    def rank(
        self, query: Sequence[float], candidates: Sequence[Candidate]
    ) -> List[RankedCandidate]:
        """
        Score and sort all candidates.

        Args:
            query: Query vector
            candidates: (id, vector) pairs

        Returns:
            Every candidate, highest similarity first
        """
        pass


class ExactRanker(BaseRanker):
    """Full scan with cosine_similarity followed by a stable sort."""

    name = "exact"

    def rank(
        self, query: Sequence[float], candidates: Sequence[Candidate]
    ) -> List[RankedCandidate]:
        scored = [
            RankedCandidate(id=cid, score=cosine_similarity(query, vector))
            for cid, vector in candidates
        ]
        scored.sort(key=lambda c: c.score, reverse=True)
        for position, candidate in enumerate(scored, 1):
            candidate.rank = position
        return scored


class FAISSRanker(BaseRanker):
    """
    Ranker backed by a flat FAISS inner-product index.

    Vectors are L2-normalized before indexing so inner product equals cosine
    similarity; zero vectors stay zero and score 0.
    """

    name = "faiss"

    def __init__(self):
        try:
            import faiss  # noqa: F401
        except ImportError:
            raise ImportError(
                "faiss-cpu is required for the FAISS ranker. "
                "Install with: pip install faiss-cpu"
            )

    @staticmethod
    def _normalize(vectors: np.ndarray) -> np.ndarray:
        """Normalize vectors for cosine similarity."""
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0] = 1  # Avoid division by zero
        return vectors / norms

    def rank(
        self, query: Sequence[float], candidates: Sequence[Candidate]
    ) -> List[RankedCandidate]:
        import faiss

        if not candidates:
            return []

        dimension = len(query)
        for _, vector in candidates:
            if len(vector) != dimension:
                raise DimensionMismatch(dimension, len(vector))

        matrix = self._normalize(
            np.array([vector for _, vector in candidates], dtype=np.float32)
        )
        query_vector = self._normalize(np.array([query], dtype=np.float32))

        index = faiss.IndexFlatIP(dimension)
        index.add(matrix)
        scores, indices = index.search(query_vector, len(candidates))

        results = []
        for position, (score, idx) in enumerate(zip(scores[0], indices[0]), 1):
            if idx < 0:  # FAISS returns -1 for not found
                continue
            results.append(RankedCandidate(
                id=candidates[idx][0],
                score=max(-1.0, min(1.0, float(score))),
                rank=position,
            ))

        logger.debug(f"FAISS ranked {len(results)} candidates (dimension={dimension})")
        return results


def get_ranker(name: Optional[str] = None) -> BaseRanker:
    """
    Build a ranker by name.

    Args:
        name: "exact" (default) or "faiss"
    """
    name = name or "exact"
    if name == "exact":
        return ExactRanker()
    if name == "faiss":
        return FAISSRanker()
    raise ValueError(f"Unknown similarity ranker: {name}")


def rank(
    query: Sequence[float],
    candidates: Sequence[Candidate],
    ranker: Optional[BaseRanker] = None,
) -> List[RankedCandidate]:
    """Rank candidates with the given ranker (exact full sort by default)."""
    return (ranker or ExactRanker()).rank(query, candidates)
