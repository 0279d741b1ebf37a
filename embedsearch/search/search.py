"""
EmbedSearch Similarity Search

Brute-force cosine similarity ranking over every stored vector.

Functions:
    cosine_similarity — dot(a, b) / (|a| * |b|), 0.0 for a zero vector
    top_k             — k best chunks for a query vector, deterministic order

Rules:
    - Linear scan over VectorStore.scan_all() with a size-k min-heap:
      O(n·d + n·log k) time, O(k) extra space
    - Equal scores are ordered by chunk id (lexicographic, ascending)
    - Empty list is a valid response when the store is empty
    - Never log embedding vectors — only metadata
"""

import heapq
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from functools import total_ordering

import numpy as np
import structlog

from embedsearch.errors import DimensionMismatch, InputError
from embedsearch.store.vector_store import StoredChunk

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SearchResult:
    """One ranked match."""
    chunk_id: str
    text: str
    score: float

    def to_dict(self) -> dict:
        return {"id": self.chunk_id, "text": self.text, "score": self.score}


@total_ordering
@dataclass(frozen=True, eq=False)
class _Candidate:
    """Heap entry; ``a < b`` means ``a`` ranks below ``b``."""
    score: float
    chunk_id: str
    text: str

    def __lt__(self, other: "_Candidate") -> bool:
        if self.score != other.score:
            return self.score < other.score
        # Equal scores: the higher id ranks lower
        return self.chunk_id > other.chunk_id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, _Candidate):
            return NotImplemented
        return self.score == other.score and self.chunk_id == other.chunk_id


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """
    Cosine similarity of two equal-length vectors, clamped to [-1, 1].

    A zero vector on either side yields 0.0 instead of dividing by zero.
    """
    norm_product = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if norm_product == 0.0:
        return 0.0
    score = float(np.dot(a, b)) / norm_product
    return max(-1.0, min(1.0, score))


def top_k(
    query_vector: Sequence[float],
    k: int,
    chunks: Iterable[StoredChunk],
) -> list[SearchResult]:
    """
    Rank ``chunks`` against ``query_vector`` and keep the ``k`` best.

    Args:
        query_vector: The embedded query.
        k: Number of results wanted (>= 1).
        chunks: Stored chunks, typically ``VectorStore.scan_all()``.

    Returns:
        ``min(k, len(chunks))`` results, best first.

    Raises:
        InputError: If k < 1.
        DimensionMismatch: If a stored vector's length differs from the query's.
    """
    if k < 1:
        raise InputError(f"top_k must be >= 1, got {k}")

    start_time = time.time()
    query = np.asarray(query_vector, dtype=np.float64)
    heap: list[_Candidate] = []
    scanned = 0

    for chunk in chunks:
        scanned += 1
        if chunk.vector.shape[0] != query.shape[0]:
            raise DimensionMismatch(expected=chunk.vector.shape[0], actual=query.shape[0])

        candidate = _Candidate(
            score=cosine_similarity(query, chunk.vector),
            chunk_id=chunk.id,
            text=chunk.text,
        )
        if len(heap) < k:
            heapq.heappush(heap, candidate)
        elif heap[0] < candidate:
            heapq.heapreplace(heap, candidate)

    ranked = sorted(heap, reverse=True)
    results = [SearchResult(chunk_id=c.chunk_id, text=c.text, score=c.score) for c in ranked]

    logger.info(
        "similarity_search",
        k=k,
        scanned=scanned,
        result_count=len(results),
        elapsed_seconds=round(time.time() - start_time, 3),
    )
    return results
