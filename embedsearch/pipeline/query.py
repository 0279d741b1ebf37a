"""
EmbedSearch Query Pipeline

Pipeline flow:
  1. Validate top_k
  2. Embed the query text (failure here fails the query — nothing to rank)
  3. Rank stored chunks with top_k
  4. Optionally compose an answer; a ModelError here only sets answer_error
"""

import time
from dataclasses import dataclass, field
from typing import Optional

import structlog
from starlette.concurrency import run_in_threadpool

from embedsearch.errors import InputError, ModelError
from embedsearch.llm.answer import AnswerGenerator
from embedsearch.search.embeddings import EmbeddingClient
from embedsearch.search.search import SearchResult, top_k
from embedsearch.store.vector_store import VectorStore

log = structlog.get_logger(__name__)


@dataclass
class QueryResult:
    """Ranked matches plus the optional synthesized answer."""
    matches: list[SearchResult] = field(default_factory=list)
    answer: Optional[str] = None
    answer_error: Optional[str] = None

    def to_dict(self) -> dict:
        body: dict = {"matches": [m.to_dict() for m in self.matches]}
        if self.answer is not None:
            body["answer"] = self.answer
        if self.answer_error is not None:
            body["answer_error"] = self.answer_error
        return body


def resolve_top_k(requested: Optional[int], settings) -> int:
    """
    Apply the configured default and bounds to a requested top_k.

    Raises:
        InputError: If top_k is < 1 or above QUERY_MAX_TOP_K.
    """
    if requested is None:
        return settings.QUERY_DEFAULT_TOP_K
    if requested < 1:
        raise InputError(f"top_k must be >= 1, got {requested}")
    if requested > settings.QUERY_MAX_TOP_K:
        raise InputError(
            f"top_k ({requested}) exceeds maximum ({settings.QUERY_MAX_TOP_K})"
        )
    return requested


async def answer_query(
    query: str,
    k: int,
    store: VectorStore,
    embedder: EmbeddingClient,
    generator: Optional[AnswerGenerator] = None,
    synthesize: bool = False,
) -> QueryResult:
    """
    Answer one query.

    Parameters
    ----------
    query : str
        The user's query text.
    k : int
        Number of matches wanted (already validated).
    store : VectorStore
        Request-scoped vector store.
    embedder : EmbeddingClient
        Embedding capability.
    generator : Optional[AnswerGenerator]
        Answer capability, used only when ``synthesize`` is True.
    synthesize : bool
        Whether to compose a natural-language answer.

    Returns
    -------
    QueryResult

    Raises
    ------
    InputError
        Empty query, or the query cannot be embedded because it is too long.
    ModelError
        The query could not be embedded.
    StorageError
        The store could not be scanned.
    """
    if not query or not query.strip():
        raise InputError("query must be a non-empty string")

    start_time = time.time()
    query_vector = await embedder.embed(query)
    matches = await run_in_threadpool(top_k, query_vector, k, store.scan_all())
    result = QueryResult(matches=matches)

    # An empty corpus has nothing to synthesize from
    if synthesize and generator is not None and matches:
        try:
            result.answer = await generator.compose(query, matches)
        except ModelError as exc:
            log.warning("answer_synthesis_failed", error_type=type(exc).__name__, error=exc.message)
            result.answer_error = exc.message

    log.info(
        "query_answered",
        query=query[:100],
        k=k,
        match_count=len(matches),
        synthesized=result.answer is not None,
        elapsed_seconds=round(time.time() - start_time, 3),
    )
    return result
