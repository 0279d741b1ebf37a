"""
EmbedSearch Ingestion Pipeline

Embeds and stores a batch of items one at a time. Each item succeeds or
fails on its own: a failure is recorded in that item's ``IngestResult`` and
the loop moves on. Items already committed stay committed.

Item shape (JSON object):
    {"id"?: str, "url"?: str, "text": str}

``url`` stands in for ``id`` when ``id`` is absent (crawler page records);
with neither, a fresh uuid4 hex id is generated.
"""

import time
import uuid
from dataclasses import dataclass
from typing import Any, Optional

import structlog
from starlette.concurrency import run_in_threadpool

from embedsearch.errors import EmbedSearchError, InputError
from embedsearch.llm.answer import AnswerGenerator
from embedsearch.search.embeddings import EmbeddingClient
from embedsearch.store.vector_store import VectorStore

logger = structlog.get_logger(__name__)


@dataclass
class IngestResult:
    """Outcome of one item: exactly one of ``id`` / ``error`` is set."""
    id: Optional[str] = None
    error: Optional[str] = None
    status_code: int = 200

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, str]:
        if self.ok:
            return {"id": self.id}
        return {"error": self.error}


def _resolve_item(item: Any) -> tuple[str, str]:
    """Validate one raw item and return (chunk_id, text)."""
    if not isinstance(item, dict):
        raise InputError("item must be a JSON object")

    text = item.get("text")
    if not isinstance(text, str) or not text.strip():
        raise InputError("item 'text' must be a non-empty string")

    chunk_id = item.get("id")
    if chunk_id is None:
        chunk_id = item.get("url")
    if chunk_id is None:
        chunk_id = uuid.uuid4().hex
    if not isinstance(chunk_id, str) or not chunk_id:
        raise InputError("item 'id' must be a non-empty string")

    return chunk_id, text


async def ingest_items(
    items: list[Any],
    store: VectorStore,
    embedder: EmbeddingClient,
    generator: Optional[AnswerGenerator] = None,
    summarize: bool = False,
) -> list[IngestResult]:
    """
    Embed and store every item, preserving input order in the results.

    Parameters
    ----------
    items : list
        Raw decoded JSON items.
    store : VectorStore
        Request-scoped vector store.
    embedder : EmbeddingClient
        Embedding capability.
    generator : Optional[AnswerGenerator]
        Needed only when ``summarize`` is True.
    summarize : bool
        Embed an LLM summary of the text instead of the text itself.
        The original text is what gets stored.

    Returns
    -------
    list[IngestResult]
        One result per input item.
    """
    start_time = time.time()
    results: list[IngestResult] = []

    for position, item in enumerate(items):
        try:
            chunk_id, text = _resolve_item(item)
            embed_text = text
            if summarize and generator is not None:
                embed_text = await generator.summarize(text)
            vector = await embedder.embed(embed_text)
            await run_in_threadpool(store.insert, chunk_id, text, vector)
        except EmbedSearchError as exc:
            logger.warning(
                "ingest_item_failed",
                position=position,
                error_type=type(exc).__name__,
                error=exc.message,
            )
            results.append(IngestResult(error=exc.message, status_code=exc.status_code))
            continue

        results.append(IngestResult(id=chunk_id))

    succeeded = sum(1 for r in results if r.ok)
    logger.info(
        "ingest_batch_complete",
        item_count=len(items),
        succeeded=succeeded,
        failed=len(results) - succeeded,
        elapsed_seconds=round(time.time() - start_time, 3),
    )
    return results


def batch_failed(results: list[IngestResult]) -> bool:
    """True when a non-empty batch had no successful item."""
    return bool(results) and not any(r.ok for r in results)


def batch_failure_status(results: list[IngestResult]) -> int:
    """
    HTTP status for a batch where every item failed: the most severe
    error class present (storage 500 > model 502 > input 400).
    """
    codes = {r.status_code for r in results if not r.ok}
    for code in (500, 502, 400):
        if code in codes:
            return code
    return max(codes) if codes else 500
