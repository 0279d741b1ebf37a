"""
EmbedSearch Embeddings API Router

Mount point: /embeddings

Endpoints:
    POST   /embeddings              — Embed and store a JSON array of items
    GET    /embeddings?query=...    — Similarity search (+ optional answer)
    GET    /embeddings/{chunk_id}   — Fetch one stored chunk and its vector
                                      (ids may contain '/', e.g. crawled URLs)

Rules:
    - 400 for malformed bodies / params, 404 for unknown ids,
      502 when the query cannot be embedded, 500 for storage failures
    - A batch fails as a whole only when every item failed
    - Answer-synthesis failures never fail a query
    - Log endpoint name, params, and response time via structlog
"""

import json
import time
from typing import NoReturn, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from embedsearch.api.dependencies import (
    get_answer_generator,
    get_embedding_client,
    get_vector_store,
)
from embedsearch.config import Settings, get_settings
from embedsearch.errors import EmbedSearchError, StorageError
from embedsearch.llm.answer import AnswerGenerator
from embedsearch.pipeline.ingest import batch_failed, batch_failure_status, ingest_items
from embedsearch.pipeline.query import answer_query, resolve_top_k
from embedsearch.search.embeddings import EmbeddingClient
from embedsearch.store.vector_store import VectorStore

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/embeddings", tags=["Embeddings"])


# ── Helpers ────────────────────────────────────────────────────────────────

def _raise_http(exc: EmbedSearchError, log) -> NoReturn:
    """Translate a domain error into an HTTPException with its mapped status."""
    if isinstance(exc, StorageError):
        log.error("storage_error", error=exc.message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Storage failure. Please retry the request.",
        ) from exc
    log.warning("request_failed", error_type=type(exc).__name__, error=exc.message)
    raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


# ── POST /embeddings — Batch ingestion ─────────────────────────────────────

@router.post(
    "",
    summary="Embed and store a batch of text items",
    response_description="Per-item id or error, in input order",
)
async def create_embeddings(
    request: Request,
    store: VectorStore = Depends(get_vector_store),
    embedder: EmbeddingClient = Depends(get_embedding_client),
    generator: AnswerGenerator = Depends(get_answer_generator),
    settings: Settings = Depends(get_settings),
):
    """
    Body: JSON array of ``{"id"?: str, "text": str}`` objects.

    Each item is embedded and stored independently. Returns 200 with a
    mixed list of ``{"id"}`` / ``{"error"}`` entries unless every item
    failed, in which case the status reflects the most severe failure.
    """
    start_time = time.time()
    log = logger.bind(endpoint="create_embeddings")

    raw = await request.body()
    try:
        items = json.loads(raw)
    except ValueError as exc:
        log.warning("malformed_body", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Malformed JSON body: {exc}",
        ) from exc

    if not isinstance(items, list):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be a JSON array of items",
        )

    results = await ingest_items(
        items,
        store=store,
        embedder=embedder,
        generator=generator,
        summarize=settings.INGEST_SUMMARIZE,
    )
    body = [r.to_dict() for r in results]

    elapsed = round(time.time() - start_time, 3)
    if batch_failed(results):
        status_code = batch_failure_status(results)
        log.error("ingest_batch_failed", item_count=len(items), status_code=status_code, elapsed_seconds=elapsed)
        return JSONResponse(
            status_code=status_code,
            content={"detail": "Every item in the batch failed", "results": body},
        )

    log.info("create_embeddings_response", item_count=len(items), elapsed_seconds=elapsed)
    return body


# ── GET /embeddings — Similarity search ────────────────────────────────────

@router.get(
    "",
    summary="Find the stored chunks most similar to a query",
    response_description="Ranked matches with cosine scores, optional answer",
)
async def search_embeddings(
    query: Optional[str] = Query(None, description="Query text"),
    top_k: Optional[int] = Query(None, description="Number of matches to return"),
    answer: Optional[bool] = Query(None, description="Synthesize an answer from the matches"),
    store: VectorStore = Depends(get_vector_store),
    embedder: EmbeddingClient = Depends(get_embedding_client),
    generator: AnswerGenerator = Depends(get_answer_generator),
    settings: Settings = Depends(get_settings),
):
    """
    Embeds ``query``, ranks every stored chunk by cosine similarity and
    returns the ``top_k`` best. With ``answer=true`` a natural-language
    answer is composed from the matches; if that fails the matches are
    still returned together with ``answer_error``.
    """
    start_time = time.time()
    log = logger.bind(endpoint="search_embeddings", query=(query or "")[:100], top_k=top_k)

    if query is None or not query.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Query parameter 'query' is required",
        )

    synthesize = settings.QUERY_ANSWER_DEFAULT if answer is None else answer

    try:
        k = resolve_top_k(top_k, settings)
        result = await answer_query(
            query,
            k,
            store=store,
            embedder=embedder,
            generator=generator,
            synthesize=synthesize,
        )
    except EmbedSearchError as exc:
        _raise_http(exc, log)

    elapsed = round(time.time() - start_time, 3)
    log.info(
        "search_embeddings_response",
        match_count=len(result.matches),
        answer_error=result.answer_error is not None,
        elapsed_seconds=elapsed,
    )
    return result.to_dict()


# ── GET /embeddings/{chunk_id} — Single chunk ──────────────────────────────

@router.get(
    "/{chunk_id:path}",
    summary="Fetch one stored chunk with its embedding",
    response_description="Chunk text, dimension and vector",
)
async def get_embedding(
    chunk_id: str,
    store: VectorStore = Depends(get_vector_store),
):
    log = logger.bind(endpoint="get_embedding", chunk_id=chunk_id)

    try:
        chunk = await run_in_threadpool(store.get, chunk_id)
    except EmbedSearchError as exc:
        _raise_http(exc, log)

    return {
        "id": chunk.id,
        "text": chunk.text,
        "dimension": chunk.dimension,
        "vector": chunk.vector.tolist(),
    }
