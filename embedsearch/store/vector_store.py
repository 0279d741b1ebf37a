"""
EmbedSearch Vector Store

Persistent, id-addressed storage of (text, vector) pairs in the embedded
datastore. This is the only module that reads or writes the ``chunks`` and
``vectors`` tables.

Every public method:
    - Runs as its own transaction (no transaction spans a request).
    - Logs the operation and wall-clock execution time (ms) via structlog.
    - Raises ``StorageError`` for unexpected database errors.

Rules:
    - The first insert fixes the store dimension; later inserts must match it
    - Re-inserting an id replaces its text and vector atomically (upsert),
      unless the duplicate policy is "reject"
    - Never log embedding vectors — only metadata
"""

from __future__ import annotations

import math
import numbers
import time
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Optional

import numpy as np
import structlog
from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from embedsearch.db.models import Chunk, Vector
from embedsearch.errors import (
    DimensionMismatch,
    DuplicateChunk,
    EmbedSearchError,
    InputError,
    NotFoundError,
    StorageError,
)
from embedsearch.store.codec import decode_vector, encode_vector

logger = structlog.get_logger(__name__)

SCAN_BATCH_SIZE = 256


@dataclass(frozen=True)
class StoredChunk:
    """A persisted chunk together with its decoded embedding."""
    id: str
    text: str
    vector: np.ndarray

    @property
    def dimension(self) -> int:
        return int(self.vector.shape[0])


def _timed(operation: str, start: float, **extra) -> None:
    """Log elapsed time in milliseconds."""
    elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
    logger.info("vector_store_op", operation=operation, elapsed_ms=elapsed_ms, **extra)


class ChunkScan:
    """
    Lazy, restartable view over every stored chunk in insertion order.

    Each ``iter()`` issues a fresh SELECT, so the rows reflect what was
    committed when iteration began.
    """

    def __init__(self, db: Session):
        self._db = db

    def __iter__(self) -> Iterator[StoredChunk]:
        stmt = (
            select(Chunk.id, Chunk.text, Vector.embedding)
            .join(Vector, Vector.id == Chunk.id)
            .order_by(Chunk.seq.asc())
            .execution_options(yield_per=SCAN_BATCH_SIZE)
        )
        try:
            for row in self._db.execute(stmt):
                yield StoredChunk(id=row.id, text=row.text, vector=decode_vector(row.embedding))
        except SQLAlchemyError as exc:
            logger.error("vector_store_scan_failed", error=str(exc))
            raise StorageError(f"failed to scan stored vectors: {exc}") from exc


class VectorStore:
    """
    Vector store bound to one request-scoped session.

    Args:
        db: SQLAlchemy session for the current request.
        duplicate_policy: "upsert" (last write wins) or "reject".
    """

    def __init__(self, db: Session, duplicate_policy: str = "upsert"):
        if duplicate_policy not in ("upsert", "reject"):
            raise ValueError(f"Unknown duplicate policy: '{duplicate_policy}'")
        self._db = db
        self.duplicate_policy = duplicate_policy

    # ── Writes ─────────────────────────────────────────────────────────────

    def insert(self, chunk_id: str, text: str, vector: Sequence[float]) -> None:
        """
        Store ``text`` and ``vector`` under ``chunk_id`` in one transaction.

        Raises:
            InputError: Empty, non-numeric or non-finite vector.
            DimensionMismatch: Vector length differs from the store dimension.
            DuplicateChunk: Id exists and the duplicate policy is "reject".
            StorageError: Database failure; nothing is written.
        """
        start = time.perf_counter()
        dimension = len(vector)
        if dimension == 0:
            raise InputError("vector must have at least one dimension")
        if not all(isinstance(v, numbers.Real) and not isinstance(v, bool) for v in vector):
            raise InputError("vector values must be numbers")
        if not all(math.isfinite(v) for v in vector):
            raise InputError("vector contains non-finite values")

        blob = encode_vector(vector)

        try:
            stored_dimension = self._stored_dimension()
            if stored_dimension is not None and stored_dimension != dimension:
                raise DimensionMismatch(expected=stored_dimension, actual=dimension)

            if self.duplicate_policy == "reject":
                exists = self._db.execute(
                    select(Chunk.id).where(Chunk.id == chunk_id)
                ).scalar_one_or_none()
                if exists is not None:
                    raise DuplicateChunk(chunk_id)

            # seq is assigned once on first insert and kept on replacement
            next_seq = select(func.coalesce(func.max(Chunk.seq), 0) + 1).scalar_subquery()
            chunk_stmt = insert(Chunk).values(id=chunk_id, seq=next_seq, text=text)
            chunk_stmt = chunk_stmt.on_conflict_do_update(
                index_elements=[Chunk.id],
                set_={"text": chunk_stmt.excluded.text, "updated_at": func.now()},
            )

            vector_stmt = insert(Vector).values(id=chunk_id, dimension=dimension, embedding=blob)
            vector_stmt = vector_stmt.on_conflict_do_update(
                index_elements=[Vector.id],
                set_={
                    "dimension": vector_stmt.excluded.dimension,
                    "embedding": vector_stmt.excluded.embedding,
                },
            )

            self._db.execute(chunk_stmt)
            self._db.execute(vector_stmt)

            # Re-check under the write lock: a concurrent first insert may
            # have fixed a different dimension after the read above.
            conflicting = self._db.execute(
                select(Vector.dimension).where(Vector.dimension != dimension).limit(1)
            ).scalar_one_or_none()
            if conflicting is not None:
                raise DimensionMismatch(expected=conflicting, actual=dimension)

            self._db.commit()
        except EmbedSearchError:
            self._db.rollback()
            raise
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.error("vector_store_insert_failed", chunk_id=chunk_id, error=str(exc))
            raise StorageError(f"failed to store chunk {chunk_id}: {exc}") from exc

        _timed("insert", start, chunk_id=chunk_id, dimension=dimension)

    def _stored_dimension(self) -> Optional[int]:
        return self._db.execute(select(Vector.dimension).limit(1)).scalar_one_or_none()

    # ── Reads ──────────────────────────────────────────────────────────────

    def get(self, chunk_id: str) -> StoredChunk:
        """
        Fetch one chunk and its vector.

        Raises:
            NotFoundError: No chunk with this id.
            StorageError: Database failure or corrupt blob.
        """
        start = time.perf_counter()
        try:
            row = self._db.execute(
                select(Chunk.id, Chunk.text, Vector.embedding)
                .join(Vector, Vector.id == Chunk.id)
                .where(Chunk.id == chunk_id)
            ).one_or_none()
        except SQLAlchemyError as exc:
            logger.error("vector_store_get_failed", chunk_id=chunk_id, error=str(exc))
            raise StorageError(f"failed to read chunk {chunk_id}: {exc}") from exc

        if row is None:
            raise NotFoundError(chunk_id)

        _timed("get", start, chunk_id=chunk_id)
        return StoredChunk(id=row.id, text=row.text, vector=decode_vector(row.embedding))

    def scan_all(self) -> ChunkScan:
        """All stored chunks, in insertion order. Lazy and restartable."""
        return ChunkScan(self._db)

    def count(self) -> int:
        """Number of distinct stored chunk ids."""
        try:
            return self._db.execute(select(func.count()).select_from(Chunk)).scalar_one()
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to count chunks: {exc}") from exc

    def dimension(self) -> Optional[int]:
        """The fixed store dimension, or None while the store is empty."""
        try:
            return self._db.execute(select(Vector.dimension).limit(1)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to read store dimension: {exc}") from exc
