"""
Tests for the SQLite-backed VectorStore.

Tests:
    1. insert → get returns bit-identical floats
    2. The first insert fixes the store dimension
    3. Re-inserting an id replaces text and vector (one row, last write wins)
    4. The "reject" duplicate policy refuses re-inserts
    5. scan_all is ordered by first insertion and restartable
    6. Database errors surface as StorageError and nothing is written
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from embedsearch.db.models import Chunk, Vector
from embedsearch.errors import (
    DimensionMismatch,
    DuplicateChunk,
    InputError,
    NotFoundError,
    StorageError,
)
from embedsearch.store.vector_store import VectorStore


def _row_counts(db):
    chunks = db.execute(select(func.count()).select_from(Chunk)).scalar_one()
    vectors = db.execute(select(func.count()).select_from(Vector)).scalar_one()
    return chunks, vectors


# ── Round trip ───────────────────────────────────────────────────────────────


class TestInsertGet:
    def test_round_trip_is_exact(self, store):
        values = [0.1, 0.2, 1 / 3, -7.5e-12]
        store.insert("doc-1", "hello world", values)

        chunk = store.get("doc-1")

        assert chunk.id == "doc-1"
        assert chunk.text == "hello world"
        assert chunk.dimension == 4
        assert chunk.vector.tolist() == values

    def test_get_missing_raises_not_found(self, store):
        with pytest.raises(NotFoundError) as exc_info:
            store.get("nope")
        assert exc_info.value.chunk_id == "nope"

    def test_every_vector_has_a_chunk(self, store, db_session):
        store.insert("a", "x", [1.0, 0.0])
        store.insert("b", "y", [0.0, 1.0])

        orphans = db_session.execute(
            select(func.count()).select_from(Vector).outerjoin(Chunk, Chunk.id == Vector.id)
            .where(Chunk.id.is_(None))
        ).scalar_one()
        assert orphans == 0
        assert _row_counts(db_session) == (2, 2)

    def test_empty_vector_rejected(self, store, db_session):
        with pytest.raises(InputError):
            store.insert("a", "x", [])
        assert _row_counts(db_session) == (0, 0)

    def test_non_finite_vector_rejected(self, store):
        with pytest.raises(InputError, match="non-finite"):
            store.insert("a", "x", [1.0, float("nan")])

    def test_non_numeric_vector_rejected(self, store, db_session):
        with pytest.raises(InputError, match="must be numbers"):
            store.insert("a", "x", ["not", "a", "vector"])
        assert _row_counts(db_session) == (0, 0)


# ── Dimension ────────────────────────────────────────────────────────────────


class TestDimension:
    def test_empty_store_has_no_dimension(self, store):
        assert store.dimension() is None
        assert store.count() == 0

    def test_first_insert_fixes_dimension(self, store):
        store.insert("a", "x", [1.0, 2.0, 3.0])
        assert store.dimension() == 3

    def test_mismatched_dimension_rejected(self, store, db_session):
        store.insert("a", "x", [1.0, 2.0, 3.0])

        with pytest.raises(DimensionMismatch) as exc_info:
            store.insert("b", "y", [1.0, 2.0])

        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2
        assert _row_counts(db_session) == (1, 1)

    def test_replacing_sole_chunk_cannot_change_dimension(self, store):
        store.insert("a", "x", [1.0, 2.0, 3.0])
        with pytest.raises(DimensionMismatch):
            store.insert("a", "x", [1.0, 2.0])
        assert store.get("a").dimension == 3

    def test_stale_dimension_read_is_caught_before_commit(self, db_session):
        class StaleReadStore(VectorStore):
            """Sees an empty store, as if another writer committed after the read."""

            def _stored_dimension(self):
                return None

        VectorStore(db_session).insert("a", "x", [1.0, 2.0, 3.0])

        with pytest.raises(DimensionMismatch) as exc_info:
            StaleReadStore(db_session).insert("b", "y", [1.0, 2.0])

        assert exc_info.value.expected == 3
        assert _row_counts(db_session) == (1, 1)

    def test_dimension_mismatch_is_an_input_error(self):
        assert issubclass(DimensionMismatch, InputError)


# ── Upsert / duplicate policy ────────────────────────────────────────────────


class TestDuplicatePolicy:
    def test_reinsert_replaces_text_and_vector(self, store, db_session):
        store.insert("a", "first", [1.0, 0.0])
        store.insert("a", "second", [0.0, 1.0])

        chunk = store.get("a")
        assert chunk.text == "second"
        assert chunk.vector.tolist() == [0.0, 1.0]
        assert _row_counts(db_session) == (1, 1)
        assert store.count() == 1

    def test_reject_policy_refuses_existing_id(self, db_session):
        store = VectorStore(db_session, duplicate_policy="reject")
        store.insert("a", "first", [1.0, 0.0])

        with pytest.raises(DuplicateChunk):
            store.insert("a", "second", [0.0, 1.0])

        assert store.get("a").text == "first"

    def test_unknown_policy_rejected(self, db_session):
        with pytest.raises(ValueError):
            VectorStore(db_session, duplicate_policy="merge")


# ── Scan ─────────────────────────────────────────────────────────────────────


class TestScanAll:
    def test_empty_store_scans_nothing(self, store):
        assert list(store.scan_all()) == []

    def test_ordered_by_insertion(self, store):
        for chunk_id in ["zeta", "alpha", "mid"]:
            store.insert(chunk_id, chunk_id.upper(), [1.0, 1.0])

        assert [c.id for c in store.scan_all()] == ["zeta", "alpha", "mid"]

    def test_replacement_keeps_original_position(self, store):
        store.insert("a", "x", [1.0, 1.0])
        store.insert("b", "y", [1.0, 1.0])
        store.insert("a", "x2", [2.0, 2.0])

        scanned = list(store.scan_all())
        assert [c.id for c in scanned] == ["a", "b"]
        assert scanned[0].text == "x2"

    def test_scan_is_restartable(self, store):
        store.insert("a", "x", [1.0, 1.0])
        scan = store.scan_all()

        first = [c.id for c in scan]
        store.insert("b", "y", [1.0, 1.0])
        second = [c.id for c in scan]

        assert first == ["a"]
        assert second == ["a", "b"]


# ── Storage failures ─────────────────────────────────────────────────────────


class TestStorageErrors:
    def _failing_session(self):
        db = MagicMock()
        db.execute.side_effect = OperationalError("SELECT 1", {}, Exception("disk I/O error"))
        return db

    def test_insert_failure_raises_storage_error_and_rolls_back(self):
        db = self._failing_session()
        store = VectorStore(db)

        with pytest.raises(StorageError):
            store.insert("a", "x", [1.0])

        db.rollback.assert_called_once()
        db.commit.assert_not_called()

    def test_get_failure_raises_storage_error(self):
        store = VectorStore(self._failing_session())
        with pytest.raises(StorageError):
            store.get("a")

    def test_scan_failure_raises_storage_error(self):
        store = VectorStore(self._failing_session())
        with pytest.raises(StorageError):
            list(store.scan_all())
