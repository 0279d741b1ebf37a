"""
Tests for the ingestion pipeline.

Tests:
    1. Each item gets its id (supplied, url, or generated) in input order
    2. Per-item failures are recorded and the batch continues
    3. Same id twice in one batch leaves one chunk with the last text
    4. batch_failed / batch_failure_status aggregate outcomes
    5. Summarize mode embeds the summary but stores the original text
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from embedsearch.cache.embedding_cache import EmbeddingCache
from embedsearch.errors import ModelUnavailable
from embedsearch.pipeline.ingest import (
    IngestResult,
    batch_failed,
    batch_failure_status,
    ingest_items,
)
from embedsearch.search.embeddings import EmbeddingClient

from tests.conftest import FakeAnswerGenerator, FakeEmbeddingClient, make_settings


class FlakyEmbeddingClient(FakeEmbeddingClient):
    """Fails for any text containing 'boom'."""

    async def embed(self, text):
        if "boom" in text:
            raise ModelUnavailable("embedding model unreachable")
        return await super().embed(text)


class TestIngestItems:
    @pytest.mark.asyncio
    async def test_ids_returned_in_input_order(self, store, fake_embedder):
        items = [
            {"id": "first", "text": "cats are mammals"},
            {"url": "https://example.com/page", "text": "the stock market fell"},
            {"text": "no id at all"},
        ]

        results = await ingest_items(items, store=store, embedder=fake_embedder)

        assert [r.ok for r in results] == [True, True, True]
        assert results[0].id == "first"
        assert results[1].id == "https://example.com/page"
        assert len(results[2].id) == 32
        assert store.count() == 3
        assert store.get(results[2].id).text == "no id at all"

    @pytest.mark.asyncio
    async def test_generated_ids_are_unique(self, store, fake_embedder):
        results = await ingest_items(
            [{"text": "a"}, {"text": "a"}], store=store, embedder=fake_embedder
        )
        assert results[0].id != results[1].id
        assert store.count() == 2

    @pytest.mark.asyncio
    async def test_failure_recorded_and_batch_continues(self, store):
        items = [
            {"id": "ok-1", "text": "cats"},
            {"id": "bad", "text": "boom goes the model"},
            {"id": "ok-2", "text": "dogs"},
        ]

        results = await ingest_items(items, store=store, embedder=FlakyEmbeddingClient())

        assert [r.to_dict() for r in results] == [
            {"id": "ok-1"},
            {"error": "embedding model unreachable"},
            {"id": "ok-2"},
        ]
        assert results[1].status_code == 502
        assert [c.id for c in store.scan_all()] == ["ok-1", "ok-2"]

    @pytest.mark.asyncio
    async def test_malformed_items_are_per_item_errors(self, store, fake_embedder):
        items = ["just a string", {"id": "x"}, {"id": 7, "text": "numeric id"}, {"text": "   "}]

        results = await ingest_items(items, store=store, embedder=fake_embedder)

        assert not any(r.ok for r in results)
        assert all(r.status_code == 400 for r in results)
        assert fake_embedder.calls == []
        assert store.count() == 0

    @pytest.mark.asyncio
    async def test_same_id_twice_keeps_last(self, store, fake_embedder):
        items = [{"id": "a", "text": "x"}, {"id": "a", "text": "y"}]

        results = await ingest_items(items, store=store, embedder=fake_embedder)

        assert [r.to_dict() for r in results] == [{"id": "a"}, {"id": "a"}]
        assert store.count() == 1
        assert store.get("a").text == "y"

    @pytest.mark.asyncio
    async def test_dimension_mismatch_is_per_item_input_error(self, store, fake_embedder):
        store.insert("existing", "three dims", [1.0, 0.0, 0.0])

        results = await ingest_items([{"text": "cats"}], store=store, embedder=fake_embedder)

        assert results[0].status_code == 400
        assert "dimension" in results[0].error

    @pytest.mark.asyncio
    async def test_summarize_embeds_summary_but_stores_original(self, store, fake_embedder):
        generator = FakeAnswerGenerator()

        results = await ingest_items(
            [{"id": "p", "text": "a long page about cats"}],
            store=store,
            embedder=fake_embedder,
            generator=generator,
            summarize=True,
        )

        assert results[0].ok
        assert fake_embedder.calls == ["summary: a long page about ca"]
        assert store.get("p").text == "a long page about cats"

    @pytest.mark.asyncio
    async def test_summary_failure_is_per_item_error(self, store, fake_embedder):
        generator = FakeAnswerGenerator(fail=ModelUnavailable("summarization model unreachable"))

        results = await ingest_items(
            [{"text": "page"}], store=store, embedder=fake_embedder, generator=generator, summarize=True
        )

        assert results[0].error == "summarization model unreachable"
        assert store.count() == 0


class TestBatchOutcome:
    def test_empty_batch_is_not_failed(self):
        assert batch_failed([]) is False

    def test_mixed_batch_is_not_failed(self):
        assert batch_failed([IngestResult(id="a"), IngestResult(error="x", status_code=502)]) is False

    def test_all_failed(self):
        assert batch_failed([IngestResult(error="x", status_code=400)]) is True

    @pytest.mark.parametrize(
        "codes,expected",
        [([400, 400], 400), ([400, 502], 502), ([502, 500, 400], 500)],
    )
    def test_failure_status_is_most_severe(self, codes, expected):
        results = [IngestResult(error="x", status_code=c) for c in codes]
        assert batch_failure_status(results) == expected


class TestIngestWithCache:
    @pytest.mark.asyncio
    async def test_corrupt_cache_entries_fall_through_to_the_model(self, store):
        redis = MagicMock()
        redis.get = AsyncMock(return_value='{"not": "a vector"}')
        redis.set = AsyncMock()
        api = MagicMock()
        api.embeddings.create = AsyncMock(
            return_value=SimpleNamespace(
                data=[SimpleNamespace(embedding=[1.0, 0.0], index=0)], usage=None
            )
        )
        embedder = EmbeddingClient(
            make_settings(OPENAI_API_KEY="test-key"),
            client=api,
            cache=EmbeddingCache(redis, ttl_seconds=60),
        )

        results = await ingest_items(
            [{"id": "a", "text": "cats"}, {"id": "b", "text": "dogs"}],
            store=store,
            embedder=embedder,
        )

        assert [r.to_dict() for r in results] == [{"id": "a"}, {"id": "b"}]
        assert api.embeddings.create.await_count == 2
        assert store.get("a").vector.tolist() == [1.0, 0.0]
