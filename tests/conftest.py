"""
Shared pytest fixtures.

Provides:
- Fresh in-memory SQLite engine per test (StaticPool, FK enforcement on)
- VectorStore bound to a test session
- Fake embedding client / answer generator with deterministic behaviour
- FastAPI TestClient with DB and model dependencies overridden
"""

import os

# Must be set before embedsearch.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["EMBEDDING_CACHE_ENABLED"] = "false"
os.environ["SENTRY_DSN"] = ""

import re
from typing import Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from embedsearch.config import Settings
from embedsearch.db.session import create_db_engine, create_session_factory, init_db
from embedsearch.errors import ModelTimeout, ModelUnavailable
from embedsearch.store.vector_store import VectorStore


def make_settings(**overrides) -> Settings:
    """Settings that ignore any local .env file."""
    return Settings(_env_file=None, **overrides)


# =============================================================================
# Fake model capabilities
# =============================================================================
_ANIMAL_WORDS = {"cat", "cats", "dog", "dogs", "animal", "animals", "mammal", "mammals", "pet", "pets"}
_FINANCE_WORDS = {"stock", "stocks", "market", "markets", "fell", "shares", "finance", "price"}


class FakeEmbeddingClient:
    """
    Keyword-axis embedder: [animal words, finance words, other words, 1.0].

    Deterministic and dependency-free; set ``fail`` to an exception to
    make every call raise it.
    """

    model = "fake-embedding"

    def __init__(self, fail: Optional[Exception] = None):
        self.fail = fail
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail is not None:
            raise self.fail
        vector = [0.0, 0.0, 0.0, 1.0]
        for word in re.findall(r"[a-z]+", text.lower()):
            if word in _ANIMAL_WORDS:
                vector[0] += 1.0
            elif word in _FINANCE_WORDS:
                vector[1] += 1.0
            else:
                vector[2] += 1.0
        return vector

    async def aclose(self) -> None:
        pass


class FakeAnswerGenerator:
    """Answers with the id of the best snippet; ``fail`` makes it raise."""

    def __init__(self, fail: Optional[Exception] = None):
        self.fail = fail
        self.compose_calls: list[tuple[str, list]] = []

    async def compose(self, query: str, snippets) -> str:
        self.compose_calls.append((query, list(snippets)))
        if self.fail is not None:
            raise self.fail
        return f"Answer to '{query}' based on {snippets[0].chunk_id}"

    async def summarize(self, text: str) -> str:
        if self.fail is not None:
            raise self.fail
        return f"summary: {text[:20]}"

    async def aclose(self) -> None:
        pass


@pytest.fixture()
def fake_embedder() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


@pytest.fixture()
def fake_generator() -> FakeAnswerGenerator:
    return FakeAnswerGenerator()


@pytest.fixture()
def unavailable() -> ModelUnavailable:
    return ModelUnavailable("embedding model unreachable: connection refused")


@pytest.fixture()
def timeout() -> ModelTimeout:
    return ModelTimeout("answer generation model timed out")


# =============================================================================
# In-memory SQLite engine & session
# =============================================================================
@pytest.fixture()
def test_engine():
    """A fresh in-memory database with the schema created."""
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(test_engine):
    return create_session_factory(test_engine)


@pytest.fixture()
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def store(db_session) -> VectorStore:
    return VectorStore(db_session)


# =============================================================================
# FastAPI TestClient with DB & model overrides
# =============================================================================
@pytest.fixture()
def client(session_factory, fake_embedder, fake_generator) -> Generator[TestClient, None, None]:
    """
    FastAPI TestClient that:
    - Overrides get_db to use the per-test in-memory database
    - Overrides the embedding client and answer generator with fakes
    """
    from embedsearch.api.dependencies import get_answer_generator, get_embedding_client
    from embedsearch.db.session import get_db
    from embedsearch.main import app

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_embedding_client] = lambda: fake_embedder
    app.dependency_overrides[get_answer_generator] = lambda: fake_generator

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
