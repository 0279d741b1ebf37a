"""
FastAPI dependencies for the model capabilities and the vector store.

The model clients are process-wide resources built in the application
lifespan and kept on ``app.state``. Tests swap these dependencies out
through ``app.dependency_overrides``.
"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from embedsearch.config import Settings, get_settings
from embedsearch.db.session import get_db
from embedsearch.llm.answer import AnswerGenerator
from embedsearch.search.embeddings import EmbeddingClient
from embedsearch.store.vector_store import VectorStore


def get_vector_store(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> VectorStore:
    return VectorStore(db, duplicate_policy=settings.DUPLICATE_POLICY)


def get_embedding_client(request: Request) -> EmbeddingClient:
    return request.app.state.embedder


def get_answer_generator(request: Request) -> AnswerGenerator:
    return request.app.state.generator
