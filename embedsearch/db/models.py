"""
EmbedSearch Database Models

SQLAlchemy 2.x ORM models for the embedded vector store.
Tables are defined in FK-dependency order.

Tables:
    1. chunks  - One row per stored text chunk, keyed by caller/generated id
    2. vectors - One row per chunk holding the binary-encoded embedding
"""

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# =============================================================================
# Table 1: chunks
# =============================================================================
class Chunk(Base):
    """
    One record per stored text chunk.

    ``seq`` records the order of first insertion and is never rewritten
    when the chunk is replaced, so scans stay in insertion order.
    """
    __tablename__ = "chunks"

    id: Mapped[str] = mapped_column(String(512), primary_key=True)
    seq: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    vector: Mapped["Vector"] = relationship(
        "Vector", back_populates="chunk", uselist=False, passive_deletes=True
    )


# =============================================================================
# Table 2: vectors
# =============================================================================
class Vector(Base):
    """
    Embedding for exactly one chunk.

    ``embedding`` holds the self-describing blob produced by
    ``embedsearch.store.codec.encode_vector``; ``dimension`` duplicates its
    header so the store dimension can be read without decoding.
    """
    __tablename__ = "vectors"
    __table_args__ = (
        CheckConstraint("dimension > 0", name="ck_vectors_dimension_positive"),
    )

    id: Mapped[str] = mapped_column(
        String(512), ForeignKey("chunks.id", ondelete="CASCADE"), primary_key=True
    )
    dimension: Mapped[int] = mapped_column(Integer, nullable=False)
    embedding: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)

    # Relationships
    chunk: Mapped["Chunk"] = relationship("Chunk", back_populates="vector")
