# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
# ┌──────────────┐       ┌──────────────────────────────────┐
# │  books       │       │  annotations                     │
# ├──────────────┤       ├──────────────────────────────────┤
# │ id (PK)      │──1:N─▶│ id (PK)                          │
# │ user_id      │       │ book_id (FK → books.id)          │
# │ title        │       │ transcript (text)                │
# │ author       │       │ embedding (vector(1536), null)   │
# │ created_at   │       │ audio_url / image_url            │
# └──────────────┘       │ page_number / location           │
#                        │ footnotes                        │
#                        │ created_at / updated_at          │
#                        └──────────────────────────────────┘
#
# OWNERSHIP:
# An annotation belongs to exactly one book; a book belongs to exactly one
# user. `books.user_id` is the visibility boundary — every retrieval query
# joins through `books` and filters on it (services/store.py).
#
# IDS:
# Opaque string ids (UUID4 text). The feed orders by md5(id || seed), so the
# textual form of the id is part of the ordering contract.
# =============================================================================

import uuid
from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import DateTime, ForeignKey, Index, String, Text, func, literal_column
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from marginalia.config import settings


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class Book(Base):
    """A book a user is reading. Owns zero or more annotations."""

    __tablename__ = "books"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    # Set by the auth layer on creation; never changes.
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    author: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    annotations: Mapped[list["Annotation"]] = relationship(
        "Annotation",
        back_populates="book",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, title='{self.title}', user_id={self.user_id})>"


class Annotation(Base):
    """
    A note about a book: typed, transcribed from audio, or read from an image.

    The retrieval core only reads `id`, `transcript`, `embedding`,
    `book_id` and `created_at`; the rest is payload returned by the feed.
    """

    __tablename__ = "annotations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    book_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("books.id", ondelete="CASCADE"),
        nullable=False,
    )

    transcript: Mapped[str] = mapped_column(Text, nullable=False)

    # ---------------------------------------------------------------------------
    # Vector Embedding
    # ---------------------------------------------------------------------------
    # Derived from `transcript` by workers/tasks.py:embed_annotation, which
    # runs on create and on every transcript edit. NULL for legacy rows and
    # rows whose embedding call failed; those are skipped by vector search
    # but still reachable through full-text search and the feed.
    # ---------------------------------------------------------------------------
    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(settings.embedding_dimensions),
        nullable=True,
    )

    # Payload (not used for ranking)
    audio_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    page_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    footnotes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    book: Mapped["Book"] = relationship("Book", back_populates="annotations")

    def __repr__(self) -> str:
        return f"<Annotation(id={self.id}, book_id={self.book_id})>"


# =============================================================================
# Database Indexes
# =============================================================================
#
# GIN index on the transcript tsvector. The expression must be identical to
# the one the store queries with (same regconfig), otherwise the planner
# falls back to a sequential scan.
#
# No ANN index on the embedding. Vector search is an exact scan over one
# user's annotations (joined through idx_book_user_id); an HNSW scan would
# return the global nearest neighbours and drop in-threshold rows of this
# user once the user filter is applied.
# =============================================================================

annotation_transcript_fts_idx = Index(
    "idx_annotation_transcript_fts",
    func.to_tsvector(
        literal_column(f"'{settings.text_search_config}'"),
        Annotation.transcript,
    ),
    postgresql_using="gin",
)

annotation_book_idx = Index("idx_annotation_book_id", Annotation.book_id)

book_user_idx = Index("idx_book_user_id", Book.user_id)
