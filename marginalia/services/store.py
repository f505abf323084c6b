# =============================================================================
# Annotation Store — Candidate Retrieval Behind a Protocol
# =============================================================================
#
# The store answers three ranked-list questions and nothing else:
#
#   full_text_candidates()  → annotations matching a query, best ts_rank first
#   vector_candidates()     → annotations within a cosine distance, nearest first
#   feed_rows()             → one page of annotations in seeded-shuffle order
#
# Fusion of the first two lists happens in application code
# (services/fusion.py), so it can be exercised without a database.
#
# SCOPING:
# Every query joins annotations → books and filters on books.user_id. Each
# public method calls require_user_id() first; no statement is built
# without a resolved user.
#
# TIE-BREAKING:
# Every ORDER BY ends with annotations.id, so equal ranks / distances /
# hashes come back in a stable order across calls.
#
# ARCHITECTURE:
#   AnnotationStore (Protocol)
#   └── PgAnnotationStore — PostgreSQL full-text search + pgvector
#       ├── build_full_text_query()
#       ├── build_vector_query()
#       └── build_feed_query()
# =============================================================================

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy import Select, func, literal_column, select
from sqlalchemy.ext.asyncio import AsyncSession

from marginalia.db.models import Annotation, Book
from marginalia.services.errors import require_user_id

logger = logging.getLogger(__name__)

_REGCONFIG_RE = re.compile(r"^[a-z_]+$")


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class AnnotationHit:
    """
    One search match with the fields needed to render it.

    `score` is the source-specific raw value (ts_rank for full-text,
    cosine distance for vector); it is diagnostic only and never compared
    across sources.
    """

    id: str
    transcript: str
    book_id: str
    book_title: str
    book_author: str
    created_at: datetime
    score: float | None = None


@dataclass
class FeedRow:
    """One annotation as shown in the feed."""

    id: str
    transcript: str
    audio_url: str | None
    image_url: str | None
    page_number: str | None
    location: str | None
    created_at: datetime
    book_id: str
    book_title: str
    book_author: str


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class AnnotationStore(Protocol):
    """Read-only candidate retrieval over one user's annotations."""

    async def full_text_candidates(
        self,
        user_id: str,
        query: str,
        limit: int,
    ) -> list[AnnotationHit]:
        """Matches for `query`, best full-text rank first."""
        ...

    async def vector_candidates(
        self,
        user_id: str,
        query_embedding: list[float],
        threshold: float,
        limit: int,
    ) -> list[AnnotationHit]:
        """Embedded annotations with distance <= threshold, nearest first."""
        ...

    async def feed_rows(
        self,
        user_id: str,
        seed: str,
        offset: int,
        limit: int,
    ) -> list[FeedRow]:
        """Rows `offset`..`offset+limit` in feed_sort_key order."""
        ...


# ---------------------------------------------------------------------------
# Seeded Ordering
# ---------------------------------------------------------------------------


def feed_sort_key(annotation_id: str, seed: str) -> str:
    """
    Sort key for the seeded feed shuffle: hex MD5 of id concatenated with seed.

    Mirrors `md5(annotations.id || :seed)` in build_feed_query(). Hex digests
    are compared bytewise (COLLATE "C" on the SQL side), so Python string
    ordering and PostgreSQL ordering agree.
    """
    return hashlib.md5(f"{annotation_id}{seed}".encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Query Builders
# ---------------------------------------------------------------------------


def _regconfig(text_search_config: str):
    # Rendered inline so the expression matches the GIN index definition.
    if not _REGCONFIG_RE.match(text_search_config):
        raise ValueError(f"Invalid text search config: {text_search_config!r}")
    return literal_column(f"'{text_search_config}'")


def _hit_columns():
    return (
        Annotation.id,
        Annotation.transcript,
        Annotation.book_id,
        Book.title.label("book_title"),
        Book.author.label("book_author"),
        Annotation.created_at,
    )


def build_full_text_query(
    user_id: str,
    query: str,
    limit: int,
    text_search_config: str = "english",
) -> Select:
    """
    Full-text candidates: plainto_tsquery match, ordered by ts_rank desc.

    plainto_tsquery ignores tsquery syntax in user input, so arbitrary text
    is safe to pass through.
    """
    require_user_id(user_id)
    regconfig = _regconfig(text_search_config)
    document = func.to_tsvector(regconfig, Annotation.transcript)
    tsquery = func.plainto_tsquery(regconfig, query)
    rank = func.ts_rank(document, tsquery).label("score")

    return (
        select(*_hit_columns(), rank)
        .join(Book, Annotation.book_id == Book.id)
        .where(Book.user_id == user_id)
        .where(document.op("@@")(tsquery))
        .order_by(rank.desc(), Annotation.id.asc())
        .limit(limit)
    )


def build_vector_query(
    user_id: str,
    query_embedding: list[float],
    threshold: float,
    limit: int,
) -> Select:
    """
    Vector candidates: cosine distance (pgvector `<=>`) within `threshold`.

    Rows with a NULL embedding are excluded here; they remain reachable
    through full-text search.
    """
    require_user_id(user_id)
    distance = Annotation.embedding.cosine_distance(query_embedding)

    return (
        select(*_hit_columns(), distance.label("score"))
        .join(Book, Annotation.book_id == Book.id)
        .where(Book.user_id == user_id)
        .where(Annotation.embedding.is_not(None))
        .where(distance <= threshold)
        .order_by(distance.asc(), Annotation.id.asc())
        .limit(limit)
    )


def build_feed_query(
    user_id: str,
    seed: str,
    offset: int,
    limit: int,
) -> Select:
    """Feed page ordered by md5(id || seed), then id."""
    require_user_id(user_id)
    sort_key = func.md5(Annotation.id + seed).collate("C")

    return (
        select(
            Annotation.id,
            Annotation.transcript,
            Annotation.audio_url,
            Annotation.image_url,
            Annotation.page_number,
            Annotation.location,
            Annotation.created_at,
            Annotation.book_id,
            Book.title.label("book_title"),
            Book.author.label("book_author"),
        )
        .join(Book, Annotation.book_id == Book.id)
        .where(Book.user_id == user_id)
        .order_by(sort_key, Annotation.id.asc())
        .offset(offset)
        .limit(limit)
    )


# ---------------------------------------------------------------------------
# Implementation: PostgreSQL (full-text search + pgvector)
# ---------------------------------------------------------------------------


class PgAnnotationStore:
    """
    AnnotationStore backed by PostgreSQL.

    Wraps the request-scoped AsyncSession from get_async_session(); the
    store never commits or writes.
    """

    def __init__(self, session: AsyncSession, text_search_config: str = "english") -> None:
        self._session = session
        self._text_search_config = text_search_config

    async def full_text_candidates(
        self,
        user_id: str,
        query: str,
        limit: int,
    ) -> list[AnnotationHit]:
        stmt = build_full_text_query(user_id, query, limit, self._text_search_config)
        result = await self._session.execute(stmt)
        rows = result.all()
        logger.debug("Full-text candidates: %d rows (limit=%d)", len(rows), limit)
        return [_to_hit(row) for row in rows]

    async def vector_candidates(
        self,
        user_id: str,
        query_embedding: list[float],
        threshold: float,
        limit: int,
    ) -> list[AnnotationHit]:
        stmt = build_vector_query(user_id, query_embedding, threshold, limit)
        result = await self._session.execute(stmt)
        rows = result.all()
        logger.debug(
            "Vector candidates: %d rows (threshold=%.2f, limit=%d)",
            len(rows), threshold, limit,
        )
        return [_to_hit(row) for row in rows]

    async def feed_rows(
        self,
        user_id: str,
        seed: str,
        offset: int,
        limit: int,
    ) -> list[FeedRow]:
        stmt = build_feed_query(user_id, seed, offset, limit)
        result = await self._session.execute(stmt)
        return [FeedRow(**row._mapping) for row in result.all()]


def _to_hit(row) -> AnnotationHit:
    data = dict(row._mapping)
    score = data.pop("score", None)
    return AnnotationHit(**data, score=float(score) if score is not None else None)
