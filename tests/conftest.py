# =============================================================================
# Shared Test Fixtures — In-Memory AnnotationStore
# =============================================================================
#
# FakeAnnotationStore implements the AnnotationStore protocol over Python
# lists so the search engine, fusion and feed paginator can be tested
# without PostgreSQL. Its semantics follow PgAnnotationStore:
#   - every method is scoped to books owned by user_id
#   - full-text: lowercase word match minus a few stopwords, ranked by
#     match count desc, then id
#   - vector: cosine distance <= threshold, NULL embeddings skipped,
#     ranked by distance asc, then id
#   - feed: ordered by feed_sort_key(id, seed), then id
# =============================================================================

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest

from marginalia.services.errors import require_user_id
from marginalia.services.store import AnnotationHit, FeedRow, feed_sort_key

_STOPWORDS = {"a", "an", "the", "and", "or", "of", "to", "in", "is", "it"}
_BASE_TIME = datetime(2024, 1, 1, tzinfo=UTC)


def _tokens(text: str) -> list[str]:
    return [w for w in re.findall(r"[a-z0-9']+", text.lower()) if w not in _STOPWORDS]


def _cosine_distance(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return 1.0 - dot / norm


@dataclass
class _Book:
    id: str
    user_id: str
    title: str
    author: str


@dataclass
class _Annotation:
    id: str
    book_id: str
    transcript: str
    embedding: list[float] | None
    created_at: datetime
    audio_url: str | None = None
    image_url: str | None = None
    page_number: str | None = None
    location: str | None = None


class FakeAnnotationStore:
    """In-memory AnnotationStore. Records every call in `calls`."""

    def __init__(self) -> None:
        self.books: dict[str, _Book] = {}
        self.annotations: list[_Annotation] = []
        self.calls: list[tuple] = []

    # --- fixture builders ---------------------------------------------------

    def add_book(self, user_id: str, title: str = "Moby-Dick", author: str = "Melville") -> str:
        book_id = f"book-{len(self.books) + 1}"
        self.books[book_id] = _Book(book_id, user_id, title, author)
        return book_id

    def add_annotation(
        self,
        book_id: str,
        transcript: str,
        embedding: list[float] | None = None,
        annotation_id: str | None = None,
        **payload,
    ) -> str:
        annotation_id = annotation_id or f"ann-{len(self.annotations) + 1:03d}"
        self.annotations.append(_Annotation(
            id=annotation_id,
            book_id=book_id,
            transcript=transcript,
            embedding=embedding,
            created_at=_BASE_TIME + timedelta(minutes=len(self.annotations)),
            **payload,
        ))
        return annotation_id

    def _scoped(self, user_id: str) -> list[_Annotation]:
        require_user_id(user_id)
        return [a for a in self.annotations if self.books[a.book_id].user_id == user_id]

    def _hit(self, a: _Annotation, score: float) -> AnnotationHit:
        book = self.books[a.book_id]
        return AnnotationHit(
            id=a.id,
            transcript=a.transcript,
            book_id=a.book_id,
            book_title=book.title,
            book_author=book.author,
            created_at=a.created_at,
            score=score,
        )

    # --- AnnotationStore protocol -------------------------------------------

    async def full_text_candidates(self, user_id, query, limit):
        self.calls.append(("fts", user_id, query, limit))
        wanted = set(_tokens(query))
        scored = []
        for a in self._scoped(user_id):
            count = sum(1 for t in _tokens(a.transcript) if t in wanted)
            if count:
                scored.append((count, a))
        scored.sort(key=lambda pair: (-pair[0], pair[1].id))
        return [self._hit(a, float(count)) for count, a in scored[:limit]]

    async def vector_candidates(self, user_id, query_embedding, threshold, limit):
        self.calls.append(("vector", user_id, threshold, limit))
        scored = []
        for a in self._scoped(user_id):
            if a.embedding is None:
                continue
            distance = _cosine_distance(a.embedding, query_embedding)
            if distance <= threshold:
                scored.append((distance, a))
        scored.sort(key=lambda pair: (pair[0], pair[1].id))
        return [self._hit(a, distance) for distance, a in scored[:limit]]

    async def feed_rows(self, user_id, seed, offset, limit):
        self.calls.append(("feed", user_id, seed, offset, limit))
        ordered = sorted(
            self._scoped(user_id), key=lambda a: (feed_sort_key(a.id, seed), a.id)
        )
        return [
            FeedRow(
                id=a.id,
                transcript=a.transcript,
                audio_url=a.audio_url,
                image_url=a.image_url,
                page_number=a.page_number,
                location=a.location,
                created_at=a.created_at,
                book_id=a.book_id,
                book_title=self.books[a.book_id].title,
                book_author=self.books[a.book_id].author,
            )
            for a in ordered[offset : offset + limit]
        ]


class FakeEmbedder:
    """Callable stand-in for embed_query that returns a fixed vector."""

    def __init__(self, vector: list[float] | None = None, error: Exception | None = None) -> None:
        self.vector = vector or [1.0, 0.0, 0.0]
        self.error = error
        self.calls: list[str] = []

    def __call__(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return list(self.vector)


@pytest.fixture
def store() -> FakeAnnotationStore:
    return FakeAnnotationStore()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()
