# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Built from the store dataclasses (AnnotationHit, FeedRow, FeedPage) with
# `from_attributes=True`. Field names are snake_case in Python and
# serialized as camelCase via the alias generator; FastAPI serializes
# response models by alias.
# =============================================================================

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_CONFIG = ConfigDict(
    from_attributes=True,
    alias_generator=to_camel,
    populate_by_name=True,
)


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class SearchHit(BaseModel):
    """One search result, ranked by the engine."""

    id: str
    transcript: str
    book_id: str
    book_title: str
    book_author: str
    created_at: datetime

    model_config = _CONFIG


class FeedItem(BaseModel):
    """One annotation in the feed, with its payload fields."""

    id: str
    transcript: str
    audio_url: str | None = None
    image_url: str | None = None
    page_number: str | None = None
    location: str | None = None
    created_at: datetime
    book_id: str
    book_title: str
    book_author: str

    model_config = _CONFIG


class FeedPageResponse(BaseModel):
    """
    Response for GET /feed.

    Clients pass `seed` back unchanged together with `nextOffset` to fetch
    the following page in the same order.
    """

    items: list[FeedItem]
    has_more: bool = Field(description="True if another page exists")
    next_offset: int | None = Field(
        description="Offset for the next page; null on the last page"
    )
    seed: str = Field(description="Shuffle seed to echo on subsequent requests")

    model_config = _CONFIG


class ErrorResponse(BaseModel):
    """Body of 4xx/5xx responses raised via HTTPException."""

    detail: str
