# =============================================================================
# Feed API — Seeded, Shuffled, Paginated Annotations
# =============================================================================
#
# GET /feed?offset=0&limit=10&seed=...
#
# First request: omit `seed`; the response carries a fresh one.
# Next requests: send the same `seed` with `offset=nextOffset` until
# `hasMore` is false.
#
# `limit` above 100 is clamped to 100; `limit` < 1, negative `offset` and
# non-numeric values give 400.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from marginalia.api.deps import (
    MAX_SEED_LENGTH,
    check_length,
    get_current_user_id,
    get_feed_paginator,
    parse_int_param,
)
from marginalia.models.responses import ErrorResponse, FeedItem, FeedPageResponse
from marginalia.services.errors import InvalidArgumentError
from marginalia.services.feed import FeedPaginator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Feed"])


@router.get(
    "/feed",
    response_model=FeedPageResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Browse annotations in shuffled order",
)
async def feed_endpoint(
    offset: str | None = Query(default=None, description="Rows to skip (default 0)"),
    limit: str | None = Query(default=None, description="Page size (default 10)"),
    seed: str | None = Query(default=None, description="Shuffle seed (at most 200 characters)"),
    user_id: str = Depends(get_current_user_id),
    paginator: FeedPaginator = Depends(get_feed_paginator),
) -> FeedPageResponse:
    try:
        check_length("seed", seed, MAX_SEED_LENGTH)
        parsed_offset = parse_int_param("offset", offset)
        page = await paginator.get_page(
            user_id,
            offset=0 if parsed_offset is None else parsed_offset,
            limit=parse_int_param("limit", limit),
            seed=seed,
        )
    except InvalidArgumentError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return FeedPageResponse(
        items=[FeedItem.model_validate(row) for row in page.items],
        has_more=page.has_more,
        next_offset=page.next_offset,
        seed=page.seed,
    )
