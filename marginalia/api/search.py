# =============================================================================
# Search API — Keyword and Hybrid Annotation Search
# =============================================================================
#
# GET /search?q=...&mode=fts|hybrid&threshold=0.3
#
# Error mapping:
#   blank q                              → 200 []
#   unknown mode, q over 2000 chars      → 400
#   bad threshold (hybrid mode only)     → 400
#   embedding provider failure           → 502
#   timeout (whole search)               → 504
# =============================================================================

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from marginalia.api.deps import (
    MAX_QUERY_LENGTH,
    check_length,
    get_current_user_id,
    get_search_engine,
    parse_float_param,
)
from marginalia.config import Settings, get_settings
from marginalia.models.responses import ErrorResponse, SearchHit
from marginalia.services.errors import InvalidArgumentError, UpstreamError
from marginalia.services.search import SearchEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Search"])


@router.get(
    "/search",
    response_model=list[SearchHit],
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    summary="Search annotations",
    description=(
        "Full-text search over the user's annotation transcripts, or hybrid "
        "search that fuses full-text and semantic (embedding) rankings. "
        "Returns at most 20 results."
    ),
)
async def search_endpoint(
    q: str = Query(default="", description="Search text (at most 2000 characters)"),
    mode: str = Query(default="fts", description="'fts' or 'hybrid'"),
    threshold: str | None = Query(
        default=None,
        description="Hybrid only: max cosine distance for semantic matches (0.1–1.0)",
    ),
    user_id: str = Depends(get_current_user_id),
    engine: SearchEngine = Depends(get_search_engine),
    settings: Settings = Depends(get_settings),
) -> list[SearchHit]:
    try:
        check_length("q", q, MAX_QUERY_LENGTH)
        # fts ignores the threshold, so it is only parsed for hybrid.
        parsed_threshold = (
            parse_float_param("threshold", threshold) if mode == "hybrid" else None
        )
        hits = await asyncio.wait_for(
            engine.search(user_id, q, mode=mode, threshold=parsed_threshold),
            timeout=settings.search_timeout_seconds,
        )
    except InvalidArgumentError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except UpstreamError as e:
        logger.error("Search failed upstream: %s", e)
        raise HTTPException(
            status_code=502,
            detail=f"Embedding service error: {e}",
        ) from e
    except TimeoutError as e:
        logger.warning(
            "Search timed out after %.1fs (mode=%s)",
            settings.search_timeout_seconds, mode,
        )
        raise HTTPException(status_code=504, detail="Search timed out") from e

    return [SearchHit.model_validate(hit) for hit in hits]
