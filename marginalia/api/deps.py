# =============================================================================
# API Dependencies — User Scope and Service Construction
# =============================================================================
#
# 1. get_current_user_id()  — resolved user id from the upstream auth layer
# 2. get_search_engine()    — SearchEngine over the request's DB session
# 3. get_feed_paginator()   — FeedPaginator over the request's DB session
#
# Handlers depend on these instead of building services themselves, so
# tests swap them through app.dependency_overrides.
#
# Query parameters that feed the error taxonomy (offset, limit, threshold)
# arrive as raw strings and go through parse_int_param / parse_float_param,
# which raise InvalidArgumentError (HTTP 400) instead of FastAPI's 422.
# Text length limits (q, seed) go through check_length for the same reason.
#
# TRUST BOUNDARY:
# The user id header is taken at face value. Deploy behind a proxy that
# authenticates the caller, strips any client-sent copy of the header and
# sets it itself; never expose the service directly. Set
# USER_ID_HEADER="" to disable the header path when an auth middleware sets
# request.state.user_id instead.
# =============================================================================

from __future__ import annotations

import logging
import math

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from marginalia.config import Settings, get_settings
from marginalia.db.engine import get_async_session
from marginalia.services.embedder import embed_query
from marginalia.services.errors import InvalidArgumentError
from marginalia.services.feed import FeedConfig, FeedPaginator
from marginalia.services.search import SearchConfig, SearchEngine
from marginalia.services.store import PgAnnotationStore

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 2000
MAX_SEED_LENGTH = 200


def get_current_user_id(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Resolve the requesting user's id.

    Prefers `request.state.user_id` (set by auth middleware when one is
    mounted), then the `settings.user_id_header` header, which only a
    trusted proxy may set. An empty `user_id_header` disables the header.

    Raises:
        HTTPException 401: No user id available.
    """
    user_id = getattr(request.state, "user_id", None)
    if not user_id and settings.user_id_header:
        user_id = request.headers.get(settings.user_id_header)
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id.strip()


def get_search_engine(
    session: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> SearchEngine:
    store = PgAnnotationStore(session, settings.text_search_config)
    return SearchEngine(store, embed_query, SearchConfig.from_settings(settings))


def get_feed_paginator(
    session: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> FeedPaginator:
    store = PgAnnotationStore(session, settings.text_search_config)
    return FeedPaginator(store, FeedConfig.from_settings(settings))


def parse_int_param(name: str, raw: str | None) -> int | None:
    """Parse an optional integer query parameter. Range checks live in the services."""
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw.strip())
    except ValueError as e:
        raise InvalidArgumentError(f"{name} must be an integer, got {raw!r}") from e


def parse_float_param(name: str, raw: str | None) -> float | None:
    """Parse an optional float query parameter, rejecting NaN and infinities."""
    if raw is None or raw.strip() == "":
        return None
    try:
        value = float(raw.strip())
    except ValueError as e:
        raise InvalidArgumentError(f"{name} must be a number, got {raw!r}") from e
    if not math.isfinite(value):
        raise InvalidArgumentError(f"{name} must be finite, got {raw!r}")
    return value


def check_length(name: str, raw: str | None, max_length: int) -> str | None:
    """Reject an over-long text parameter with InvalidArgumentError."""
    if raw is not None and len(raw) > max_length:
        raise InvalidArgumentError(
            f"{name} must be at most {max_length} characters, got {len(raw)}"
        )
    return raw
