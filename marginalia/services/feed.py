# =============================================================================
# Feed Paginator — Seeded Shuffle with Has-More Pagination
# =============================================================================
#
# The feed shows all of a user's annotations in a random-looking order that
# stays put while the user scrolls. The order is fixed by a seed:
#
#   position(a) = rank of md5(a.id || seed) among the user's annotations
#
# Same seed → same order on every request. New seed → new order. The
# client receives the seed on the first page and echoes it back for the
# following pages.
#
# PAGINATION:
# Fetch limit + 1 rows. If the extra row came back there is another page;
# return the first `limit` rows and next_offset = offset + limit.
#
# GROWTH BETWEEN PAGES:
# A note added mid-session takes its own hash position under the current
# seed. It can shift later pages by one row (a repeat or a skip at a page
# boundary). The relative order of existing notes never changes.
# =============================================================================

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from marginalia.services.errors import InvalidArgumentError, require_user_id
from marginalia.services.store import AnnotationStore, FeedRow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedConfig:
    default_limit: int = 10
    max_limit: int = 100

    @classmethod
    def from_settings(cls, settings) -> FeedConfig:
        return cls(
            default_limit=settings.feed_default_limit,
            max_limit=settings.feed_max_limit,
        )


@dataclass
class FeedPage:
    items: list[FeedRow]
    has_more: bool
    next_offset: int | None
    seed: str


def new_seed(clock: Callable[[], float] = time.time) -> str:
    """Seed for a fresh browsing session: current time in milliseconds."""
    return str(int(clock() * 1000))


def _check_int(name: str, value, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise InvalidArgumentError(f"{name} must be >= {minimum}, got {value}")
    return value


class FeedPaginator:
    """Serves seeded-shuffle feed pages for a single user."""

    def __init__(
        self,
        store: AnnotationStore,
        config: FeedConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._config = config or FeedConfig()
        self._clock = clock

    async def get_page(
        self,
        user_id: str,
        offset: int = 0,
        limit: int | None = None,
        seed: str | None = None,
    ) -> FeedPage:
        """
        Return one feed page.

        Raises:
            InvalidArgumentError: Non-integer offset or limit, offset < 0 or
                limit < 1. A limit above max_limit is clamped to max_limit.
            MissingUserScopeError: No user id.
        """
        require_user_id(user_id)
        offset = _check_int("offset", offset, 0)
        limit = _check_int(
            "limit", self._config.default_limit if limit is None else limit, 1
        )
        limit = min(limit, self._config.max_limit)
        if seed is None or not seed.strip():
            seed = new_seed(self._clock)

        rows = await self._store.feed_rows(user_id, seed, offset, limit + 1)

        has_more = len(rows) > limit
        items = rows[:limit] if has_more else rows

        logger.debug(
            "Feed page: offset=%d, limit=%d, seed=%s, items=%d, has_more=%s",
            offset, limit, seed, len(items), has_more,
        )
        return FeedPage(
            items=items,
            has_more=has_more,
            next_offset=offset + limit if has_more else None,
            seed=seed,
        )
