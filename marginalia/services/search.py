# =============================================================================
# Search Engine — Full-Text and Hybrid Retrieval
# =============================================================================
#
# Two modes over one user's annotation transcripts:
#
#   "fts"     full-text only: store ranks by ts_rank, top N returned as-is.
#   "hybrid"  full-text candidates + vector candidates, fused with RRF.
#
# HYBRID FLOW:
#   1. Embed the query (one blocking provider call, run in a thread)
#   2. Top `candidate_limit` full-text matches → ranks 1..n
#   3. Top `candidate_limit` vector matches within `threshold` → ranks 1..m
#   4. reciprocal_rank_fusion() → top `result_limit`
#
# The engine is stateless and read-only; one instance per request is fine.
# Tuning values arrive through SearchConfig rather than global settings.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from marginalia.services.errors import InvalidArgumentError, UpstreamError, require_user_id
from marginalia.services.fusion import DEFAULT_RRF_K, assign_ranks, reciprocal_rank_fusion
from marginalia.services.store import AnnotationHit, AnnotationStore

logger = logging.getLogger(__name__)

SEARCH_MODES = ("fts", "hybrid")

EmbedFn = Callable[[str], list[float]]


@dataclass(frozen=True)
class SearchConfig:
    """Tuning values for SearchEngine."""

    result_limit: int = 20
    candidate_limit: int = 50
    rrf_k: int = DEFAULT_RRF_K
    default_threshold: float = 0.3
    min_threshold: float = 0.1
    max_threshold: float = 1.0

    @classmethod
    def from_settings(cls, settings) -> SearchConfig:
        return cls(
            result_limit=settings.search_result_limit,
            candidate_limit=settings.search_candidate_limit,
            rrf_k=settings.rrf_k,
            default_threshold=settings.default_distance_threshold,
            min_threshold=settings.min_distance_threshold,
            max_threshold=settings.max_distance_threshold,
        )


class SearchEngine:
    """
    Ranked annotation search for a single user.

    Args:
        store: Candidate retrieval (PgAnnotationStore in production).
        embed: Blocking text → vector function (services.embedder.embed_query).
        config: Limits, RRF constant and threshold bounds.
    """

    def __init__(
        self,
        store: AnnotationStore,
        embed: EmbedFn,
        config: SearchConfig | None = None,
    ) -> None:
        self._store = store
        self._embed = embed
        self._config = config or SearchConfig()

    @property
    def config(self) -> SearchConfig:
        return self._config

    async def search(
        self,
        user_id: str,
        query: str,
        mode: str = "fts",
        threshold: float | None = None,
    ) -> list[AnnotationHit]:
        """
        Dispatch a search by mode.

        Raises:
            InvalidArgumentError: Unknown mode, or threshold out of range.
            UpstreamError: Embedding provider failed (hybrid only).
            MissingUserScopeError: No user id.
        """
        require_user_id(user_id)
        if mode not in SEARCH_MODES:
            raise InvalidArgumentError(
                f"Invalid mode {mode!r}; expected one of {', '.join(SEARCH_MODES)}"
            )

        if mode == "hybrid":
            return await self.search_hybrid(user_id, query, threshold)
        return await self.search_full_text(user_id, query)

    async def search_full_text(self, user_id: str, query: str) -> list[AnnotationHit]:
        """Keyword search. A blank query returns [] without hitting the store."""
        require_user_id(user_id)
        query = (query or "").strip()
        if not query:
            return []

        start = time.monotonic()
        hits = await self._store.full_text_candidates(
            user_id, query, self._config.result_limit
        )
        logger.info(
            "Full-text search: query='%s', results=%d, elapsed_ms=%d",
            query[:80], len(hits), (time.monotonic() - start) * 1000,
        )
        return hits

    async def search_hybrid(
        self,
        user_id: str,
        query: str,
        threshold: float | None = None,
    ) -> list[AnnotationHit]:
        """Full-text + vector search fused with Reciprocal Rank Fusion."""
        require_user_id(user_id)
        threshold = self._resolve_threshold(threshold)
        query = (query or "").strip()
        if not query:
            return []

        start = time.monotonic()
        query_embedding = await self._embed_query(query)

        limit = self._config.candidate_limit
        fts_hits = await self._store.full_text_candidates(user_id, query, limit)
        vector_hits = await self._store.vector_candidates(
            user_id, query_embedding, threshold, limit
        )

        fused = reciprocal_rank_fusion(
            assign_ranks(fts_hits),
            assign_ranks(vector_hits),
            k=self._config.rrf_k,
            limit=self._config.result_limit,
        )

        logger.info(
            "Hybrid search: query='%s', threshold=%.2f, fts=%d, vector=%d, "
            "fused=%d, elapsed_ms=%d",
            query[:80], threshold, len(fts_hits), len(vector_hits),
            len(fused), (time.monotonic() - start) * 1000,
        )
        return [entry.hit for entry in fused]

    # -------------------------------------------------------------------------
    # Internal Helpers
    # -------------------------------------------------------------------------

    def _resolve_threshold(self, threshold: float | None) -> float:
        if threshold is None:
            return self._config.default_threshold
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
            raise InvalidArgumentError(f"threshold must be a number, got {threshold!r}")
        low, high = self._config.min_threshold, self._config.max_threshold
        if math.isnan(threshold) or not low <= threshold <= high:
            raise InvalidArgumentError(
                f"threshold must be between {low} and {high}, got {threshold}"
            )
        return float(threshold)

    async def _embed_query(self, query: str) -> list[float]:
        try:
            embedding = await asyncio.to_thread(self._embed, query)
        except UpstreamError:
            raise
        except Exception as exc:
            logger.exception("Query embedding failed")
            raise UpstreamError(f"embedding failed: {exc}") from exc

        if not embedding:
            raise UpstreamError("embedding provider returned an empty vector")
        return embedding
