# =============================================================================
# Reciprocal Rank Fusion
# =============================================================================
#
# Combines the full-text and vector candidate lists into one ranking:
#
#     score(a) = 1 / (k + fts_rank(a))  +  1 / (k + vector_rank(a))
#
# Ranks are 1-based positions within each list. A list an annotation is
# absent from contributes 0, so single-source matches are still scored.
# Only positions are used, never the raw ts_rank / distance values, which
# live on incomparable scales.
#
# `k` damps the advantage of the very top positions. The same k is applied
# to both terms. Default 60 (configurable via settings.rrf_k).
#
# Ordering: descending score, then ascending annotation id.
# =============================================================================

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from marginalia.services.store import AnnotationHit

DEFAULT_RRF_K = 60


@dataclass(frozen=True)
class RankedCandidate:
    """An annotation at a 1-based position in one candidate list."""

    annotation_id: str
    rank: int
    hit: AnnotationHit


@dataclass
class FusedHit:
    """A fused result, with the per-source ranks that produced its score."""

    hit: AnnotationHit
    score: float
    fts_rank: int | None = None
    vector_rank: int | None = None


def assign_ranks(hits: Sequence[AnnotationHit]) -> list[RankedCandidate]:
    """Number hits 1..n in the order the store returned them."""
    return [
        RankedCandidate(annotation_id=hit.id, rank=position, hit=hit)
        for position, hit in enumerate(hits, start=1)
    ]


def rrf_term(rank: int | None, k: int | float) -> float:
    """Contribution of a single list: 1/(k + rank), or 0 when absent."""
    if rank is None:
        return 0.0
    return 1.0 / (k + rank)


def reciprocal_rank_fusion(
    fts: Sequence[RankedCandidate],
    vector: Sequence[RankedCandidate],
    k: int | float = DEFAULT_RRF_K,
    limit: int | None = None,
) -> list[FusedHit]:
    """
    Fuse two ranked candidate lists.

    Args:
        fts: Full-text candidates with ranks.
        vector: Vector candidates with ranks.
        k: Damping constant, must be > 0.
        limit: Maximum number of fused hits to return (None = all).

    Returns:
        The union of both lists, best fused score first.
    """
    if k <= 0:
        raise ValueError(f"RRF k must be positive, got {k}")

    fused: dict[str, FusedHit] = {}

    for candidate in fts:
        entry = fused.setdefault(
            candidate.annotation_id, FusedHit(hit=candidate.hit, score=0.0)
        )
        # First occurrence wins if a list repeats an id.
        if entry.fts_rank is None:
            entry.fts_rank = candidate.rank

    for candidate in vector:
        entry = fused.setdefault(
            candidate.annotation_id, FusedHit(hit=candidate.hit, score=0.0)
        )
        if entry.vector_rank is None:
            entry.vector_rank = candidate.rank

    for entry in fused.values():
        entry.score = rrf_term(entry.fts_rank, k) + rrf_term(entry.vector_rank, k)

    ordered = sorted(fused.values(), key=lambda e: (-e.score, e.hit.id))
    if limit is not None:
        ordered = ordered[:limit]
    return ordered
