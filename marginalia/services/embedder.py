# =============================================================================
# Embedding Service — Vector Generation (Provider-Agnostic)
# =============================================================================
#
# Generates embeddings through any OpenAI-compatible embeddings endpoint
# (OpenAI itself, Azure, DashScope, a local gateway). `embedding_base_url`
# selects the provider.
#
# CALLERS:
#   - services/search.py: one embed_query() per hybrid search, run in a
#     worker thread via asyncio.to_thread().
#   - workers/tasks.py: embed_batch() when (re)embedding annotations.
#
# FAILURE CONTRACT:
# Every provider failure (network, non-2xx, malformed payload, wrong
# dimension) surfaces as UpstreamError. The embedder does not retry; the
# Celery tasks own retries for the write path, and search requests fail
# fast so the caller can decide.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence

import openai
from openai import OpenAI

from marginalia.config import settings
from marginalia.services.errors import UpstreamError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Embedding Client — Lazy Singleton
# ---------------------------------------------------------------------------
# The OpenAI client owns an HTTP connection pool and is thread-safe, so one
# instance is shared by all requests and worker threads. Created on first
# use so importing this module never requires an API key.
# ---------------------------------------------------------------------------

_client: OpenAI | None = None


def _get_client() -> OpenAI:
    """Lazily initialize and cache the embedding client."""
    global _client
    if _client is None:
        if not settings.openai_api_key:
            raise UpstreamError(
                "No API key configured for embeddings. Set OPENAI_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": settings.openai_api_key}
        if settings.embedding_base_url:
            client_kwargs["base_url"] = settings.embedding_base_url

        _client = OpenAI(**client_kwargs)

        logger.info(
            "Initialized embedding client (model=%s, base_url=%s)",
            settings.embedding_model,
            settings.embedding_base_url or "https://api.openai.com/v1",
        )
    return _client


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def embed_batch(
    texts: Sequence[str],
    batch_size: int | None = None,
) -> list[list[float]]:
    """
    Generate embeddings for a batch of texts.

    Returns embeddings in the SAME ORDER as the input texts.

    Args:
        texts: Text strings to embed.
        batch_size: Number of texts per API call. Defaults to
            settings.embedding_batch_size.

    Raises:
        UpstreamError: If the provider call fails or returns a payload that
            does not contain one vector of the configured dimension per text.
    """
    if not texts:
        return []

    client = _get_client()
    _batch_size = batch_size or settings.embedding_batch_size

    all_embeddings: list[list[float]] = [[] for _ in texts]

    for i in range(0, len(texts), _batch_size):
        batch = list(texts[i : i + _batch_size])
        logger.debug(
            "Embedding batch %d–%d of %d texts (model=%s)",
            i + 1,
            min(i + _batch_size, len(texts)),
            len(texts),
            settings.embedding_model,
        )

        try:
            response = client.embeddings.create(
                model=settings.embedding_model,
                input=batch,
                dimensions=settings.embedding_dimensions,
            )
        except openai.OpenAIError as exc:
            logger.warning("Embedding provider call failed: %s", exc)
            raise UpstreamError(f"embedding provider error: {exc}") from exc

        if len(response.data) != len(batch):
            raise UpstreamError(
                f"embedding provider returned {len(response.data)} vectors "
                f"for {len(batch)} inputs"
            )

        # Items carry their input index; order by it rather than trusting
        # response order.
        for item in sorted(response.data, key=lambda x: x.index):
            if not 0 <= item.index < len(batch):
                raise UpstreamError(f"embedding index {item.index} out of range")
            vector = list(item.embedding or [])
            if len(vector) != settings.embedding_dimensions:
                raise UpstreamError(
                    f"embedding has dimension {len(vector)}, "
                    f"expected {settings.embedding_dimensions}"
                )
            all_embeddings[i + item.index] = vector

    logger.info(
        "Generated %d embeddings (model=%s, dimensions=%d)",
        len(texts),
        settings.embedding_model,
        settings.embedding_dimensions,
    )
    return all_embeddings


def embed_query(text: str) -> list[float]:
    """
    Generate an embedding for a single query string.

    Blocking. The search engine calls it through asyncio.to_thread().
    """
    return embed_batch([text], batch_size=1)[0]


def reset_client() -> None:
    """Drop the cached client (used after settings change, and by tests)."""
    global _client
    _client = None
