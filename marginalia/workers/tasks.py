# =============================================================================
# Celery Task Definitions — Annotation Embeddings
# =============================================================================
#
# embed_annotation(annotation_id)
#   Queued by the annotation write path after create and after every
#   transcript edit. Recomputes the embedding from the current transcript.
#
# backfill_embeddings(batch_size)
#   Embeds every annotation whose embedding is NULL (legacy rows, rows whose
#   embed_annotation exhausted its retries). Run on demand or on a beat.
#   A failed batch is retried row by row; rows rejected on their own are
#   skipped for the rest of the run.
#
# STALE WRITES:
# The provider call happens outside any DB session. The write is
# conditional on the transcript still being the one that was embedded; if
# it changed meanwhile, the write is skipped and the embed_annotation task
# queued by that edit stores the fresh vector.
#
# IMPORTANT: Celery workers are SYNCHRONOUS — sync engine only
# (db/engine.py get_sync_session).
#
# RETRY STRATEGY:
# UpstreamError → retry, max_retries=3, 60s base delay with exponential
# backoff. Anything else is a bug and fails the task immediately.
# =============================================================================

import logging

from sqlalchemy import func, select, update

from marginalia.config import settings
from marginalia.db.engine import get_sync_session
from marginalia.db.models import Annotation
from marginalia.services.embedder import embed_batch
from marginalia.services.errors import UpstreamError
from marginalia.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def _store_embedding(annotation_id: str, transcript: str, embedding: list[float] | None) -> bool:
    """Write `embedding` if the transcript is unchanged. Returns True if a row was updated."""
    with get_sync_session() as session:
        result = session.execute(
            update(Annotation)
            .where(Annotation.id == annotation_id)
            .where(Annotation.transcript == transcript)
            .values(embedding=embedding)
        )
        return result.rowcount > 0


@celery_app.task(
    bind=True,
    name="embed_annotation",
    max_retries=3,
    default_retry_delay=60,
)
def embed_annotation(self, annotation_id: str) -> dict:
    """
    Recompute one annotation's embedding from its current transcript.

    Returns:
        dict with `annotation_id` and `status`: "embedded", "cleared"
        (blank transcript), "stale" (transcript changed mid-task) or
        "missing" (annotation deleted).
    """
    with get_sync_session() as session:
        annotation = session.get(Annotation, annotation_id)
        transcript = annotation.transcript if annotation is not None else None

    if transcript is None:
        logger.warning("embed_annotation: annotation %s not found", annotation_id)
        return {"annotation_id": annotation_id, "status": "missing"}

    if not transcript.strip():
        _store_embedding(annotation_id, transcript, None)
        return {"annotation_id": annotation_id, "status": "cleared"}

    try:
        embedding = embed_batch([transcript], batch_size=1)[0]
    except UpstreamError as exc:
        logger.warning(
            "embed_annotation %s failed (attempt %d): %s",
            annotation_id, self.request.retries + 1, exc,
        )
        raise self.retry(exc=exc, countdown=60 * 2 ** self.request.retries)

    if not _store_embedding(annotation_id, transcript, embedding):
        logger.info("embed_annotation %s: transcript changed, skipping write", annotation_id)
        return {"annotation_id": annotation_id, "status": "stale"}

    logger.info("Embedded annotation %s (model=%s)", annotation_id, settings.embedding_model)
    return {"annotation_id": annotation_id, "status": "embedded"}


def _embed_rows(rows, batch_size: int) -> tuple[list[tuple], list[str]]:
    """
    Embed a backfill batch, isolating rows the provider rejects.

    Returns (row, vector) pairs and the ids of rows that failed on their own.
    Raises UpstreamError when not a single row could be embedded.
    """
    try:
        vectors = embed_batch([row.transcript for row in rows], batch_size=batch_size)
        return list(zip(rows, vectors, strict=True)), []
    except UpstreamError as exc:
        if len(rows) == 1:
            raise
        logger.warning(
            "Backfill batch of %d failed, embedding rows one at a time: %s", len(rows), exc
        )

    embedded: list[tuple] = []
    failed: list[str] = []
    last_error: UpstreamError | None = None
    for row in rows:
        try:
            embedded.append((row, embed_batch([row.transcript], batch_size=1)[0]))
        except UpstreamError as exc:
            logger.warning("Backfill skipping annotation %s: %s", row.id, exc)
            failed.append(row.id)
            last_error = exc

    if not embedded:
        raise last_error
    return embedded, failed


@celery_app.task(
    bind=True,
    name="backfill_embeddings",
    max_retries=3,
    default_retry_delay=60,
)
def backfill_embeddings(self, batch_size: int | None = None) -> dict:
    """
    Embed all annotations that have no embedding, batch by batch.

    A row the provider rejects on its own is skipped for the rest of the run
    so it cannot hold back the rows after it. A batch where no row can be
    embedded is treated as a provider outage and retried.

    Stops when no candidates remain or a batch stores nothing (every row
    in it went stale), so a burst of concurrent edits cannot spin forever.
    """
    _batch_size = batch_size or settings.embedding_batch_size
    embedded = 0
    batches = 0
    skipped: set[str] = set()

    while True:
        stmt = (
            select(Annotation.id, Annotation.transcript)
            .where(Annotation.embedding.is_(None))
            .where(func.length(func.trim(Annotation.transcript)) > 0)
            .order_by(Annotation.created_at, Annotation.id)
            .limit(_batch_size)
        )
        if skipped:
            stmt = stmt.where(Annotation.id.not_in(skipped))

        with get_sync_session() as session:
            rows = session.execute(stmt).all()

        if not rows:
            break

        try:
            pairs, failed = _embed_rows(rows, _batch_size)
        except UpstreamError as exc:
            logger.warning("backfill_embeddings failed after %d rows: %s", embedded, exc)
            raise self.retry(exc=exc, countdown=60 * 2 ** self.request.retries)

        skipped.update(failed)
        stored = sum(
            _store_embedding(row.id, row.transcript, vector) for row, vector in pairs
        )
        embedded += stored
        batches += 1
        logger.info(
            "Backfill batch %d: %d/%d stored, %d skipped",
            batches, stored, len(rows), len(failed),
        )

        if stored == 0 and not failed:
            break

    summary = {"embedded": embedded, "batches": batches, "skipped": len(skipped)}
    logger.info("Backfill complete: %s", summary)
    return summary
