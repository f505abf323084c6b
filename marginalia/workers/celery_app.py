# =============================================================================
# Celery Application Configuration
# =============================================================================
#
# ┌──────────────┐     ┌───────┐     ┌──────────────┐     ┌────────────┐
# │ write path   │────▶│ Redis │────▶│ Celery Worker│────▶│ PostgreSQL │
# │ (producer)   │     │(broker)│    │ embed + save │     │ embedding  │
# └──────────────┘     └───────┘     └──────────────┘     └────────────┘
#
#   celery -A marginalia.workers.celery_app worker --loglevel=info
# =============================================================================

from celery import Celery

from marginalia.config import settings

celery_app = Celery(
    "marginalia.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # JSON only; pickle can execute code on deserialization.
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Ack after completion so a crashed worker's task is re-queued.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    # Embedding one annotation takes well under a second; a backfill batch
    # of 100 a few seconds.
    task_soft_time_limit=120,
    task_time_limit=300,

    result_expires=3600,

    include=["marginalia.workers.tasks"],
)
