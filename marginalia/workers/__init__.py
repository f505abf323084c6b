# =============================================================================
# Workers Package — Celery Background Tasks
# =============================================================================
#   - celery_app.py: Celery application configuration
#   - tasks.py: embed_annotation (on create / transcript edit) and
#     backfill_embeddings (rows with a NULL embedding)
#
# Embedding calls are network-bound and can fail transiently; running them
# off the request path keeps annotation writes fast and lets Celery retry.
# =============================================================================
