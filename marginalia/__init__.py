# =============================================================================
# Marginalia — Reading Annotation Retrieval Service
# =============================================================================
# Keyword and semantic search over spoken/typed reading notes, plus a
# seeded, shuffled feed of those notes for casual re-reading.
#
# Package structure:
#   marginalia/
#   ├── api/          → FastAPI route handlers (search, feed, health)
#   ├── db/           → Database engine, session, and ORM models
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── services/     → Retrieval core (store queries, rank fusion, search
#   │                    engine, feed paginator, embeddings)
#   └── workers/      → Celery tasks that keep annotation embeddings current
# =============================================================================
