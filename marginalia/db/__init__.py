# =============================================================================
# Database Package
# =============================================================================
# Provides async SQLAlchemy engine, session management, and ORM models.
#
# Key exports:
#   - get_async_session: FastAPI dependency for database sessions
#   - get_sync_session: context manager for Celery workers
#   - Base, Book, Annotation: ORM models
# =============================================================================
