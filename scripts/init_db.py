# =============================================================================
# Database Bootstrap — pgvector Extension, Tables and Indexes
# =============================================================================
#
#   python -m scripts.init_db
#
# Idempotent: CREATE EXTENSION IF NOT EXISTS, and create_all() skips
# existing tables and indexes.
# =============================================================================

import logging

from sqlalchemy import text

from marginalia.db.engine import _get_sync_engine
from marginalia.db.models import Base

logger = logging.getLogger(__name__)


def init_db() -> None:
    engine = _get_sync_engine()
    with engine.begin() as conn:
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        Base.metadata.create_all(conn)
    logger.info("Database initialised: %s", ", ".join(Base.metadata.tables))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
