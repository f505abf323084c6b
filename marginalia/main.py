# =============================================================================
# Application Entry Point
# =============================================================================
#
#   uvicorn marginalia.main:app --reload
#
# Mounts the search and feed routers and a /health check. Logging is
# configured once at startup from settings.log_level.
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from marginalia.api.feed import router as feed_router
from marginalia.api.search import router as search_router
from marginalia.config import settings
from marginalia.db.engine import async_engine
from marginalia.models.responses import HealthResponse

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)
    yield
    await async_engine.dispose()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.app_name,
        description="Keyword and semantic search over reading annotations",
        version=settings.app_version,
        lifespan=lifespan,
    )
    application.include_router(search_router)
    application.include_router(feed_router)

    @application.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health() -> HealthResponse:
        return HealthResponse(version=settings.app_version, service=settings.app_name)

    return application


app = create_app()
