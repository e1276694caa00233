"""FastAPI application factory."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.api.v1.router import api_router
from src.core.config import settings
from src.core.exceptions import register_exception_handlers
from src.core.logging import setup_logging
from src.db.session import dispose_engine


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.PROJECT_NAME} ({settings.ENV})")
    yield
    await dispose_engine()
    logger.info(f"Stopped {settings.PROJECT_NAME}")


def create_application() -> FastAPI:
    """Build the application with routers and exception handlers attached."""

    setup_logging()
    application = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        lifespan=lifespan,
    )
    register_exception_handlers(application)
    application.include_router(api_router, prefix=f"{settings.API_PREFIX}/v1")

    @application.get("/health", tags=["health"])
    async def health():
        return {"status": "ok", "env": settings.ENV}

    return application


app = create_application()

__all__ = ["create_application", "app"]
