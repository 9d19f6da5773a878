"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from engagement_service import __version__
from engagement_service.api.deps import close_email_sender
from engagement_service.api.v1.router import api_router
from engagement_service.config import get_settings
from engagement_service.infrastructure.database.connection import close_db
from engagement_service.infrastructure.redis import close_redis
from engagement_service.logging_config import configure_logging
from engagement_service.middleware.error_handler import setup_error_handlers

configure_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    settings = get_settings()
    logger.info(
        "Starting engagement service",
        app_env=settings.app_env,
        debug=settings.debug,
    )

    yield

    await close_email_sender()
    await close_redis()
    await close_db()
    logger.info("Shutting down engagement service")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Engagement Automation API",
        description="Activity tracking, lead scoring and lifecycle email campaigns",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_error_handlers(app)

    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


def run() -> None:
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "engagement_service.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.api_workers,
    )


if __name__ == "__main__":
    run()
