"""Health check endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text

from engagement_service import __version__
from engagement_service.config import get_settings
from engagement_service.infrastructure.database.connection import get_db_session
from engagement_service.infrastructure.redis import CacheService, get_cache

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str
    timestamp: str


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool
    checks: dict[str, bool]


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns the service status and version information.
    """
    settings = get_settings()

    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


async def check_postgres() -> bool:
    try:
        async with get_db_session() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(
    cache: CacheService = Depends(get_cache),
) -> ReadinessResponse:
    """
    Readiness check endpoint.

    PostgreSQL is required; Redis only backs the leaderboard cache, so it is
    reported but does not block readiness.
    """
    checks = {
        "postgres": await check_postgres(),
        "redis": await cache.health_check(),
    }

    return ReadinessResponse(ready=checks["postgres"], checks=checks)


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Returns 200 while the process is up."""
    return {"status": "alive"}
