"""Health check and status endpoints."""

from fastapi import APIRouter, Depends
from redis.asyncio import Redis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from finwise import __version__
from finwise.auth.dependencies import get_redis
from finwise.config import get_settings
from finwise.db import get_db
from finwise.models import HealthCheck

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthCheck,
    summary="Health check",
    description="Check the health of the API and its dependencies.",
)
async def health_check(
    redis: Redis = Depends(get_redis),
    db: AsyncSession = Depends(get_db),
) -> HealthCheck:
    """Check health of all services."""
    settings = get_settings()

    # Check Redis
    try:
        await redis.ping()
        redis_status = "healthy"
    except Exception:
        redis_status = "unhealthy"

    # Check database
    try:
        await db.execute(text("SELECT 1"))
        database_status = "healthy"
    except Exception:
        database_status = "unhealthy"

    overall_status = "healthy"
    if "unhealthy" in (redis_status, database_status):
        overall_status = "degraded"

    return HealthCheck(
        status=overall_status,
        version=__version__,
        environment=settings.environment.value,
        database=database_status,
        redis=redis_status,
    )


@router.get(
    "/",
    summary="API information",
    description="Get basic API information.",
)
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": "Finwise API",
        "version": __version__,
        "description": "Personal finance tracking with multi-currency support",
        "documentation": "/docs",
        "health": "/health",
    }
