"""Main FastAPI application."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from redis.asyncio import Redis

from finwise import __version__, auth
from finwise.config import get_settings
from finwise.db import close_db, init_db
from finwise.routers import (
    admin_router,
    auth_router,
    billing_router,
    categories_router,
    currency_router,
    dashboard_router,
    expenses_router,
    health_router,
    income_router,
    subscription_router,
    users_router,
)
from finwise.utils import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    configure_logging()

    # Initialize Redis
    logger.info("Initializing Redis connection...")
    auth.dependencies.redis_client = Redis.from_url(
        str(settings.redis_url),
        decode_responses=False,
    )

    # Initialize database
    logger.info("Initializing database...")
    await init_db()

    # Initialize Sentry if configured
    if settings.sentry_dsn:
        import sentry_sdk

        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment.value,
            traces_sample_rate=0.1,
        )
        logger.info("Sentry initialized")

    if not settings.stripe_enabled:
        logger.warning("Stripe not configured, billing endpoints will return 503")

    logger.info("Application startup complete")

    yield

    # Cleanup
    logger.info("Shutting down...")
    if auth.dependencies.redis_client:
        await auth.dependencies.redis_client.close()
        auth.dependencies.redis_client = None
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Finwise API",
        description="""
## Personal Finance API

Track expenses and income in any supported currency, see them rolled up in
your own default currency, and upgrade to Pro through Stripe.

### Authentication

Register or log in under `/api/v1/auth` and pass the returned token as
`Authorization: Bearer <token>`.

### Plans

| Plan | Expenses |
|------|----------|
| Free | 50 |
| Pro | Unlimited |

        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Prometheus metrics
    if settings.prometheus_enabled:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    # Include routers
    app.include_router(health_router)
    for router in (
        auth_router,
        users_router,
        currency_router,
        subscription_router,
        billing_router,
        categories_router,
        expenses_router,
        income_router,
        dashboard_router,
        admin_router,
    ):
        app.include_router(router, prefix="/api/v1")

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )

        if settings.debug:
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "internal_server_error",
                    "message": str(exc),
                    "type": type(exc).__name__,
                },
            )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    return app


# Create app instance
app = create_app()
