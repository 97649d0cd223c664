#!/usr/bin/env python3
"""
FastAPI Application Entry Point

Builds the HTTP app around a `Container`: the lifespan wires the container,
connects backends and (when RUN_WORKER is set) starts the delivery worker in
the same process; shutdown stops the worker before releasing clients.

Author: Platform Team
Date: 2025-12-14
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from ledger_resilience.application.api.middleware import (
    CorrelationIdMiddleware,
    ErrorHandlingMiddleware,
    RateLimitMiddleware,
    register_exception_handlers,
)
from ledger_resilience.application.api.routes import health_router, metrics_router, webhooks_router
from ledger_resilience.application.container import Container
from ledger_resilience.core.config.settings import Settings, get_settings
from ledger_resilience.core.logging.logger import get_logger, setup_logging

logger = get_logger(__name__)


def create_app(settings: Settings | None = None, container: Container | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Defaults to `get_settings()`
        container: Prebuilt container (tests); built in the lifespan otherwise
    """
    settings = settings or (container.settings if container else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)
        logger.info(
            "Starting ledger resilience core",
            environment=settings.app.ENVIRONMENT,
            version=settings.app.APP_VERSION,
        )

        app.state.container = container or Container.build(settings)
        await app.state.container.startup()
        try:
            yield
        finally:
            logger.info("Shutting down application")
            await app.state.container.shutdown()
            logger.info("Application shutdown complete")

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Resilience and webhook delivery core for the bookkeeping platform",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Middleware runs in reverse order of registration: correlation id is
    # bound first, then errors are caught, then requests are rate limited.
    app.add_middleware(
        RateLimitMiddleware,
        trusted_proxies=settings.rate_limit.RATE_LIMIT_TRUSTED_PROXIES,
        enabled=settings.rate_limit.RATE_LIMIT_ENABLED,
    )
    app.add_middleware(
        ErrorHandlingMiddleware,
        include_traceback=(settings.app.ENVIRONMENT == "development"),
    )
    app.add_middleware(CorrelationIdMiddleware)

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(webhooks_router)

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "name": settings.app.APP_NAME,
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "docs": "/docs",
            "health": "/health",
        }

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "ledger_resilience.application.app:create_app",
        factory=True,
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        reload=settings.app.ENVIRONMENT == "development",
        log_level=settings.logging.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
