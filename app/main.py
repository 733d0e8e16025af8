"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator
from datetime import UTC, datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from app.api.errors import register_exception_handlers
from app.api.v1 import webhooks
from app.api.v1.router import api_router
from app.config import settings
from app.core.logging import setup_logging
from app.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.database import close_db, init_db
from app.services.gateway_service import get_payment_gateway
from app.services.notification_service import notification_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    # Startup
    setup_logging()
    if settings.debug:
        await init_db()

    # Fail fast on a live gateway outside production
    gateway = get_payment_gateway()
    logger.info(
        f"{settings.app_name} {settings.app_version} starting "
        f"({settings.environment}, gateway={gateway.gateway_type.value})"
    )

    yield

    # Shutdown
    await notification_service.close()
    await close_db()


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Activity booking API with hosted checkout payments",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # Middleware (order matters - last added = outermost)
    # 1. Gzip compression (innermost)
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # 2. CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Trace-Id"],
    )

    # 3. Security headers
    app.add_middleware(SecurityHeadersMiddleware)

    # 4. Request logging and trace ids (outermost)
    app.add_middleware(RequestLoggingMiddleware)

    # Include API routes
    app.include_router(api_router, prefix=settings.api_prefix)

    # Payment gateways are configured to call /webhook
    app.include_router(webhooks.router, prefix="/webhook", tags=["Webhooks"])

    @app.get("/health")
    async def health_check() -> dict:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.get("/")
    async def root() -> dict:
        """Root endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs" if settings.debug else None,
        }

    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
