"""FastAPI application factory.

Creates the app with logging middleware, CORS, and a lifespan that binds
the configured backend adapter on startup and releases it on shutdown.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.lifehub.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.lifehub.api.v1.router import router as v1_router
from src.lifehub.backend.provider import close_backend, init_backend
from src.lifehub.config import get_settings

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init the backend on startup, close it on shutdown."""
    settings = get_settings()
    configure_structlog()

    backend = await init_backend(settings)
    app.state.backend = backend
    logger.info(
        "app.started",
        backend=backend.provider.value,
        environment=settings.ENVIRONMENT.value,
    )

    yield

    await close_backend()
    app.state.backend = None
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="LifeHub API",
        version="0.1.0",
        description="Personal productivity suite over interchangeable hosted backends",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(LoggingMiddleware)

    app.include_router(v1_router)

    return app


# Module-level app for uvicorn
app = create_app()
