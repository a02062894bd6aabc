"""Structured request logging middleware.

Every request gets a request_id (echoed back as X-Request-ID) that is bound
into structlog's context together with the active backend provider, so
adapter log events emitted while serving the request carry both. The
middleware itself logs method, path, status_code and duration_ms once the
response is ready.

Production renders JSON; every other environment uses the console renderer.
"""

from __future__ import annotations

import logging
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.lifehub.config import Environment, get_settings

logger = structlog.get_logger(__name__)


def configure_structlog() -> None:
    """Route structlog through stdlib logging at LOG_LEVEL."""
    settings = get_settings()
    logging.basicConfig(format="%(message)s", level=settings.LOG_LEVEL.upper())

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.ENVIRONMENT == Environment.production
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class LoggingMiddleware(BaseHTTPMiddleware):
    """Bind request context for the duration of a request and log its outcome."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            backend=get_settings().BACKEND_PROVIDER.value,
        )
        start_time = time.monotonic()

        try:
            return await self._handle(request, call_next, request_id, start_time)
        finally:
            structlog.contextvars.clear_contextvars()

    async def _handle(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
        request_id: str,
        start_time: float,
    ) -> Response:
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "request_error",
                method=request.method,
                path=request.url.path,
                status_code=500,
                duration_ms=round((time.monotonic() - start_time) * 1000, 2),
            )
            raise

        duration_ms = round((time.monotonic() - start_time) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        if response.status_code >= 500:
            log_method = logger.error
        elif response.status_code >= 400:
            log_method = logger.warning
        else:
            log_method = logger.info
        log_method(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        return response
