"""API middleware package."""

from src.lifehub.api.middleware.logging import LoggingMiddleware, configure_structlog

__all__ = ["LoggingMiddleware", "configure_structlog"]
