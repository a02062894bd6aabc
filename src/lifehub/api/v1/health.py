"""Health check endpoint.

Reports liveness plus which backend provider this process is bound to.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from src.lifehub.api.deps import get_backend_service
from src.lifehub.backend.service import BackendService
from src.lifehub.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(backend: BackendService = Depends(get_backend_service)):
    """Basic liveness check.

    Returns 503 (via the dependency) until the backend has been initialized.
    """
    settings = get_settings()
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT.value,
        "backend": backend.provider.value,
    }
