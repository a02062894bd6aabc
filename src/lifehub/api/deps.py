"""FastAPI dependency injection for the active backend.

Endpoints declare ``backend: BackendService = Depends(get_backend_service)``
and never import an adapter directly.
"""

from __future__ import annotations

from fastapi import HTTPException, status

from src.lifehub.backend.provider import get_backend
from src.lifehub.backend.service import BackendService


async def get_backend_service() -> BackendService:
    """Return the shared backend, or 503 if startup did not initialize one."""
    try:
        return get_backend()
    except RuntimeError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Backend not initialized",
        )
