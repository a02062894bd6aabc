"""Backend provider -- selects one adapter at startup and shares it process-wide.

The provider is read from settings once; switching backends means
restarting the process. Adapter modules are imported only for the selected
provider so the other SDKs are never loaded.
"""

from __future__ import annotations

import structlog

from src.lifehub.backend.service import BackendService
from src.lifehub.config import BackendProvider, Settings, get_settings

logger = structlog.get_logger(__name__)

# ── Module-level backend (initialized in app lifespan) ──────────────────────

_backend: BackendService | None = None


async def create_backend(settings: Settings) -> BackendService:
    """Build the adapter named by ``settings.BACKEND_PROVIDER``.

    Raises:
        ValueError: If required settings for the provider are empty.
    """
    missing = settings.missing_backend_settings()
    if missing:
        raise ValueError(
            f"Missing settings for backend {settings.BACKEND_PROVIDER.value!r}: {', '.join(missing)}"
        )

    provider = settings.BACKEND_PROVIDER
    if provider == BackendProvider.supabase:
        from src.lifehub.backend.supabase_adapter import create_supabase_backend

        return await create_supabase_backend(settings)
    if provider == BackendProvider.firebase:
        from src.lifehub.backend.firebase_adapter import create_firebase_backend

        return create_firebase_backend(settings)
    if provider == BackendProvider.appwrite:
        from src.lifehub.backend.appwrite_adapter import create_appwrite_backend

        return create_appwrite_backend(settings)
    raise ValueError(f"Unknown backend provider: {provider!r}")


async def init_backend(settings: Settings | None = None) -> BackendService:
    """Create the shared backend if it does not exist yet."""
    global _backend
    if _backend is None:
        settings = settings or get_settings()
        _backend = await create_backend(settings)
        logger.info("backend.initialized", provider=_backend.provider.value)
    return _backend


def get_backend() -> BackendService:
    """Return the shared backend.

    Raises:
        RuntimeError: If init_backend has not run.
    """
    if _backend is None:
        raise RuntimeError("Backend not initialized. Call init_backend() first.")
    return _backend


async def close_backend() -> None:
    """Close and forget the shared backend."""
    global _backend
    if _backend is not None:
        await _backend.close()
        logger.info("backend.closed", provider=_backend.provider.value)
        _backend = None
