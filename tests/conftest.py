"""Shared fixtures for backend adapter tests.

Provides:
- Settings with every provider configured and fast polling intervals
- One ``backend`` fixture parametrized over all three adapters, each wired to
  in-memory SDK fakes (see backend_fakes.py)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from backend_fakes import (
    build_appwrite_backend,
    build_firebase_backend,
    build_supabase_backend,
    make_settings,
)
from src.lifehub.backend.service import BackendService
from src.lifehub.config import Settings


@pytest.fixture
def settings() -> Settings:
    return make_settings()


_BUILDERS = {
    "supabase": build_supabase_backend,
    "firebase": build_firebase_backend,
    "appwrite": build_appwrite_backend,
}


@pytest_asyncio.fixture(params=sorted(_BUILDERS))
async def backend(request, settings) -> AsyncGenerator[BackendService, None]:
    """A real adapter over fakes, closed after the test."""
    service, _fakes = _BUILDERS[request.param](settings)
    yield service
    await service.close()

