"""API tests for the health endpoint and the app lifespan.

Uses httpx AsyncClient over ASGITransport; the backend is either injected
through the provider singleton or left uninitialized to check the 503 path.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
import structlog
from httpx import ASGITransport, AsyncClient

from src.lifehub.api.deps import get_backend_service
from src.lifehub.backend import provider
from src.lifehub.main import create_app, lifespan


def _fake_backend(name: str) -> MagicMock:
    backend = MagicMock()
    backend.provider.value = name
    return backend


@pytest.fixture
def app():
    return create_app()


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestHealth:
    async def test_reports_active_backend(self, client, monkeypatch):
        monkeypatch.setattr(provider, "_backend", _fake_backend("firebase"))

        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["backend"] == "firebase"
        assert "environment" in body

    async def test_503_before_backend_initialized(self, client, monkeypatch):
        monkeypatch.setattr(provider, "_backend", None)

        response = await client.get("/health")

        assert response.status_code == 503
        assert response.json()["detail"] == "Backend not initialized"

    async def test_dependency_override(self, app, client):
        app.dependency_overrides[get_backend_service] = lambda: _fake_backend("appwrite")
        try:
            response = await client.get("/health")
        finally:
            app.dependency_overrides.clear()

        assert response.json()["backend"] == "appwrite"

    async def test_request_id_header(self, client, monkeypatch):
        monkeypatch.setattr(provider, "_backend", _fake_backend("supabase"))
        response = await client.get("/health")
        assert response.headers["X-Request-ID"]


class TestLifespan:
    async def test_binds_and_releases_backend(self, app):
        backend = _fake_backend("supabase")
        with patch("src.lifehub.main.configure_structlog"), \
                patch("src.lifehub.main.init_backend", AsyncMock(return_value=backend)) as init, \
                patch("src.lifehub.main.close_backend", AsyncMock()) as close:
            async with lifespan(app):
                assert app.state.backend is backend
                init.assert_awaited_once()
                close.assert_not_awaited()

        close.assert_awaited_once()
        assert app.state.backend is None


class TestRequestContext:
    async def test_context_cleared_after_failed_request(self, app, monkeypatch):
        monkeypatch.setattr(provider, "_backend", _fake_backend("supabase"))

        async def _broken():
            raise RuntimeError("handler failure")

        app.add_api_route("/broken", _broken)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            with pytest.raises(RuntimeError, match="handler failure"):
                await ac.get("/broken")

        assert structlog.contextvars.get_contextvars() == {}
