"""
Unit tests for the application factory, middleware, handlers and health.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from httpx import AsyncClient

from app.core.config import EnvironmentEnum, settings
from app.main import app, create_app, lifespan
from app.shared.cache import ChatListCache


class TestAppCreation:
    """Test cases for create_app."""

    def test_create_app_returns_fastapi_instance(self):
        instance = create_app()

        assert isinstance(instance, FastAPI)
        assert instance.title == "Vision AI API"
        assert isinstance(instance.state.chat_cache, ChatListCache)

    def test_all_domains_are_routed(self):
        paths = {route.path for route in app.routes}

        for path in (
            "/health",
            "/api/users/me",
            "/api/chats/",
            "/api/chats/{chat_id}",
            "/api/chats/{chat_id}/messages",
            "/api/chats/{chat_id}/title",
            "/api/chats/{chat_id}/transcript",
            "/api/search",
            "/api/library",
            "/api/projects/",
            "/api/projects/{project_id}/chats",
            "/api/generate",
            "/api/media/signature",
            "/api/transcribe",
        ):
            assert path in paths


class TestMiddleware:
    @pytest.mark.asyncio
    async def test_request_id_header(self, client: AsyncClient):
        first = await client.get("/")
        second = await client.get("/")

        assert first.headers["X-Request-ID"]
        assert first.headers["X-Request-ID"] != second.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_cors_preflight(self, client: AsyncClient):
        response = await client.options(
            "/api/chats/",
            headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "GET"},
        )

        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


class TestExceptionHandlers:
    """Errors share one envelope."""

    @pytest.mark.asyncio
    async def test_http_exception_handler(self, client: AsyncClient):
        response = await client.get("/does-not-exist")

        assert response.status_code == 404
        body = response.json()
        assert body["status"] == "error"
        assert body["error_code"] == "HTTP_ERROR"
        assert body["request_id"] == response.headers["X-Request-ID"]
        assert "timestamp" in body

    @pytest.mark.asyncio
    async def test_app_exception_handler(self, authenticated_client: AsyncClient):
        response = await authenticated_client.get("/api/chats/00000000-0000-0000-0000-000000000000")

        assert response.status_code == 404
        body = response.json()
        assert body["error_code"] == "CHAT_NOT_FOUND"
        assert body["message"] == "Chat not found"

    @pytest.mark.asyncio
    async def test_validation_exception_handler(self, authenticated_client: AsyncClient):
        response = await authenticated_client.post("/api/projects/", json={"title": ""})

        assert response.status_code == 422
        body = response.json()
        assert body["error_code"] == "VALIDATION_ERROR"
        assert body["details"][0]["loc"][-1] == "title"


class TestHealthEndpoint:
    @pytest.mark.asyncio
    async def test_health_check_success(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["services"]["database"] == "healthy"
        assert body["environment"] == settings.environment.value
        assert "web_search" in body["features"]

    @pytest.mark.asyncio
    async def test_health_check_with_database_error(self, client: AsyncClient):
        broken = MagicMock(side_effect=RuntimeError("connection refused"))

        with patch("app.main.AsyncSessionLocal", broken):
            response = await client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"
        assert response.json()["services"]["database"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_ai_service_status(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(settings, "gemini_api_key", None)

        response = await client.get("/health")

        assert response.json()["services"]["ai_service"] == "not_configured"


class TestRootEndpoint:
    @pytest.mark.asyncio
    async def test_root_endpoint(self, client: AsyncClient):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["name"] == settings.app_name
        assert response.json()["version"] == settings.version


class TestApplicationLifespan:
    @pytest.mark.asyncio
    async def test_lifespan_outside_development(self, monkeypatch):
        """Outside development the schema is left to migrations."""
        monkeypatch.setattr(settings, "environment", EnvironmentEnum.testing)
        instance = FastAPI()
        engine = MagicMock()
        engine.dispose = AsyncMock()

        with patch("app.main.setup_logging"), patch("app.main.engine", engine):
            async with lifespan(instance):
                assert isinstance(instance.state.chat_cache, ChatListCache)
                engine.begin.assert_not_called()

        engine.dispose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lifespan_tolerates_invalid_configuration(self, monkeypatch):
        monkeypatch.setattr(settings, "environment", EnvironmentEnum.testing)
        monkeypatch.setattr(settings, "database_url", None)
        engine = MagicMock()
        engine.dispose = AsyncMock()

        with patch("app.main.setup_logging"), patch("app.main.engine", engine):
            async with lifespan(FastAPI()):
                pass

        engine.dispose.assert_awaited_once()
