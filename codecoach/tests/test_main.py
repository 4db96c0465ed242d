"""Tests for the FastAPI app — health, CORS, exception envelopes, request logging.

Uses httpx.AsyncClient with ASGITransport (async test client). All tests use
explicit @pytest.mark.asyncio (strict mode).
"""

import logging

import httpx
import pytest
from fastapi import APIRouter
from httpx import ASGITransport
from pydantic import BaseModel

from codecoach.api import deps
from codecoach.api.deps import get_services
from codecoach.main import app


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client() -> httpx.AsyncClient:
    """Async test client wired to the app."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


# ---------------------------------------------------------------------------
# Helper: mount tiny test routes for the exception handlers
# ---------------------------------------------------------------------------

_test_router = APIRouter(prefix="/api/v1/test")


class _BodyModel(BaseModel):
    name: str
    line: int


@_test_router.post("/validated")
async def validated_route(body: _BodyModel) -> dict:
    return {"name": body.name}


@_test_router.get("/explode")
async def exploding_route() -> dict:
    raise RuntimeError("Analysis worker fell over")


app.include_router(_test_router)


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


class TestHealthEndpoint:
    """GET /api/v1/health."""

    @pytest.mark.asyncio
    async def test_health_returns_200(self, client: httpx.AsyncClient) -> None:
        async with client:
            resp = await client.get("/api/v1/health")
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_health_returns_api_response(self, client: httpx.AsyncClient) -> None:
        async with client:
            resp = await client.get("/api/v1/health")
        body = resp.json()
        assert body["ok"] is True
        assert body["data"]["status"] == "healthy"
        assert body["error"] is None


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


class TestCORS:
    """CORS middleware — allows configured origins, blocks others."""

    @pytest.mark.asyncio
    async def test_allowed_origin_gets_cors_header(self, client: httpx.AsyncClient) -> None:
        async with client:
            resp = await client.options(
                "/api/v1/health",
                headers={
                    "Origin": "http://localhost:3000",
                    "Access-Control-Request-Method": "GET",
                },
            )
        assert resp.headers.get("access-control-allow-origin") == "http://localhost:3000"

    @pytest.mark.asyncio
    async def test_disallowed_origin_no_cors_header(self, client: httpx.AsyncClient) -> None:
        async with client:
            resp = await client.options(
                "/api/v1/health",
                headers={
                    "Origin": "http://evil.example.com",
                    "Access-Control-Request-Method": "GET",
                },
            )
        assert "access-control-allow-origin" not in resp.headers


# ---------------------------------------------------------------------------
# Service graph
# ---------------------------------------------------------------------------


class TestServiceGraph:
    """The app builds its services at startup; routes reach them via Depends."""

    def test_services_built_at_startup(self) -> None:
        assert deps._services is not None
        assert get_services() is deps._services

    def test_one_orchestrator_shared(self) -> None:
        services = get_services()
        assert services.analyzer._orchestrator is services.orchestrator
        assert services.guide._orchestrator is services.orchestrator
        assert services.quickfix._orchestrator is services.orchestrator
        assert services.completion._orchestrator is services.orchestrator

    @pytest.mark.asyncio
    async def test_missing_services_returns_503(
        self, client: httpx.AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(deps, "_services", None)
        async with client:
            resp = await client.get("/api/v1/documents/work/a.cpp/diagnostics")
        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "SERVICE_UNAVAILABLE"


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


class TestExceptionHandlers:
    """Global exception handling — consistent ApiResponse envelopes."""

    @pytest.mark.asyncio
    async def test_unhandled_exception_returns_500(self, client: httpx.AsyncClient) -> None:
        async with client:
            resp = await client.get("/api/v1/test/explode")
        assert resp.status_code == 500
        body = resp.json()
        assert body["ok"] is False
        assert body["error"]["code"] == "INTERNAL_ERROR"
        assert body["error"]["message"] == "An unexpected error occurred."

    @pytest.mark.asyncio
    async def test_unhandled_exception_no_traceback_in_body(
        self, client: httpx.AsyncClient
    ) -> None:
        async with client:
            resp = await client.get("/api/v1/test/explode")
        body_text = resp.text
        assert "RuntimeError" not in body_text
        assert "traceback" not in body_text.lower()
        assert "fell over" not in body_text

    @pytest.mark.asyncio
    async def test_validation_error_returns_422(self, client: httpx.AsyncClient) -> None:
        async with client:
            resp = await client.post(
                "/api/v1/test/validated",
                json={"name": "test"},  # missing 'line' field
            )
        assert resp.status_code == 422
        body = resp.json()
        assert body["ok"] is False
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert "line" in body["error"]["message"]

    @pytest.mark.asyncio
    async def test_404_returns_api_response(self, client: httpx.AsyncClient) -> None:
        async with client:
            resp = await client.get("/api/v1/nonexistent")
        assert resp.status_code == 404
        body = resp.json()
        assert body["ok"] is False
        assert body["error"]["code"] == "HTTP_ERROR"


# ---------------------------------------------------------------------------
# Request logging
# ---------------------------------------------------------------------------


class TestRequestLogging:
    """Request logging middleware — captures method, path, status, duration."""

    @pytest.mark.asyncio
    async def test_request_is_logged(
        self, client: httpx.AsyncClient, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO, logger="codecoach"):
            async with client:
                await client.get("/api/v1/health")

        log_messages = [r.message for r in caplog.records if r.name == "codecoach"]
        assert any("GET" in msg and "/api/v1/health" in msg and "200" in msg for msg in log_messages)

    @pytest.mark.asyncio
    async def test_log_includes_duration(
        self, client: httpx.AsyncClient, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO, logger="codecoach"):
            async with client:
                await client.get("/api/v1/health")

        log_messages = [r.message for r in caplog.records if r.name == "codecoach"]
        assert any("ms" in msg for msg in log_messages)
