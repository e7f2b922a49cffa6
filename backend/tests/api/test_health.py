"""Tests for the application factory: health check and middleware."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from aperture.main import create_app


@pytest.mark.asyncio
async def test_health_check_and_security_headers() -> None:
    transport = ASGITransport(app=create_app())
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["app"] == "Aperture"
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["x-frame-options"] == "DENY"


@pytest.mark.asyncio
async def test_unconfigured_source_is_503() -> None:
    """Without ServiceNow credentials, creating a session reports 503."""
    from aperture.config import Settings, get_settings

    app = create_app()
    app.dependency_overrides[get_settings] = lambda: Settings(
        RECORD_SOURCE="servicenow", SERVICENOW_INSTANCE=None
    )
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.post("/api/v1/sessions", json={})

    assert response.status_code == 503
    assert "not configured" in response.json()["detail"]
