"""Route tests for health endpoints."""

import pytest

pytestmark = pytest.mark.integration


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_ready_when_initialized(self, client):
        response = await client.get("/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    async def test_ready_reports_init_error(self, client, app):
        app.state.init_error = "boom"

        response = await client.get("/ready")

        assert response.status_code == 503

    async def test_detailed(self, client):
        response = await client.get("/health/detailed")

        assert response.json()["database"] is True

    async def test_request_headers_added(self, client):
        response = await client.get("/health")

        assert "x-request-id" in response.headers
        assert "x-request-duration-ms" in response.headers
