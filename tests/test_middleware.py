"""Tests for middleware components."""
import pytest
from httpx import AsyncClient, ASGITransport
from metaconfig.main import app
from metaconfig.config import get_settings

settings = get_settings()

TENANT_HEADERS = {"X-Shop-Domain": "middleware.myshopify.com"}


def client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_correlation_id_injection():
    """Test that correlation ID is auto-generated if not provided."""
    async with client() as c:
        response = await c.get("/v1/configurations", headers=TENANT_HEADERS)
        assert response.status_code == 200
        assert response.headers["X-Correlation-ID"]


@pytest.mark.asyncio
async def test_correlation_id_preserved():
    """Test that provided correlation ID is preserved."""
    async with client() as c:
        response = await c.get(
            "/v1/configurations",
            headers={**TENANT_HEADERS, "X-Correlation-ID": "test-correlation-123"},
        )
        assert response.status_code == 200
        assert response.headers["X-Correlation-ID"] == "test-correlation-123"


@pytest.mark.asyncio
async def test_payload_too_large_rejection():
    """Test that oversized payloads are rejected."""
    async with client() as c:
        response = await c.post(
            "/v1/configurations/preview",
            json={"rules": [{"ref": "1", "kind": "vendor", "match_value": "x" * (settings.MAX_PAYLOAD_SIZE + 1000)}]},
            headers=TENANT_HEADERS,
        )
        assert response.status_code == 413
        data = response.json()
        assert data["error"] == "PayloadTooLarge"
        assert data["max_size"] == settings.MAX_PAYLOAD_SIZE
        assert data["received_size"] > settings.MAX_PAYLOAD_SIZE


@pytest.mark.asyncio
async def test_invalid_json_rejection():
    """Test that invalid JSON is rejected."""
    async with client() as c:
        response = await c.post(
            "/v1/configurations",
            content=b"{invalid json}",
            headers={**TENANT_HEADERS, "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "InvalidJSON"
        assert response.headers["X-Correlation-ID"]


@pytest.mark.asyncio
async def test_reads_are_not_validated():
    async with client() as c:
        response = await c.get(
            "/v1/configurations",
            headers={**TENANT_HEADERS, "Content-Type": "application/json"},
        )
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_missing_required_fields():
    """Test that missing required fields return proper error."""
    async with client() as c:
        # Missing 'kind' on the rule
        response = await c.post(
            "/v1/configurations/preview",
            json={"rules": [{"ref": "1", "match_value": "Acme"}]},
            headers=TENANT_HEADERS,
        )
        assert response.status_code == 422  # FastAPI validation error


@pytest.mark.asyncio
async def test_structured_error_response():
    """Test that domain errors return structured responses."""
    async with client() as c:
        response = await c.get("/v1/configurations/999999", headers=TENANT_HEADERS)
        assert response.status_code == 404
        data = response.json()
        assert data["error"] == "ConfigurationNotFoundError"
        assert data["status_code"] == 404
        assert data["path"] == "/v1/configurations/999999"
        assert data["correlation_id"] == response.headers["X-Correlation-ID"]
