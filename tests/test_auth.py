"""Tests for API key authentication."""
import pytest
from httpx import AsyncClient, ASGITransport
from metaconfig.main import app
from metaconfig.auth.api_key import API_KEY_HEADER, APIKeyRegistry, registry
from unittest.mock import patch

TENANT_HEADERS = {"X-Shop-Domain": "auth.myshopify.com"}


def client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_auth_disabled_allows_access():
    """Test that requests work when auth is disabled (default)."""
    async with client() as c:
        response = await c.get("/v1/configurations", headers=TENANT_HEADERS)
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_auth_enabled_rejects_without_key():
    """Test that requests are rejected when auth is enabled but no key provided."""
    registry.add_key("test-key-123")
    try:
        with patch("metaconfig.auth.api_key.settings") as mock_settings:
            mock_settings.REQUIRE_AUTH = True
            async with client() as c:
                response = await c.get("/v1/configurations", headers=TENANT_HEADERS)
    finally:
        registry.remove_key("test-key-123")

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "ApiKey"
    assert API_KEY_HEADER in response.json()["message"]


@pytest.mark.asyncio
async def test_auth_enabled_rejects_invalid_key():
    registry.add_key("test-key-123")
    try:
        with patch("metaconfig.auth.api_key.settings") as mock_settings:
            mock_settings.REQUIRE_AUTH = True
            async with client() as c:
                response = await c.get(
                    "/v1/stats", headers={API_KEY_HEADER: "wrong-key"}
                )
    finally:
        registry.remove_key("test-key-123")

    assert response.status_code == 403
    assert response.json()["message"] == "Invalid API key"


@pytest.mark.asyncio
async def test_valid_api_key_allows_access():
    """Test that valid API key allows access to protected endpoints."""
    registry.add_key("valid-access-key")
    try:
        with patch("metaconfig.auth.api_key.settings") as mock_settings:
            mock_settings.REQUIRE_AUTH = True
            async with client() as c:
                response = await c.get(
                    "/v1/configurations",
                    headers={**TENANT_HEADERS, API_KEY_HEADER: "valid-access-key"},
                )
    finally:
        registry.remove_key("valid-access-key")

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_auth_enabled_without_keys_allows_access():
    assert registry.count() == 0
    with patch("metaconfig.auth.api_key.settings") as mock_settings:
        mock_settings.REQUIRE_AUTH = True
        async with client() as c:
            response = await c.get("/v1/vendors", headers=TENANT_HEADERS)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_health_is_never_protected():
    registry.add_key("test-key-123")
    try:
        with patch("metaconfig.auth.api_key.settings") as mock_settings:
            mock_settings.REQUIRE_AUTH = True
            async with client() as c:
                response = await c.get("/health")
    finally:
        registry.remove_key("test-key-123")
    assert response.status_code == 200


def test_registry_loads_comma_separated_keys():
    keys = APIKeyRegistry(" one, two ,,three ")
    assert keys.count() == 3
    assert keys.validate("two") is True
    assert keys.validate(" two ") is False


def test_api_key_registry_validation():
    """Test API key registry validation."""
    test_key = "valid-key-456"

    registry.add_key(test_key)
    assert registry.validate(test_key) is True
    assert registry.validate("invalid-key") is False

    registry.remove_key(test_key)
    assert registry.validate(test_key) is False


def test_api_key_registry_count():
    """Test API key count functionality."""
    initial_count = registry.count()

    registry.add_key("count-test-key")
    assert registry.count() == initial_count + 1

    registry.remove_key("count-test-key")
    assert registry.count() == initial_count


def test_remove_nonexistent_key():
    """Test removing a key that doesn't exist."""
    assert registry.remove_key("nonexistent-key") is False


def test_api_key_case_sensitive():
    """Test that API keys are case-sensitive."""
    registry.add_key("CaseSensitiveKey")

    assert registry.validate("CaseSensitiveKey") is True
    assert registry.validate("casesensitivekey") is False
    assert registry.validate("CASESENSITIVEKEY") is False

    registry.remove_key("CaseSensitiveKey")
