"""Tests for item event intake and product webhooks."""
import uuid
import orjson
import pytest
from httpx import AsyncClient, ASGITransport
from unittest.mock import patch
from metaconfig.main import app
from metaconfig.auth.webhook import compute_signature, verify_signature
from metaconfig.catalog.memory import InMemoryCatalogSource
from metaconfig.catalog.models import CatalogItem
from metaconfig.catalog.registry import catalogs

WARRANTY = {"namespace": "custom", "key": "warranty", "value": "2 years", "value_type": "scalar"}
ITEM_ID = "gid://shopify/Product/1"


def client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def tenant_with_configuration(c):
    tenant = f"shop-{uuid.uuid4().hex[:8]}.myshopify.com"
    catalog = InMemoryCatalogSource(items=[CatalogItem(id=ITEM_ID, title="Shirt", vendor="Acme")])
    catalogs.register(tenant, catalog)
    response = await c.post(
        "/v1/configurations",
        json={"metadata_fields": [WARRANTY], "rules": [{"ref": "1", "kind": "vendor", "match_value": "Acme"}]},
        headers={"X-Shop-Domain": tenant},
    )
    assert response.status_code == 201
    return tenant, catalog


def webhook_body(vendor="Acme"):
    return orjson.dumps({
        "id": 1,
        "admin_graphql_api_id": ITEM_ID,
        "title": "Shirt",
        "vendor": vendor,
        "product_type": "Shirts",
    })


@pytest.mark.asyncio
async def test_item_event_applies_matching_configurations():
    async with client() as c:
        tenant, catalog = await tenant_with_configuration(c)
        response = await c.post(
            "/v1/events",
            json={
                "event_type": "created",
                "tenant": tenant,
                "item": {"id": ITEM_ID, "title": "Shirt", "vendor": "Acme"},
            },
        )

    assert response.status_code == 202
    data = response.json()
    assert data["status"] == "accepted"
    assert data["id"]
    assert catalog.item_fields(ITEM_ID) == {"custom.warranty": "2 years"}


@pytest.mark.asyncio
async def test_item_event_rejects_unknown_event_type():
    async with client() as c:
        response = await c.post(
            "/v1/events",
            json={"event_type": "deleted", "tenant": "x.myshopify.com", "item": {"id": ITEM_ID}},
        )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_product_webhook_without_secret():
    async with client() as c:
        tenant, catalog = await tenant_with_configuration(c)
        response = await c.post(
            "/v1/webhooks/products",
            content=webhook_body(),
            headers={
                "Content-Type": "application/json",
                "X-Shopify-Topic": "products/update",
                "X-Shopify-Shop-Domain": tenant,
            },
        )

    assert response.status_code == 202
    assert response.json()["status"] == "accepted"
    assert catalog.item_fields(ITEM_ID) == {"custom.warranty": "2 years"}


@pytest.mark.asyncio
async def test_product_webhook_verifies_signature():
    body = webhook_body()
    async with client() as c:
        tenant, catalog = await tenant_with_configuration(c)
        with patch("metaconfig.auth.webhook.settings") as mock_settings:
            mock_settings.WEBHOOK_SECRET = "s3cret"
            rejected = await c.post(
                "/v1/webhooks/products",
                content=body,
                headers={
                    "Content-Type": "application/json",
                    "X-Shopify-Topic": "products/create",
                    "X-Shopify-Shop-Domain": tenant,
                    "X-Shopify-Hmac-Sha256": compute_signature("wrong", body),
                },
            )
            assert catalog.write_calls == 0

            accepted = await c.post(
                "/v1/webhooks/products",
                content=body,
                headers={
                    "Content-Type": "application/json",
                    "X-Shopify-Topic": "products/create",
                    "X-Shopify-Shop-Domain": tenant,
                    "X-Shopify-Hmac-Sha256": compute_signature("s3cret", body),
                },
            )

    assert rejected.status_code == 401
    assert rejected.json()["message"] == "Invalid webhook signature"
    assert accepted.status_code == 202
    assert catalog.item_fields(ITEM_ID) == {"custom.warranty": "2 years"}


@pytest.mark.asyncio
async def test_product_webhook_ignores_other_topics():
    async with client() as c:
        tenant, catalog = await tenant_with_configuration(c)
        response = await c.post(
            "/v1/webhooks/products",
            content=webhook_body(),
            headers={
                "Content-Type": "application/json",
                "X-Shopify-Topic": "products/delete",
                "X-Shopify-Shop-Domain": tenant,
            },
        )

    assert response.status_code == 202
    assert response.json() == {"id": None, "status": "ignored"}
    assert catalog.write_calls == 0


@pytest.mark.asyncio
async def test_product_webhook_with_unreadable_body():
    async with client() as c:
        response = await c.post(
            "/v1/webhooks/products",
            content=b"not json",
            headers={
                "Content-Type": "text/plain",
                "X-Shopify-Topic": "products/create",
                "X-Shopify-Shop-Domain": "x.myshopify.com",
            },
        )
    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_signature_helpers():
    body = b'{"id": 1}'
    signature = compute_signature("s3cret", body)

    assert verify_signature("s3cret", body, signature)
    assert not verify_signature("s3cret", body + b" ", signature)
    assert not verify_signature("s3cret", body, None)
