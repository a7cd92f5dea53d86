from pydantic import BaseModel, Field
from typing import Any, Dict, Literal
import uuid, time

from .catalog.models import PRODUCT_ID_PREFIX, CatalogItem, CategoryRef

SHOPIFY_TOPICS = {"products/create": "created", "products/update": "updated"}


class ItemEvent(BaseModel):
    """Catalog item created/updated notification."""
    event_type: Literal["created", "updated"]
    tenant: str = Field(..., description="Shop domain the item belongs to")
    item: CatalogItem = Field(..., description="Item attributes at notification time")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    ts: float = Field(default_factory=lambda: time.time())

    @classmethod
    def from_shopify_webhook(cls, topic: str, shop: str, payload: Dict[str, Any]) -> "ItemEvent":
        """
        Build an event from a products/create or products/update webhook body.

        Webhook bodies carry no collection membership, so collection rules
        cannot match these items.
        """
        if topic not in SHOPIFY_TOPICS:
            raise ValueError(f"Unsupported webhook topic: {topic}")
        if not isinstance(payload, dict) or not (payload.get("admin_graphql_api_id") or payload.get("id")):
            raise ValueError("Webhook payload carries no product id")

        item_id = payload.get("admin_graphql_api_id") or f"{PRODUCT_ID_PREFIX}{payload['id']}"
        category = payload.get("category") or {}
        category_name = category.get("name") or payload.get("product_type") or None
        category_id = category.get("admin_graphql_api_id")

        item = CatalogItem(
            id=item_id,
            title=payload.get("title") or "",
            vendor=payload.get("vendor") or None,
            category=CategoryRef(id=category_id, name=category_name)
            if (category_id or category_name) else None,
        )
        return cls(event_type=SHOPIFY_TOPICS[topic], tenant=shop, item=item)


class ConfigurationFailure(BaseModel):
    configuration_id: int
    message: str


class EventOutcome(BaseModel):
    """What handling one item event did."""
    event_id: str
    item_id: str
    matched: list[int] = Field(default_factory=list)
    applied: list[int] = Field(default_factory=list)
    failures: list[ConfigurationFailure] = Field(default_factory=list)
    error: str | None = None
