"""
Shopify Admin GraphQL catalog source.

Items are products; metadata fields are product metafields; structured
objects are metaobjects.
"""
from typing import Any, AsyncIterator

import httpx
import structlog

from ..config import get_settings
from ..errors import CatalogAPIError
from .base import CatalogSource
from .models import (
    CatalogItem,
    CategoryRef,
    CollectionRef,
    FieldError,
    MetafieldInput,
    ObjectFieldDefinition,
    ObjectFieldInput,
    StructuredObjectDefinition,
)

log = structlog.get_logger()
settings = get_settings()

PRODUCTS_QUERY = """
query GetProducts($first: Int!, $after: String, $query: String) {
  products(first: $first, after: $after, query: $query) {
    edges {
      node {
        id
        title
        vendor
        category { id name }
        collections(first: 250) { edges { node { id title } } }
      }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""

METAFIELDS_SET_MUTATION = """
mutation SetProductMetafields($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    metafields { namespace key }
    userErrors { field message }
  }
}
"""

METAOBJECT_DEFINITION_QUERY = """
query GetMetaobjectDefinition($id: ID!) {
  metaobjectDefinition(id: $id) {
    id
    name
    type
    fieldDefinitions {
      key
      name
      required
      type { name }
      validations { name value }
    }
  }
}
"""

METAOBJECT_CREATE_MUTATION = """
mutation CreateMetaobject($metaobject: MetaobjectCreateInput!) {
  metaobjectCreate(metaobject: $metaobject) {
    metaobject { id }
    userErrors { field message }
  }
}
"""

METAOBJECT_UPDATE_MUTATION = """
mutation UpdateMetaobject($id: ID!, $metaobject: MetaobjectUpdateInput!) {
  metaobjectUpdate(id: $id, metaobject: $metaobject) {
    metaobject { id }
    userErrors { field message }
  }
}
"""

SHOP_QUERY = "query { shop { id } }"


def _item_from_node(node: dict[str, Any]) -> CatalogItem:
    category = node.get("category")
    collections = (node.get("collections") or {}).get("edges", [])
    return CatalogItem(
        id=node["id"],
        title=node.get("title") or "",
        vendor=node.get("vendor"),
        category=CategoryRef(**category) if category else None,
        collections=[CollectionRef(**edge["node"]) for edge in collections],
    )


def _definition_from_node(node: dict[str, Any]) -> StructuredObjectDefinition:
    fields = []
    for field_def in node.get("fieldDefinitions", []):
        validations = {v["name"]: v["value"] for v in field_def.get("validations") or []}
        fields.append(
            ObjectFieldDefinition(
                key=field_def["key"],
                name=field_def.get("name") or "",
                type=field_def["type"]["name"],
                required=bool(field_def.get("required")),
                nested_definition_id=validations.get("metaobject_definition_id"),
            )
        )
    return StructuredObjectDefinition(
        id=node["id"], type=node["type"], name=node.get("name") or "", fields=fields
    )


class ShopifyCatalogSource(CatalogSource):
    """Catalog source backed by the Shopify Admin GraphQL API."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str | None = None,
        api_version: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the Shopify catalog source.

        Args:
            shop_domain: Tenant shop domain, e.g. ``example.myshopify.com``
            access_token: Admin API token (defaults to settings.SHOPIFY_ACCESS_TOKEN)
            api_version: Admin API version (defaults to settings.SHOPIFY_API_VERSION)
            transport: Optional httpx transport (used by tests)
        """
        self.shop_domain = shop_domain
        self.access_token = access_token or settings.SHOPIFY_ACCESS_TOKEN
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self._transport = transport
        self.endpoint = f"https://{shop_domain}/admin/api/{self.api_version}/graphql.json"

    async def _execute(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run one GraphQL operation and return its ``data`` object."""
        headers = {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                timeout=settings.CATALOG_TIMEOUT_SECONDS, transport=self._transport
            ) as client:
                response = await client.post(
                    self.endpoint,
                    json={"query": query, "variables": variables or {}},
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            log.error("catalog.request_failed", shop=self.shop_domain, error=str(exc))
            raise CatalogAPIError(str(exc), {"shop": self.shop_domain}) from exc

        if response.status_code != 200:
            log.error(
                "catalog.unexpected_status",
                shop=self.shop_domain,
                status_code=response.status_code,
            )
            raise CatalogAPIError(
                f"Unexpected status {response.status_code}",
                {"status_code": response.status_code, "body": response.text},
            )

        body = response.json()
        if body.get("errors"):
            log.error("catalog.graphql_errors", shop=self.shop_domain, errors=body["errors"])
            raise CatalogAPIError("GraphQL errors", {"errors": body["errors"]})
        return body.get("data") or {}

    async def _paged_products(
        self, page_size: int, search: str | None = None
    ) -> AsyncIterator[CatalogItem]:
        cursor = None
        while True:
            data = await self._execute(
                PRODUCTS_QUERY, {"first": page_size, "after": cursor, "query": search}
            )
            products = data["products"]
            for edge in products["edges"]:
                yield _item_from_node(edge["node"])

            page_info = products["pageInfo"]
            if not page_info["hasNextPage"] or not products["edges"]:
                break
            cursor = page_info["endCursor"]

    def iter_items(self, page_size: int = 250) -> AsyncIterator[CatalogItem]:
        return self._paged_products(page_size)

    def iter_items_by_vendor(self, vendor: str, page_size: int = 50) -> AsyncIterator[CatalogItem]:
        escaped = vendor.replace("\\", "\\\\").replace("'", "\\'")
        return self._paged_products(page_size, search=f"vendor:'{escaped}'")

    async def write_item_fields(
        self, item_id: str, fields: list[MetafieldInput]
    ) -> list[FieldError]:
        metafields = [{"ownerId": item_id, **field.model_dump()} for field in fields]
        data = await self._execute(METAFIELDS_SET_MUTATION, {"metafields": metafields})
        return [FieldError(**e) for e in data["metafieldsSet"]["userErrors"]]

    async def resolve_structured_object(
        self,
        definition: StructuredObjectDefinition,
        fields: list[ObjectFieldInput],
        existing_id: str | None = None,
    ) -> str:
        field_inputs = [f.model_dump() for f in fields]
        if existing_id:
            data = await self._execute(
                METAOBJECT_UPDATE_MUTATION,
                {"id": existing_id, "metaobject": {"fields": field_inputs}},
            )
            result = data["metaobjectUpdate"]
        else:
            data = await self._execute(
                METAOBJECT_CREATE_MUTATION,
                {"metaobject": {"type": definition.type, "fields": field_inputs}},
            )
            result = data["metaobjectCreate"]

        if result["userErrors"]:
            raise CatalogAPIError(
                f"Failed to save metaobject of type {definition.type}",
                {"user_errors": result["userErrors"]},
            )
        return result["metaobject"]["id"]

    async def fetch_structured_object_definition(
        self, definition_id: str
    ) -> StructuredObjectDefinition:
        data = await self._execute(METAOBJECT_DEFINITION_QUERY, {"id": definition_id})
        node = data.get("metaobjectDefinition")
        if not node:
            raise CatalogAPIError(
                f"Metaobject definition {definition_id} not found",
                {"definition_id": definition_id},
            )
        return _definition_from_node(node)

    async def health_check(self) -> bool:
        try:
            await self._execute(SHOP_QUERY)
            return True
        except CatalogAPIError as e:
            log.warning("catalog.health_check_failed", shop=self.shop_domain, error=e.message)
            return False
