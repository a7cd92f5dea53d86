"""In-memory catalog source."""
from typing import AsyncIterator
import uuid

import structlog

from ..errors import CatalogAPIError
from .base import CatalogSource
from .models import (
    METAOBJECT_ID_PREFIX,
    CatalogItem,
    FieldError,
    MetafieldInput,
    ObjectFieldInput,
    StructuredObject,
    StructuredObjectDefinition,
)

log = structlog.get_logger()


class InMemoryCatalogSource(CatalogSource):
    """
    In-memory implementation of the catalog.

    Serves local development and tests. Item writes replace fields by
    ``namespace.key``, so repeated writes of the same values are no-ops.
    """

    def __init__(
        self,
        items: list[CatalogItem] | None = None,
        definitions: list[StructuredObjectDefinition] | None = None,
    ):
        self._items: list[CatalogItem] = list(items or [])
        self._definitions: dict[str, StructuredObjectDefinition] = {
            d.id: d for d in definitions or []
        }
        self._fields: dict[str, dict[str, MetafieldInput]] = {}
        self._objects: dict[str, StructuredObject] = {}
        self.rejected_items: set[str] = set()
        self.pages_fetched = 0
        self.write_calls = 0

    def add_item(self, item: CatalogItem):
        self._items.append(item)

    def add_definition(self, definition: StructuredObjectDefinition):
        self._definitions[definition.id] = definition

    def item_fields(self, item_id: str) -> dict[str, str]:
        """Current field values of an item keyed by ``namespace.key``."""
        return {k: f.value for k, f in self._fields.get(item_id, {}).items()}

    def get_object(self, object_id: str) -> StructuredObject | None:
        return self._objects.get(object_id)

    async def _paged(self, items: list[CatalogItem], page_size: int) -> AsyncIterator[CatalogItem]:
        for start in range(0, len(items), page_size):
            self.pages_fetched += 1
            for item in items[start:start + page_size]:
                yield item.model_copy(deep=True)

    def iter_items(self, page_size: int = 250) -> AsyncIterator[CatalogItem]:
        return self._paged(self._items, page_size)

    def iter_items_by_vendor(self, vendor: str, page_size: int = 50) -> AsyncIterator[CatalogItem]:
        return self._paged([i for i in self._items if i.vendor == vendor], page_size)

    async def write_item_fields(
        self, item_id: str, fields: list[MetafieldInput]
    ) -> list[FieldError]:
        self.write_calls += 1
        if item_id in self.rejected_items:
            return [FieldError(field=["metafields"], message=f"Item {item_id} rejected the update")]
        if not any(i.id == item_id for i in self._items):
            return [FieldError(field=["id"], message="Product does not exist")]

        stored = self._fields.setdefault(item_id, {})
        for field in fields:
            stored[f"{field.namespace}.{field.key}"] = field
        log.info("catalog.fields_written", item_id=item_id, count=len(fields), adapter="memory")
        return []

    async def resolve_structured_object(
        self,
        definition: StructuredObjectDefinition,
        fields: list[ObjectFieldInput],
        existing_id: str | None = None,
    ) -> str:
        values = {f.key: f.value for f in fields}
        if existing_id:
            existing = self._objects.get(existing_id)
            if existing is None:
                raise CatalogAPIError(
                    f"Structured object {existing_id} does not exist",
                    {"object_id": existing_id},
                )
            existing.fields.update(values)
            return existing.id

        object_id = f"{METAOBJECT_ID_PREFIX}{uuid.uuid4().int % 10**12}"
        self._objects[object_id] = StructuredObject(id=object_id, type=definition.type, fields=values)
        return object_id

    async def fetch_structured_object_definition(
        self, definition_id: str
    ) -> StructuredObjectDefinition:
        definition = self._definitions.get(definition_id)
        if definition is None:
            raise CatalogAPIError(
                f"Structured object definition {definition_id} not found",
                {"definition_id": definition_id},
            )
        return definition

    async def health_check(self) -> bool:
        """In-memory catalog is always healthy."""
        return True
