"""Base interface for catalog data sources."""
from abc import ABC, abstractmethod
from typing import AsyncIterator

from .models import (
    CatalogItem,
    FieldError,
    MetafieldInput,
    ObjectFieldInput,
    StructuredObjectDefinition,
)


class CatalogSource(ABC):
    """Abstract interface to the external commerce catalog."""

    @abstractmethod
    def iter_items(self, page_size: int = 250) -> AsyncIterator[CatalogItem]:
        """
        Stream every catalog item, page by page.

        Args:
            page_size: Items requested per page

        Yields:
            Items in catalog order
        """

    @abstractmethod
    def iter_items_by_vendor(self, vendor: str, page_size: int = 50) -> AsyncIterator[CatalogItem]:
        """Stream the items of one vendor."""

    @abstractmethod
    async def write_item_fields(
        self, item_id: str, fields: list[MetafieldInput]
    ) -> list[FieldError]:
        """
        Write metadata fields to an item in a single update.

        Returns:
            Field-level errors reported by the catalog (empty on success)
        """

    @abstractmethod
    async def resolve_structured_object(
        self,
        definition: StructuredObjectDefinition,
        fields: list[ObjectFieldInput],
        existing_id: str | None = None,
    ) -> str:
        """
        Create a structured object, or update ``existing_id`` in place.

        Returns:
            The object's external id
        """

    @abstractmethod
    async def fetch_structured_object_definition(
        self, definition_id: str
    ) -> StructuredObjectDefinition:
        """Fetch the schema of a structured-object type."""

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the catalog is reachable.

        Returns:
            True if healthy, False otherwise
        """

    async def fetch_all_items(self, page_size: int = 250) -> list[CatalogItem]:
        """Collect the whole catalog into a list."""
        return [item async for item in self.iter_items(page_size=page_size)]

    async def fetch_items_by_vendor(self, vendor: str) -> list[CatalogItem]:
        return [item async for item in self.iter_items_by_vendor(vendor)]
