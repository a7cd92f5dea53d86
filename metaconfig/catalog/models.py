"""Catalog-side data shapes exchanged with a CatalogSource."""
from typing import Any

from pydantic import BaseModel, Field

METAOBJECT_ID_PREFIX = "gid://shopify/Metaobject/"
FILE_ID_PREFIX = "gid://shopify/"
PRODUCT_ID_PREFIX = "gid://shopify/Product/"


class CategoryRef(BaseModel):
    id: str | None = None
    name: str | None = None


class CollectionRef(BaseModel):
    id: str
    title: str = ""


class CatalogItem(BaseModel):
    """A catalog item with the attributes rules can target."""
    id: str = Field(..., description="External item identifier")
    title: str = ""
    vendor: str | None = None
    category: CategoryRef | None = None
    collections: list[CollectionRef] = Field(default_factory=list)


class MetafieldInput(BaseModel):
    """One metadata field as written to a catalog item."""
    namespace: str
    key: str
    type: str
    value: str


class FieldError(BaseModel):
    """Field-level error reported by the catalog for a write."""
    field: list[str] | None = None
    message: str


class ObjectFieldInput(BaseModel):
    """One field of a structured object being created or updated."""
    key: str
    value: str


class ObjectFieldDefinition(BaseModel):
    key: str
    name: str = ""
    type: str = "single_line_text_field"
    required: bool = False
    nested_definition_id: str | None = Field(
        default=None,
        description="Definition of the referenced object for metaobject_reference fields"
    )


class StructuredObjectDefinition(BaseModel):
    """Schema of a structured object (metaobject) type."""
    id: str
    type: str
    name: str = ""
    fields: list[ObjectFieldDefinition] = Field(default_factory=list)

    def field(self, key: str) -> ObjectFieldDefinition | None:
        for field_def in self.fields:
            if field_def.key == key:
                return field_def
        return None


class StructuredObject(BaseModel):
    """A stored structured object, as kept by the in-memory catalog."""
    id: str
    type: str
    fields: dict[str, Any] = Field(default_factory=dict)
