"""Configuration and metadata field spec models."""
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ..catalog.models import CatalogItem
from ..rules.models import ConfigurationType, Rule, RuleInput


class StorefrontPosition(str, Enum):
    """Fixed injection points on the storefront product page."""
    AFTER_TITLE = "after_title"
    AFTER_PRICE = "after_price"
    AFTER_DESCRIPTION = "after_description"
    AFTER_ADD_TO_CART = "after_add_to_cart"


DisplayType = Literal["energy_label", "product_detail_icon", "warranty_document"]


class _FieldSpecBase(BaseModel):
    namespace: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1)
    display_type: DisplayType | None = None

    @property
    def qualified_key(self) -> str:
        return f"{self.namespace}.{self.key}"


class ScalarFieldSpec(_FieldSpecBase):
    value_type: Literal["scalar"] = "scalar"
    type: str = Field(default="single_line_text_field", description="Platform metafield type")
    value: str | int | float | bool | None = None

    @property
    def write_type(self) -> str:
        return self.type


class ObjectReferenceFieldSpec(_FieldSpecBase):
    """
    Reference to one structured object.

    ``value`` is either a resolved object id or a field map that still has
    to be created (or, with ``object_id`` set, updated) externally.
    """
    value_type: Literal["metaobject_reference"]
    value: str | dict[str, Any] | None = None
    definition_id: str | None = Field(default=None, description="Structured-object definition")
    object_id: str | None = Field(default=None, description="Existing object to update in place")

    @property
    def write_type(self) -> str:
        return self.value_type


class ObjectReferenceListFieldSpec(_FieldSpecBase):
    value_type: Literal["list.metaobject_reference"]
    value: list[str | dict[str, Any]] = Field(default_factory=list)
    definition_id: str | None = None

    @property
    def write_type(self) -> str:
        return self.value_type


class FileReferenceFieldSpec(_FieldSpecBase):
    value_type: Literal["file_reference"]
    value: str | None = None

    @property
    def write_type(self) -> str:
        return self.value_type


class FileReferenceListFieldSpec(_FieldSpecBase):
    value_type: Literal["list.file_reference"]
    value: list[str] = Field(default_factory=list)

    @property
    def write_type(self) -> str:
        return self.value_type


FieldSpec = Annotated[
    Union[
        ScalarFieldSpec,
        ObjectReferenceFieldSpec,
        ObjectReferenceListFieldSpec,
        FileReferenceFieldSpec,
        FileReferenceListFieldSpec,
    ],
    Field(discriminator="value_type"),
]

field_specs_adapter = TypeAdapter(list[FieldSpec])


class Configuration(BaseModel):
    """A stored configuration (rules are loaded separately)."""
    model_config = ConfigDict(use_enum_values=True)

    id: int
    tenant: str
    name: str | None = None
    type: ConfigurationType = ConfigurationType.COMBINED
    metadata_fields: list[FieldSpec] = Field(default_factory=list)
    priority: int = 0
    show_on_storefront: bool = False
    storefront_position: StorefrontPosition = StorefrontPosition.AFTER_PRICE
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ConfigurationWithRules(Configuration):
    rules: list[Rule] = Field(default_factory=list)
    rule_count: int = 0


class ConfigurationCreate(BaseModel):
    name: str | None = None
    metadata_fields: list[FieldSpec] = Field(default_factory=list)
    rules: list[RuleInput] = Field(default_factory=list)
    priority: int = 0


class ConfigurationUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    name: str | None = None
    metadata_fields: list[FieldSpec] = Field(default_factory=list)
    rules: list[RuleInput] = Field(default_factory=list)
    show_on_storefront: bool = False
    storefront_position: StorefrontPosition = StorefrontPosition.AFTER_PRICE


class PriorityUpdate(BaseModel):
    id: int
    priority: int


class VendorApply(BaseModel):
    metadata_fields: list[FieldSpec] = Field(..., min_length=1)
    categories: list[str] | None = None


class PreviewResult(BaseModel):
    """Match count plus the first few matching items, sorted by title."""
    count: int
    items: list[CatalogItem] = Field(default_factory=list)


class ApplyError(BaseModel):
    item_id: str
    item_title: str | None = None
    message: str


class ApplyResult(BaseModel):
    """Outcome of applying field specs to a batch of items."""
    total: int = 0
    successful: int = 0
    failed: int = 0
    errors: list[ApplyError] = Field(default_factory=list)
