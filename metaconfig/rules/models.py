"""Rule definition models."""
from datetime import datetime
from enum import Enum

import orjson
from pydantic import BaseModel, ConfigDict, Field, field_validator


class RuleKind(str, Enum):
    """Item attribute a rule targets."""
    VENDOR = "vendor"
    COLLECTION = "collection"
    CATEGORY = "category"
    PRODUCT = "product"


class RuleOperator(str, Enum):
    """How a rule combines with its siblings."""
    AND = "AND"
    OR = "OR"


class ConfigurationType(str, Enum):
    """Classification derived from a rule set."""
    VENDOR = "vendor"
    CATEGORY = "category"
    COLLECTION = "collection"
    PRODUCT = "product"
    COMBINED = "combined"


def _encode_match_ref(value):
    if isinstance(value, (list, tuple)):
        return orjson.dumps([str(v) for v in value]).decode()
    return value


class Rule(BaseModel):
    """A persisted node of a configuration's rule tree."""
    model_config = ConfigDict(use_enum_values=True)

    id: int = Field(..., description="Store-assigned rule identifier")
    configuration_id: int = Field(..., description="Owning configuration")
    parent_id: int | None = Field(default=None, description="Parent rule; None for roots")
    kind: RuleKind
    match_value: str = Field(default="", description="Display value, e.g. vendor name")
    match_ref: str | None = Field(
        default=None,
        description="External id or JSON-encoded list of ids, preferred over match_value"
    )
    operator: RuleOperator = RuleOperator.OR
    level: int = 0
    position: int = 0
    created_at: datetime | None = None

    @field_validator("match_ref", mode="before")
    @classmethod
    def _coerce_match_ref(cls, value):
        return _encode_match_ref(value)

    @property
    def node_id(self) -> str:
        return str(self.id)

    @property
    def parent_node_id(self) -> str | None:
        return None if self.parent_id is None else str(self.parent_id)


class RuleInput(BaseModel):
    """
    A rule as authored by a client.

    ``ref`` and ``parent_ref`` are client-local identifiers; the store assigns
    real ids and remaps parent pointers when the rule set is persisted.
    """
    model_config = ConfigDict(use_enum_values=True)

    ref: str = Field(..., description="Client-local identifier")
    parent_ref: str | None = Field(default=None, description="Client-local parent identifier")
    kind: RuleKind
    match_value: str = ""
    match_ref: str | None = None
    operator: RuleOperator = RuleOperator.OR
    level: int = 0
    position: int = 0

    @field_validator("ref", "parent_ref", mode="before")
    @classmethod
    def _coerce_ref(cls, value):
        return None if value is None else str(value)

    @field_validator("match_ref", mode="before")
    @classmethod
    def _coerce_match_ref(cls, value):
        """Accept a list of ids and store it as a JSON array string."""
        return _encode_match_ref(value)

    @property
    def node_id(self) -> str:
        return self.ref

    @property
    def parent_node_id(self) -> str | None:
        return self.parent_ref
