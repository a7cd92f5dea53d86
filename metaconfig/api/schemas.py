from pydantic import BaseModel, Field
from typing import List
from ..configurations.models import ConfigurationWithRules, PriorityUpdate
from ..rules.models import RuleInput


class ConfigurationListResponse(BaseModel):
    total: int
    configurations: List[ConfigurationWithRules]


class PreviewRequest(BaseModel):
    rules: List[RuleInput] = Field(default_factory=list)


class PriorityUpdateRequest(BaseModel):
    updates: List[PriorityUpdate] = Field(..., min_length=1)


class PriorityUpdateResponse(BaseModel):
    updated: int


class VendorListResponse(BaseModel):
    total: int
    vendors: List[str]


class EventAccepted(BaseModel):
    id: str | None = None
    status: str
