"""API routes for configuration management."""
from fastapi import APIRouter, Depends
from ..auth.api_key import verify_api_key
from ..configurations.models import (
    ApplyResult,
    ConfigurationCreate,
    ConfigurationUpdate,
    ConfigurationWithRules,
    PreviewResult,
)
from ..configurations.service import ConfigurationService, get_configuration_service
from .dependencies import get_tenant
from .schemas import (
    ConfigurationListResponse,
    PreviewRequest,
    PriorityUpdateRequest,
    PriorityUpdateResponse,
)

router = APIRouter(
    prefix="/v1/configurations",
    tags=["configurations"],
    dependencies=[Depends(verify_api_key)],
)


@router.get("", response_model=ConfigurationListResponse)
async def list_configurations(
    tenant: str = Depends(get_tenant),
    service: ConfigurationService = Depends(get_configuration_service),
):
    """List the tenant's configurations, highest priority first."""
    configurations = await service.list_configurations(tenant)
    return ConfigurationListResponse(total=len(configurations), configurations=configurations)


@router.post("", response_model=ConfigurationWithRules, status_code=201)
async def create_configuration(
    body: ConfigurationCreate,
    tenant: str = Depends(get_tenant),
    service: ConfigurationService = Depends(get_configuration_service),
):
    return await service.create_configuration(tenant, body)


@router.put("/priorities", response_model=PriorityUpdateResponse)
async def update_priorities(
    body: PriorityUpdateRequest,
    tenant: str = Depends(get_tenant),
    service: ConfigurationService = Depends(get_configuration_service),
):
    """Set the priorities of several configurations at once."""
    updated = await service.update_priorities(tenant, body.updates)
    return PriorityUpdateResponse(updated=updated)


@router.post("/preview", response_model=PreviewResult)
async def preview_matches(
    body: PreviewRequest,
    tenant: str = Depends(get_tenant),
    service: ConfigurationService = Depends(get_configuration_service),
):
    """Match unsaved rules against the catalog."""
    return await service.preview_matches(tenant, body.rules)


@router.get("/{configuration_id}", response_model=ConfigurationWithRules)
async def get_configuration(
    configuration_id: int,
    tenant: str = Depends(get_tenant),
    service: ConfigurationService = Depends(get_configuration_service),
):
    return await service.get_configuration(tenant, configuration_id)


@router.put("/{configuration_id}", response_model=ConfigurationWithRules)
async def update_configuration(
    configuration_id: int,
    body: ConfigurationUpdate,
    tenant: str = Depends(get_tenant),
    service: ConfigurationService = Depends(get_configuration_service),
):
    """Replace a configuration's fields, rules and storefront settings."""
    return await service.update_configuration(tenant, configuration_id, body)


@router.delete("/{configuration_id}", status_code=204)
async def delete_configuration(
    configuration_id: int,
    tenant: str = Depends(get_tenant),
    service: ConfigurationService = Depends(get_configuration_service),
):
    await service.delete_configuration(tenant, configuration_id)
    return None


@router.post("/{configuration_id}/duplicate", response_model=ConfigurationWithRules, status_code=201)
async def duplicate_configuration(
    configuration_id: int,
    tenant: str = Depends(get_tenant),
    service: ConfigurationService = Depends(get_configuration_service),
):
    return await service.duplicate_configuration(tenant, configuration_id)


@router.get("/{configuration_id}/preview", response_model=PreviewResult)
async def matches_for_saved(
    configuration_id: int,
    tenant: str = Depends(get_tenant),
    service: ConfigurationService = Depends(get_configuration_service),
):
    """Match a saved configuration's rules against the catalog."""
    return await service.matches_for_saved(tenant, configuration_id)


@router.post("/{configuration_id}/apply", response_model=ApplyResult)
async def apply_configuration(
    configuration_id: int,
    tenant: str = Depends(get_tenant),
    service: ConfigurationService = Depends(get_configuration_service),
):
    """Write the configuration's fields to every matching item."""
    return await service.apply_configuration(tenant, configuration_id)
