"""API routes for vendor-wide operations."""
from fastapi import APIRouter, Depends
from ..auth.api_key import verify_api_key
from ..configurations.models import ApplyResult, VendorApply
from ..configurations.service import ConfigurationService, get_configuration_service
from .dependencies import get_tenant
from .schemas import VendorListResponse

router = APIRouter(prefix="/v1/vendors", tags=["vendors"], dependencies=[Depends(verify_api_key)])


@router.get("", response_model=VendorListResponse)
async def list_vendors(
    tenant: str = Depends(get_tenant),
    service: ConfigurationService = Depends(get_configuration_service),
):
    vendors = await service.list_vendors(tenant)
    return VendorListResponse(total=len(vendors), vendors=vendors)


@router.post("/{vendor}/apply", response_model=ApplyResult)
async def apply_to_vendor(
    vendor: str,
    body: VendorApply,
    tenant: str = Depends(get_tenant),
    service: ConfigurationService = Depends(get_configuration_service),
):
    """Write field specs to every item of a vendor, optionally filtered by category."""
    return await service.apply_to_vendor(tenant, vendor, body.metadata_fields, body.categories)
