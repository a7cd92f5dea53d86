"""Request-scoped dependencies shared by the routers."""
from fastapi import Header

TENANT_HEADER = "X-Shop-Domain"


async def get_tenant(x_shop_domain: str = Header(..., alias=TENANT_HEADER, min_length=1)) -> str:
    """The shop domain every admin request is scoped to."""
    return x_shop_domain.strip().lower()
