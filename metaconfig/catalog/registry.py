"""Per-tenant catalog source lookup."""
import structlog

from ..config import get_settings
from .base import CatalogSource
from .memory import InMemoryCatalogSource
from .shopify import ShopifyCatalogSource

log = structlog.get_logger()
settings = get_settings()


class CatalogRegistry:
    """
    Hands out one catalog source per tenant.

    Sources are created on first use according to CATALOG_BACKEND, or can
    be registered explicitly.
    """

    def __init__(self, backend: str | None = None):
        self.backend = backend or settings.CATALOG_BACKEND
        self._sources: dict[str, CatalogSource] = {}

    def register(self, tenant: str, source: CatalogSource):
        self._sources[tenant] = source

    def get(self, tenant: str) -> CatalogSource:
        source = self._sources.get(tenant)
        if source is None:
            source = self._create(tenant)
            self._sources[tenant] = source
        return source

    def tenants(self) -> list[str]:
        return list(self._sources)

    def clear(self):
        self._sources.clear()

    def _create(self, tenant: str) -> CatalogSource:
        if self.backend == "shopify":
            if not settings.SHOPIFY_ACCESS_TOKEN:
                log.warning("catalog.missing_token", tenant=tenant)
            log.info("catalog.selected", type="shopify", tenant=tenant)
            return ShopifyCatalogSource(tenant)
        log.info("catalog.selected", type="memory", tenant=tenant)
        return InMemoryCatalogSource()


# Global catalog registry
catalogs = CatalogRegistry()
