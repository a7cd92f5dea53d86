"""
Health check endpoints for liveness and readiness probes.
"""
from datetime import datetime, timezone
from typing import Dict, Any
import time
import psutil
from .catalog.registry import CatalogRegistry
from .config import get_settings
from .configurations.persistence import ConfigurationStore
from .logging import get_logger

logger = get_logger()


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class HealthChecker:
    """
    Health checker for the metaconfig service.

    Provides:
    - Liveness checks (is the service running?)
    - Readiness checks (can the service handle traffic?)
    """

    def __init__(
        self,
        store: ConfigurationStore,
        catalogs: CatalogRegistry,
        service_name: str = "metaconfig",
        version: str = "0.1.0",
    ):
        self.store = store
        self.catalogs = catalogs
        self.service_name = service_name
        self.version = version
        self.settings = get_settings()

    def liveness(self) -> Dict[str, Any]:
        """
        Liveness check - basic health check.

        Returns:
            dict: Health status with service info and timestamp
        """
        return {
            "status": "ok",
            "service": self.service_name,
            "version": self.version,
            "timestamp": _utc_timestamp(),
        }

    async def readiness(self) -> Dict[str, Any]:
        """
        Readiness check - comprehensive health check.

        Checks:
        - Configuration store connectivity
        - Catalog connectivity for tenants seen so far
        - Disk space availability
        - Memory availability

        Returns:
            dict: Readiness status with detailed check results
        """
        checks = {}
        overall_status = "ready"

        store_check = await self._check_store()
        checks["store"] = store_check
        if store_check["status"] == "error":
            overall_status = "not_ready"

        # Catalog outages degrade apply and events but not the admin API
        checks["catalog"] = await self._check_catalogs()

        disk_check = self._check_disk_space()
        checks["disk_space"] = disk_check
        if disk_check["status"] == "error":
            overall_status = "not_ready"

        memory_check = self._check_memory()
        checks["memory"] = memory_check
        if memory_check["status"] == "error":
            overall_status = "not_ready"

        return {
            "status": overall_status,
            "service": self.service_name,
            "version": self.version,
            "timestamp": _utc_timestamp(),
            "checks": checks,
        }

    async def _check_store(self) -> Dict[str, Any]:
        """
        Check configuration store connectivity.

        Returns:
            dict: Store health check result
        """
        start = time.time()
        healthy = await self.store.health_check()
        latency_ms = round((time.time() - start) * 1000, 2)
        if not healthy:
            return {
                "status": "error",
                "backend": self.settings.STORE_BACKEND,
                "error": "store unreachable",
            }
        return {
            "status": "ok",
            "backend": self.settings.STORE_BACKEND,
            "latency_ms": latency_ms,
        }

    async def _check_catalogs(self) -> Dict[str, Any]:
        """Check every catalog source created so far."""
        tenants = self.catalogs.tenants()
        if not tenants:
            return {
                "status": "skipped",
                "message": "No catalog connected yet",
            }

        unhealthy = []
        for tenant in tenants:
            if not await self.catalogs.get(tenant).health_check():
                unhealthy.append(tenant)
        if unhealthy:
            logger.warning("catalog_health_check_failed", tenants=unhealthy)
            return {
                "status": "warning",
                "backend": self.settings.CATALOG_BACKEND,
                "unhealthy_tenants": unhealthy,
            }
        return {
            "status": "ok",
            "backend": self.settings.CATALOG_BACKEND,
            "tenants": len(tenants),
        }

    def _check_disk_space(self, threshold_gb: float = 1.0) -> Dict[str, Any]:
        """
        Check available disk space.

        Args:
            threshold_gb: Minimum available disk space in GB (default: 1.0)

        Returns:
            dict: Disk space health check result
        """
        try:
            disk = psutil.disk_usage("/")
            available_gb = disk.free / (1024**3)

            if available_gb < threshold_gb:
                status = "error"
            elif available_gb < threshold_gb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_gb": round(available_gb, 2),
                "total_gb": round(disk.total / (1024**3), 2),
                "used_percent": disk.percent,
            }

        except Exception as e:
            logger.warning("disk_health_check_failed", error=str(e))
            return {
                "status": "error",
                "error": str(e),
            }

    def _check_memory(self, threshold_mb: float = 50.0) -> Dict[str, Any]:
        """
        Check available memory.

        Args:
            threshold_mb: Minimum available memory in MB (default: 50.0)

        Returns:
            dict: Memory health check result
        """
        try:
            memory = psutil.virtual_memory()
            available_mb = memory.available / (1024**2)

            if available_mb < threshold_mb:
                status = "error"
            elif available_mb < threshold_mb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_mb": round(available_mb, 2),
                "total_mb": round(memory.total / (1024**2), 2),
                "used_percent": memory.percent,
            }

        except Exception as e:
            logger.warning("memory_health_check_failed", error=str(e))
            return {
                "status": "error",
                "error": str(e),
            }
