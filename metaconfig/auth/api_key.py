"""API key authentication."""
from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader
from typing import Optional
import structlog
from ..config import get_settings

log = structlog.get_logger()
settings = get_settings()

API_KEY_HEADER = "X-Metaconfig-Key"

# API key header scheme
api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


class APIKeyRegistry:
    """
    In-memory API key registry.

    Keys are loaded from the API_KEYS setting (comma-separated) at startup.
    """

    def __init__(self, keys: str | None = None):
        self._keys: set[str] = set()
        self._load_keys(settings.API_KEYS if keys is None else keys)

    def _load_keys(self, keys: str):
        for key in keys.split(","):
            key = key.strip()
            if key:
                self._keys.add(key)

        log.info("api_keys.loaded", count=len(self._keys))

    def validate(self, key: str) -> bool:
        return key in self._keys

    def add_key(self, key: str):
        self._keys.add(key)
        log.info("api_key.added")

    def remove_key(self, key: str) -> bool:
        """
        Remove an API key from the registry.

        Returns:
            True if key was removed
        """
        if key in self._keys:
            self._keys.discard(key)
            log.info("api_key.removed")
            return True
        return False

    def count(self) -> int:
        return len(self._keys)


# Global registry instance
registry = APIKeyRegistry()


async def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> str:
    """
    Dependency to verify the API key from the request header.

    Authentication is enforced only when REQUIRE_AUTH is set and at least
    one key is registered.

    Returns:
        Validated API key, or "anonymous" when not enforced

    Raises:
        HTTPException: If API key is missing (401) or invalid (403)
    """
    if not settings.REQUIRE_AUTH:
        return "anonymous"

    if registry.count() == 0:
        log.debug("auth.skipped", reason="no_keys_configured")
        return "anonymous"

    if not api_key:
        log.warning("auth.failed", reason="missing_key")
        raise HTTPException(
            status_code=401,
            detail=f"Missing API key. Provide {API_KEY_HEADER} header.",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    if not registry.validate(api_key):
        log.warning("auth.failed", reason="invalid_key")
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    log.debug("auth.success")
    return api_key
