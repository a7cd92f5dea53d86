from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    SERVICE_PORT: int = 8080
    MAX_PAYLOAD_SIZE: int = 262144
    LOG_JSON: bool = True
    # Persistence backend: "memory" or "sql"
    STORE_BACKEND: Literal["memory", "sql"] = "memory"
    DATABASE_URL: str = "sqlite:///./metaconfig.sqlite"
    # Catalog backend: "memory" or "shopify"
    CATALOG_BACKEND: Literal["memory", "shopify"] = "memory"
    SHOPIFY_API_VERSION: str = "2025-01"
    SHOPIFY_ACCESS_TOKEN: str = ""
    CATALOG_PAGE_SIZE: int = 250
    CATALOG_TIMEOUT_SECONDS: float = 30.0
    MAX_RESOLUTION_DEPTH: int = 8
    PREVIEW_LIMIT: int = 10
    # Authentication
    API_KEYS: str = ""  # Comma-separated list of API keys
    REQUIRE_AUTH: bool = False  # Whether to enforce authentication
    WEBHOOK_SECRET: str = ""  # Empty disables HMAC verification

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
