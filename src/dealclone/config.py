"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # HubSpot private app credential (empty = not configured)
    PRIVATE_APP_ACCESS_TOKEN: str = ""
    HUBSPOT_API_BASE_URL: str = "https://api.hubapi.com"

    # Upstream HTTP timeouts (seconds)
    HTTP_TIMEOUT_READ: float = 10.0
    HTTP_TIMEOUT_MUTATE: float = 30.0

    # Deal cloning
    CLONE_TARGET_DEAL_STAGE: str = "991352390"
    CLONE_TARGET_PIPELINE: str = "676191779"
    CLONE_PLACEHOLDER_NAME: str = "Unnamed Deal"

    @property
    def has_access_token(self) -> bool:
        """Return True if a non-blank HubSpot credential is configured."""
        return bool(self.PRIVATE_APP_ACCESS_TOKEN.strip())


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
