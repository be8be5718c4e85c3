"""Application settings loaded from environment variables.

Environment Configuration:
    SOCIALBRO_ENV: Deployment environment (local | test | staging | prod)
    DATABASE_URL: PostgreSQL connection string (required)

Auth Configuration (required in all environments):
    AUTH_JWKS_URL: Full URL to the identity provider JWKS endpoint
    AUTH_ISSUER: Expected JWT issuer (trailing slash stripped)
    AUTH_AUDIENCES: Comma-separated list of allowed audiences

Credential Configuration:
    ENCRYPTION_SECRET: Master secret for encrypting stored API keys
                       (required in staging/prod)
    YOUTUBE_API_KEY / RAPIDAPI_KEY: Optional process-wide fallback keys,
                       used only when a user has no stored key
"""

from enum import Enum
from functools import lru_cache
from typing import Annotated

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application configuration.

    Validation rules:
    - DATABASE_URL is always required
    - AUTH_JWKS_URL, AUTH_ISSUER, AUTH_AUDIENCES are required in all environments
    - ENCRYPTION_SECRET is required in staging and prod only
    """

    socialbro_env: Environment = Field(default=Environment.LOCAL, alias="SOCIALBRO_ENV")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]

    # Connection pool (shared, bounded)
    db_pool_size: int = Field(default=20, alias="DB_POOL_SIZE")
    db_pool_timeout_s: float = Field(default=10.0, alias="DB_POOL_TIMEOUT_S")
    db_pool_recycle_s: int = Field(default=300, alias="DB_POOL_RECYCLE_S")

    # Auth settings (required in all environments)
    auth_jwks_url: str | None = Field(default=None, alias="AUTH_JWKS_URL")
    auth_issuer: str | None = Field(default=None, alias="AUTH_ISSUER")
    auth_audiences: str | None = Field(default=None, alias="AUTH_AUDIENCES")

    # Admin invite routes are disabled while this is unset
    admin_secret: str | None = Field(default=None, alias="ADMIN_SECRET")
    public_base_url: str = Field(default="http://localhost:3000", alias="PUBLIC_BASE_URL")

    # Stored API key encryption
    encryption_secret: str | None = Field(default=None, alias="ENCRYPTION_SECRET")

    # Platform fallback keys (optional)
    youtube_api_key: str | None = Field(default=None, alias="YOUTUBE_API_KEY")
    rapidapi_key: str | None = Field(default=None, alias="RAPIDAPI_KEY")

    # Credential cache and outbound client
    credential_cache_ttl_s: float = Field(default=300.0, alias="CREDENTIAL_CACHE_TTL_S")
    external_max_attempts: int = Field(default=3, alias="EXTERNAL_MAX_ATTEMPTS")
    external_retry_base_delay_ms: int = Field(default=1000, alias="EXTERNAL_RETRY_BASE_DELAY_MS")
    external_timeout_s: float = Field(default=30.0, alias="EXTERNAL_TIMEOUT_S")

    # Rate limiting
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    rate_limit_search_rpm: int = Field(default=30, alias="RATE_LIMIT_SEARCH_RPM")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Ensure required settings are set for all environments."""
        missing_auth = []
        if not self.auth_jwks_url:
            missing_auth.append("AUTH_JWKS_URL")
        if not self.auth_issuer:
            missing_auth.append("AUTH_ISSUER")
        if not self.auth_audiences:
            missing_auth.append("AUTH_AUDIENCES")

        if missing_auth:
            raise ValueError(f"Missing required auth settings: {', '.join(missing_auth)}")

        if self.socialbro_env in (Environment.STAGING, Environment.PROD):
            if not self.encryption_secret:
                raise ValueError(
                    f"ENCRYPTION_SECRET is required for SOCIALBRO_ENV={self.socialbro_env.value}. "
                    "Generate one with: openssl rand -base64 32"
                )

        if self.external_max_attempts < 1:
            raise ValueError("EXTERNAL_MAX_ATTEMPTS must be at least 1")

        return self

    @property
    def audience_list(self) -> list[str]:
        """Parse comma-separated audiences into a list."""
        if self.auth_audiences:
            return [a.strip() for a in self.auth_audiences.split(",") if a.strip()]
        return []

    @property
    def normalized_issuer(self) -> str | None:
        """Return issuer with trailing slash stripped."""
        if self.auth_issuer:
            return self.auth_issuer.rstrip("/")
        return None

    @property
    def platform_keys(self) -> dict[str, str | None]:
        """Process-wide fallback keys by service name."""
        return {
            "youtube": self.youtube_api_key,
            "rapidapi": self.rapidapi_key,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
