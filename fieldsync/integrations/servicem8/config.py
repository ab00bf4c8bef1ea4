"""
Configuration management for the ServiceM8 integration.

This module handles environment variable configuration and validation
for the ServiceM8 API client using Pydantic settings.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fieldsync.utils.logger import logger


class ServiceM8Settings(BaseSettings):
    """Configuration for the ServiceM8 API client."""

    model_config = SettingsConfigDict(
        case_sensitive=False, extra="ignore", env_prefix="SERVICEM8_"
    )

    # Authentication: exactly one of these must be configured
    api_key: str | None = Field(default=None, description="ServiceM8 API key")
    oauth_token: str | None = Field(default=None, description="ServiceM8 OAuth bearer token")

    base_url: str = Field(
        default="https://api.servicem8.com/api_1.0",
        description="ServiceM8 API base URL",
    )
    timeout: float = Field(default=30.0, description="Request timeout in seconds")

    retry_attempts: int = Field(default=3, ge=1, description="Maximum request attempts")
    retry_delay: float = Field(
        default=1.0, ge=0, description="Base backoff delay in seconds"
    )

    cache_enabled: bool = Field(default=True, description="Cache GET responses")
    cache_ttl: float = Field(default=300.0, ge=0, description="Cache TTL in seconds")
    cache_max_entries: int = Field(
        default=1000, ge=1, description="Maximum number of cached responses"
    )

    rate_limit_enabled: bool = Field(
        default=True, description="Wait for the rate limit window to reset when exhausted"
    )

    @model_validator(mode="after")
    def validate_credentials(self) -> "ServiceM8Settings":
        """Require exactly one authentication method."""
        if bool(self.api_key) == bool(self.oauth_token):
            raise ValueError(
                "Exactly one of SERVICEM8_API_KEY or SERVICEM8_OAUTH_TOKEN must be set"
            )
        return self


_servicem8_settings: ServiceM8Settings | None = None


def get_servicem8_settings() -> ServiceM8Settings:
    """
    Get the global ServiceM8 settings instance.

    Returns:
        ServiceM8Settings: The global settings instance
    """
    global _servicem8_settings
    if _servicem8_settings is None:
        _servicem8_settings = ServiceM8Settings()
        logger.info(
            "ServiceM8Settings loaded",
            base_url=_servicem8_settings.base_url,
            auth="api_key" if _servicem8_settings.api_key else "oauth_token",
        )
    return _servicem8_settings


def set_servicem8_settings(settings: ServiceM8Settings) -> None:
    """
    Set the global ServiceM8 settings instance.

    Args:
        settings: The settings to set
    """
    global _servicem8_settings
    _servicem8_settings = settings
