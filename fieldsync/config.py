from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environments."""

    DEVELOPMENT = "dev"
    STAGING = "staging"
    PRODUCTION = "prod"


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Current environment (dev, staging, or prod)",
    )
    app_base_url: str = Field(
        default="http://localhost:8080", description="Public base URL of this service"
    )
    client_base_url: str = Field(
        default="http://localhost:3000",
        description="Admin dashboard origin allowed by CORS",
    )
    cron_secret: str | None = Field(
        default=None,
        description="Bearer token expected by the scheduled reconciliation endpoint",
    )


_app_settings: AppSettings | None = None


def get_app_settings() -> AppSettings:
    global _app_settings
    if _app_settings is None:
        _app_settings = AppSettings()
    return _app_settings


def set_app_settings(settings: AppSettings) -> None:
    """Override the global app settings (used by tests)."""
    global _app_settings
    _app_settings = settings
