"""
Configuration for webhook ingestion and processing.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WebhookSettings(BaseSettings):
    """Configuration for the webhook event processor."""

    model_config = SettingsConfigDict(
        case_sensitive=False, extra="ignore", env_prefix="WEBHOOK_"
    )

    secret: str | None = Field(
        default=None, description="HMAC secret for verifying ServiceM8 signatures"
    )
    max_retries: int = Field(default=3, ge=1, description="Processing attempts per event")
    retry_delay: float = Field(default=1.0, ge=0, description="Base backoff delay in seconds")
    retry_missing_objects: bool = Field(
        default=False,
        description="Retry events whose object no longer exists upstream",
    )


_webhook_settings: WebhookSettings | None = None


def get_webhook_settings() -> WebhookSettings:
    global _webhook_settings
    if _webhook_settings is None:
        _webhook_settings = WebhookSettings()
    return _webhook_settings


def set_webhook_settings(settings: WebhookSettings) -> None:
    global _webhook_settings
    _webhook_settings = settings
