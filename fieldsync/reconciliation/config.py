"""
Configuration for reconciliation runs and their in-process schedule.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from fieldsync.reconciliation.constants import ReconciliationType


class ReconciliationSettings(BaseSettings):
    """Configuration for the reconciliation orchestrator."""

    model_config = SettingsConfigDict(
        case_sensitive=False, extra="ignore", env_prefix="RECONCILIATION_"
    )

    schedule_enabled: bool = Field(
        default=False, description="Run reconciliation periodically inside the app process"
    )
    schedule_interval_seconds: int = Field(default=3600, ge=60)
    scheduled_type: ReconciliationType = Field(default=ReconciliationType.INCREMENTAL)
    incremental_window_hours: int = Field(
        default=24, ge=1, description="Look-back window for incremental syncs"
    )


_reconciliation_settings: ReconciliationSettings | None = None


def get_reconciliation_settings() -> ReconciliationSettings:
    global _reconciliation_settings
    if _reconciliation_settings is None:
        _reconciliation_settings = ReconciliationSettings()
    return _reconciliation_settings


def set_reconciliation_settings(settings: ReconciliationSettings) -> None:
    global _reconciliation_settings
    _reconciliation_settings = settings
