"""
Pydantic schemas for reconciliation runs, checks, metrics and alerts.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fieldsync.reconciliation.constants import (
    AlertType,
    ConsistencyIssueKind,
    ReconciliationType,
    RunStatus,
)


class ReconciliationRun(BaseModel):
    """Stored reconciliation run record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    type: ReconciliationType
    status: RunStatus
    started_at: datetime
    completed_at: datetime | None = None
    duration: int | None = None
    records_processed: int = 0
    errors: int = 0
    error_message: str | None = None


class ReconciliationResult(BaseModel):
    """Outcome of ``ReconciliationService.run``; always carries a terminal status."""

    id: str
    type: ReconciliationType
    status: RunStatus
    records_processed: int
    errors: int
    duration_seconds: int
    error_message: str | None = None


class ReconciliationRequest(BaseModel):
    type: ReconciliationType


class CronRequest(BaseModel):
    type: ReconciliationType = ReconciliationType.INCREMENTAL


class ConsistencyIssue(BaseModel):
    kind: ConsistencyIssueKind
    count: int


class ConsistencyReport(BaseModel):
    issues: list[ConsistencyIssue] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)


class ConflictResolution(BaseModel):
    resolved: int = 0
    strategies: list[str] = Field(default_factory=list)


class MetricsTotals(BaseModel):
    jobs: int
    clients: int


class ReconciliationMetrics(BaseModel):
    recent_runs: list[ReconciliationRun]
    failed_last_24h: int
    last_completed: ReconciliationRun | None
    totals: MetricsTotals


class SystemAlertResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    type: AlertType
    title: str
    message: str
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="details")
    resolved: bool
    resolved_at: datetime | None = None
    created_at: datetime
