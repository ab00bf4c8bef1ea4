"""
Reconciliation constants and enums.
"""

from enum import Enum


class ReconciliationType(str, Enum):
    """Kinds of reconciliation run."""

    FULL = "full"
    INCREMENTAL = "incremental"
    EMERGENCY = "emergency"


class RunStatus(str, Enum):
    """Lifecycle of a reconciliation run: running -> completed | failed."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class AlertType(str, Enum):
    """Severity of a system alert."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class AuditAction(str, Enum):
    """Audit actions written by the orchestrator."""

    STARTED = "reconciliation_started"
    COMPLETED = "reconciliation_completed"
    FAILED = "reconciliation_failed"


class ConsistencyIssueKind(str, Enum):
    """Known anomaly classes found by consistency checks."""

    JOBS_MISSING_CLIENT = "jobs_missing_client"
    JOBS_UNKNOWN_CLIENT = "jobs_unknown_client"
    QUOTES_MISSING_JOB = "quotes_missing_job"
