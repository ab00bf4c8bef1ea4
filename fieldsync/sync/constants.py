"""
Sync engine constants and enums.
"""

from enum import Enum

from fieldsync.db.job_records.model import JobRecordKind


class SyncType(str, Enum):
    """Scope of a triggered sync."""

    FULL = "full"
    INCREMENTAL = "incremental"
    EMERGENCY = "emergency"


class SyncTarget(str, Enum):
    """Entity family a batch sync writes, used as the audit target type."""

    COMPANIES = "companies"
    JOBS = "jobs"
    QUOTES = "quotes"


class AuditAction(str, Enum):
    SYNC_COMPLETED = "sync_completed"
    JOB_ACTIVITY_SYNC = "job_activity_sync"
    ATTACHMENT_SYNC = "attachment_sync"
    MATERIAL_SYNC = "material_sync"


CHILD_AUDIT_ACTIONS = {
    JobRecordKind.ACTIVITY: AuditAction.JOB_ACTIVITY_SYNC,
    JobRecordKind.ATTACHMENT: AuditAction.ATTACHMENT_SYNC,
    JobRecordKind.MATERIAL: AuditAction.MATERIAL_SYNC,
}

BULK_TARGET_ID = "bulk"
QUOTE_APPROVED = "approved"
QUOTE_PENDING = "pending"
UPSTREAM_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
