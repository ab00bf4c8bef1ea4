"""Database layer: SQLAlchemy models and repositories for synchronized data."""

from fieldsync.db.audit_logs import AuditLog, AuditLogRepository
from fieldsync.db.clients import Client, ClientRepository
from fieldsync.db.config import DatabaseSettings, get_db_settings
from fieldsync.db.database import Base, get_async_session_local
from fieldsync.db.job_records import JobRecord, JobRecordKind, JobRecordRepository
from fieldsync.db.jobs import Job, JobRepository
from fieldsync.db.quotes import Quote, QuoteRepository
from fieldsync.db.reconciliation_logs import ReconciliationLog, ReconciliationLogRepository
from fieldsync.db.system_alerts import SystemAlert, SystemAlertRepository
from fieldsync.db.webhook_events import WebhookEvent, WebhookEventRepository

__all__ = [
    "AuditLog",
    "AuditLogRepository",
    "Base",
    "Client",
    "ClientRepository",
    "DatabaseSettings",
    "get_async_session_local",
    "get_db_settings",
    "Job",
    "JobRecord",
    "JobRecordKind",
    "JobRecordRepository",
    "JobRepository",
    "Quote",
    "QuoteRepository",
    "ReconciliationLog",
    "ReconciliationLogRepository",
    "SystemAlert",
    "SystemAlertRepository",
    "WebhookEvent",
    "WebhookEventRepository",
]
