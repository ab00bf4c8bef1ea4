"""
Import every model so Base.metadata knows about all tables.
"""

from fieldsync.db.audit_logs.model import AuditLog
from fieldsync.db.clients.model import Client
from fieldsync.db.job_records.model import JobRecord
from fieldsync.db.jobs.model import Job
from fieldsync.db.quotes.model import Quote
from fieldsync.db.reconciliation_logs.model import ReconciliationLog
from fieldsync.db.system_alerts.model import SystemAlert
from fieldsync.db.webhook_events.model import WebhookEvent

__all__ = [
    "AuditLog",
    "Client",
    "Job",
    "JobRecord",
    "Quote",
    "ReconciliationLog",
    "SystemAlert",
    "WebhookEvent",
]
