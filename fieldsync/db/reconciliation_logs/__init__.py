from fieldsync.db.reconciliation_logs.model import ReconciliationLog
from fieldsync.db.reconciliation_logs.repository import ReconciliationLogRepository

__all__ = ["ReconciliationLog", "ReconciliationLogRepository"]
