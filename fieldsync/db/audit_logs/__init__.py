from fieldsync.db.audit_logs.model import AuditLog
from fieldsync.db.audit_logs.repository import SYSTEM_ACTOR, AuditLogRepository

__all__ = ["AuditLog", "AuditLogRepository", "SYSTEM_ACTOR"]
