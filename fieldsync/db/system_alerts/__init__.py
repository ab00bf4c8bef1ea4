from fieldsync.db.system_alerts.model import SystemAlert
from fieldsync.db.system_alerts.repository import SystemAlertRepository

__all__ = ["SystemAlert", "SystemAlertRepository"]
