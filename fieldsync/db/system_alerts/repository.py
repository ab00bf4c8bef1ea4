"""
Repository for system alerts.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldsync.db.system_alerts.model import SystemAlert
from fieldsync.reconciliation.constants import AlertType


class SystemAlertRepository:
    """Repository for managing system alerts."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_alert(
        self,
        alert_type: AlertType,
        title: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> SystemAlert:
        alert = SystemAlert(
            type=alert_type.value,
            title=title,
            message=message,
            details=metadata or {},
            resolved=False,
            created_at=datetime.now(UTC),
        )
        async with self.session_factory() as session:
            session.add(alert)
            await session.commit()
        return alert

    async def list_alerts(
        self, resolved: bool | None = None, limit: int = 50
    ) -> list[SystemAlert]:
        stmt = select(SystemAlert)
        if resolved is not None:
            stmt = stmt.where(SystemAlert.resolved == resolved)
        stmt = stmt.order_by(desc(SystemAlert.created_at)).limit(limit)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def resolve(self, alert_id: int) -> bool:
        """
        Mark an alert as resolved.

        Returns:
            bool: False if the alert does not exist
        """
        stmt = (
            update(SystemAlert)
            .where(SystemAlert.id == alert_id)
            .values(resolved=True, resolved_at=datetime.now(UTC))
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount > 0
