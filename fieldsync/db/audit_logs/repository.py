"""
Repository for audit log entries.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldsync.db.audit_logs.model import AuditLog
from fieldsync.utils.logger import logger

SYSTEM_ACTOR = "system"


class AuditLogRepository:
    """Append-only access to the audit trail."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(
        self,
        action: str,
        target_type: str,
        target_id: str | int,
        metadata: dict[str, Any] | None = None,
        actor_user_id: str = SYSTEM_ACTOR,
    ) -> AuditLog:
        """
        Append an entry to the audit trail.

        Args:
            action: Action tag (e.g. ``sync_completed``)
            target_type: Kind of target (e.g. ``jobs``, ``job``, ``system``)
            target_id: Identifier of the target
            metadata: Structured details
            actor_user_id: Who performed the action

        Returns:
            AuditLog: The stored entry
        """
        entry = AuditLog(
            actor_user_id=actor_user_id,
            action=action,
            target_type=target_type,
            target_id=str(target_id),
            details=metadata or {},
            timestamp=datetime.now(UTC),
        )
        async with self.session_factory() as session:
            session.add(entry)
            await session.commit()

        logger.debug(
            "[AuditLogRepository] Recorded entry",
            action=action,
            target_type=target_type,
            target_id=str(target_id),
        )
        return entry

    async def latest(
        self, action: str, target_type: str, target_id: str
    ) -> AuditLog | None:
        """Return the most recent entry for an action on a target."""
        stmt = (
            select(AuditLog)
            .where(AuditLog.action == action)
            .where(AuditLog.target_type == target_type)
            .where(AuditLog.target_id == target_id)
            .order_by(desc(AuditLog.timestamp))
            .limit(1)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

