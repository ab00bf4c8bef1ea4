"""
Repository for reconciliation run records.

Terminal updates only apply to runs that are still ``running``, so a run
record never changes once it has completed or failed.
"""

from datetime import UTC, datetime

from sqlalchemy import desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldsync.db.reconciliation_logs.model import ReconciliationLog
from fieldsync.reconciliation.constants import RunStatus
from fieldsync.utils.logger import logger


class ReconciliationLogRepository:
    """Repository for managing reconciliation run records."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_run(self, run_id: str, run_type: str) -> ReconciliationLog:
        run = ReconciliationLog(
            id=run_id,
            type=run_type,
            status=RunStatus.RUNNING.value,
            started_at=datetime.now(UTC),
            records_processed=0,
            errors=0,
        )
        async with self.session_factory() as session:
            session.add(run)
            await session.commit()

        logger.info(
            "[ReconciliationLogRepository] Created run", run_id=run_id, type=run_type
        )
        return run

    async def _finish(self, run_id: str, **values) -> bool:
        stmt = (
            update(ReconciliationLog)
            .where(ReconciliationLog.id == run_id)
            .where(ReconciliationLog.status == RunStatus.RUNNING.value)
            .values(completed_at=datetime.now(UTC), **values)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()

        if result.rowcount == 0:
            logger.warning(
                "[ReconciliationLogRepository] Run is not running, terminal update skipped",
                run_id=run_id,
            )
            return False
        return True

    async def complete_run(
        self, run_id: str, records_processed: int, errors: int, duration: int
    ) -> bool:
        """
        Mark a running run as completed.

        Returns:
            bool: False if the run was missing or already terminal
        """
        return await self._finish(
            run_id,
            status=RunStatus.COMPLETED.value,
            records_processed=records_processed,
            errors=errors,
            duration=duration,
        )

    async def fail_run(self, run_id: str, error_message: str, duration: int) -> bool:
        """
        Mark a running run as failed.

        Returns:
            bool: False if the run was missing or already terminal
        """
        return await self._finish(
            run_id,
            status=RunStatus.FAILED.value,
            errors=1,
            error_message=error_message,
            duration=duration,
        )

    async def get_run(self, run_id: str) -> ReconciliationLog | None:
        async with self.session_factory() as session:
            return await session.get(ReconciliationLog, run_id)

    async def list_runs(self, limit: int = 10) -> list[ReconciliationLog]:
        stmt = (
            select(ReconciliationLog)
            .order_by(desc(ReconciliationLog.started_at))
            .limit(limit)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count_failed_since(self, since: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(ReconciliationLog)
            .where(ReconciliationLog.status == RunStatus.FAILED.value)
            .where(ReconciliationLog.started_at >= since)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one()

    async def last_completed(self) -> ReconciliationLog | None:
        stmt = (
            select(ReconciliationLog)
            .where(ReconciliationLog.status == RunStatus.COMPLETED.value)
            .order_by(desc(ReconciliationLog.started_at))
            .limit(1)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()
