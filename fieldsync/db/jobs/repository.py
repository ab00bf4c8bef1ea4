"""
Repository for job records.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldsync.db.clients.model import Client
from fieldsync.db.jobs.model import Job


class JobRepository:
    """Repository for managing job records."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def upsert(self, values: dict[str, Any]) -> int:
        """
        Insert or update a job keyed on its upstream UUID.

        Only the columns present in ``values`` are written on conflict.

        Args:
            values: Column values; must include ``uuid``

        Returns:
            int: Local id of the job row
        """
        values = {**values, "updated_at": datetime.now(UTC)}
        stmt = insert(Job).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Job.uuid],
            set_={key: stmt.excluded[key] for key in values if key != "uuid"},
        ).returning(Job.id)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.scalar_one()

    async def get_id_by_uuid(self, uuid: str) -> int | None:
        async with self.session_factory() as session:
            result = await session.execute(select(Job.id).where(Job.uuid == uuid))
            return result.scalar_one_or_none()

    async def count(
        self, company_uuid: str | None = None, status: str | None = None
    ) -> int:
        """Count jobs, optionally scoped to a company and/or status."""
        stmt = select(func.count()).select_from(Job)
        if company_uuid is not None:
            stmt = stmt.where(Job.company_uuid == company_uuid)
        if status is not None:
            stmt = stmt.where(Job.status == status)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one()

    async def find_missing_company(self, sample_size: int = 10) -> tuple[int, list[str]]:
        """
        Find jobs with no owning company.

        Returns:
            tuple: (total count, up to ``sample_size`` job UUIDs)
        """
        condition = Job.company_uuid.is_(None)
        async with self.session_factory() as session:
            count = await session.execute(
                select(func.count()).select_from(Job).where(condition)
            )
            sample = await session.execute(
                select(Job.uuid).where(condition).order_by(Job.id).limit(sample_size)
            )
            return count.scalar_one(), list(sample.scalars().all())

    async def find_unknown_client(self, sample_size: int = 10) -> tuple[int, list[str]]:
        """
        Find jobs whose company UUID has no local client row.

        Returns:
            tuple: (total count, up to ``sample_size`` job UUIDs)
        """
        known = select(Client.uuid)
        condition = Job.company_uuid.is_not(None) & Job.company_uuid.not_in(known)
        async with self.session_factory() as session:
            count = await session.execute(
                select(func.count()).select_from(Job).where(condition)
            )
            sample = await session.execute(
                select(Job.uuid).where(condition).order_by(Job.id).limit(sample_size)
            )
            return count.scalar_one(), list(sample.scalars().all())
