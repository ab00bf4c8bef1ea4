"""
Repository for quote records.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldsync.db.quotes.model import Quote


class QuoteRepository:
    """Repository for managing quote records."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def upsert(self, job_id: int, values: dict[str, Any]) -> int:
        """
        Insert or update the quote belonging to a job.

        Args:
            job_id: Local id of the owning job (conflict key)
            values: Quote column values

        Returns:
            int: Local id of the quote row
        """
        values = {**values, "job_id": job_id, "updated_at": datetime.now(UTC)}
        stmt = insert(Quote).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Quote.job_id],
            set_={key: stmt.excluded[key] for key in values if key != "job_id"},
        ).returning(Quote.id)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.scalar_one()

    async def find_missing_job(self, sample_size: int = 10) -> tuple[int, list[int]]:
        """
        Find quotes whose owning job no longer exists.

        Returns:
            tuple: (total count, up to ``sample_size`` quote ids)
        """
        condition = Quote.job_id.is_(None)
        async with self.session_factory() as session:
            count = await session.execute(
                select(func.count()).select_from(Quote).where(condition)
            )
            sample = await session.execute(
                select(Quote.id).where(condition).order_by(Quote.id).limit(sample_size)
            )
            return count.scalar_one(), list(sample.scalars().all())
