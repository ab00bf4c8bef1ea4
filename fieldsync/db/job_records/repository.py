"""
Repository for job child records (activities, attachments, materials).
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldsync.db.job_records.model import JobRecord, JobRecordKind


class JobRecordRepository:
    """Repository for managing job child records."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def upsert_many(
        self,
        job_id: int,
        job_uuid: str,
        kind: JobRecordKind,
        records: list[dict[str, Any]],
    ) -> int:
        """
        Upsert child records of one kind for a job in a single transaction.

        Args:
            job_id: Local id of the owning job
            job_uuid: Upstream UUID of the owning job
            kind: Record discriminant
            records: Upstream payloads; each must carry a ``uuid``

        Returns:
            int: Number of records written
        """
        if not records:
            return 0

        now = datetime.now(UTC)
        async with self.session_factory() as session:
            for record in records:
                stmt = insert(JobRecord).values(
                    job_id=job_id,
                    job_uuid=job_uuid,
                    kind=kind.value,
                    uuid=record["uuid"],
                    data=record,
                    synced_at=now,
                )
                stmt = stmt.on_conflict_do_update(
                    constraint="uq_job_records_kind_uuid",
                    set_={
                        "job_id": stmt.excluded.job_id,
                        "job_uuid": stmt.excluded.job_uuid,
                        "data": stmt.excluded.data,
                        "synced_at": stmt.excluded.synced_at,
                    },
                )
                await session.execute(stmt)
            await session.commit()
        return len(records)

    async def list_for_job(
        self, job_uuid: str, kind: JobRecordKind | None = None
    ) -> list[JobRecord]:
        stmt = select(JobRecord).where(JobRecord.job_uuid == job_uuid)
        if kind is not None:
            stmt = stmt.where(JobRecord.kind == kind.value)
        async with self.session_factory() as session:
            result = await session.execute(stmt.order_by(JobRecord.id))
            return list(result.scalars().all())
