"""
Repository for client records.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldsync.db.clients.model import Client


class ClientRepository:
    """Repository for managing client records."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def upsert(self, values: dict[str, Any]) -> int:
        """
        Insert or update a client keyed on its upstream UUID.

        Only the columns present in ``values`` are written on conflict, so a
        partial payload never clears attributes that are already known.

        Args:
            values: Column values; must include ``uuid``

        Returns:
            int: Local id of the client row
        """
        values = {**values, "updated_at": datetime.now(UTC)}
        stmt = insert(Client).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Client.uuid],
            set_={key: stmt.excluded[key] for key in values if key != "uuid"},
        ).returning(Client.id)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.scalar_one()

    async def list_uuids(self) -> list[str]:
        """Return the UUIDs of every known client, in primary key order."""
        async with self.session_factory() as session:
            result = await session.execute(select(Client.uuid).order_by(Client.id))
            return list(result.scalars().all())

    async def count(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count()).select_from(Client))
            return result.scalar_one()
