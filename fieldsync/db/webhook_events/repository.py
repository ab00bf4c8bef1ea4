"""
Repository for webhook event records.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import asc, desc, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldsync.db.webhook_events.model import WebhookEvent
from fieldsync.utils.logger import logger
from fieldsync.webhooks.constants import WebhookEventStatus

TERMINAL_STATUSES = (WebhookEventStatus.SUCCESS, WebhookEventStatus.FAILED)


class WebhookEventRepository:
    """Repository for managing webhook event records."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_if_absent(self, event_id: str, payload: dict[str, Any]) -> bool:
        """
        Store a new event in ``queued`` state unless the id is already known.

        Args:
            event_id: Upstream event id
            payload: Raw webhook payload

        Returns:
            bool: True if a new record was created
        """
        stmt = (
            insert(WebhookEvent)
            .values(
                id=event_id,
                status=WebhookEventStatus.QUEUED.value,
                payload=payload,
                attempts=0,
                created_at=datetime.now(UTC),
            )
            .on_conflict_do_nothing(index_elements=[WebhookEvent.id])
            .returning(WebhookEvent.id)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            created = result.scalar_one_or_none() is not None
            await session.commit()

        if not created:
            logger.info("[WebhookEventRepository] Duplicate delivery", event_id=event_id)
        return created

    async def get_event(self, event_id: str) -> WebhookEvent | None:
        async with self.session_factory() as session:
            return await session.get(WebhookEvent, event_id)

    async def get_status(self, event_id: str) -> WebhookEventStatus | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(WebhookEvent.status).where(WebhookEvent.id == event_id)
            )
            status = result.scalar_one_or_none()
        return WebhookEventStatus(status) if status else None

    async def update_status(
        self,
        event_id: str,
        status: WebhookEventStatus,
        error_details: str | None = None,
    ) -> bool:
        """
        Move an event to a new status.

        Entering ``processing`` counts an attempt; terminal statuses stamp
        ``processed_at``.

        Returns:
            bool: False if the event does not exist
        """
        values: dict[str, Any] = {
            "status": status.value,
            "processed_at": datetime.now(UTC) if status in TERMINAL_STATUSES else None,
        }
        if status == WebhookEventStatus.PROCESSING:
            values["attempts"] = WebhookEvent.attempts + 1
        if error_details is not None:
            values["error_details"] = error_details

        stmt = update(WebhookEvent).where(WebhookEvent.id == event_id).values(**values)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()

        if result.rowcount == 0:
            logger.error(
                "[WebhookEventRepository] Failed to update webhook event status",
                event_id=event_id,
                status=status.value,
            )
            return False
        return True

    async def list_events(
        self,
        status: WebhookEventStatus | None = None,
        limit: int = 50,
        offset: int = 0,
        oldest_first: bool = False,
    ) -> list[WebhookEvent]:
        stmt = select(WebhookEvent)
        if status is not None:
            stmt = stmt.where(WebhookEvent.status == status.value)
        order = asc(WebhookEvent.created_at) if oldest_first else desc(WebhookEvent.created_at)
        stmt = stmt.order_by(order).offset(offset)
        if limit:
            stmt = stmt.limit(limit)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count_by_status(self) -> dict[str, int]:
        stmt = select(WebhookEvent.status, func.count()).group_by(WebhookEvent.status)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return {status: count for status, count in result.all()}
