"""
Webhook event processor.

Each stored event moves through ``queued -> processing -> success | failed``.
Handlers never apply the webhook delta directly: they re-fetch the object
from ServiceM8 and push it through the sync engine's upsert path. Failed
attempts are retried in the background with exponential backoff until
``max_retries`` is reached.
"""

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from pydantic import ValidationError

from fieldsync.db.audit_logs.repository import AuditLogRepository
from fieldsync.db.webhook_events.repository import WebhookEventRepository
from fieldsync.integrations.servicem8.client import ServiceM8Client
from fieldsync.integrations.servicem8.exceptions import ServiceM8NotFoundError
from fieldsync.sync.service import SyncService
from fieldsync.utils.logger import logger
from fieldsync.webhooks.broadcaster import RealtimeBroadcaster
from fieldsync.webhooks.config import WebhookSettings
from fieldsync.webhooks.constants import (
    REALTIME_CHANNELS,
    REALTIME_EVENT,
    AuditAction,
    EventType,
    ObjectType,
    WebhookEventStatus,
)
from fieldsync.webhooks.exceptions import (
    UpstreamObjectMissingError,
    WebhookEventNotRetryableError,
)
from fieldsync.webhooks.schemas import (
    ProcessingStats,
    RealtimeMessage,
    WebhookEventResponse,
    WebhookPayload,
)

Handler = Callable[[WebhookPayload], Awaitable[None]]
EventHook = Callable[[WebhookPayload], Awaitable[None]]


class WebhookProcessor:
    """Processes stored webhook events with retries and idempotency."""

    def __init__(
        self,
        settings: WebhookSettings,
        events: WebhookEventRepository,
        audit_logs: AuditLogRepository,
        client: ServiceM8Client,
        sync: SyncService,
        broadcaster: RealtimeBroadcaster,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.events = events
        self.audit_logs = audit_logs
        self.client = client
        self.sync = sync
        self.broadcaster = broadcaster
        self._sleep = sleep
        self._pending: set[asyncio.Task] = set()
        self._event_hooks: dict[tuple[ObjectType, EventType], list[EventHook]] = {}

        self._handlers: dict[ObjectType, Handler] = {
            ObjectType.JOB: self._handle_job,
            ObjectType.COMPANY: self._handle_company,
            ObjectType.JOB_ACTIVITY: self._handle_job_activity,
            ObjectType.ATTACHMENT: self._handle_attachment,
            ObjectType.STAFF: self._handle_staff,
        }
        missing = set(ObjectType) - set(self._handlers)
        if missing:
            raise ValueError(
                f"No webhook handler for object types: {sorted(t.value for t in missing)}"
            )

    def register_event_hook(
        self, object_type: ObjectType, event_type: EventType, hook: EventHook
    ) -> None:
        """Run ``hook`` after the object has been re-synced for this event type."""
        self._event_hooks.setdefault((object_type, event_type), []).append(hook)

    # ===== Ingestion =====

    async def ingest(self, event_id: str, payload: WebhookPayload) -> bool:
        """Store an inbound event and start processing it in the background.

        Returns:
            bool: False when the event id was already known and nothing new
            was scheduled
        """
        created = await self.events.create_if_absent(
            event_id, payload.model_dump(mode="json", exclude_none=True)
        )
        if not created:
            status = await self.events.get_status(event_id)
            if status != WebhookEventStatus.FAILED:
                logger.info(
                    "[WebhookProcessor] Duplicate delivery ignored",
                    event_id=event_id,
                    status=status.value if status else None,
                )
                return False
            logger.info("[WebhookProcessor] Redelivery of failed event", event_id=event_id)

        self._spawn(self.process_event(event_id, payload))
        return True

    # ===== Processing =====

    async def process_event(
        self, event_id: str, payload: WebhookPayload, attempt: int = 1
    ) -> WebhookEventStatus:
        """Process one attempt of an event.

        Returns:
            WebhookEventStatus: ``success``, ``failed``, or ``processing`` when
            a retry has been scheduled
        """
        logger.info(
            "[WebhookProcessor] Processing event",
            event_id=event_id,
            attempt=attempt,
            object_type=payload.object_type.value,
            event_type=payload.event_type.value,
        )

        try:
            if await self.events.get_status(event_id) == WebhookEventStatus.SUCCESS:
                logger.info("[WebhookProcessor] Event already processed", event_id=event_id)
                return WebhookEventStatus.SUCCESS

            await self.events.update_status(event_id, WebhookEventStatus.PROCESSING)
            await self._dispatch(payload)
            await self.events.update_status(event_id, WebhookEventStatus.SUCCESS)
        except Exception as e:
            return await self._handle_failure(event_id, payload, attempt, e)

        await self._broadcast(payload)
        await self._audit(AuditAction.PROCESSED, event_id, payload, attempts=attempt)
        logger.info("[WebhookProcessor] Event processed", event_id=event_id)
        return WebhookEventStatus.SUCCESS

    async def _handle_failure(
        self,
        event_id: str,
        payload: WebhookPayload,
        attempt: int,
        error: Exception,
    ) -> WebhookEventStatus:
        missing = isinstance(error, UpstreamObjectMissingError)
        retryable = not missing or self.settings.retry_missing_objects

        if retryable and attempt < self.settings.max_retries:
            delay = self.settings.retry_delay * 2 ** (attempt - 1)
            logger.warning(
                "[WebhookProcessor] Event failed, retry scheduled",
                event_id=event_id,
                attempt=attempt,
                delay=delay,
                error=str(error),
            )
            self._spawn(self._retry_later(event_id, payload, attempt + 1, delay))
            return WebhookEventStatus.PROCESSING

        logger.error(
            "[WebhookProcessor] Event failed",
            event_id=event_id,
            attempt=attempt,
            missing_upstream=missing,
            error=str(error),
        )
        try:
            await self.events.update_status(
                event_id, WebhookEventStatus.FAILED, error_details=str(error)
            )
        except Exception:
            logger.exception(
                "[WebhookProcessor] Could not mark event as failed", event_id=event_id
            )
        await self._audit(
            AuditAction.FAILED, event_id, payload, attempts=attempt, error=str(error)
        )
        return WebhookEventStatus.FAILED

    async def _retry_later(
        self, event_id: str, payload: WebhookPayload, attempt: int, delay: float
    ) -> None:
        await self._sleep(delay)
        await self.process_event(event_id, payload, attempt)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def wait_for_pending(self) -> None:
        """Wait until no background processing or retries remain."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel background processing; cancelled events stay in their current status."""
        for task in list(self._pending):
            task.cancel()
        await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ===== Dispatch =====

    async def _dispatch(self, payload: WebhookPayload) -> None:
        handler = self._handlers[payload.object_type]
        try:
            await handler(payload)
        except (ServiceM8NotFoundError, UpstreamObjectMissingError) as e:
            if payload.event_type != EventType.DELETED:
                if isinstance(e, UpstreamObjectMissingError):
                    raise
                raise UpstreamObjectMissingError(
                    payload.object_type, payload.object_uuid
                ) from e
            # Deletions are expected to leave nothing behind upstream
            logger.info(
                "[WebhookProcessor] Deleted object is gone upstream",
                object_type=payload.object_type.value,
                object_uuid=payload.object_uuid,
            )

        for hook in self._event_hooks.get((payload.object_type, payload.event_type), []):
            await hook(payload)

    async def _handle_job(self, payload: WebhookPayload) -> None:
        await self.sync.sync_job(payload.object_uuid)

    async def _handle_company(self, payload: WebhookPayload) -> None:
        await self.sync.sync_company(payload.object_uuid)

    async def _handle_job_activity(self, payload: WebhookPayload) -> None:
        # ServiceM8 reports activity events against the owning job
        response = await self.client.get_job_activities(
            payload.object_uuid, use_cache=False
        )
        if not response.data:
            raise UpstreamObjectMissingError(payload.object_type, payload.object_uuid)
        await self.sync.sync_job_activities(payload.object_uuid, response.data)

    async def _handle_attachment(self, payload: WebhookPayload) -> None:
        response = await self.client.get_job_attachments(
            payload.object_uuid, use_cache=False
        )
        if not response.data:
            raise UpstreamObjectMissingError(payload.object_type, payload.object_uuid)
        await self.sync.sync_job_attachments(payload.object_uuid, response.data)

    async def _handle_staff(self, payload: WebhookPayload) -> None:
        # Staff are not stored locally; confirm the member's current state only
        response = await self.client.get_staff(use_cache=False)
        active = any(member.uuid == payload.object_uuid for member in response.data)
        logger.info(
            "[WebhookProcessor] Staff event",
            staff_uuid=payload.object_uuid,
            event_type=payload.event_type.value,
            active=active,
        )

    # ===== Side effects =====

    async def _broadcast(self, payload: WebhookPayload) -> None:
        route = REALTIME_CHANNELS.get(payload.object_type)
        if route is None:
            return

        channel, message_type = route
        message = RealtimeMessage(
            type=message_type,
            object_uuid=payload.object_uuid,
            event_type=payload.event_type,
            changes=payload.changes,
            timestamp=payload.timestamp,
        )
        try:
            await self.broadcaster.publish(channel, REALTIME_EVENT, message.model_dump(mode="json"))
        except Exception as e:
            logger.warning(
                "[WebhookProcessor] Realtime broadcast failed", channel=channel, error=str(e)
            )

    async def _audit(
        self,
        action: AuditAction,
        event_id: str,
        payload: WebhookPayload,
        **metadata: Any,
    ) -> None:
        try:
            await self.audit_logs.record(
                action=action.value,
                target_type="webhook_event",
                target_id=event_id,
                metadata={
                    "object_type": payload.object_type.value,
                    "event_type": payload.event_type.value,
                    "object_uuid": payload.object_uuid,
                    **metadata,
                },
            )
        except Exception as e:
            logger.warning(
                "[WebhookProcessor] Failed to write audit entry", event_id=event_id, error=str(e)
            )

    # ===== Operations =====

    async def get_processing_stats(self) -> ProcessingStats:
        counts = await self.events.count_by_status()
        stats = ProcessingStats(
            total=sum(counts.values()),
            **{status.value: counts.get(status.value, 0) for status in WebhookEventStatus},
        )
        if stats.total:
            stats.success_rate = round(stats.success / stats.total * 100, 2)
        return stats

    async def list_events(
        self,
        status: WebhookEventStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WebhookEventResponse]:
        events = await self.events.list_events(status=status, limit=limit, offset=offset)
        return [WebhookEventResponse.model_validate(event) for event in events]

    async def get_event(self, event_id: str) -> WebhookEventResponse | None:
        event = await self.events.get_event(event_id)
        return WebhookEventResponse.model_validate(event) if event else None

    async def retry_event(self, event_id: str) -> WebhookEventStatus | None:
        """Manually re-run a failed event.

        Returns:
            The resulting status, or None if the event does not exist

        Raises:
            WebhookEventNotRetryableError: If the event is not in ``failed`` status
        """
        event = await self.events.get_event(event_id)
        if event is None:
            return None
        if event.status != WebhookEventStatus.FAILED.value:
            raise WebhookEventNotRetryableError(
                f"Event {event_id} is {event.status}; only failed events can be retried"
            )
        return await self.process_event(event_id, WebhookPayload.model_validate(event.payload))

    async def retry_failed_events(self) -> int:
        """Re-run every failed event, oldest first; returns how many were re-run."""
        failed = await self.events.list_events(
            status=WebhookEventStatus.FAILED, limit=0, oldest_first=True
        )

        retried = 0
        for event in failed:
            try:
                payload = WebhookPayload.model_validate(event.payload)
            except ValidationError as e:
                logger.error(
                    "[WebhookProcessor] Stored payload is invalid", event_id=event.id, error=str(e)
                )
                continue
            await self.process_event(event.id, payload)
            retried += 1

        logger.info("[WebhookProcessor] Retried failed events", count=retried)
        return retried
