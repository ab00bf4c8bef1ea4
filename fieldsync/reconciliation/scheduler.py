"""
In-process periodic reconciliation.

Deployments with an external scheduler use the cron endpoint instead and leave
``RECONCILIATION_SCHEDULE_ENABLED`` off.
"""

import asyncio
from collections.abc import Awaitable, Callable

from fieldsync.reconciliation.config import ReconciliationSettings
from fieldsync.reconciliation.service import ReconciliationService
from fieldsync.utils.logger import logger


class ReconciliationScheduler:
    """Runs a reconciliation every ``schedule_interval_seconds`` on a background task."""

    def __init__(
        self,
        service: ReconciliationService,
        settings: ReconciliationSettings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.service = service
        self.settings = settings
        self._sleep = sleep
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.settings.schedule_enabled:
            logger.info("[Reconciliation] Scheduler disabled")
            return
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "[Reconciliation] Scheduler started",
            interval_seconds=self.settings.schedule_interval_seconds,
            type=self.settings.scheduled_type.value,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[Reconciliation] Scheduler stopped")

    async def _loop(self) -> None:
        while True:
            await self._sleep(self.settings.schedule_interval_seconds)
            try:
                result = await self.service.run(self.settings.scheduled_type)
                logger.info(
                    "[Reconciliation] Scheduled run finished",
                    run_id=result.id,
                    status=result.status.value,
                )
            except Exception:
                logger.exception("[Reconciliation] Scheduled run crashed")
