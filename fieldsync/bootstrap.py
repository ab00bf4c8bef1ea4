"""
Composition root.

Builds the upstream client, repositories and services once per process. The
FastAPI lifespan stores the result on ``app.state`` and request handlers read
it through ``fieldsync.dependencies``.
"""

from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldsync.db.audit_logs.repository import AuditLogRepository
from fieldsync.db.clients.repository import ClientRepository
from fieldsync.db.job_records.repository import JobRecordRepository
from fieldsync.db.jobs.repository import JobRepository
from fieldsync.db.quotes.repository import QuoteRepository
from fieldsync.db.reconciliation_logs.repository import ReconciliationLogRepository
from fieldsync.db.system_alerts.repository import SystemAlertRepository
from fieldsync.db.webhook_events.repository import WebhookEventRepository
from fieldsync.integrations.servicem8.client import ServiceM8Client
from fieldsync.integrations.servicem8.config import ServiceM8Settings
from fieldsync.reconciliation.config import ReconciliationSettings
from fieldsync.reconciliation.scheduler import ReconciliationScheduler
from fieldsync.reconciliation.service import ReconciliationService
from fieldsync.sync.service import SyncService
from fieldsync.utils.logger import logger
from fieldsync.webhooks.broadcaster import InMemoryBroadcaster
from fieldsync.webhooks.config import WebhookSettings
from fieldsync.webhooks.processor import WebhookProcessor


@dataclass
class Services:
    client: ServiceM8Client
    sync: SyncService
    webhooks: WebhookProcessor
    broadcaster: InMemoryBroadcaster
    reconciliation: ReconciliationService
    scheduler: ReconciliationScheduler

    async def aclose(self) -> None:
        await self.scheduler.stop()
        await self.webhooks.shutdown()
        await self.client.close()


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    servicem8_settings: ServiceM8Settings,
    webhook_settings: WebhookSettings,
    reconciliation_settings: ReconciliationSettings,
) -> Services:
    """Wire every component against one session factory and one upstream client."""
    audit_logs = AuditLogRepository(session_factory)
    jobs = JobRepository(session_factory)
    clients = ClientRepository(session_factory)
    quotes = QuoteRepository(session_factory)

    client = ServiceM8Client(settings=servicem8_settings)
    sync = SyncService(
        client=client,
        clients=clients,
        jobs=jobs,
        quotes=quotes,
        job_records=JobRecordRepository(session_factory),
        audit_logs=audit_logs,
        incremental_window=timedelta(hours=reconciliation_settings.incremental_window_hours),
    )
    broadcaster = InMemoryBroadcaster()
    webhooks = WebhookProcessor(
        settings=webhook_settings,
        events=WebhookEventRepository(session_factory),
        audit_logs=audit_logs,
        client=client,
        sync=sync,
        broadcaster=broadcaster,
    )
    reconciliation = ReconciliationService(
        sync=sync,
        runs=ReconciliationLogRepository(session_factory),
        audit_logs=audit_logs,
        alerts=SystemAlertRepository(session_factory),
        jobs=jobs,
        clients=clients,
        quotes=quotes,
    )
    scheduler = ReconciliationScheduler(reconciliation, reconciliation_settings)

    logger.info("Service graph built", base_url=servicem8_settings.base_url)
    return Services(
        client=client,
        sync=sync,
        webhooks=webhooks,
        broadcaster=broadcaster,
        reconciliation=reconciliation,
        scheduler=scheduler,
    )
