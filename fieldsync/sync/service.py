"""
Sync engine between ServiceM8 and local storage.

Batch methods isolate failures per record: one bad job never aborts the rest
of its batch, and errors are collected on the returned ``SyncStatus``. Only a
failed list fetch marks a batch as aborted.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from fieldsync.db.audit_logs.repository import AuditLogRepository
from fieldsync.db.clients.repository import ClientRepository
from fieldsync.db.job_records.model import JobRecordKind
from fieldsync.db.job_records.repository import JobRecordRepository
from fieldsync.db.jobs.repository import JobRepository
from fieldsync.db.quotes.repository import QuoteRepository
from fieldsync.integrations.servicem8.client import ServiceM8Client
from fieldsync.integrations.servicem8.constants import JobStatus
from fieldsync.integrations.servicem8.schemas import (
    Attachment,
    Company,
    DateRange,
    Job,
    JobActivity,
    JobQueryOptions,
    JobWithDetails,
    Material,
)
from fieldsync.sync.constants import (
    BULK_TARGET_ID,
    CHILD_AUDIT_ACTIONS,
    QUOTE_APPROVED,
    QUOTE_PENDING,
    UPSTREAM_DATE_FORMAT,
    AuditAction,
    SyncTarget,
    SyncType,
)
from fieldsync.sync.exceptions import SyncAbortedError, SyncError
from fieldsync.sync.schemas import (
    CompanyIndex,
    CompanySyncStatus,
    FullSyncResult,
    JobRecordResponse,
    SyncStatus,
    SyncTriggerResult,
)
from fieldsync.utils.logger import logger

# Upstream job attribute -> local column, copied only when present in the payload
JOB_COLUMN_MAP = {
    "company_uuid": "company_uuid",
    "status": "status",
    "job_description": "description",
    "date": "scheduled_date",
    "job_address": "address",
}

WITH_CHILDREN = JobQueryOptions(
    include_activities=True, include_attachments=True, include_materials=True
)


def company_values(company: Company) -> dict[str, Any]:
    """Map an upstream company onto client columns present in the payload."""
    fields = company.model_fields_set
    values: dict[str, Any] = {"uuid": company.uuid}
    if "name" in fields:
        values["name"] = company.name
    if "address" in fields:
        values["address"] = company.address
    if fields & {"email", "phone", "mobile"}:
        values["contact_info"] = {
            "email": company.email,
            "phone": company.phone or company.mobile,
        }
    return values


def job_values(job: Job) -> dict[str, Any]:
    """Map an upstream job onto job columns present in the payload."""
    fields = job.model_fields_set
    values: dict[str, Any] = {"uuid": job.uuid}
    for source, column in JOB_COLUMN_MAP.items():
        if source in fields:
            values[column] = getattr(job, source)
    if "quote_sent" in fields:
        values["quote_sent"] = job.quote_sent == 1
    return values


def quote_values(job: Job) -> dict[str, Any] | None:
    """Derive quote columns from a job, or None when the job carries no quote."""
    if job.status != JobStatus.QUOTE.value or not job.quote_total_amount:
        return None

    fields = job.model_fields_set
    values: dict[str, Any] = {"amount": job.quote_total_amount}
    if "quote_approved" in fields:
        values["status"] = QUOTE_APPROVED if job.quote_approved == 1 else QUOTE_PENDING
    if "quote_approved_date" in fields:
        values["approved_at"] = job.quote_approved_date
    return values


class SyncService:
    """Pull-and-upsert bridge from ServiceM8 into the local database."""

    def __init__(
        self,
        client: ServiceM8Client,
        clients: ClientRepository,
        jobs: JobRepository,
        quotes: QuoteRepository,
        job_records: JobRecordRepository,
        audit_logs: AuditLogRepository,
        incremental_window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.client = client
        self.clients = clients
        self.jobs = jobs
        self.quotes = quotes
        self.job_records = job_records
        self.audit_logs = audit_logs
        self.incremental_window = incremental_window
        self._clock = clock

    # ===== Batch syncs =====

    async def sync_companies(self) -> SyncStatus:
        """Fetch every company and upsert each one independently."""
        status = SyncStatus()

        try:
            response = await self.client.get_clients()
        except Exception as e:
            logger.error("[SyncService] Failed to fetch companies", error=str(e))
            status.abort(f"Failed to fetch companies: {e}")
            return status

        status.total_records = len(response.data)
        for company in response.data:
            try:
                await self.clients.upsert(company_values(company))
                status.synced_records += 1
            except Exception as e:
                status.record_failure(f"Failed to sync company {company.uuid}: {e}")

        await self._log_sync_activity(SyncTarget.COMPANIES, BULK_TARGET_ID, status)
        logger.info(
            "[SyncService] Companies synced",
            total=status.total_records,
            synced=status.synced_records,
            failed=status.failed_records,
        )
        return status

    async def sync_jobs_for_company(
        self, company_uuid: str, options: JobQueryOptions | None = None
    ) -> SyncStatus:
        """Sync a company's jobs, fanning out to child records when requested."""
        options = options or JobQueryOptions()
        status = SyncStatus()

        try:
            response = await self.client.get_jobs(company_uuid, options)
        except Exception as e:
            logger.error(
                "[SyncService] Failed to fetch jobs", company_uuid=company_uuid, error=str(e)
            )
            status.abort(f"Failed to fetch jobs for company {company_uuid}: {e}")
            return status

        status.total_records = len(response.data)
        for job in response.data:
            try:
                await self._upsert_job(job)
                await self._sync_expanded_children(job, options)
                status.synced_records += 1
            except Exception as e:
                status.record_failure(f"Failed to sync job {job.uuid}: {e}")

        await self._log_sync_activity(SyncTarget.JOBS, company_uuid, status)
        return status

    async def sync_quotes_for_company(
        self, company_uuid: str, options: JobQueryOptions | None = None
    ) -> SyncStatus:
        """Sync a company's jobs in ``Quote`` status and their derived quotes."""
        options = options or JobQueryOptions()
        status = SyncStatus()

        try:
            response = await self.client.get_quotes(company_uuid, options)
        except Exception as e:
            logger.error(
                "[SyncService] Failed to fetch quotes", company_uuid=company_uuid, error=str(e)
            )
            status.abort(f"Failed to fetch quotes for company {company_uuid}: {e}")
            return status

        status.total_records = len(response.data)
        for job in response.data:
            try:
                job_id = await self._upsert_job(job)
                await self._upsert_quote(job_id, job)
                await self._sync_expanded_children(job, options)
                status.synced_records += 1
            except Exception as e:
                status.record_failure(f"Failed to sync quote {job.uuid}: {e}")

        await self._log_sync_activity(SyncTarget.QUOTES, company_uuid, status)
        return status

    # ===== Full sync pipeline =====

    async def sync_company_stage(self) -> tuple[SyncStatus, CompanyIndex]:
        """Sync companies and return the index the job stage requires.

        Raises:
            SyncAbortedError: If the company list could not be fetched
        """
        status = await self.sync_companies()
        if status.aborted:
            raise SyncAbortedError(status.errors[-1])

        company_uuids = await self.clients.list_uuids()
        return status, CompanyIndex(company_uuids=tuple(company_uuids))

    async def sync_job_stage(
        self, index: CompanyIndex, options: JobQueryOptions
    ) -> tuple[list[SyncStatus], list[SyncStatus]]:
        """Sync jobs and quotes for every company in the index."""
        jobs_status: list[SyncStatus] = []
        quotes_status: list[SyncStatus] = []

        for company_uuid in index.company_uuids:
            try:
                jobs_status.append(await self.sync_jobs_for_company(company_uuid, options))
                quotes_status.append(
                    await self.sync_quotes_for_company(company_uuid, options)
                )
            except Exception:
                logger.exception(
                    "[SyncService] Failed to sync company", company_uuid=company_uuid
                )

        return jobs_status, quotes_status

    async def perform_full_sync(
        self, options: JobQueryOptions = WITH_CHILDREN
    ) -> FullSyncResult:
        """Sync companies, then jobs and quotes for every known company.

        Raises:
            SyncAbortedError: If companies could not be fetched
        """
        logger.info("[SyncService] Starting full sync")
        companies_status, index = await self.sync_company_stage()
        jobs_status, quotes_status = await self.sync_job_stage(index, options)

        result = FullSyncResult(
            companies=companies_status, jobs=jobs_status, quotes=quotes_status
        )
        logger.info(
            "[SyncService] Full sync finished",
            companies=len(index.company_uuids),
            processed=result.processed,
            errors=result.errors,
        )
        return result

    async def trigger_sync(self, sync_type: SyncType) -> SyncTriggerResult:
        """Run a sync of the given scope and summarize it.

        Incremental syncs only pull jobs and quotes dated within the
        incremental window and skip child records. Emergency syncs drop the
        response cache and run the full pipeline.
        """
        logger.info("[SyncService] Sync triggered", type=sync_type.value)

        if sync_type == SyncType.INCREMENTAL:
            now = self._clock()
            options = JobQueryOptions(
                date_range=DateRange(
                    start=(now - self.incremental_window).strftime(UPSTREAM_DATE_FORMAT),
                    end=now.strftime(UPSTREAM_DATE_FORMAT),
                )
            )
        else:
            if sync_type == SyncType.EMERGENCY:
                self.client.clear_cache()
            options = WITH_CHILDREN

        result = await self.perform_full_sync(options)
        return SyncTriggerResult(
            type=sync_type, processed=result.processed, errors=result.errors
        )

    # ===== Single job (webhook path) =====

    async def sync_job(self, job_uuid: str) -> SyncStatus:
        """Re-pull one job with its quote and child records, bypassing the cache.

        Upstream errors propagate so callers can tell a missing job apart
        from a transient failure.
        """
        job = await self.client.get_job(job_uuid, use_cache=False)
        job_id = await self._upsert_job(job)
        await self._upsert_quote(job_id, job)

        activities = await self.client.get_job_activities(job_uuid, use_cache=False)
        attachments = await self.client.get_job_attachments(job_uuid, use_cache=False)
        materials = await self.client.get_job_materials(job_uuid, use_cache=False)
        await self.sync_job_activities(job_uuid, activities.data)
        await self.sync_job_attachments(job_uuid, attachments.data)
        await self.sync_job_materials(job_uuid, materials.data)

        return SyncStatus(total_records=1, synced_records=1)

    async def sync_company(self, company_uuid: str) -> int:
        """Re-pull one company; returns the local client id."""
        company = await self.client.get_company(company_uuid, use_cache=False)
        return await self.clients.upsert(company_values(company))

    # ===== Child records =====

    async def sync_job_activities(self, job_uuid: str, activities: list[JobActivity]) -> int:
        return await self._sync_children(JobRecordKind.ACTIVITY, job_uuid, activities)

    async def sync_job_attachments(
        self, job_uuid: str, attachments: list[Attachment]
    ) -> int:
        return await self._sync_children(JobRecordKind.ATTACHMENT, job_uuid, attachments)

    async def sync_job_materials(self, job_uuid: str, materials: list[Material]) -> int:
        return await self._sync_children(JobRecordKind.MATERIAL, job_uuid, materials)

    async def _sync_children(
        self,
        kind: JobRecordKind,
        job_uuid: str,
        records: list[JobActivity] | list[Attachment] | list[Material],
    ) -> int:
        if not records:
            return 0

        job_id = await self.jobs.get_id_by_uuid(job_uuid)
        if job_id is None:
            raise SyncError(f"Job not found for {kind.value} records: {job_uuid}")

        payloads = [record.model_dump(mode="json", exclude_none=True) for record in records]
        written = await self.job_records.upsert_many(job_id, job_uuid, kind, payloads)

        await self.audit_logs.record(
            action=CHILD_AUDIT_ACTIONS[kind].value,
            target_type="job",
            target_id=job_id,
            metadata={
                "job_uuid": job_uuid,
                "count": written,
                "record_uuids": [payload["uuid"] for payload in payloads],
            },
        )
        return written

    async def _sync_expanded_children(
        self, job: JobWithDetails, options: JobQueryOptions
    ) -> None:
        if options.include_activities and job.activities:
            await self.sync_job_activities(job.uuid, job.activities)
        if options.include_attachments and job.attachments:
            await self.sync_job_attachments(job.uuid, job.attachments)
        if options.include_materials and job.materials:
            await self.sync_job_materials(job.uuid, job.materials)

    # ===== Upserts =====

    async def _upsert_job(self, job: Job) -> int:
        return await self.jobs.upsert(job_values(job))

    async def _upsert_quote(self, job_id: int, job: Job) -> int | None:
        values = quote_values(job)
        if values is None:
            return None
        return await self.quotes.upsert(job_id, values)

    # ===== Status =====

    async def _log_sync_activity(
        self, target: SyncTarget, target_id: str, status: SyncStatus
    ) -> None:
        try:
            await self.audit_logs.record(
                action=AuditAction.SYNC_COMPLETED.value,
                target_type=target.value,
                target_id=target_id,
                metadata={"sync_status": status.model_dump(mode="json")},
            )
        except Exception as e:
            logger.warning(
                "[SyncService] Failed to record sync activity",
                target=target.value,
                error=str(e),
            )

    async def get_sync_status(self, company_uuid: str) -> CompanySyncStatus:
        """Summarize the last job sync and local counts for a company."""
        last = await self.audit_logs.latest(
            AuditAction.SYNC_COMPLETED.value, SyncTarget.JOBS.value, company_uuid
        )
        total_jobs = await self.jobs.count(company_uuid=company_uuid)
        total_quotes = await self.jobs.count(
            company_uuid=company_uuid, status=JobStatus.QUOTE.value
        )

        last_error = None
        if last is not None:
            errors = (last.details or {}).get("sync_status", {}).get("errors") or []
            last_error = errors[0] if errors else None

        return CompanySyncStatus(
            company_uuid=company_uuid,
            last_sync=last.timestamp if last is not None else None,
            total_jobs=total_jobs,
            total_quotes=total_quotes,
            last_error=last_error,
        )

    async def get_job_records(
        self, job_uuid: str, kind: JobRecordKind | None = None
    ) -> list[JobRecordResponse]:
        records = await self.job_records.list_for_job(job_uuid, kind)
        return [JobRecordResponse.model_validate(record) for record in records]
