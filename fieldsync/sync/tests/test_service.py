"""Tests for the sync engine with mocked upstream client and repositories."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from fieldsync.db.audit_logs.model import AuditLog
from fieldsync.db.audit_logs.repository import AuditLogRepository
from fieldsync.db.clients.repository import ClientRepository
from fieldsync.db.job_records.model import JobRecord, JobRecordKind
from fieldsync.db.job_records.repository import JobRecordRepository
from fieldsync.db.jobs.repository import JobRepository
from fieldsync.db.quotes.repository import QuoteRepository
from fieldsync.integrations.servicem8.client import ServiceM8Client
from fieldsync.integrations.servicem8.exceptions import ServiceM8APIError
from fieldsync.integrations.servicem8.schemas import (
    Company,
    Job,
    JobActivity,
    JobQueryOptions,
    JobWithDetails,
    Material,
    ServiceM8ListResponse,
)
from fieldsync.sync.constants import SyncType
from fieldsync.sync.exceptions import SyncAbortedError
from fieldsync.sync.service import SyncService, company_values, job_values, quote_values

NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)


def listing(items):
    return ServiceM8ListResponse(data=items)


@pytest.fixture
def client():
    client = MagicMock(spec=ServiceM8Client)
    client.get_clients = AsyncMock(return_value=listing([]))
    client.get_jobs = AsyncMock(return_value=listing([]))
    client.get_quotes = AsyncMock(return_value=listing([]))
    client.get_job = AsyncMock()
    client.get_company = AsyncMock()
    client.get_job_activities = AsyncMock(return_value=listing([]))
    client.get_job_attachments = AsyncMock(return_value=listing([]))
    client.get_job_materials = AsyncMock(return_value=listing([]))
    return client


@pytest.fixture
def repos():
    clients = AsyncMock(spec=ClientRepository)
    clients.list_uuids.return_value = []
    jobs = AsyncMock(spec=JobRepository)
    jobs.upsert.return_value = 1
    jobs.get_id_by_uuid.return_value = 1
    quotes = AsyncMock(spec=QuoteRepository)
    job_records = AsyncMock(spec=JobRecordRepository)
    job_records.upsert_many.side_effect = lambda job_id, job_uuid, kind, records: len(records)
    audit_logs = AsyncMock(spec=AuditLogRepository)
    return MagicMock(
        clients=clients,
        jobs=jobs,
        quotes=quotes,
        job_records=job_records,
        audit_logs=audit_logs,
    )


@pytest.fixture
def service(client, repos):
    return SyncService(
        client=client,
        clients=repos.clients,
        jobs=repos.jobs,
        quotes=repos.quotes,
        job_records=repos.job_records,
        audit_logs=repos.audit_logs,
        incremental_window=timedelta(hours=24),
        clock=lambda: NOW,
    )


class TestFieldMapping:
    def test_partial_job_payload_only_maps_present_fields(self):
        job = Job(uuid="job-1", status="Completed")
        assert job_values(job) == {"uuid": "job-1", "status": "Completed"}

    def test_full_job_payload(self):
        job = Job(
            uuid="job-1",
            company_uuid="company-1",
            status="Work Order",
            job_description="Fix leak",
            date="2025-03-01 09:00:00",
            job_address="1 Test St",
            quote_sent=1,
        )
        assert job_values(job) == {
            "uuid": "job-1",
            "company_uuid": "company-1",
            "status": "Work Order",
            "description": "Fix leak",
            "scheduled_date": "2025-03-01 09:00:00",
            "address": "1 Test St",
            "quote_sent": True,
        }

    def test_explicit_null_is_written(self):
        job = Job(uuid="job-1", job_address=None)
        assert job_values(job) == {"uuid": "job-1", "address": None}

    def test_company_contact_falls_back_to_mobile(self):
        company = Company(uuid="c1", name="Acme", mobile="0400 000 000")
        assert company_values(company) == {
            "uuid": "c1",
            "name": "Acme",
            "contact_info": {"email": None, "phone": "0400 000 000"},
        }

    def test_company_without_contact_fields_keeps_existing_contact(self):
        assert company_values(Company(uuid="c1", name="Acme")) == {
            "uuid": "c1",
            "name": "Acme",
        }

    def test_quote_values(self):
        assert quote_values(Job(uuid="j", status="Work Order", quote_total_amount=10)) is None
        assert quote_values(Job(uuid="j", status="Quote")) is None
        assert quote_values(
            Job(
                uuid="j",
                status="Quote",
                quote_total_amount=99.5,
                quote_approved=1,
                quote_approved_date="2025-03-01",
            )
        ) == {"amount": 99.5, "status": "approved", "approved_at": "2025-03-01"}
        assert quote_values(
            Job(uuid="j", status="Quote", quote_total_amount=5, quote_approved=0)
        ) == {"amount": 5, "status": "pending"}


class TestBatchSync:
    @pytest.mark.asyncio
    async def test_sync_companies_isolates_failures(self, service, client, repos):
        client.get_clients.return_value = listing(
            [Company(uuid="c1", name="A"), Company(uuid="c2", name="B"), Company(uuid="c3")]
        )
        repos.clients.upsert.side_effect = [1, RuntimeError("constraint violated"), 3]

        status = await service.sync_companies()

        assert status.total_records == 3
        assert status.synced_records == 2
        assert status.failed_records == 1
        assert status.errors == ["Failed to sync company c2: constraint violated"]
        assert status.aborted is False
        repos.audit_logs.record.assert_awaited_once()
        assert repos.audit_logs.record.await_args.kwargs["action"] == "sync_completed"
        assert repos.audit_logs.record.await_args.kwargs["target_type"] == "companies"

    @pytest.mark.asyncio
    async def test_sync_companies_fetch_failure_aborts(self, service, client, repos):
        client.get_clients.side_effect = ServiceM8APIError("Unauthorized", status_code=401)

        status = await service.sync_companies()

        assert status.aborted is True
        assert status.synced_records == 0
        assert status.error_count == 1
        assert status.errors[0].startswith("Failed to fetch companies:")
        repos.clients.upsert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sync_jobs_isolates_failures(self, service, client, repos):
        client.get_jobs.return_value = listing(
            [JobWithDetails(uuid=f"job-{i}", company_uuid="c1") for i in range(1, 6)]
        )
        repos.jobs.upsert.side_effect = [1, 2, RuntimeError("db down"), 4, 5]

        status = await service.sync_jobs_for_company("c1")

        assert status.total_records == 5
        assert status.synced_records == 4
        assert status.failed_records == 1
        assert status.errors == ["Failed to sync job job-3: db down"]

    @pytest.mark.asyncio
    async def test_sync_jobs_fans_out_to_children(self, service, client, repos):
        client.get_jobs.return_value = listing(
            [
                JobWithDetails(
                    uuid="job-1",
                    activities=[JobActivity(uuid="a1", job_uuid="job-1")],
                    materials=[Material(uuid="m1", name="Pipe"), Material(uuid="m2")],
                )
            ]
        )
        repos.jobs.get_id_by_uuid.return_value = 42
        options = service_options(activities=True, materials=True)

        status = await service.sync_jobs_for_company("c1", options)

        assert status.synced_records == 1
        client.get_job.assert_awaited_once_with("job-1", use_cache=False)
        kinds = [call.args[2] for call in repos.job_records.upsert_many.await_args_list]
        assert kinds == [JobRecordKind.ACTIVITY, JobRecordKind.MATERIAL]
        material_call = repos.job_records.upsert_many.await_args_list[1]
        assert material_call.args[0] == 42
        assert material_call.args[3] == [{"uuid": "m1", "name": "Pipe"}, {"uuid": "m2"}]
        actions = [call.kwargs["action"] for call in repos.audit_logs.record.await_args_list]
        assert actions == ["job_activity_sync", "material_sync", "sync_completed"]

    @pytest.mark.asyncio
    async def test_child_sync_without_local_job_fails_the_record(self, service, client, repos):
        client.get_jobs.return_value = listing(
            [JobWithDetails(uuid="job-1", activities=[JobActivity(uuid="a1")])]
        )
        repos.jobs.get_id_by_uuid.return_value = None

        status = await service.sync_jobs_for_company(
            "c1", service_options(activities=True)
        )

        assert status.synced_records == 0
        assert status.failed_records == 1
        assert "Job not found for activity records: job-1" in status.errors[0]

    @pytest.mark.asyncio
    async def test_sync_quotes_upserts_derived_quote(self, service, client, repos):
        client.get_quotes.return_value = listing(
            [JobWithDetails(uuid="job-1", status="Quote", quote_total_amount=250.0)]
        )
        repos.jobs.upsert.return_value = 7

        status = await service.sync_quotes_for_company("c1")

        assert status.synced_records == 1
        repos.quotes.upsert.assert_awaited_once_with(7, {"amount": 250.0})

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_fail_batch(self, service, client, repos):
        client.get_clients.return_value = listing([Company(uuid="c1")])
        repos.audit_logs.record.side_effect = RuntimeError("audit table missing")

        status = await service.sync_companies()

        assert status.synced_records == 1
        assert status.errors == []


class TestFullSync:
    @pytest.mark.asyncio
    async def test_companies_sync_before_jobs(self, service, client, repos):
        calls = []
        client.get_clients.side_effect = lambda: calls.append("companies") or listing(
            [Company(uuid="c1"), Company(uuid="c2")]
        )
        client.get_jobs.side_effect = lambda uuid, options: calls.append(f"jobs:{uuid}") or listing([])
        client.get_quotes.side_effect = lambda uuid, options: calls.append(f"quotes:{uuid}") or listing([])
        repos.clients.list_uuids.return_value = ["c1", "c2"]

        result = await service.perform_full_sync()

        assert calls == ["companies", "jobs:c1", "quotes:c1", "jobs:c2", "quotes:c2"]
        assert len(result.jobs) == 2
        assert len(result.quotes) == 2
        assert result.errors == 0

    @pytest.mark.asyncio
    async def test_company_fetch_failure_aborts_full_sync(self, service, client):
        client.get_clients.side_effect = ServiceM8APIError("Network error", status_code=None)

        with pytest.raises(SyncAbortedError, match="Failed to fetch companies"):
            await service.perform_full_sync()

        client.get_jobs.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_one_company_failing_does_not_stop_others(self, service, client, repos):
        client.get_clients.return_value = listing([Company(uuid="c1"), Company(uuid="c2")])
        repos.clients.list_uuids.return_value = ["c1", "c2"]
        client.get_jobs.side_effect = [
            ServiceM8APIError("Server error", status_code=500),
            listing([JobWithDetails(uuid="job-1"), JobWithDetails(uuid="job-2")]),
        ]

        result = await service.perform_full_sync()

        assert result.jobs[0].aborted is True
        assert result.jobs[1].synced_records == 2
        assert result.processed == 4
        assert result.errors == 1


class TestTriggerSync:
    @pytest.mark.asyncio
    async def test_incremental_uses_date_window_without_children(self, service, client, repos):
        client.get_clients.return_value = listing([Company(uuid="c1")])
        repos.clients.list_uuids.return_value = ["c1"]
        client.get_jobs.return_value = listing([JobWithDetails(uuid="job-1")])

        result = await service.trigger_sync(SyncType.INCREMENTAL)

        options = client.get_jobs.await_args.args[1]
        assert options.date_range.start == "2025-02-28 12:00:00"
        assert options.date_range.end == "2025-03-01 12:00:00"
        assert options.include_activities is False
        assert result.type == SyncType.INCREMENTAL
        assert result.processed == 2
        assert result.errors == 0
        client.clear_cache.assert_not_called()

    @pytest.mark.asyncio
    async def test_emergency_clears_cache_and_syncs_children(self, service, client):
        await service.trigger_sync(SyncType.EMERGENCY)

        client.clear_cache.assert_called_once()


class TestSingleJob:
    @pytest.mark.asyncio
    async def test_sync_job_repulls_children(self, service, client, repos):
        client.get_job.return_value = JobWithDetails(
            uuid="job-1", status="Quote", quote_total_amount=80.0
        )
        client.get_job_activities.return_value = listing([JobActivity(uuid="a1")])
        repos.jobs.upsert.return_value = 3
        repos.jobs.get_id_by_uuid.return_value = 3

        status = await service.sync_job("job-1")

        assert status.synced_records == 1
        repos.quotes.upsert.assert_awaited_once_with(3, {"amount": 80.0})
        repos.job_records.upsert_many.assert_awaited_once()
        client.get_job_attachments.assert_awaited_once_with("job-1", use_cache=False)
        client.get_job_materials.assert_awaited_once_with("job-1", use_cache=False)

    @pytest.mark.asyncio
    async def test_sync_job_propagates_upstream_errors(self, service, client, repos):
        client.get_job.side_effect = ServiceM8APIError("boom", status_code=500)

        with pytest.raises(ServiceM8APIError):
            await service.sync_job("job-1")

        repos.jobs.upsert.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_sync_status(service, repos):
    synced_at = datetime(2025, 3, 1, 8, 0, 0, tzinfo=UTC)
    repos.audit_logs.latest.return_value = AuditLog(
        action="sync_completed",
        target_type="jobs",
        target_id="c1",
        details={"sync_status": {"errors": ["Failed to sync job job-9: timeout"]}},
        timestamp=synced_at,
    )
    repos.jobs.count.side_effect = [12, 4]

    status = await service.get_sync_status("c1")

    assert status.last_sync == synced_at
    assert status.total_jobs == 12
    assert status.total_quotes == 4
    assert status.last_error == "Failed to sync job job-9: timeout"
    repos.jobs.count.assert_any_await(company_uuid="c1", status="Quote")


@pytest.mark.asyncio
async def test_get_job_records(service, repos):
    repos.job_records.list_for_job.return_value = [
        JobRecord(
            job_id=3,
            job_uuid="job-1",
            kind="attachment",
            uuid="att-1",
            data={"uuid": "att-1", "file_name": "before.jpg"},
            synced_at=datetime(2025, 3, 1, tzinfo=UTC),
        )
    ]

    records = await service.get_job_records("job-1", JobRecordKind.ATTACHMENT)

    assert records[0].kind == JobRecordKind.ATTACHMENT
    assert records[0].data["file_name"] == "before.jpg"
    repos.job_records.list_for_job.assert_awaited_once_with("job-1", JobRecordKind.ATTACHMENT)


def service_options(activities=False, attachments=False, materials=False):
    return JobQueryOptions(
        include_activities=activities,
        include_attachments=attachments,
        include_materials=materials,
    )
