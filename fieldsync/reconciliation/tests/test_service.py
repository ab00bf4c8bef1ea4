"""Tests for the reconciliation orchestrator."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from fieldsync.db.audit_logs.repository import AuditLogRepository
from fieldsync.db.clients.repository import ClientRepository
from fieldsync.db.jobs.repository import JobRepository
from fieldsync.db.quotes.repository import QuoteRepository
from fieldsync.db.reconciliation_logs.model import ReconciliationLog
from fieldsync.db.reconciliation_logs.repository import ReconciliationLogRepository
from fieldsync.db.system_alerts.model import SystemAlert
from fieldsync.db.system_alerts.repository import SystemAlertRepository
from fieldsync.reconciliation.constants import (
    AlertType,
    ConsistencyIssueKind,
    ReconciliationType,
    RunStatus,
)
from fieldsync.reconciliation.service import ReconciliationService
from fieldsync.sync.constants import SyncType
from fieldsync.sync.exceptions import SyncAbortedError
from fieldsync.sync.schemas import FullSyncResult, SyncStatus, SyncTriggerResult
from fieldsync.sync.service import SyncService


def running_record(run_id: str, run_type: str) -> ReconciliationLog:
    return ReconciliationLog(
        id=run_id,
        type=run_type,
        status=RunStatus.RUNNING.value,
        started_at=datetime(2025, 3, 1, tzinfo=UTC),
        records_processed=0,
        errors=0,
    )


class FakeTimer:
    def __init__(self, *values: float) -> None:
        self.values = list(values)

    def __call__(self) -> float:
        return self.values.pop(0) if len(self.values) > 1 else self.values[0]


@pytest.fixture
def sync():
    return AsyncMock(spec=SyncService)


@pytest.fixture
def runs():
    runs = AsyncMock(spec=ReconciliationLogRepository)
    runs.create_run.side_effect = running_record
    runs.complete_run.return_value = True
    runs.fail_run.return_value = True
    return runs


@pytest.fixture
def audit_logs():
    return AsyncMock(spec=AuditLogRepository)


@pytest.fixture
def alerts():
    return AsyncMock(spec=SystemAlertRepository)


@pytest.fixture
def jobs():
    jobs = AsyncMock(spec=JobRepository)
    jobs.find_missing_company.return_value = (0, [])
    jobs.find_unknown_client.return_value = (0, [])
    return jobs


@pytest.fixture
def clients():
    return AsyncMock(spec=ClientRepository)


@pytest.fixture
def quotes():
    quotes = AsyncMock(spec=QuoteRepository)
    quotes.find_missing_job.return_value = (0, [])
    return quotes


@pytest.fixture
def service(sync, runs, audit_logs, alerts, jobs, clients, quotes):
    return ReconciliationService(
        sync=sync,
        runs=runs,
        audit_logs=audit_logs,
        alerts=alerts,
        jobs=jobs,
        clients=clients,
        quotes=quotes,
        timer=FakeTimer(100.0, 112.7),
    )


def audit_actions(audit_logs) -> list[str]:
    return [call.kwargs["action"] for call in audit_logs.record.await_args_list]


class TestRun:
    @pytest.mark.asyncio
    async def test_incremental_run_without_errors(self, service, sync, runs, alerts, audit_logs):
        sync.trigger_sync.return_value = SyncTriggerResult(
            type=SyncType.INCREMENTAL, processed=150, errors=0
        )

        result = await service.run(ReconciliationType.INCREMENTAL)

        assert result.status == RunStatus.COMPLETED
        assert result.records_processed == 150
        assert result.errors == 0
        assert result.duration_seconds == 12
        assert result.id.startswith("recon_")
        sync.trigger_sync.assert_awaited_once_with(SyncType.INCREMENTAL)
        runs.create_run.assert_awaited_once_with(result.id, "incremental")
        runs.complete_run.assert_awaited_once_with(
            result.id, records_processed=150, errors=0, duration=12
        )
        alerts.create_alert.assert_not_awaited()
        assert audit_actions(audit_logs) == [
            "reconciliation_started",
            "reconciliation_completed",
        ]

    @pytest.mark.asyncio
    async def test_full_run_with_errors_raises_warning(self, service, sync, runs, alerts):
        sync.perform_full_sync.return_value = FullSyncResult(
            companies=SyncStatus(total_records=2, synced_records=2),
            jobs=[
                SyncStatus(total_records=5, synced_records=4, failed_records=1),
                SyncStatus(aborted=True, errors=["Failed to fetch jobs for company c2"]),
            ],
            quotes=[SyncStatus(total_records=1, synced_records=1)],
        )

        result = await service.run(ReconciliationType.FULL)

        assert result.status == RunStatus.COMPLETED
        assert result.records_processed == 7
        assert result.errors == 2
        alerts.create_alert.assert_awaited_once()
        alert_type, title = alerts.create_alert.await_args.args[:2]
        assert alert_type == AlertType.WARNING
        assert title == "Reconciliation completed with errors"

    @pytest.mark.asyncio
    async def test_full_run_failure(self, service, sync, runs, alerts, audit_logs):
        sync.perform_full_sync.side_effect = SyncAbortedError(
            "Failed to fetch companies: network error"
        )

        result = await service.run(ReconciliationType.FULL)

        assert result.status == RunStatus.FAILED
        assert result.errors == 1
        assert result.records_processed == 0
        runs.fail_run.assert_awaited_once_with(
            result.id, error_message="Failed to fetch companies: network error", duration=12
        )
        runs.complete_run.assert_not_awaited()
        alert_type, title = alerts.create_alert.await_args.args[:2]
        assert alert_type == AlertType.ERROR
        assert title == "Reconciliation failed"
        assert audit_actions(audit_logs)[-1] == "reconciliation_failed"

    @pytest.mark.asyncio
    async def test_alert_failure_is_only_logged(self, service, sync, alerts):
        sync.perform_full_sync.side_effect = RuntimeError("boom")
        alerts.create_alert.side_effect = RuntimeError("alerts table missing")

        result = await service.run(ReconciliationType.FULL)

        assert result.status == RunStatus.FAILED

    @pytest.mark.asyncio
    async def test_failure_to_mark_failed_still_returns_result(self, service, sync, runs):
        sync.trigger_sync.side_effect = RuntimeError("sync exploded")
        runs.fail_run.side_effect = RuntimeError("database unavailable")

        result = await service.run(ReconciliationType.EMERGENCY)

        assert result.status == RunStatus.FAILED
        sync.trigger_sync.assert_awaited_once_with(SyncType.EMERGENCY)

    @pytest.mark.asyncio
    async def test_run_record_creation_failure(self, service, sync, runs, alerts, audit_logs):
        runs.create_run.side_effect = RuntimeError("connection refused")

        result = await service.run(ReconciliationType.INCREMENTAL)

        assert result.status == RunStatus.FAILED
        assert "Failed to create reconciliation record" in result.error_message
        sync.trigger_sync.assert_not_awaited()
        assert alerts.create_alert.await_args.args[0] == AlertType.ERROR
        assert audit_actions(audit_logs) == ["reconciliation_failed"]
        assert audit_logs.record.await_args.kwargs["target_id"] == result.id

    @pytest.mark.asyncio
    async def test_completion_storage_failure_fails_run(self, service, sync, runs):
        sync.trigger_sync.return_value = SyncTriggerResult(
            type=SyncType.INCREMENTAL, processed=3, errors=0
        )
        runs.complete_run.side_effect = RuntimeError("write timeout")

        result = await service.run(ReconciliationType.INCREMENTAL)

        assert result.status == RunStatus.FAILED
        runs.fail_run.assert_awaited_once()


class TestChecks:
    @pytest.mark.asyncio
    async def test_consistency_checks_report_only_nonzero(self, service, jobs, quotes):
        jobs.find_missing_company.return_value = (3, ["job-1", "job-2", "job-3"])
        quotes.find_missing_job.return_value = (1, [17])

        report = await service.perform_consistency_checks()

        assert [(i.kind, i.count) for i in report.issues] == [
            (ConsistencyIssueKind.JOBS_MISSING_CLIENT, 3),
            (ConsistencyIssueKind.QUOTES_MISSING_JOB, 1),
        ]
        assert report.details["sample"] == {
            "jobs_missing_client": ["job-1", "job-2", "job-3"],
            "quotes_missing_job": [17],
        }

    @pytest.mark.asyncio
    async def test_clean_database_has_no_issues(self, service):
        report = await service.perform_consistency_checks()
        assert report.issues == []

    @pytest.mark.asyncio
    async def test_resolve_conflicts_placeholder(self, service):
        result = await service.resolve_conflicts()
        assert result.resolved == 0
        assert result.strategies == []


class TestReporting:
    @pytest.mark.asyncio
    async def test_metrics(self, service, runs, jobs, clients):
        completed = running_record("recon_1", "full")
        completed.status = RunStatus.COMPLETED.value
        runs.list_runs.return_value = [completed]
        runs.count_failed_since.return_value = 2
        runs.last_completed.return_value = completed
        jobs.count.return_value = 40
        clients.count.return_value = 9

        metrics = await service.get_metrics()

        assert metrics.failed_last_24h == 2
        assert metrics.recent_runs[0].id == "recon_1"
        assert metrics.last_completed.status == RunStatus.COMPLETED
        assert metrics.totals.jobs == 40
        assert metrics.totals.clients == 9

    @pytest.mark.asyncio
    async def test_get_run(self, service, runs):
        runs.get_run.side_effect = [running_record("recon_1", "incremental"), None]

        found = await service.get_run("recon_1")
        missing = await service.get_run("recon_2")

        assert found.id == "recon_1"
        assert found.status == RunStatus.RUNNING
        assert missing is None

    @pytest.mark.asyncio
    async def test_list_alerts(self, service, alerts):
        alerts.list_alerts.return_value = [
            SystemAlert(
                id=1,
                type="warning",
                title="Reconciliation completed with errors",
                message="Reconciliation recon_1 completed with 2 errors",
                details={"errors": 2},
                resolved=False,
                created_at=datetime(2025, 3, 1, tzinfo=UTC),
            )
        ]

        result = await service.list_alerts(resolved=False)

        assert result[0].metadata == {"errors": 2}
        assert result[0].type == AlertType.WARNING
        alerts.list_alerts.assert_awaited_once_with(resolved=False, limit=50)
