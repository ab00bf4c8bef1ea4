"""
Repository tests against a recording session.

Statements are compiled with the PostgreSQL dialect so upsert and guard
clauses can be checked without a live database.
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from fieldsync.db.clients.repository import ClientRepository
from fieldsync.db.job_records.model import JobRecordKind
from fieldsync.db.job_records.repository import JobRecordRepository
from fieldsync.db.jobs.repository import JobRepository
from fieldsync.db.quotes.repository import QuoteRepository
from fieldsync.db.reconciliation_logs.repository import ReconciliationLogRepository
from fieldsync.db.webhook_events.repository import WebhookEventRepository
from fieldsync.webhooks.constants import WebhookEventStatus


class RecordingSession:
    def __init__(self, result):
        self.result = result
        self.executed = []
        self.added = []
        self.commits = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def execute(self, stmt):
        self.executed.append(stmt)
        return self.result

    def add(self, obj):
        self.added.append(obj)

    async def commit(self):
        self.commits += 1


@pytest.fixture
def result():
    result = MagicMock()
    result.scalar_one.return_value = 7
    result.rowcount = 1
    return result


@pytest.fixture
def session(result):
    return RecordingSession(result)


@pytest.fixture
def session_factory(session):
    return lambda: session


def compile_sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


def update_clause(sql: str) -> str:
    """The SET list of an ON CONFLICT DO UPDATE statement."""
    return sql.split("DO UPDATE SET", 1)[1].split("RETURNING", 1)[0]


class TestUpserts:
    @pytest.mark.asyncio
    async def test_client_upsert_writes_only_present_columns(self, session_factory, session):
        client_id = await ClientRepository(session_factory).upsert(
            {"uuid": "comp-1", "name": "Acme Plumbing"}
        )

        assert client_id == 7
        assert session.commits == 1
        sql = compile_sql(session.executed[0])
        assert "ON CONFLICT (uuid) DO UPDATE SET" in sql
        assert "name = excluded.name" in sql
        assert "updated_at = excluded.updated_at" in sql
        assert "address" not in update_clause(sql)
        assert "contact_info" not in update_clause(sql)

    @pytest.mark.asyncio
    async def test_job_upsert_keeps_unsent_fields(self, session_factory, session):
        await JobRepository(session_factory).upsert({"uuid": "job-1", "status": "Quote"})

        sql = compile_sql(session.executed[0])
        assert "status = excluded.status" in sql
        assert "description" not in update_clause(sql)
        assert "company_uuid" not in update_clause(sql)
        assert "RETURNING jobs.id" in sql

    @pytest.mark.asyncio
    async def test_quote_upsert_keyed_on_job(self, session_factory, session):
        await QuoteRepository(session_factory).upsert(5, {"amount": 1250.0})

        sql = compile_sql(session.executed[0])
        assert "ON CONFLICT (job_id) DO UPDATE SET" in sql
        assert "amount = excluded.amount" in sql
        assert "status" not in update_clause(sql)

    @pytest.mark.asyncio
    async def test_job_records_upsert_per_record(self, session_factory, session):
        written = await JobRecordRepository(session_factory).upsert_many(
            3,
            "job-1",
            JobRecordKind.ACTIVITY,
            [{"uuid": "act-1"}, {"uuid": "act-2", "activity_was_scheduled": 1}],
        )

        assert written == 2
        assert len(session.executed) == 2
        assert session.commits == 1
        sql = compile_sql(session.executed[0])
        assert "ON CONFLICT ON CONSTRAINT uq_job_records_kind_uuid DO UPDATE" in sql

    @pytest.mark.asyncio
    async def test_job_records_empty_batch(self, session_factory, session):
        written = await JobRecordRepository(session_factory).upsert_many(
            3, "job-1", JobRecordKind.MATERIAL, []
        )

        assert written == 0
        assert session.executed == []


class TestReconciliationLogs:
    @pytest.mark.asyncio
    async def test_terminal_update_guarded_by_running_status(self, session_factory, session):
        updated = await ReconciliationLogRepository(session_factory).complete_run(
            "recon_1", records_processed=10, errors=0, duration=3
        )

        assert updated is True
        compiled = session.executed[0].compile(dialect=postgresql.dialect())
        assert "WHERE reconciliation_logs.id =" in str(compiled)
        assert "AND reconciliation_logs.status =" in str(compiled)
        assert "running" in compiled.params.values()
        assert "completed" in compiled.params.values()

    @pytest.mark.asyncio
    async def test_terminal_run_is_not_rewritten(self, session_factory, result):
        result.rowcount = 0

        updated = await ReconciliationLogRepository(session_factory).fail_run(
            "recon_1", error_message="boom", duration=1
        )

        assert updated is False

    @pytest.mark.asyncio
    async def test_create_run_starts_running(self, session_factory, session):
        run = await ReconciliationLogRepository(session_factory).create_run(
            "recon_1", "incremental"
        )

        assert run.status == "running"
        assert run.records_processed == 0
        assert session.added == [run]


class TestWebhookEvents:
    @pytest.mark.asyncio
    async def test_create_if_absent_reports_duplicate(self, session_factory, session, result):
        result.scalar_one_or_none.return_value = None

        created = await WebhookEventRepository(session_factory).create_if_absent(
            "evt-1", {"object_type": "Job"}
        )

        assert created is False
        assert "ON CONFLICT (id) DO NOTHING" in compile_sql(session.executed[0])

    @pytest.mark.asyncio
    async def test_create_if_absent_new_event(self, session_factory, result):
        result.scalar_one_or_none.return_value = "evt-1"

        created = await WebhookEventRepository(session_factory).create_if_absent(
            "evt-1", {"object_type": "Job"}
        )

        assert created is True

    @pytest.mark.asyncio
    async def test_processing_counts_an_attempt(self, session_factory, session):
        await WebhookEventRepository(session_factory).update_status(
            "evt-1", WebhookEventStatus.PROCESSING
        )

        sql = compile_sql(session.executed[0])
        assert "webhook_events.attempts +" in sql

    @pytest.mark.asyncio
    async def test_unknown_event_update(self, session_factory, result):
        result.rowcount = 0

        updated = await WebhookEventRepository(session_factory).update_status(
            "evt-404", WebhookEventStatus.SUCCESS
        )

        assert updated is False

    @pytest.mark.asyncio
    async def test_list_all_oldest_first(self, session_factory, session, result):
        result.scalars.return_value.all.return_value = []

        await WebhookEventRepository(session_factory).list_events(
            status=WebhookEventStatus.FAILED, limit=0, oldest_first=True
        )

        sql = compile_sql(session.executed[0])
        assert "ORDER BY webhook_events.created_at ASC" in sql
        assert "LIMIT %(" not in sql
