"""
Reconciliation orchestrator.

A run moves ``running -> completed | failed`` exactly once. ``run`` never
raises: every outcome, including a run that could not be recorded, comes
back as a ``ReconciliationResult``. Failures and runs with errors raise
system alerts; alert insertion problems are only logged.
"""

import secrets
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from fieldsync.db.audit_logs.repository import AuditLogRepository
from fieldsync.db.clients.repository import ClientRepository
from fieldsync.db.jobs.repository import JobRepository
from fieldsync.db.quotes.repository import QuoteRepository
from fieldsync.db.reconciliation_logs.repository import ReconciliationLogRepository
from fieldsync.db.system_alerts.repository import SystemAlertRepository
from fieldsync.reconciliation.constants import (
    AlertType,
    AuditAction,
    ConsistencyIssueKind,
    ReconciliationType,
    RunStatus,
)
from fieldsync.reconciliation.exceptions import ReconciliationError
from fieldsync.reconciliation.schemas import (
    ConflictResolution,
    ConsistencyIssue,
    ConsistencyReport,
    MetricsTotals,
    ReconciliationMetrics,
    ReconciliationResult,
    ReconciliationRun,
    SystemAlertResponse,
)
from fieldsync.sync.constants import SyncType
from fieldsync.sync.service import SyncService
from fieldsync.utils.logger import logger

AUDIT_TARGET_TYPE = "system"
CONSISTENCY_SAMPLE_SIZE = 10


def new_run_id() -> str:
    return f"recon_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class ReconciliationService:
    """Runs reconciliation syncs and reports on local data consistency."""

    def __init__(
        self,
        sync: SyncService,
        runs: ReconciliationLogRepository,
        audit_logs: AuditLogRepository,
        alerts: SystemAlertRepository,
        jobs: JobRepository,
        clients: ClientRepository,
        quotes: QuoteRepository,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sync = sync
        self.runs = runs
        self.audit_logs = audit_logs
        self.alerts = alerts
        self.jobs = jobs
        self.clients = clients
        self.quotes = quotes
        self._timer = timer

    # ===== Runs =====

    async def run(
        self, run_type: ReconciliationType = ReconciliationType.INCREMENTAL
    ) -> ReconciliationResult:
        """Start and execute a reconciliation run, returning its terminal result."""
        run_id = new_run_id()
        try:
            run = await self.start(run_type, run_id=run_id)
        except ReconciliationError as e:
            await self._raise_alert(
                AlertType.ERROR,
                "Reconciliation failed",
                f"Reconciliation {run_id} could not be started",
                {"reconciliation_id": run_id, "type": run_type.value, "error": str(e)},
            )
            await self._audit(
                AuditAction.FAILED,
                run_id,
                {"type": run_type.value, "error": str(e)},
            )
            return ReconciliationResult(
                id=run_id,
                type=run_type,
                status=RunStatus.FAILED,
                records_processed=0,
                errors=1,
                duration_seconds=0,
                error_message=str(e),
            )
        return await self.execute(run)

    async def start(
        self, run_type: ReconciliationType, run_id: str | None = None
    ) -> ReconciliationRun:
        """Record a new run in ``running`` status.

        Raises:
            ReconciliationError: If the run record could not be created
        """
        run_id = run_id or new_run_id()
        try:
            record = await self.runs.create_run(run_id, run_type.value)
        except Exception as e:
            logger.exception("[Reconciliation] Failed to create run record", run_id=run_id)
            raise ReconciliationError(
                f"Failed to create reconciliation record: {e}"
            ) from e

        await self._audit(
            AuditAction.STARTED, run_id, {"type": run_type.value, "reconciliation_id": run_id}
        )
        logger.info("[Reconciliation] Run started", run_id=run_id, type=run_type.value)
        return ReconciliationRun.model_validate(record)

    async def execute(self, run: ReconciliationRun) -> ReconciliationResult:
        """Perform the sync for a started run and record its terminal state."""
        started = self._timer()

        try:
            processed, errors = await self._perform_sync(run.type)
            duration = self._elapsed(started)
            await self.runs.complete_run(
                run.id, records_processed=processed, errors=errors, duration=duration
            )
        except Exception as e:
            return await self._fail(run, e, self._elapsed(started))

        await self._audit(
            AuditAction.COMPLETED,
            run.id,
            {
                "type": run.type.value,
                "processed": processed,
                "errors": errors,
                "duration_seconds": duration,
            },
        )
        if errors > 0:
            await self._raise_alert(
                AlertType.WARNING,
                "Reconciliation completed with errors",
                f"Reconciliation {run.id} completed with {errors} errors",
                {
                    "reconciliation_id": run.id,
                    "type": run.type.value,
                    "errors": errors,
                    "processed": processed,
                },
            )

        logger.info(
            "[Reconciliation] Run completed",
            run_id=run.id,
            processed=processed,
            errors=errors,
            duration_seconds=duration,
        )
        return ReconciliationResult(
            id=run.id,
            type=run.type,
            status=RunStatus.COMPLETED,
            records_processed=processed,
            errors=errors,
            duration_seconds=duration,
        )

    async def _perform_sync(self, run_type: ReconciliationType) -> tuple[int, int]:
        if run_type == ReconciliationType.FULL:
            result = await self.sync.perform_full_sync()
            return result.processed, result.errors

        triggered = await self.sync.trigger_sync(SyncType(run_type.value))
        return triggered.processed, triggered.errors

    async def _fail(
        self, run: ReconciliationRun, error: Exception, duration: int
    ) -> ReconciliationResult:
        message = str(error) or type(error).__name__
        logger.error("[Reconciliation] Run failed", run_id=run.id, error=message)

        try:
            await self.runs.fail_run(run.id, error_message=message, duration=duration)
        except Exception:
            logger.exception("[Reconciliation] Could not mark run as failed", run_id=run.id)

        await self._raise_alert(
            AlertType.ERROR,
            "Reconciliation failed",
            f"Reconciliation {run.id} failed",
            {"reconciliation_id": run.id, "type": run.type.value, "error": message},
        )
        await self._audit(
            AuditAction.FAILED, run.id, {"type": run.type.value, "error": message}
        )
        return ReconciliationResult(
            id=run.id,
            type=run.type,
            status=RunStatus.FAILED,
            records_processed=0,
            errors=1,
            duration_seconds=duration,
            error_message=message,
        )

    def _elapsed(self, started: float) -> int:
        return int(self._timer() - started)

    # ===== Consistency =====

    async def perform_consistency_checks(self) -> ConsistencyReport:
        """Count known anomaly classes in local data, with sample identifiers."""
        report = ConsistencyReport()
        samples: dict[str, Any] = {}

        checks = (
            (ConsistencyIssueKind.JOBS_MISSING_CLIENT, self.jobs.find_missing_company),
            (ConsistencyIssueKind.JOBS_UNKNOWN_CLIENT, self.jobs.find_unknown_client),
            (ConsistencyIssueKind.QUOTES_MISSING_JOB, self.quotes.find_missing_job),
        )
        for kind, check in checks:
            count, sample = await check(CONSISTENCY_SAMPLE_SIZE)
            if count > 0:
                report.issues.append(ConsistencyIssue(kind=kind, count=count))
                samples[kind.value] = sample

        report.details["sample"] = samples
        logger.info(
            "[Reconciliation] Consistency checks finished",
            issues={issue.kind.value: issue.count for issue in report.issues},
        )
        return report

    async def resolve_conflicts(self) -> ConflictResolution:
        """Extension point for per-entity conflict strategies; none exist yet."""
        return ConflictResolution(resolved=0, strategies=[])

    # ===== Reporting =====

    async def get_history(self, limit: int = 10) -> list[ReconciliationRun]:
        runs = await self.runs.list_runs(limit=limit)
        return [ReconciliationRun.model_validate(run) for run in runs]

    async def get_run(self, run_id: str) -> ReconciliationRun | None:
        run = await self.runs.get_run(run_id)
        return ReconciliationRun.model_validate(run) if run else None

    async def get_metrics(self) -> ReconciliationMetrics:
        recent = await self.get_history(limit=10)
        failed = await self.runs.count_failed_since(datetime.now(UTC) - timedelta(hours=24))
        last_completed = await self.runs.last_completed()
        return ReconciliationMetrics(
            recent_runs=recent,
            failed_last_24h=failed,
            last_completed=(
                ReconciliationRun.model_validate(last_completed) if last_completed else None
            ),
            totals=MetricsTotals(
                jobs=await self.jobs.count(),
                clients=await self.clients.count(),
            ),
        )

    async def list_alerts(
        self, resolved: bool | None = None, limit: int = 50
    ) -> list[SystemAlertResponse]:
        alerts = await self.alerts.list_alerts(resolved=resolved, limit=limit)
        return [SystemAlertResponse.model_validate(alert) for alert in alerts]

    async def resolve_alert(self, alert_id: int) -> bool:
        return await self.alerts.resolve(alert_id)

    # ===== Side effects =====

    async def _raise_alert(
        self,
        alert_type: AlertType,
        title: str,
        message: str,
        metadata: dict[str, Any],
    ) -> None:
        try:
            await self.alerts.create_alert(alert_type, title, message, metadata)
        except Exception:
            logger.exception("[Reconciliation] Failed to raise system alert", title=title)

    async def _audit(
        self, action: AuditAction, run_id: str, metadata: dict[str, Any]
    ) -> None:
        try:
            await self.audit_logs.record(
                action=action.value,
                target_type=AUDIT_TARGET_TYPE,
                target_id=run_id,
                metadata=metadata,
            )
        except Exception as e:
            logger.warning(
                "[Reconciliation] Failed to write audit entry", run_id=run_id, error=str(e)
            )
