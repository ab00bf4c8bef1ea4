"""
Reconciliation router: admin endpoints and the scheduled cron trigger.
"""

from http import HTTPStatus

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from fieldsync.dependencies import get_reconciliation_service, verify_cron_secret
from fieldsync.reconciliation.constants import RunStatus
from fieldsync.reconciliation.exceptions import ReconciliationError
from fieldsync.reconciliation.schemas import (
    ConflictResolution,
    ConsistencyReport,
    CronRequest,
    ReconciliationMetrics,
    ReconciliationRequest,
    ReconciliationResult,
    ReconciliationRun,
    SystemAlertResponse,
)
from fieldsync.reconciliation.service import ReconciliationService
from fieldsync.schemas import ApiResponse

router = APIRouter(tags=["Reconciliation"])


@router.post(
    "/admin/reconciliation",
    response_model=ApiResponse[ReconciliationRun],
    status_code=HTTPStatus.ACCEPTED,
)
async def start_reconciliation(
    request: ReconciliationRequest,
    background_tasks: BackgroundTasks,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> ApiResponse[ReconciliationRun]:
    """
    Start a reconciliation run and finish it in the background.

    Returns the run record in ``running`` status; poll the run endpoint for
    its outcome.

    Raises:
        HTTPException: If the run record could not be created
    """
    try:
        run = await service.start(request.type)
    except ReconciliationError as e:
        raise HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR, detail=str(e)
        ) from e

    background_tasks.add_task(service.execute, run)
    return ApiResponse(data=run, message=f"{request.type.value} reconciliation started")


@router.get(
    "/admin/reconciliation/history", response_model=ApiResponse[list[ReconciliationRun]]
)
async def get_history(
    limit: int = Query(default=10, ge=1, le=100),
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> ApiResponse[list[ReconciliationRun]]:
    return ApiResponse(data=await service.get_history(limit=limit))


@router.get(
    "/admin/reconciliation/runs/{run_id}", response_model=ApiResponse[ReconciliationRun]
)
async def get_run(
    run_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> ApiResponse[ReconciliationRun]:
    run = await service.get_run(run_id)
    if run is None:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Run not found")
    return ApiResponse(data=run)


@router.get("/admin/reconciliation/checks", response_model=ApiResponse[ConsistencyReport])
async def run_consistency_checks(
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> ApiResponse[ConsistencyReport]:
    report = await service.perform_consistency_checks()
    return ApiResponse(data=report, message=f"Found {len(report.issues)} issue types")


@router.post(
    "/admin/reconciliation/resolve-conflicts",
    response_model=ApiResponse[ConflictResolution],
)
async def resolve_conflicts(
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> ApiResponse[ConflictResolution]:
    return ApiResponse(data=await service.resolve_conflicts())


@router.get(
    "/admin/reconciliation/metrics", response_model=ApiResponse[ReconciliationMetrics]
)
async def get_metrics(
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> ApiResponse[ReconciliationMetrics]:
    return ApiResponse(data=await service.get_metrics())


@router.get("/admin/alerts", response_model=ApiResponse[list[SystemAlertResponse]])
async def list_alerts(
    resolved: bool | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> ApiResponse[list[SystemAlertResponse]]:
    return ApiResponse(data=await service.list_alerts(resolved=resolved, limit=limit))


@router.post("/admin/alerts/{alert_id}/resolve", response_model=ApiResponse[None])
async def resolve_alert(
    alert_id: int,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> ApiResponse[None]:
    if not await service.resolve_alert(alert_id):
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Alert not found")
    return ApiResponse(message="Alert resolved")


@router.post(
    "/cron/process-reconciliation",
    response_model=ApiResponse[ReconciliationResult],
    dependencies=[Depends(verify_cron_secret)],
)
async def process_scheduled_reconciliation(
    request: CronRequest | None = None,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> ApiResponse[ReconciliationResult]:
    """
    Run a reconciliation to completion for an external scheduler.

    Defaults to an incremental run when no body is sent.
    """
    request = request or CronRequest()
    result = await service.run(request.type)
    return ApiResponse(
        success=result.status == RunStatus.COMPLETED,
        data=result,
        message=f"Reconciliation {result.id} {result.status.value}",
    )
