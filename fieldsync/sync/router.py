"""
Sync router: manual sync triggers and local sync status.
"""

from fastapi import APIRouter, Depends

from fieldsync.db.job_records.model import JobRecordKind
from fieldsync.dependencies import get_sync_service
from fieldsync.integrations.servicem8.exceptions import ServiceM8APIError
from fieldsync.integrations.servicem8.router import upstream_http_error
from fieldsync.schemas import ApiResponse
from fieldsync.sync.schemas import (
    CompanySyncStatus,
    JobRecordResponse,
    SyncRequest,
    SyncStatus,
    SyncTriggerResult,
)
from fieldsync.sync.service import SyncService

router = APIRouter(prefix="/servicem8", tags=["Sync"])


@router.post("/sync", response_model=ApiResponse[SyncTriggerResult])
async def trigger_sync(
    request: SyncRequest,
    sync_service: SyncService = Depends(get_sync_service),
) -> ApiResponse[SyncTriggerResult]:
    """
    Run a full, incremental or emergency sync and wait for it to finish.

    Record-level failures are reported in ``errors``; they do not fail the
    request.
    """
    result = await sync_service.trigger_sync(request.type)
    return ApiResponse(
        data=result,
        message=f"{request.type.value} sync finished with {result.errors} errors",
    )


@router.post("/sync/jobs/{job_uuid}", response_model=ApiResponse[SyncStatus])
async def sync_job(
    job_uuid: str,
    sync_service: SyncService = Depends(get_sync_service),
) -> ApiResponse[SyncStatus]:
    """Re-pull a single job with its quote and child records."""
    try:
        status = await sync_service.sync_job(job_uuid)
    except ServiceM8APIError as e:
        raise upstream_http_error(e) from e
    return ApiResponse(data=status)


@router.get("/sync/status/{company_uuid}", response_model=ApiResponse[CompanySyncStatus])
async def get_sync_status(
    company_uuid: str,
    sync_service: SyncService = Depends(get_sync_service),
) -> ApiResponse[CompanySyncStatus]:
    return ApiResponse(data=await sync_service.get_sync_status(company_uuid))


@router.get("/jobs/{job_uuid}/records", response_model=ApiResponse[list[JobRecordResponse]])
async def list_job_records(
    job_uuid: str,
    kind: JobRecordKind | None = None,
    sync_service: SyncService = Depends(get_sync_service),
) -> ApiResponse[list[JobRecordResponse]]:
    """Locally stored activities, attachments and materials for a job."""
    return ApiResponse(data=await sync_service.get_job_records(job_uuid, kind))
