"""
ServiceM8 router with diagnostics and quote decision endpoints.
"""

from http import HTTPStatus

from fastapi import APIRouter, Depends, HTTPException

from fieldsync.dependencies import get_servicem8_client
from fieldsync.integrations.servicem8.client import ServiceM8Client
from fieldsync.integrations.servicem8.exceptions import (
    ServiceM8APIError,
    ServiceM8NotFoundError,
)
from fieldsync.integrations.servicem8.schemas import ApiStats, Job, QuoteDecision
from fieldsync.schemas import ApiResponse
from fieldsync.utils.logger import logger

router = APIRouter(prefix="/servicem8", tags=["ServiceM8"])


def upstream_http_error(error: ServiceM8APIError) -> HTTPException:
    """Map an upstream error to the HTTP error returned to our caller."""
    if isinstance(error, ServiceM8NotFoundError):
        return HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=error.message)
    return HTTPException(status_code=HTTPStatus.BAD_GATEWAY, detail=str(error))


@router.get("/connection", response_model=ApiResponse[dict[str, bool]])
async def test_connection(
    client: ServiceM8Client = Depends(get_servicem8_client),
) -> ApiResponse[dict[str, bool]]:
    """Check that the configured credentials can reach ServiceM8."""
    connected = await client.test_connection()
    return ApiResponse(
        data={"connected": connected},
        message="Connected to ServiceM8" if connected else "ServiceM8 is unreachable",
    )


@router.get("/stats", response_model=ApiResponse[ApiStats])
async def get_api_stats(
    client: ServiceM8Client = Depends(get_servicem8_client),
) -> ApiResponse[ApiStats]:
    """Current rate-limit window and response cache contents."""
    return ApiResponse(data=client.get_api_stats())


@router.delete("/cache", response_model=ApiResponse[None])
async def clear_cache(
    client: ServiceM8Client = Depends(get_servicem8_client),
) -> ApiResponse[None]:
    client.clear_cache()
    logger.info("[ServiceM8Client] Response cache cleared via API")
    return ApiResponse(message="Cache cleared")


@router.post("/quotes/{job_uuid}/approve", response_model=ApiResponse[Job])
async def approve_quote(
    job_uuid: str,
    decision: QuoteDecision,
    client: ServiceM8Client = Depends(get_servicem8_client),
) -> ApiResponse[Job]:
    """
    Approve a quote, moving its job to Work Order.

    Args:
        job_uuid: ServiceM8 UUID of the quoted job
        decision: Approved line items and client notes

    Raises:
        HTTPException: 404 if the job does not exist upstream, 502 on other
            upstream errors
    """
    try:
        job = await client.approve_quote(
            job_uuid,
            approved_line_items=decision.approved_line_items,
            client_notes=decision.client_notes,
        )
    except ServiceM8APIError as e:
        raise upstream_http_error(e) from e
    return ApiResponse(data=job, message="Quote approved")


@router.post("/quotes/{job_uuid}/reject", response_model=ApiResponse[Job])
async def reject_quote(
    job_uuid: str,
    decision: QuoteDecision,
    client: ServiceM8Client = Depends(get_servicem8_client),
) -> ApiResponse[Job]:
    """Reject a quote; the job stays in Quote status."""
    try:
        job = await client.reject_quote(job_uuid, reason=decision.reason)
    except ServiceM8APIError as e:
        raise upstream_http_error(e) from e
    return ApiResponse(data=job, message="Quote rejected")
