"""
Webhook router.

Ingress acknowledges as soon as the event is stored; processing continues in
the background. Management endpoints expose event state and manual retries,
and the realtime websocket relays broadcasts to connected clients.
"""

import uuid
from http import HTTPStatus
from typing import Any

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
)
from pydantic import ValidationError

from fieldsync.dependencies import get_broadcaster, get_webhook_processor
from fieldsync.schemas import ApiResponse
from fieldsync.utils.logger import logger
from fieldsync.webhooks.broadcaster import InMemoryBroadcaster
from fieldsync.webhooks.config import get_webhook_settings
from fieldsync.webhooks.constants import (
    EVENT_ID_HEADER,
    REALTIME_CHANNELS,
    SIGNATURE_HEADER,
    WebhookEventStatus,
)
from fieldsync.webhooks.exceptions import WebhookEventNotRetryableError
from fieldsync.webhooks.processor import WebhookProcessor
from fieldsync.webhooks.schemas import (
    ProcessingStats,
    RetryResult,
    WebhookAck,
    WebhookEventResponse,
    WebhookPayload,
)
from fieldsync.webhooks.signature import verify_signature

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

REALTIME_CHANNEL_NAMES = {channel for channel, _ in REALTIME_CHANNELS.values()}


@router.post("/servicem8", response_model=WebhookAck)
async def receive_servicem8_webhook(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> WebhookAck:
    """
    Accept a ServiceM8 change notification.

    Raises:
        HTTPException: 401 on a bad signature, 400 on an invalid payload
    """
    body = await request.body()

    secret = get_webhook_settings().secret
    if secret:
        signature = request.headers.get(SIGNATURE_HEADER)
        if not signature or not verify_signature(body, signature, secret):
            logger.warning("[WebhookProcessor] Rejected webhook with invalid signature")
            raise HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail="Invalid signature")

    try:
        payload = WebhookPayload.model_validate_json(body)
    except ValidationError as e:
        logger.warning("[WebhookProcessor] Rejected invalid webhook payload", error=str(e))
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="Invalid webhook payload"
        ) from e

    event_id = request.headers.get(EVENT_ID_HEADER) or payload.event_id or str(uuid.uuid4())
    scheduled = await processor.ingest(event_id, payload)

    return WebhookAck(
        message="Webhook received" if scheduled else "Duplicate webhook ignored",
        event_id=event_id,
        duplicate=not scheduled,
    )


# ===== Management =====


@router.get("/management/stats", response_model=ApiResponse[ProcessingStats])
async def get_processing_stats(
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> ApiResponse[ProcessingStats]:
    return ApiResponse(data=await processor.get_processing_stats())


@router.get("/management/events", response_model=ApiResponse[list[WebhookEventResponse]])
async def list_events(
    status: WebhookEventStatus | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> ApiResponse[list[WebhookEventResponse]]:
    events = await processor.list_events(status=status, limit=limit, offset=offset)
    return ApiResponse(data=events)


@router.get("/management/events/{event_id}", response_model=ApiResponse[WebhookEventResponse])
async def get_event(
    event_id: str,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> ApiResponse[WebhookEventResponse]:
    event = await processor.get_event(event_id)
    if event is None:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Webhook event not found")
    return ApiResponse(data=event)


@router.get("/management/failed", response_model=ApiResponse[list[WebhookEventResponse]])
async def list_failed_events(
    limit: int = Query(default=50, ge=1, le=500),
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> ApiResponse[list[WebhookEventResponse]]:
    events = await processor.list_events(status=WebhookEventStatus.FAILED, limit=limit)
    return ApiResponse(data=events)


@router.post(
    "/management/events/{event_id}/retry", response_model=ApiResponse[dict[str, str]]
)
async def retry_event(
    event_id: str,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> ApiResponse[dict[str, str]]:
    """
    Re-run one failed event and report the status it ended in.

    Raises:
        HTTPException: 404 if the event is unknown, 409 if it is not failed
    """
    try:
        status = await processor.retry_event(event_id)
    except WebhookEventNotRetryableError as e:
        raise HTTPException(status_code=HTTPStatus.CONFLICT, detail=str(e)) from e

    if status is None:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Webhook event not found")
    return ApiResponse(
        data={"event_id": event_id, "status": status.value}, message="Retry finished"
    )


@router.post("/management/retry-failed", response_model=ApiResponse[RetryResult])
async def retry_failed_events(
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> ApiResponse[RetryResult]:
    retried = await processor.retry_failed_events()
    return ApiResponse(data=RetryResult(retried=retried), message=f"Retried {retried} events")


# ===== Realtime =====


@router.websocket("/realtime/{channel}")
async def realtime_channel(
    websocket: WebSocket,
    channel: str,
    broadcaster: InMemoryBroadcaster = Depends(get_broadcaster),
) -> None:
    """Relay broadcasts on ``channel`` to the connected client as JSON frames."""
    if channel not in REALTIME_CHANNEL_NAMES:
        await websocket.close(code=4404)
        return

    await websocket.accept()

    async def forward(event: str, message: dict[str, Any]) -> None:
        await websocket.send_json({"event": event, "payload": message})

    unsubscribe = await broadcaster.subscribe(channel, forward)
    try:
        while True:
            data = await websocket.receive_text()
            # Keep-alives only; clients never publish
            if data.strip().lower() in {"ping", "keepalive"}:
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    finally:
        await unsubscribe()
