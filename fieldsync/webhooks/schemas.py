"""
Pydantic schemas for webhook payloads, realtime messages and statistics.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fieldsync.webhooks.constants import EventType, ObjectType, WebhookEventStatus


class WebhookPayload(BaseModel):
    """Change notification sent by ServiceM8."""

    model_config = ConfigDict(extra="allow")

    event_id: str | None = None
    object_type: ObjectType
    event_type: EventType
    object_uuid: str = Field(min_length=1)
    changes: dict[str, Any] | None = None
    timestamp: str | None = None


class RealtimeMessage(BaseModel):
    type: str
    object_uuid: str
    event_type: EventType
    changes: dict[str, Any] | None = None
    timestamp: str | None = None


class ProcessingStats(BaseModel):
    total: int = 0
    queued: int = 0
    processing: int = 0
    success: int = 0
    failed: int = 0
    success_rate: float = Field(default=0.0, description="Percentage of events that succeeded")


class WebhookEventResponse(BaseModel):
    """Stored webhook event as returned by the management API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    status: WebhookEventStatus
    payload: dict[str, Any]
    attempts: int
    error_details: str | None
    created_at: datetime
    processed_at: datetime | None


class WebhookAck(BaseModel):
    success: bool = True
    message: str
    event_id: str
    duplicate: bool = False


class RetryResult(BaseModel):
    retried: int
