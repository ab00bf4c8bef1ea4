"""
Webhook constants and enums.

The realtime channel table lists every object type that is broadcast after a
successful event; object types without an entry are processed but not
broadcast.
"""

from enum import Enum


class WebhookEventStatus(str, Enum):
    """queued -> processing -> success | failed; failed -> processing on manual retry."""

    QUEUED = "queued"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


class ObjectType(str, Enum):
    """ServiceM8 object types that emit webhooks."""

    JOB = "Job"
    COMPANY = "Company"
    JOB_ACTIVITY = "JobActivity"
    ATTACHMENT = "Attachment"
    STAFF = "Staff"


class EventType(str, Enum):
    """ServiceM8 webhook event types."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    STATUS_CHANGED = "status_changed"
    ATTACHMENT_ADDED = "attachment_added"
    COMPLETED = "completed"
    QUOTE_SENT = "quote_sent"
    QUOTE_APPROVED = "quote_approved"
    QUOTE_REJECTED = "quote_rejected"


class AuditAction(str, Enum):
    """Audit actions written by the webhook processor."""

    PROCESSED = "webhook_processed"
    FAILED = "webhook_failed"


# Object type -> (channel name, message type)
REALTIME_CHANNELS: dict[ObjectType, tuple[str, str]] = {
    ObjectType.JOB: ("jobs", "job_update"),
    ObjectType.COMPANY: ("companies", "company_update"),
    ObjectType.JOB_ACTIVITY: ("job_activities", "activity_update"),
    ObjectType.ATTACHMENT: ("attachments", "attachment_update"),
}

REALTIME_EVENT = "webhook_update"

SIGNATURE_HEADER = "X-ServiceM8-Signature"
EVENT_ID_HEADER = "X-ServiceM8-Event-Id"
