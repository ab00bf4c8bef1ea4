from fieldsync.db.webhook_events.model import WebhookEvent
from fieldsync.db.webhook_events.repository import WebhookEventRepository

__all__ = ["WebhookEvent", "WebhookEventRepository"]
