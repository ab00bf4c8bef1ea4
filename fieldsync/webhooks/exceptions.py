"""Exceptions raised while processing webhook events."""

from fieldsync.webhooks.constants import ObjectType


class UpstreamObjectMissingError(Exception):
    """The object a webhook refers to no longer exists in ServiceM8."""

    def __init__(self, object_type: ObjectType, object_uuid: str) -> None:
        super().__init__(f"{object_type.value} not found upstream: {object_uuid}")
        self.object_type = object_type
        self.object_uuid = object_uuid


class WebhookEventNotRetryableError(Exception):
    """A manual retry was requested for an event that is not failed."""
