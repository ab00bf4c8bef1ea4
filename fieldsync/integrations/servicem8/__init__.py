"""ServiceM8 integration: the upstream API client and its supporting pieces."""

from fieldsync.integrations.servicem8.client import ServiceM8Client
from fieldsync.integrations.servicem8.config import ServiceM8Settings, get_servicem8_settings

__all__ = ["ServiceM8Client", "ServiceM8Settings", "get_servicem8_settings"]
