"""
FastAPI dependencies for the service graph.

Services are built once in the application lifespan and stored on
``app.state.services``; these getters hand them to request handlers so tests
can swap them through ``app.dependency_overrides``.
"""

import secrets
from http import HTTPStatus

from fastapi import Depends, HTTPException
from fastapi.requests import HTTPConnection
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from fieldsync.bootstrap import Services
from fieldsync.config import get_app_settings
from fieldsync.integrations.servicem8.client import ServiceM8Client
from fieldsync.reconciliation.service import ReconciliationService
from fieldsync.sync.service import SyncService
from fieldsync.webhooks.broadcaster import InMemoryBroadcaster
from fieldsync.webhooks.processor import WebhookProcessor

cron_security = HTTPBearer(auto_error=False)


def get_services(connection: HTTPConnection) -> Services:
    services = getattr(connection.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE, detail="Services not initialized"
        )
    return services


def get_servicem8_client(services: Services = Depends(get_services)) -> ServiceM8Client:
    return services.client


def get_sync_service(services: Services = Depends(get_services)) -> SyncService:
    return services.sync


def get_webhook_processor(services: Services = Depends(get_services)) -> WebhookProcessor:
    return services.webhooks


def get_broadcaster(services: Services = Depends(get_services)) -> InMemoryBroadcaster:
    return services.broadcaster


def get_reconciliation_service(
    services: Services = Depends(get_services),
) -> ReconciliationService:
    return services.reconciliation


async def verify_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(cron_security),
) -> None:
    """
    Require ``Authorization: Bearer <CRON_SECRET>``.

    Raises:
        HTTPException: 401 when the secret is unset, missing or wrong
    """
    expected = get_app_settings().cron_secret
    if (
        not expected
        or credentials is None
        or not secrets.compare_digest(credentials.credentials, expected)
    ):
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
