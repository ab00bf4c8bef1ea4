"""Tests for the composition root and application wiring."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from fieldsync.bootstrap import build_services
from fieldsync.integrations.servicem8.config import ServiceM8Settings
from fieldsync.main import app
from fieldsync.reconciliation.config import ReconciliationSettings
from fieldsync.webhooks.config import WebhookSettings


@pytest.fixture
def services():
    return build_services(
        session_factory=MagicMock(),
        servicem8_settings=ServiceM8Settings(api_key="test-key"),
        webhook_settings=WebhookSettings(max_retries=5),
        reconciliation_settings=ReconciliationSettings(incremental_window_hours=6),
    )


def test_components_share_one_client_and_sync_engine(services):
    assert services.sync.client is services.client
    assert services.webhooks.client is services.client
    assert services.webhooks.sync is services.sync
    assert services.reconciliation.sync is services.sync
    assert services.webhooks.broadcaster is services.broadcaster
    assert services.scheduler.service is services.reconciliation


def test_settings_flow_into_components(services):
    assert services.sync.incremental_window == timedelta(hours=6)
    assert services.webhooks.settings.max_retries == 5
    assert services.scheduler.settings.schedule_enabled is False


@pytest.mark.asyncio
async def test_aclose_is_safe_before_any_request(services):
    await services.aclose()

    assert services.scheduler.running is False


def test_healthcheck():
    response = TestClient(app).get("/healthcheck")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_requests_before_startup_are_unavailable():
    response = TestClient(app).get("/api/webhooks/management/stats")

    assert response.status_code == 503
    assert response.json()["success"] is False
