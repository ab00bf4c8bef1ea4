"""Tests for the webhook ingress, management and realtime routes."""

import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from fieldsync.dependencies import get_broadcaster, get_webhook_processor
from fieldsync.main import app
from fieldsync.webhooks.broadcaster import InMemoryBroadcaster
from fieldsync.webhooks.config import WebhookSettings, set_webhook_settings
from fieldsync.webhooks.constants import (
    EVENT_ID_HEADER,
    SIGNATURE_HEADER,
    ObjectType,
    WebhookEventStatus,
)
from fieldsync.webhooks.exceptions import WebhookEventNotRetryableError
from fieldsync.webhooks.processor import WebhookProcessor
from fieldsync.webhooks.schemas import ProcessingStats
from fieldsync.webhooks.signature import compute_signature

PAYLOAD = {"object_type": "Job", "event_type": "updated", "object_uuid": "job-1"}


@pytest.fixture
def processor():
    processor = AsyncMock(spec=WebhookProcessor)
    processor.ingest.return_value = True
    return processor


@pytest.fixture
def broadcaster():
    return InMemoryBroadcaster()


@pytest.fixture
def client(processor, broadcaster):
    set_webhook_settings(WebhookSettings(secret=None))
    app.dependency_overrides[get_webhook_processor] = lambda: processor
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster

    yield TestClient(app)

    app.dependency_overrides.clear()
    set_webhook_settings(WebhookSettings(secret=None))


class TestIngress:
    def test_accepts_event_and_schedules_processing(self, client, processor):
        response = client.post(
            "/api/webhooks/servicem8", json=PAYLOAD, headers={EVENT_ID_HEADER: "evt-1"}
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Webhook received",
            "event_id": "evt-1",
            "duplicate": False,
        }
        event_id, payload = processor.ingest.await_args.args
        assert event_id == "evt-1"
        assert payload.object_type == ObjectType.JOB
        assert payload.object_uuid == "job-1"

    def test_duplicate_is_acknowledged(self, client, processor):
        processor.ingest.return_value = False

        response = client.post(
            "/api/webhooks/servicem8", json=PAYLOAD, headers={EVENT_ID_HEADER: "evt-1"}
        )

        assert response.status_code == 200
        assert response.json()["duplicate"] is True

    def test_event_id_from_payload(self, client, processor):
        client.post("/api/webhooks/servicem8", json={**PAYLOAD, "event_id": "evt-body"})

        assert processor.ingest.await_args.args[0] == "evt-body"

    def test_event_id_generated_when_absent(self, client, processor):
        response = client.post("/api/webhooks/servicem8", json=PAYLOAD)

        event_id = response.json()["event_id"]
        assert len(event_id) == 36
        assert processor.ingest.await_args.args[0] == event_id

    @pytest.mark.parametrize(
        "body",
        [
            {"object_type": "Job", "event_type": "updated"},
            {"object_type": "Invoice", "event_type": "updated", "object_uuid": "x"},
            {"object_type": "Job", "event_type": "exploded", "object_uuid": "x"},
            {"object_type": "Job", "event_type": "updated", "object_uuid": ""},
        ],
    )
    def test_invalid_payload_rejected(self, client, processor, body):
        response = client.post("/api/webhooks/servicem8", json=body)

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "Invalid webhook payload",
            "message": None,
        }
        processor.ingest.assert_not_awaited()

    def test_malformed_json_rejected(self, client):
        response = client.post(
            "/api/webhooks/servicem8",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400


class TestSignature:
    @pytest.fixture(autouse=True)
    def with_secret(self, client):
        set_webhook_settings(WebhookSettings(secret="s3cret"))

    def body(self) -> bytes:
        return json.dumps(PAYLOAD).encode()

    def test_missing_signature_rejected(self, client, processor):
        response = client.post("/api/webhooks/servicem8", content=self.body())

        assert response.status_code == 401
        processor.ingest.assert_not_awaited()

    def test_wrong_signature_rejected(self, client):
        response = client.post(
            "/api/webhooks/servicem8",
            content=self.body(),
            headers={SIGNATURE_HEADER: compute_signature(self.body(), "other")},
        )

        assert response.status_code == 401

    @pytest.mark.parametrize("prefix", ["", "sha256="])
    def test_valid_signature_accepted(self, client, processor, prefix):
        signature = prefix + compute_signature(self.body(), "s3cret")

        response = client.post(
            "/api/webhooks/servicem8",
            content=self.body(),
            headers={SIGNATURE_HEADER: signature, "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        processor.ingest.assert_awaited_once()


class TestManagement:
    def test_stats(self, client, processor):
        processor.get_processing_stats.return_value = ProcessingStats(
            total=4, success=2, failed=2, success_rate=50.0
        )

        response = client.get("/api/webhooks/management/stats")

        assert response.status_code == 200
        assert response.json()["data"]["success_rate"] == 50.0

    def test_list_events_passes_filters(self, client, processor):
        processor.list_events.return_value = []

        response = client.get(
            "/api/webhooks/management/events", params={"status": "failed", "limit": 10}
        )

        assert response.status_code == 200
        assert response.json()["data"] == []
        processor.list_events.assert_awaited_once_with(
            status=WebhookEventStatus.FAILED, limit=10, offset=0
        )

    def test_unknown_event(self, client, processor):
        processor.get_event.return_value = None

        response = client.get("/api/webhooks/management/events/missing")

        assert response.status_code == 404
        assert response.json()["error"] == "Webhook event not found"

    def test_retry_event(self, client, processor):
        processor.retry_event.return_value = WebhookEventStatus.SUCCESS

        response = client.post("/api/webhooks/management/events/evt-1/retry")

        assert response.status_code == 200
        assert response.json()["data"] == {"event_id": "evt-1", "status": "success"}

    def test_retry_event_not_failed(self, client, processor):
        processor.retry_event.side_effect = WebhookEventNotRetryableError(
            "Event evt-1 is success; only failed events can be retried"
        )

        response = client.post("/api/webhooks/management/events/evt-1/retry")

        assert response.status_code == 409

    def test_retry_unknown_event(self, client, processor):
        processor.retry_event.return_value = None

        response = client.post("/api/webhooks/management/events/evt-1/retry")

        assert response.status_code == 404

    def test_retry_failed(self, client, processor):
        processor.retry_failed_events.return_value = 3

        response = client.post("/api/webhooks/management/retry-failed")

        assert response.json()["data"] == {"retried": 3}


class TestRealtime:
    def test_keepalive_on_known_channel(self, client, broadcaster):
        with client.websocket_connect("/api/webhooks/realtime/jobs") as websocket:
            websocket.send_text("ping")
            assert websocket.receive_text() == "pong"
            assert broadcaster.subscriber_count("jobs") == 1

    def test_unknown_channel_closed(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/api/webhooks/realtime/invoices") as websocket:
                websocket.receive_text()
