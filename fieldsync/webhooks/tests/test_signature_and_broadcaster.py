"""Tests for webhook signature verification and the in-memory broadcaster."""

import pytest

from fieldsync.webhooks.broadcaster import InMemoryBroadcaster
from fieldsync.webhooks.signature import compute_signature, verify_signature

BODY = b'{"object_type": "Job", "event_type": "updated", "object_uuid": "job-1"}'


def test_valid_signature():
    signature = compute_signature(BODY, "secret")
    assert verify_signature(BODY, signature, "secret") is True


def test_prefixed_signature():
    signature = compute_signature(BODY, "secret")
    assert verify_signature(BODY, f"sha256={signature}", "secret") is True


def test_tampered_body_is_rejected():
    signature = compute_signature(BODY, "secret")
    assert verify_signature(BODY + b" ", signature, "secret") is False


def test_wrong_secret_is_rejected():
    signature = compute_signature(BODY, "other")
    assert verify_signature(BODY, signature, "secret") is False


def test_garbage_signature_is_rejected():
    assert verify_signature(BODY, "not-hex", "secret") is False


@pytest.mark.asyncio
async def test_broadcaster_delivers_to_channel_subscribers():
    broadcaster = InMemoryBroadcaster()
    jobs_received = []
    companies_received = []

    async def on_jobs(event, message):
        jobs_received.append((event, message))

    async def on_companies(event, message):
        companies_received.append((event, message))

    await broadcaster.subscribe("jobs", on_jobs)
    await broadcaster.subscribe("companies", on_companies)

    await broadcaster.publish("jobs", "webhook_update", {"type": "job_update"})

    assert jobs_received == [("webhook_update", {"type": "job_update"})]
    assert companies_received == []


@pytest.mark.asyncio
async def test_broadcaster_unsubscribe_and_failing_subscriber():
    broadcaster = InMemoryBroadcaster()
    received = []

    async def broken(event, message):
        raise RuntimeError("socket closed")

    async def healthy(event, message):
        received.append(message)

    await broadcaster.subscribe("jobs", broken)
    unsubscribe = await broadcaster.subscribe("jobs", healthy)

    await broadcaster.publish("jobs", "webhook_update", {"n": 1})
    assert received == [{"n": 1}]

    await unsubscribe()
    assert broadcaster.subscriber_count("jobs") == 1
    await broadcaster.publish("jobs", "webhook_update", {"n": 2})
    assert received == [{"n": 1}]
