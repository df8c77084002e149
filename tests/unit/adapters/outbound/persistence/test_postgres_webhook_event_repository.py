"""Unit tests for the event inbox table using SQLite in-memory."""

from datetime import timedelta

import pytest

from app.domain.entities.webhook_event import ProcessingStatus, WebhookEvent


def event(event_id, external_id, created_at, source="calendly"):
    return WebhookEvent(
        id=event_id,
        source=source,
        event_type="invitee.created",
        external_event_id=external_id,
        raw_payload={"event": "invitee.created", "payload": {}},
        created_at=created_at,
    )


@pytest.mark.asyncio
async def test_add_deduplicates_on_source_and_external_id(container, clock):
    repo = container.event_repository

    first, created = await repo.add(event("e-1", "ext-1", clock()))
    again, created_again = await repo.add(event("e-2", "ext-1", clock()))
    other_source, created_other = await repo.add(event("e-3", "ext-1", clock(), source="hubspot"))

    assert created is True
    assert created_again is False
    assert again.id == "e-1"
    assert created_other is True
    assert other_source.id == "e-3"


@pytest.mark.asyncio
async def test_claim_is_conditional_on_attempt_count(container, clock):
    repo = container.event_repository
    await repo.add(event("e-1", "ext-1", clock()))

    assert await repo.claim("e-1", 0, clock()) is True
    assert await repo.claim("e-1", 0, clock()) is False

    stored = await repo.get("e-1")
    assert stored.processing_attempts == 1
    assert stored.last_processing_attempt == clock()
    assert stored.processing_status == ProcessingStatus.PENDING


@pytest.mark.asyncio
async def test_mark_processed_and_failed(container, clock):
    repo = container.event_repository
    await repo.add(event("e-1", "ext-1", clock()))
    await repo.add(event("e-2", "ext-2", clock()))

    await repo.mark_processed("e-1", {"handled": True}, "lead-1", clock())
    await repo.mark_failed("e-2", "bad payload", clock())

    processed = await repo.get("e-1")
    assert processed.processing_status == ProcessingStatus.PROCESSED
    assert processed.processed_payload == {"handled": True}
    assert processed.lead_id == "lead-1"
    failed = await repo.get("e-2")
    assert failed.processing_status == ProcessingStatus.FAILED
    assert failed.error_message == "bad payload"


@pytest.mark.asyncio
async def test_list_pending_only_returns_stale_events(container, clock):
    repo = container.event_repository
    cutoff = clock() - timedelta(minutes=5)
    await repo.add(event("old", "ext-old", clock() - timedelta(minutes=10)))
    await repo.add(event("fresh", "ext-fresh", clock() - timedelta(minutes=1)))
    await repo.add(event("old-claimed", "ext-claimed", clock() - timedelta(minutes=20)))
    await repo.claim("old-claimed", 0, clock() - timedelta(minutes=1))
    await repo.add(event("old-done", "ext-done", clock() - timedelta(minutes=30)))
    await repo.mark_processed("old-done", {}, None, clock())

    pending = await repo.list_pending(cutoff, limit=10)

    assert [e.id for e in pending] == ["old"]
