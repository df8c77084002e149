"""Unit tests for the outbound message queue using SQLite in-memory."""

from datetime import timedelta

import pytest

from app.domain.entities.outbound_message import Channel, MessageStatus, OutboundMessage


def message(lead_id, dedupe_key, at, **kwargs):
    return OutboundMessage.new(
        lead_id=lead_id,
        channel=Channel.EMAIL,
        recipient="jane@example.com",
        body="Hello",
        subject="Hi",
        message_type="meeting_invitation",
        dedupe_key=dedupe_key,
        scheduled_for=at,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_enqueue_once_returns_existing_row_for_duplicate_key(container, seed, clock):
    lead = await seed.lead()
    repo = container.message_repository
    first = message(lead.id, f"{lead.id}:meeting_invitation", clock())

    stored, created = await repo.enqueue_once(first)
    again, created_again = await repo.enqueue_once(message(lead.id, first.dedupe_key, clock()))

    assert created is True
    assert created_again is False
    assert again.id == stored.id


@pytest.mark.asyncio
async def test_enqueue_once_requeues_failed_message(container, seed, clock):
    lead = await seed.lead()
    repo = container.message_repository
    first = message(lead.id, "key-1", clock())
    await repo.enqueue_once(first)
    await repo.claim(first.id, MessageStatus.PENDING)
    await repo.mark_failed(first.id, 3, "smtp down")

    stored, requeued = await repo.enqueue_once(message(lead.id, "key-1", clock()))

    assert requeued is True
    assert stored.id == first.id
    assert stored.status == MessageStatus.PENDING
    assert stored.retry_count == 0


@pytest.mark.asyncio
async def test_enqueue_once_does_not_resend_sent_message(container, seed, clock):
    lead = await seed.lead()
    repo = container.message_repository
    first = message(lead.id, "key-1", clock())
    await repo.enqueue_once(first)
    await repo.claim(first.id, MessageStatus.PENDING)
    await repo.mark_sent(first.id, "provider-1", clock())

    stored, created = await repo.enqueue_once(message(lead.id, "key-1", clock()))

    assert created is False
    assert stored.status == MessageStatus.SENT
    assert stored.provider_message_id == "provider-1"


@pytest.mark.asyncio
async def test_list_due_includes_pending_and_scheduled(container, seed, clock):
    lead = await seed.lead()
    repo = container.message_repository
    pending = message(lead.id, "k-pending", clock() - timedelta(minutes=1))
    retry = message(lead.id, "k-retry", clock() - timedelta(minutes=10))
    future = message(lead.id, "k-future", clock() + timedelta(minutes=10))
    for msg in (pending, retry, future):
        await repo.enqueue_once(msg)
    await repo.claim(retry.id, MessageStatus.PENDING)
    await repo.schedule_retry(retry.id, 1, clock() - timedelta(minutes=2), "timeout")

    due = await repo.list_due(clock(), limit=10)

    assert [m.id for m in due] == [retry.id, pending.id]
    assert due[0].status == MessageStatus.SCHEDULED
    assert due[0].retry_count == 1


@pytest.mark.asyncio
async def test_claim_requires_expected_status(container, seed, clock):
    lead = await seed.lead()
    repo = container.message_repository
    msg = message(lead.id, "k-1", clock())
    await repo.enqueue_once(msg)

    assert await repo.claim(msg.id, MessageStatus.SCHEDULED) is False
    assert await repo.claim(msg.id, MessageStatus.PENDING) is True
    assert await repo.claim(msg.id, MessageStatus.PENDING) is False
    assert (await repo.get(msg.id)).status == MessageStatus.SENDING


@pytest.mark.asyncio
async def test_metadata_round_trips(container, seed, clock):
    lead = await seed.lead()
    repo = container.message_repository
    msg = message(lead.id, "k-1", clock(), metadata={"meeting_id": "m-1", "reminder_kind": "email_24h"})
    await repo.enqueue_once(msg)

    stored = await repo.get(msg.id)

    assert stored.is_meeting_reminder()
    assert stored.meeting_id == "m-1"
    assert stored.reminder_kind == "email_24h"


@pytest.mark.asyncio
async def test_delivery_outcomes_record_the_cycle_tracking_id(container, seed, clock):
    lead = await seed.lead()
    repo = container.message_repository
    sent, retried, failed = (message(lead.id, f"key-{n}", clock(), tracking_id="t-enqueue") for n in range(3))
    for row in (sent, retried, failed):
        await repo.enqueue_once(row)
        await repo.claim(row.id, MessageStatus.PENDING)

    await repo.mark_sent(sent.id, "provider-1", clock(), "t-sent")
    await repo.schedule_retry(retried.id, 1, clock() + timedelta(minutes=1), "timeout", "t-retry")
    await repo.mark_failed(failed.id, 3, "smtp down", "t-failed")

    assert (await repo.get(sent.id)).tracking_id == "t-sent"
    assert (await repo.get(retried.id)).tracking_id == "t-retry"
    assert (await repo.get(failed.id)).tracking_id == "t-failed"
