"""Unit tests for QueueDrainer."""

from datetime import timedelta

import pytest

from app.application.dtos.notification import DispatchResult
from app.application.use_cases.queue_drainer import next_attempt_at
from app.domain.entities.meeting import ReminderKind
from app.domain.entities.outbound_message import Channel, MessageStatus, OutboundMessage
from app.domain.errors import TransientDeliveryError


async def enqueue(container, lead, clock, dedupe_key="k-1", metadata=None, channel=Channel.EMAIL):
    message = OutboundMessage.new(
        lead_id=lead.id,
        channel=channel,
        recipient=lead.email if channel == Channel.EMAIL else lead.phone,
        body="Hello",
        subject="Hi",
        message_type="meeting_invitation",
        dedupe_key=dedupe_key,
        scheduled_for=clock(),
        metadata=metadata,
    )
    stored, _ = await container.message_repository.enqueue_once(message)
    return stored


def test_backoff_waits_k_minutes(clock):
    assert next_attempt_at(clock(), 1) == clock() + timedelta(minutes=1)
    assert next_attempt_at(clock(), 2) == clock() + timedelta(minutes=2)


@pytest.mark.asyncio
async def test_sends_due_message(container, seed, clock, dispatcher):
    lead = await seed.lead()
    message = await enqueue(container, lead, clock)

    report = await container.queue_drainer.run_once("t-1")

    assert report.selected == 1
    assert report.succeeded == 1
    assert dispatcher.sent_to(Channel.EMAIL) == [lead.email]
    stored = await container.message_repository.get(message.id)
    assert stored.status == MessageStatus.SENT
    assert stored.provider_message_id == "provider-1"
    assert stored.sent_at == clock()
    assert stored.tracking_id == "t-1"


@pytest.mark.asyncio
async def test_failures_back_off_then_fail_at_max_retries(container, seed, clock, dispatcher):
    """Attempts 1 and 2 reschedule at +1 and +2 minutes; attempt 3 fails for good."""
    lead = await seed.lead()
    message = await enqueue(container, lead, clock)
    repo = container.message_repository
    dispatcher.results = [
        DispatchResult.failed("mailbox busy", "fake"),
        TransientDeliveryError("connection reset", provider="fake"),
        DispatchResult.failed("mailbox busy", "fake"),
    ]

    await container.queue_drainer.run_once()
    stored = await repo.get(message.id)
    assert stored.status == MessageStatus.SCHEDULED
    assert stored.retry_count == 1
    assert stored.scheduled_for == clock() + timedelta(minutes=1)

    # Not due yet
    assert (await container.queue_drainer.run_once()).selected == 0

    clock.advance(minutes=1)
    await container.queue_drainer.run_once()
    stored = await repo.get(message.id)
    assert stored.status == MessageStatus.SCHEDULED
    assert stored.retry_count == 2
    assert stored.scheduled_for == clock() + timedelta(minutes=2)
    assert "connection reset" in stored.error_message

    clock.advance(minutes=2)
    report = await container.queue_drainer.run_once()
    stored = await repo.get(message.id)
    assert report.failed == 1
    assert stored.status == MessageStatus.FAILED
    assert stored.retry_count == 3
    assert len(dispatcher.sent) == 3


@pytest.mark.asyncio
async def test_unexpected_dispatcher_error_is_recorded_as_failure(container, seed, clock, dispatcher):
    lead = await seed.lead()
    message = await enqueue(container, lead, clock)
    dispatcher.results = [RuntimeError("bug")]

    report = await container.queue_drainer.run_once()

    assert report.failed == 1
    stored = await container.message_repository.get(message.id)
    assert stored.status == MessageStatus.SCHEDULED
    assert "bug" in stored.error_message


@pytest.mark.asyncio
async def test_claimed_message_is_skipped(container, seed, clock, dispatcher):
    lead = await seed.lead()
    message = await enqueue(container, lead, clock)
    due = await container.message_repository.list_due(clock(), 10)
    await container.message_repository.claim(message.id, MessageStatus.PENDING)

    status = await container.queue_drainer._process(due[0], "t-1")

    assert status is None
    assert dispatcher.sent == []


@pytest.mark.asyncio
async def test_reminder_send_sets_meeting_flag(container, seed, clock):
    lead = await seed.lead()
    meeting = await seed.meeting(lead, timedelta(minutes=50))
    await enqueue(
        container,
        lead,
        clock,
        metadata={"meeting_id": meeting.id, "reminder_kind": ReminderKind.SMS_1H.value},
        channel=Channel.SMS,
    )

    await container.queue_drainer.run_once("t-drain")

    stored = await container.meeting_repository.get(meeting.id)
    assert stored.sms_1h_sent is True
    assert stored.reminder_1h_sent is False
    assert stored.tracking_id == "t-drain"
    history = await container.meeting_repository.list_reminders(meeting.id)
    assert [(r.reminder_type, r.delivery_method) for r in history] == [("1h", "sms")]


@pytest.mark.asyncio
async def test_failed_reminder_leaves_flag_unset(container, seed, clock, dispatcher):
    lead = await seed.lead()
    meeting = await seed.meeting(lead, timedelta(minutes=50))
    await enqueue(
        container,
        lead,
        clock,
        metadata={"meeting_id": meeting.id, "reminder_kind": ReminderKind.EMAIL_1H.value},
    )
    dispatcher.results = [DispatchResult.failed("bounce", "fake")]

    await container.queue_drainer.run_once()

    assert (await container.meeting_repository.get(meeting.id)).reminder_1h_sent is False


@pytest.mark.asyncio
async def test_deliver_sends_single_message_once(container, seed, clock, dispatcher):
    lead = await seed.lead()
    message = await enqueue(container, lead, clock)

    assert await container.queue_drainer.deliver(message.id, "t-1") == MessageStatus.SENT
    assert await container.queue_drainer.deliver(message.id, "t-2") == MessageStatus.SENT
    assert len(dispatcher.sent) == 1
    assert await container.queue_drainer.deliver("missing", "t-3") is None


@pytest.mark.asyncio
async def test_retry_and_final_failure_carry_the_cycle_tracking_id(container, seed, clock, dispatcher):
    lead = await seed.lead()
    message = await enqueue(container, lead, clock)
    dispatcher.results = [DispatchResult.failed("mailbox busy", "fake")] * 3

    await container.queue_drainer.run_once("t-cycle-1")
    assert (await container.message_repository.get(message.id)).tracking_id == "t-cycle-1"

    clock.advance(minutes=1)
    await container.queue_drainer.run_once("t-cycle-2")
    clock.advance(minutes=2)
    await container.queue_drainer.run_once("t-cycle-3")

    stored = await container.message_repository.get(message.id)
    assert stored.status == MessageStatus.FAILED
    assert stored.tracking_id == "t-cycle-3"
