"""Unit tests for the meeting repository using SQLite in-memory."""

from datetime import timedelta

import pytest

from app.domain.entities.meeting import Meeting, MeetingReminder, MeetingStatus, ReminderKind


@pytest.mark.asyncio
async def test_add_is_idempotent_on_external_uri(container, seed, clock):
    lead = await seed.lead()
    first = await seed.meeting(lead, timedelta(days=2), uri="https://api.calendly.com/scheduled_events/EV1")
    repeat = Meeting(
        id="other-id",
        lead_id=lead.id,
        start_time=first.start_time,
        end_time=first.end_time,
        external_event_uri="https://api.calendly.com/scheduled_events/EV1",
    )

    stored, created = await container.meeting_repository.add(repeat)

    assert created is False
    assert stored.id == first.id
    assert await container.meeting_repository.get_by_external_uri(first.external_event_uri) == stored


@pytest.mark.asyncio
async def test_record_reminder_sent_sets_flag_and_history(container, seed, clock):
    lead = await seed.lead()
    meeting = await seed.meeting(lead, timedelta(hours=20))
    repo = container.meeting_repository

    await repo.record_reminder_sent(
        ReminderKind.SMS_24H,
        MeetingReminder(
            meeting_id=meeting.id,
            reminder_type="24h",
            delivery_method="sms",
            scheduled_for=meeting.start_time - timedelta(hours=24),
            sent_at=clock(),
            provider_message_id="SM123",
            tracking_id="t-drain",
        ),
    )

    stored = await repo.get(meeting.id)
    assert stored.sms_24h_sent is True
    assert stored.tracking_id == "t-drain"
    assert stored.reminder_24h_sent is False
    history = await repo.list_reminders(meeting.id)
    assert len(history) == 1
    assert history[0].delivery_method == "sms"
    assert history[0].provider_message_id == "SM123"
    assert history[0].sent_at == clock()


@pytest.mark.asyncio
async def test_current_for_lead_skips_canceled_meetings(container, seed, clock):
    lead = await seed.lead()
    meeting = await seed.meeting(lead, timedelta(days=1))
    repo = container.meeting_repository

    assert (await repo.current_for_lead(lead.id)).id == meeting.id

    await repo.update_status(meeting.id, MeetingStatus.CANCELED, clock(), "t-cancel")

    assert await repo.current_for_lead(lead.id) is None
    stored = await repo.get(meeting.id)
    assert stored.status == MeetingStatus.CANCELED
    assert stored.tracking_id == "t-cancel"


@pytest.mark.asyncio
async def test_list_upcoming_returns_scheduled_meetings_in_window(container, seed, clock):
    lead = await seed.lead()
    soon = await seed.meeting(lead, timedelta(hours=5))
    later = await seed.meeting(lead, timedelta(hours=30))
    await seed.meeting(lead, timedelta(hours=72))
    past = await seed.meeting(lead, timedelta(hours=-2))
    canceled = await seed.meeting(lead, timedelta(hours=6))
    await container.meeting_repository.update_status(canceled.id, MeetingStatus.CANCELED, clock())

    upcoming = await container.meeting_repository.list_upcoming(clock(), clock() + timedelta(hours=48))

    assert [m.id for m in upcoming] == [soon.id, later.id]
    assert past.id not in [m.id for m in upcoming]
