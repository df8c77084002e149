"""Unit tests for EventInbox."""

from datetime import timedelta
from typing import Optional

import pytest

from app.application.ports.idempotency_store import IdempotencyStore
from app.application.use_cases.event_inbox import EventInbox, derive_external_event_id
from app.domain.entities.automation_task import StepName, TaskStatus
from app.domain.entities.lead import LeadStatus
from app.domain.entities.meeting import MeetingStatus
from app.domain.entities.webhook_event import ProcessingStatus
from app.domain.errors import NotFoundError


class InMemoryIdempotencyStore(IdempotencyStore):
    def __init__(self) -> None:
        self.keys: set[str] = set()
        self.responses: dict[str, str] = {}

    async def is_processed(self, key: str) -> bool:
        return key in self.keys

    async def mark_processed(self, key: str, ttl_seconds: int) -> None:
        self.keys.add(key)

    async def get_response(self, key: str) -> Optional[str]:
        return self.responses.get(key)

    async def store_response(self, key: str, response: str, ttl_seconds: int) -> None:
        self.responses[key] = response


def invitee_payload(
    email,
    start,
    event_type="invitee.created",
    invitee_uri="https://api.calendly.com/invitees/IN1",
    event_uri="https://api.calendly.com/scheduled_events/EV1",
):
    return {
        "event": event_type,
        "payload": {
            "invitee": {
                "uri": invitee_uri,
                "email": email,
                "name": "Jane Doe",
                "timezone": "America/New_York",
            },
            "event": {
                "uri": event_uri,
                "start_time": start.isoformat(),
                "end_time": (start + timedelta(minutes=30)).isoformat(),
                "location": {"type": "zoom", "join_url": "https://zoom.us/j/1"},
            },
            "event_type": {"name": "Intro Call"},
        },
    }


def lead_created_payload(email, event_id="evt-1"):
    return {
        "event": "lead.created",
        "id": event_id,
        "payload": {"email": email, "name": "John Smith", "phone": "+15557654321"},
    }


@pytest.fixture
def inbox(container):
    return container.event_inbox


def test_external_event_id_derivation():
    assert derive_external_event_id("lead.created", {"id": "abc"}) == "abc"
    created = derive_external_event_id("invitee.created", {"payload": {"invitee": {"uri": "u-1"}}})
    canceled = derive_external_event_id("invitee.canceled", {"payload": {"invitee": {"uri": "u-1"}}})
    assert created == "invitee.created:u-1"
    assert created != canceled
    hashed = derive_external_event_id("x", {"b": 1, "a": 2})
    assert hashed == derive_external_event_id("x", {"a": 2, "b": 1})
    assert len(hashed) == 64


@pytest.mark.asyncio
async def test_receive_stores_event_once(inbox):
    first = await inbox.receive("crm", lead_created_payload("john@example.com"), "t-1")
    second = await inbox.receive("crm", lead_created_payload("john@example.com"), "t-2")

    assert first.duplicate is False
    assert second.duplicate is True
    assert second.event_id == first.event_id
    assert first.event_type == "lead.created"


@pytest.mark.asyncio
async def test_receive_uses_idempotency_fast_path(container, clock):
    store = InMemoryIdempotencyStore()
    inbox = EventInbox(
        container.event_repository,
        container.lead_repository,
        container.meeting_repository,
        container.coordinator,
        idempotency_store=store,
        clock=clock,
    )

    first = await inbox.receive("crm", lead_created_payload("john@example.com"), "t-1")
    second = await inbox.receive("crm", lead_created_payload("john@example.com"), "t-2")

    assert store.responses == {"crm:evt-1": first.event_id}
    assert second.duplicate is True
    assert second.event_id == first.event_id


@pytest.mark.asyncio
async def test_lead_created_event_creates_lead_and_workflow(container, inbox, seed):
    await seed.agent("Ana")
    receipt = await inbox.receive("crm", lead_created_payload("John@Example.com"), "t-1")

    result = await inbox.process(receipt.event_id)

    assert result.status == "processed"
    assert result.detail["lead_created"] is True
    lead = await container.lead_repository.get_by_email("john@example.com")
    assert lead.first_name == "John"
    assert lead.last_name == "Smith"
    assert lead.status == LeadStatus.ASSIGNED
    assert result.lead_id == lead.id
    assert len(await container.task_repository.list_for_lead(lead.id)) == 3


@pytest.mark.asyncio
async def test_processing_twice_is_a_no_op(container, inbox):
    receipt = await inbox.receive("crm", lead_created_payload("john@example.com"), "t-1")

    await inbox.process(receipt.event_id)
    again = await inbox.process(receipt.event_id)

    assert again.detail == {"skipped": "already_processed"}
    lead = await container.lead_repository.get_by_email("john@example.com")
    assert len(await container.task_repository.list_for_lead(lead.id)) == 3


@pytest.mark.asyncio
async def test_invitee_created_books_meeting_for_existing_lead(container, inbox, seed, clock):
    lead = await seed.lead(email="jane@example.com")
    await container.coordinator.on_lead_created(lead.id, "t-0")
    start = clock() + timedelta(hours=30)
    receipt = await inbox.receive("calendly", invitee_payload("jane@example.com", start), "t-1")

    result = await inbox.process(receipt.event_id)

    assert result.detail["lead_created"] is False
    assert result.detail["reminders_created"] == 4
    stored_lead = await container.lead_repository.get(lead.id)
    assert stored_lead.status == LeadStatus.SCHEDULED
    assert stored_lead.scheduled_at == start
    assert stored_lead.meeting_location == "https://zoom.us/j/1"
    meeting = await container.meeting_repository.current_for_lead(lead.id)
    assert meeting.title == "Intro Call"
    assert meeting.start_time == start
    followups = [
        t for t in await container.task_repository.list_for_lead(lead.id) if t.step_name == StepName.FOLLOWUP_REMINDER_24H
    ]
    assert [t.status for t in followups] == [TaskStatus.CANCELLED]


@pytest.mark.asyncio
async def test_invitee_created_for_unknown_email_creates_lead(container, inbox, clock):
    receipt = await inbox.receive(
        "calendly", invitee_payload("walkin@example.com", clock() + timedelta(days=2)), "t-1"
    )

    result = await inbox.process(receipt.event_id)

    assert result.detail["lead_created"] is True
    lead = await container.lead_repository.get_by_email("walkin@example.com")
    assert lead.status == LeadStatus.SCHEDULED
    assert lead.first_name == "Jane"


@pytest.mark.asyncio
async def test_invitee_canceled_cancels_meeting_and_reminders(container, inbox, seed, clock):
    lead = await seed.lead(email="jane@example.com")
    start = clock() + timedelta(days=2)
    created = await inbox.receive("calendly", invitee_payload("jane@example.com", start), "t-1")
    await inbox.process(created.event_id)
    canceled_payload = invitee_payload("jane@example.com", start, event_type="invitee.canceled")
    canceled_payload["payload"]["invitee"]["cancellation"] = {"reason": "Conflict"}

    receipt = await inbox.receive("calendly", canceled_payload, "t-2")
    result = await inbox.process(receipt.event_id)

    assert receipt.duplicate is False
    assert result.detail["reminders_cancelled"] == 4
    stored_lead = await container.lead_repository.get(lead.id)
    assert stored_lead.status == LeadStatus.CANCELED
    assert stored_lead.cancellation_reason == "Conflict"
    meeting = await container.meeting_repository.get_by_external_uri("https://api.calendly.com/scheduled_events/EV1")
    assert meeting.status == MeetingStatus.CANCELED


@pytest.mark.asyncio
async def test_no_show_marks_meeting(container, inbox, seed, clock):
    lead = await seed.lead(email="jane@example.com")
    meeting = await seed.meeting(lead, timedelta(hours=2), uri="https://api.calendly.com/scheduled_events/EV1")
    receipt = await inbox.receive(
        "calendly",
        invitee_payload("jane@example.com", meeting.start_time, event_type="invitee_no_show.created"),
        "t-1",
    )

    result = await inbox.process(receipt.event_id)

    assert result.detail["meeting_id"] == meeting.id
    assert (await container.meeting_repository.get(meeting.id)).status == MeetingStatus.NO_SHOW


@pytest.mark.asyncio
async def test_unknown_event_type_is_processed_unhandled(inbox):
    receipt = await inbox.receive("calendly", {"event": "routing_form_submission.created", "id": "r-1"}, "t-1")

    result = await inbox.process(receipt.event_id)

    assert result.status == "processed"
    assert result.handled is False


@pytest.mark.asyncio
async def test_invalid_payload_marks_event_failed(container, inbox):
    receipt = await inbox.receive("crm", {"event": "lead.created", "id": "bad-1", "payload": {}}, "t-1")

    result = await inbox.process(receipt.event_id)

    assert result.status == "failed"
    assert "no email" in result.error
    stored = await container.event_repository.get(receipt.event_id)
    assert stored.processing_status == ProcessingStatus.FAILED


@pytest.mark.asyncio
async def test_process_unknown_event(inbox):
    with pytest.raises(NotFoundError):
        await inbox.process("missing")


@pytest.mark.asyncio
async def test_process_pending_picks_up_stale_events(container, inbox, clock):
    receipt = await inbox.receive("crm", lead_created_payload("late@example.com"), "t-1")

    assert (await inbox.process_pending()).selected == 0

    clock.advance(minutes=6)
    report = await inbox.process_pending()

    assert report.succeeded == 1
    assert (await container.event_repository.get(receipt.event_id)).processing_status == ProcessingStatus.PROCESSED


async def receive_and_process(inbox, source, payload, tracking_id):
    receipt = await inbox.receive(source, payload, tracking_id)
    return receipt, await inbox.process(receipt.event_id)


def reminder_tasks(tasks, meeting_id):
    return [t for t in tasks if t.step_name.is_meeting_reminder and t.parameters.meeting_id == meeting_id]


@pytest.mark.asyncio
async def test_invitee_created_twice_books_one_meeting(container, inbox, seed, clock):
    lead = await seed.lead(email="jane@example.com")
    payload = invitee_payload("jane@example.com", clock() + timedelta(days=2))

    first, _ = await receive_and_process(inbox, "calendly", payload, "t-1")
    tasks_before = await container.task_repository.list_for_lead(lead.id)
    second, again = await receive_and_process(inbox, "calendly", payload, "t-2")

    assert second.duplicate is True
    assert second.event_id == first.event_id
    assert again.detail == {"skipped": "already_processed"}
    meetings = await container.meeting_repository.list_upcoming(clock(), clock() + timedelta(days=7))
    assert [m.lead_id for m in meetings] == [lead.id]
    assert len(await container.task_repository.list_for_lead(lead.id)) == len(tasks_before)


@pytest.mark.asyncio
async def test_redelivered_booking_with_new_envelope_reuses_meeting(container, inbox, seed, clock):
    lead = await seed.lead(email="jane@example.com")
    start = clock() + timedelta(days=2)
    _, first = await receive_and_process(inbox, "calendly", invitee_payload("jane@example.com", start), "t-1")
    tasks_before = await container.task_repository.list_for_lead(lead.id)
    redelivered = invitee_payload("jane@example.com", start)
    redelivered["id"] = "delivery-2"

    receipt, again = await receive_and_process(inbox, "calendly", redelivered, "t-2")

    assert receipt.duplicate is False
    assert again.detail["meeting_id"] == first.detail["meeting_id"]
    assert again.detail["meeting_created"] is False
    assert again.detail["reminders_created"] == 0
    meetings = await container.meeting_repository.list_upcoming(clock(), clock() + timedelta(days=7))
    assert len(meetings) == 1
    assert len(await container.task_repository.list_for_lead(lead.id)) == len(tasks_before)


@pytest.mark.asyncio
async def test_reschedule_cancel_after_new_booking_keeps_lead_scheduled(container, inbox, seed, clock):
    agent = await seed.agent("Ana")
    lead = await seed.lead(email="jane@example.com", assigned_agent_id=agent.id)
    old_start = clock() + timedelta(days=2)
    new_start = clock() + timedelta(days=3)
    await receive_and_process(inbox, "calendly", invitee_payload("jane@example.com", old_start), "t-1")
    await receive_and_process(
        inbox,
        "calendly",
        invitee_payload(
            "jane@example.com",
            new_start,
            invitee_uri="https://api.calendly.com/invitees/IN2",
            event_uri="https://api.calendly.com/scheduled_events/EV2",
        ),
        "t-2",
    )
    canceled_payload = invitee_payload("jane@example.com", old_start, event_type="invitee.canceled")
    canceled_payload["payload"]["invitee"]["rescheduled"] = True

    _, result = await receive_and_process(inbox, "calendly", canceled_payload, "t-3")

    assert result.detail["lead_canceled"] is False
    assert result.detail["reminders_cancelled"] == 4
    stored = await container.lead_repository.get(lead.id)
    assert stored.status == LeadStatus.SCHEDULED
    assert stored.scheduled_at == new_start
    old = await container.meeting_repository.get_by_external_uri("https://api.calendly.com/scheduled_events/EV1")
    new = await container.meeting_repository.get_by_external_uri("https://api.calendly.com/scheduled_events/EV2")
    assert old.status == MeetingStatus.CANCELED
    assert new.status == MeetingStatus.SCHEDULED
    assert await container.agent_repository.count_open_leads([agent.id]) == {agent.id: 1}
    tasks = await container.task_repository.list_for_lead(lead.id)
    assert {t.status for t in reminder_tasks(tasks, new.id)} == {TaskStatus.PENDING}
    assert {t.status for t in reminder_tasks(tasks, old.id)} == {TaskStatus.CANCELLED}


@pytest.mark.asyncio
async def test_cancel_without_reschedule_flag_keeps_lead_with_other_active_meeting(container, inbox, seed, clock):
    lead = await seed.lead(email="jane@example.com")
    start = clock() + timedelta(days=2)
    await receive_and_process(inbox, "calendly", invitee_payload("jane@example.com", start), "t-1")
    await receive_and_process(
        inbox,
        "calendly",
        invitee_payload(
            "jane@example.com",
            start + timedelta(hours=4),
            invitee_uri="https://api.calendly.com/invitees/IN2",
            event_uri="https://api.calendly.com/scheduled_events/EV2",
        ),
        "t-2",
    )

    _, result = await receive_and_process(
        inbox, "calendly", invitee_payload("jane@example.com", start, event_type="invitee.canceled"), "t-3"
    )

    assert result.detail["lead_canceled"] is False
    assert (await container.lead_repository.get(lead.id)).status == LeadStatus.SCHEDULED


@pytest.mark.asyncio
async def test_invitee_rescheduled_moves_meeting(container, inbox, seed, clock):
    lead = await seed.lead(email="jane@example.com")
    old_start = clock() + timedelta(days=2)
    new_start = clock() + timedelta(days=4)
    await receive_and_process(inbox, "calendly", invitee_payload("jane@example.com", old_start), "t-1")

    _, result = await receive_and_process(
        inbox,
        "calendly",
        invitee_payload(
            "jane@example.com",
            new_start,
            event_type="invitee.rescheduled",
            event_uri="https://api.calendly.com/scheduled_events/EV2",
        ),
        "t-2",
    )

    old = await container.meeting_repository.get_by_external_uri("https://api.calendly.com/scheduled_events/EV1")
    assert result.status == "processed"
    assert result.detail["previous_meeting_id"] == old.id
    assert result.detail["reminders_cancelled"] == 4
    assert result.detail["reminders_created"] == 4
    assert old.status == MeetingStatus.CANCELED
    assert old.tracking_id == "t-2"
    current = await container.meeting_repository.current_for_lead(lead.id)
    assert current.start_time == new_start
    stored = await container.lead_repository.get(lead.id)
    assert stored.status == LeadStatus.SCHEDULED
    assert stored.scheduled_at == new_start


@pytest.mark.asyncio
async def test_cancel_writes_tracking_id_to_touched_rows(container, inbox, seed, clock):
    lead = await seed.lead(email="jane@example.com")
    start = clock() + timedelta(days=2)
    await receive_and_process(inbox, "calendly", invitee_payload("jane@example.com", start), "t-booked")

    await receive_and_process(
        inbox, "calendly", invitee_payload("jane@example.com", start, event_type="invitee.canceled"), "t-canceled"
    )

    meeting = await container.meeting_repository.get_by_external_uri("https://api.calendly.com/scheduled_events/EV1")
    assert meeting.tracking_id == "t-canceled"
    reminders = reminder_tasks(await container.task_repository.list_for_lead(lead.id), meeting.id)
    assert {t.tracking_id for t in reminders} == {"t-canceled"}
    assert (await container.lead_repository.get(lead.id)).tracking_id == "t-canceled"


@pytest.mark.asyncio
async def test_rescheduled_without_start_time_fails_without_side_effects(container, inbox, seed, clock):
    await seed.lead(email="jane@example.com")
    await receive_and_process(
        inbox, "calendly", invitee_payload("jane@example.com", clock() + timedelta(days=2)), "t-1"
    )
    payload = invitee_payload("jane@example.com", clock(), event_type="invitee.rescheduled")
    del payload["payload"]["event"]["start_time"]

    _, result = await receive_and_process(inbox, "calendly", payload, "t-2")

    assert result.status == "failed"
    meeting = await container.meeting_repository.get_by_external_uri("https://api.calendly.com/scheduled_events/EV1")
    assert meeting.status == MeetingStatus.SCHEDULED
