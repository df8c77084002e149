"""Unit tests for NotificationComposer."""

from datetime import timedelta

import pytest

from app.application.use_cases.notification_composer import resolve_scheduling_link
from app.domain.entities.meeting import ReminderKind
from app.domain.entities.outbound_message import Channel, MessageStatus
from app.domain.errors import PreconditionFailed


@pytest.mark.asyncio
async def test_invitation_uses_agent_scheduling_link(container, seed):
    agent = await seed.agent("Ana", scheduling_link="https://calendly.com/ana")
    lead = await seed.lead(assigned_agent_id=agent.id)

    message, created = await container.composer.enqueue_invitation(lead, "t-1")

    assert created is True
    assert message.channel == Channel.EMAIL
    assert message.recipient == lead.email
    assert message.dedupe_key == f"{lead.id}:meeting_invitation"
    assert "https://calendly.com/ana" in message.body
    assert "Ana Agent" in message.body
    assert message.metadata == {"scheduling_link": "https://calendly.com/ana"}


@pytest.mark.asyncio
async def test_invitation_falls_back_to_generic_link(container, seed):
    lead = await seed.lead()

    message, _ = await container.composer.enqueue_invitation(lead, "t-1")

    assert "https://calendly.com/team/intro" in message.body
    assert "The Team" in message.body


@pytest.mark.asyncio
async def test_invitation_is_queued_once(container, seed):
    lead = await seed.lead()

    first, first_created = await container.composer.enqueue_invitation(lead, "t-1")
    second, second_created = await container.composer.enqueue_invitation(lead, "t-2")

    assert first_created is True
    assert second_created is False
    assert second.id == first.id


@pytest.mark.asyncio
async def test_failed_message_is_requeued(container, seed):
    lead = await seed.lead()
    message, _ = await container.composer.enqueue_followup(lead, "t-1")
    await container.message_repository.mark_failed(message.id, 3, "bounced")

    again, created = await container.composer.enqueue_followup(lead, "t-2")

    assert created is True
    assert again.id == message.id
    assert again.status == MessageStatus.PENDING
    assert again.retry_count == 0


@pytest.mark.asyncio
async def test_sms_reminder_requires_phone(container, seed):
    lead = await seed.lead(phone=None)
    meeting = await seed.meeting(lead, timedelta(hours=30))

    with pytest.raises(PreconditionFailed) as exc_info:
        await container.composer.enqueue_meeting_reminder(lead, meeting, ReminderKind.SMS_1H, "t-1")

    assert exc_info.value.reason == "no_phone_number"


@pytest.mark.asyncio
async def test_meeting_reminder_carries_flag_metadata(container, seed):
    lead = await seed.lead()
    meeting = await seed.meeting(lead, timedelta(hours=30))

    message, _ = await container.composer.enqueue_meeting_reminder(lead, meeting, ReminderKind.SMS_24H, "t-1")

    assert message.channel == Channel.SMS
    assert message.recipient == "+15551230000"
    assert message.message_type == "meeting_reminder_24h"
    assert message.dedupe_key == f"{meeting.id}:reminder_24h:sms"
    assert message.is_meeting_reminder()
    assert message.reminder_kind == "sms_24h"


def test_resolve_scheduling_link_requires_integration():
    class NoIntegration:
        has_scheduling_integration = False
        scheduling_link = "https://calendly.com/ana"

    assert resolve_scheduling_link(None, "https://generic") == "https://generic"
    assert resolve_scheduling_link(NoIntegration(), "https://generic") == "https://generic"
