"""Render notifications and place them on the outbound queue exactly once."""

from datetime import datetime, timezone
from typing import Any, Callable, Optional

from app.application.ports.agent_repository import AgentRepository
from app.application.ports.message_renderer import MessageRenderer
from app.application.ports.outbound_message_repository import OutboundMessageRepository
from app.domain.entities.agent import Agent
from app.domain.entities.lead import Lead
from app.domain.entities.meeting import Meeting, ReminderKind
from app.domain.entities.outbound_message import Channel, OutboundMessage
from app.domain.errors import PreconditionFailed


def resolve_scheduling_link(agent: Optional[Agent], default_link: str) -> str:
    """
    Pick the scheduling link offered to a lead.

    Args:
        agent: Assigned agent, if any
        default_link: Generic link used when the agent has no scheduling integration

    Returns:
        Scheduling URL
    """
    if agent and agent.has_scheduling_integration and agent.scheduling_link:
        return agent.scheduling_link
    return default_link


class NotificationComposer:
    """Builds outbound messages for lifecycle steps.

    Every message carries a dedupe key, so composing the same notification
    twice (scheduled step plus inline workflow) queues it once.
    """

    def __init__(
        self,
        message_repository: OutboundMessageRepository,
        agent_repository: AgentRepository,
        renderer: MessageRenderer,
        default_scheduling_link: str,
        max_retries: int = 3,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._messages = message_repository
        self._agents = agent_repository
        self._renderer = renderer
        self._default_scheduling_link = default_scheduling_link
        self._max_retries = max_retries
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _agent_for(self, lead: Lead) -> Optional[Agent]:
        if not lead.assigned_agent_id:
            return None
        return await self._agents.get(lead.assigned_agent_id)

    def _base_context(self, lead: Lead, agent: Optional[Agent]) -> dict[str, Any]:
        return {
            "first_name": lead.first_name or "there",
            "agent_name": agent.full_name if agent else "The Team",
            "scheduling_link": resolve_scheduling_link(agent, self._default_scheduling_link),
        }

    async def enqueue(
        self,
        lead: Lead,
        channel: Channel,
        template_name: str,
        context: dict[str, Any],
        message_type: str,
        dedupe_key: str,
        tracking_id: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> tuple[OutboundMessage, bool]:
        """
        Render a template and enqueue it once.

        Args:
            lead: Recipient lead
            channel: Delivery channel
            template_name: Renderer template
            context: Template values
            message_type: Message category stored on the row
            dedupe_key: Exactly-once key
            tracking_id: Correlation token
            metadata: Extra metadata stored on the row

        Returns:
            Tuple of (queued message, True if this call queued it)

        Raises:
            PreconditionFailed: If the lead has no address for the channel
        """
        recipient = lead.email if channel == Channel.EMAIL else lead.phone
        if not recipient:
            raise PreconditionFailed("no_phone_number" if channel == Channel.SMS else "no_email")

        content = self._renderer.render(template_name, context)
        message = OutboundMessage.new(
            lead_id=lead.id,
            channel=channel,
            recipient=recipient,
            body=content.body,
            subject=content.subject,
            html_body=content.html_body,
            message_type=message_type,
            dedupe_key=dedupe_key,
            scheduled_for=self._clock(),
            max_retries=self._max_retries,
            metadata=metadata,
            tracking_id=tracking_id,
        )
        return await self._messages.enqueue_once(message)

    async def enqueue_invitation(self, lead: Lead, tracking_id: str) -> tuple[OutboundMessage, bool]:
        """Queue the meeting scheduling invitation (once per lead)."""
        agent = await self._agent_for(lead)
        context = self._base_context(lead, agent)
        return await self.enqueue(
            lead,
            Channel.EMAIL,
            "meeting_invitation",
            context,
            message_type="meeting_invitation",
            dedupe_key=f"{lead.id}:meeting_invitation",
            tracking_id=tracking_id,
            metadata={"scheduling_link": context["scheduling_link"]},
        )

    async def enqueue_followup(self, lead: Lead, tracking_id: str) -> tuple[OutboundMessage, bool]:
        """Queue the 24h follow-up for a lead that has not booked (once per lead)."""
        agent = await self._agent_for(lead)
        return await self.enqueue(
            lead,
            Channel.EMAIL,
            "followup_reminder",
            self._base_context(lead, agent),
            message_type="followup_reminder",
            dedupe_key=f"{lead.id}:followup_reminder",
            tracking_id=tracking_id,
        )

    async def enqueue_meeting_reminder(
        self,
        lead: Lead,
        meeting: Meeting,
        kind: ReminderKind,
        tracking_id: str,
    ) -> tuple[OutboundMessage, bool]:
        """Queue one reminder slot of a meeting (once per meeting, offset and channel)."""
        agent = await self._agent_for(lead)
        context = self._base_context(lead, agent)
        context.update(
            {
                "meeting_title": meeting.title,
                "meeting_start": meeting.start_time,
                "location": meeting.location,
            }
        )
        return await self.enqueue(
            lead,
            Channel(kind.channel),
            f"meeting_reminder_{kind.offset}_{kind.channel}",
            context,
            message_type=f"meeting_reminder_{kind.offset}",
            dedupe_key=f"{meeting.id}:reminder_{kind.offset}:{kind.channel}",
            tracking_id=tracking_id,
            metadata={"meeting_id": meeting.id, "reminder_kind": kind.value},
        )
