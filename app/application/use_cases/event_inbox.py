"""Durable, idempotent receipt and interpretation of inbound webhook events."""

import hashlib
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional
from uuid import uuid4

from app.application.dtos.automation import BatchReport
from app.application.dtos.webhook import EventProcessingResult, WebhookReceipt
from app.application.ports.idempotency_store import IdempotencyStore
from app.application.ports.lead_repository import LeadRepository
from app.application.ports.meeting_repository import MeetingRepository
from app.application.ports.webhook_event_repository import WebhookEventRepository
from app.application.use_cases.lifecycle_coordinator import LifecycleCoordinator
from app.domain.entities.lead import Lead, LeadStatus
from app.domain.entities.meeting import Meeting, MeetingStatus
from app.domain.entities.webhook_event import ProcessingStatus, WebhookEvent, WebhookEventType
from app.domain.errors import NotFoundError

COMPONENT = "event_inbox"


def _parse_time(value: Any) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def derive_external_event_id(event_type: str, payload: dict[str, Any]) -> str:
    """
    Stable identity of an inbound event.

    Uses the envelope ``id`` when present, else the invitee URI qualified by
    the event type (created and canceled events share one invitee URI), else
    a SHA-256 of the canonical JSON body.
    """
    if payload.get("id"):
        return str(payload["id"])
    inner = payload.get("payload") if isinstance(payload.get("payload"), dict) else {}
    invitee = inner.get("invitee") if isinstance(inner.get("invitee"), dict) else {}
    invitee_uri = invitee.get("uri") or inner.get("uri")
    if invitee_uri:
        return f"{event_type}:{invitee_uri}"
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _split_name(name: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    if not name:
        return None, None
    parts = name.strip().split(" ", 1)
    return parts[0], parts[1] if len(parts) > 1 else None


class EventInbox:
    """Stores inbound events exactly once and drives the coordinator from them."""

    def __init__(
        self,
        event_repository: WebhookEventRepository,
        lead_repository: LeadRepository,
        meeting_repository: MeetingRepository,
        coordinator: LifecycleCoordinator,
        idempotency_store: Optional[IdempotencyStore] = None,
        idempotency_ttl_seconds: int = 86400,
        stale_after_minutes: int = 5,
        batch_size: int = 50,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[Callable[..., None]] = None,
    ) -> None:
        """
        Initialize the inbox.

        Args:
            event_repository: Event inbox table
            lead_repository: Leads
            meeting_repository: Meetings
            coordinator: Lifecycle coordinator driven by processed events
            idempotency_store: Optional fast-path duplicate check
            idempotency_ttl_seconds: TTL of fast-path keys
            stale_after_minutes: Age after which the loop picks up pending events
            batch_size: Maximum events per loop cycle
            clock: Current UTC time provider
            logger: Optional logger function (tracking_id, component, **kwargs)
        """
        self._events = event_repository
        self._leads = lead_repository
        self._meetings = meeting_repository
        self._coordinator = coordinator
        self._idempotency_store = idempotency_store
        self._idempotency_ttl_seconds = idempotency_ttl_seconds
        self._stale_after = timedelta(minutes=stale_after_minutes)
        self._batch_size = batch_size
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logger
        self._handlers: dict[str, Callable[[WebhookEvent, str], Awaitable[tuple[dict[str, Any], Optional[str]]]]] = {
            WebhookEventType.LEAD_CREATED: self._handle_lead_created,
            WebhookEventType.INVITEE_CREATED: self._handle_invitee_created,
            WebhookEventType.INVITEE_CANCELED: self._handle_invitee_canceled,
            WebhookEventType.INVITEE_RESCHEDULED: self._handle_invitee_rescheduled,
            WebhookEventType.INVITEE_NO_SHOW: self._handle_invitee_no_show,
        }

    def _log(self, tracking_id: str, **kwargs: Any) -> None:
        if self._logger:
            self._logger(tracking_id, COMPONENT, **kwargs)

    async def receive(self, source: str, payload: dict[str, Any], tracking_id: str) -> WebhookReceipt:
        """
        Store an inbound event (idempotent on source and external event id).

        Args:
            source: Webhook source (e.g. "calendly")
            payload: Parsed JSON body
            tracking_id: Correlation token

        Returns:
            Receipt; ``duplicate`` is True when the event was seen before
        """
        event_type = str(payload.get("event") or payload.get("event_type") or "unknown")
        external_event_id = derive_external_event_id(event_type, payload)
        idempotency_key = f"{source}:{external_event_id}"

        if self._idempotency_store is not None and await self._idempotency_store.is_processed(idempotency_key):
            stored_event_id = await self._idempotency_store.get_response(idempotency_key)
            if stored_event_id:
                self._log(tracking_id, event="duplicate_event", source=source, external_event_id=external_event_id)
                return WebhookReceipt(
                    event_id=stored_event_id,
                    source=source,
                    event_type=event_type,
                    external_event_id=external_event_id,
                    tracking_id=tracking_id,
                    duplicate=True,
                )

        inner = payload.get("payload") if isinstance(payload.get("payload"), dict) else {}
        event = WebhookEvent(
            id=str(uuid4()),
            source=source,
            event_type=event_type,
            external_event_id=external_event_id,
            raw_payload=payload,
            lead_id=payload.get("lead_id") or inner.get("lead_id"),
            tracking_id=tracking_id,
            created_at=self._clock(),
        )
        stored, created = await self._events.add(event)

        if self._idempotency_store is not None:
            await self._idempotency_store.mark_processed(idempotency_key, self._idempotency_ttl_seconds)
            await self._idempotency_store.store_response(
                idempotency_key, stored.id, self._idempotency_ttl_seconds
            )

        self._log(
            tracking_id,
            event="event_received",
            source=source,
            event_type=event_type,
            event_id=stored.id,
            duplicate=not created,
        )
        return WebhookReceipt(
            event_id=stored.id,
            source=source,
            event_type=event_type,
            external_event_id=external_event_id,
            tracking_id=tracking_id,
            duplicate=not created,
        )

    async def process(self, event_id: str, tracking_id: Optional[str] = None) -> EventProcessingResult:
        """
        Interpret a stored event once.

        Args:
            event_id: Stored event
            tracking_id: Correlation token (defaults to the event's own)

        Returns:
            Processing outcome

        Raises:
            NotFoundError: If the event does not exist
        """
        event = await self._events.get(event_id)
        if event is None:
            raise NotFoundError("WebhookEvent", event_id)
        tracking_id = tracking_id or event.tracking_id or str(uuid4())

        if event.processing_status != ProcessingStatus.PENDING:
            return EventProcessingResult(
                event_id=event.id,
                status=event.processing_status.value,
                lead_id=event.lead_id,
                detail={"skipped": "already_processed"},
            )
        if not await self._events.claim(event.id, event.processing_attempts, self._clock()):
            return EventProcessingResult(
                event_id=event.id,
                status=ProcessingStatus.PENDING.value,
                detail={"skipped": "claimed_elsewhere"},
            )

        handler = self._handlers.get(event.event_type)
        if handler is None:
            detail: dict[str, Any] = {"handled": False, "event_type": event.event_type}
            await self._events.mark_processed(event.id, detail, event.lead_id, self._clock())
            self._log(tracking_id, event="event_ignored", event_type=event.event_type, event_id=event.id)
            return EventProcessingResult(
                event_id=event.id, status=ProcessingStatus.PROCESSED.value, handled=False, detail=detail
            )

        try:
            detail, lead_id = await handler(event, tracking_id)
        except Exception as e:
            await self._events.mark_failed(event.id, str(e), self._clock())
            self._log(
                tracking_id,
                level=logging.ERROR,
                event="event_failed",
                event_type=event.event_type,
                event_id=event.id,
                error=str(e),
            )
            return EventProcessingResult(
                event_id=event.id, status=ProcessingStatus.FAILED.value, lead_id=event.lead_id, error=str(e)
            )

        detail = {"handled": True, **detail}
        await self._events.mark_processed(event.id, detail, lead_id, self._clock())
        self._log(tracking_id, event="event_processed", event_type=event.event_type, event_id=event.id, lead_id=lead_id)
        return EventProcessingResult(
            event_id=event.id, status=ProcessingStatus.PROCESSED.value, lead_id=lead_id, detail=detail
        )

    async def process_pending(self, tracking_id: Optional[str] = None) -> BatchReport:
        """
        Process events left pending longer than the staleness window.

        Args:
            tracking_id: Correlation token for the cycle (generated if omitted)

        Returns:
            Counters for the cycle
        """
        tracking_id = tracking_id or str(uuid4())
        stale = await self._events.list_pending(self._clock() - self._stale_after, self._batch_size)
        counts = {"succeeded": 0, "failed": 0, "skipped": 0}
        for event in stale:
            result = await self.process(event.id, event.tracking_id or tracking_id)
            if result.status == ProcessingStatus.PROCESSED.value and "skipped" not in result.detail:
                counts["succeeded"] += 1
            elif result.status == ProcessingStatus.FAILED.value:
                counts["failed"] += 1
            else:
                counts["skipped"] += 1
        return BatchReport(
            component=COMPONENT,
            tracking_id=tracking_id,
            selected=len(stale),
            processed=counts["succeeded"] + counts["failed"],
            **counts,
        )

    async def _resolve_lead(self, event: WebhookEvent) -> Optional[Lead]:
        """Lead named by the payload's lead_id, else the invitee's email."""
        if event.lead_id:
            lead = await self._leads.get(event.lead_id)
            if lead is not None:
                return lead
        invitee = event.payload.get("invitee") or {}
        email = invitee.get("email") or event.payload.get("email")
        if email:
            return await self._leads.get_by_email(email)
        return None

    async def _handle_lead_created(self, event: WebhookEvent, tracking_id: str) -> tuple[dict[str, Any], str]:
        data = event.payload or event.raw_payload
        email = data.get("email")
        if not email:
            raise ValueError("lead.created payload has no email")

        lead = await self._leads.get_by_email(email)
        created = lead is None
        if lead is None:
            first_name, last_name = data.get("first_name"), data.get("last_name")
            if not first_name and data.get("name"):
                first_name, last_name = _split_name(data.get("name"))
            lead = Lead(
                id=event.lead_id or str(uuid4()),
                email=email.strip().lower(),
                first_name=first_name,
                last_name=last_name,
                phone=data.get("phone"),
                source=data.get("source") or event.source,
                external_id=data.get("external_id"),
                tracking_id=tracking_id,
            )
            await self._leads.save(lead)

        workflow = await self._coordinator.on_lead_created(lead.id, tracking_id)
        return (
            {
                "lead_created": created,
                "scheduled": [step.step for step in workflow.completed_steps],
            },
            lead.id,
        )

    async def _handle_invitee_created(self, event: WebhookEvent, tracking_id: str) -> tuple[dict[str, Any], str]:
        invitee = event.payload.get("invitee") or {}
        scheduled = event.payload.get("event") or {}
        start_time = _parse_time(scheduled.get("start_time"))
        end_time = _parse_time(scheduled.get("end_time")) or start_time
        if start_time is None:
            raise ValueError("invitee.created payload has no event start_time")

        lead = await self._resolve_lead(event)
        lead_created = lead is None
        if lead is None:
            if not invitee.get("email"):
                raise ValueError("invitee.created payload has no invitee email")
            first_name, last_name = _split_name(invitee.get("name"))
            lead = Lead(
                id=str(uuid4()),
                email=invitee["email"].strip().lower(),
                first_name=first_name,
                last_name=last_name,
                source=event.source,
                tracking_id=tracking_id,
            )

        location = scheduled.get("location")
        if isinstance(location, list):
            location = ", ".join(str(part) for part in location)
        elif isinstance(location, dict):
            location = location.get("location") or location.get("join_url")

        lead.status = LeadStatus.SCHEDULED
        lead.scheduled_at = start_time
        lead.meeting_end_time = end_time
        lead.meeting_location = location
        lead.tracking_id = tracking_id
        await self._leads.save(lead)

        meeting, meeting_created = await self._meetings.add(
            Meeting(
                id=str(uuid4()),
                lead_id=lead.id,
                agent_id=lead.assigned_agent_id,
                external_event_uri=scheduled.get("uri") or invitee.get("uri"),
                title=(event.payload.get("event_type") or {}).get("name") or "Consultation Meeting",
                start_time=start_time,
                end_time=end_time,
                timezone=invitee.get("timezone") or "UTC",
                location=location,
                tracking_id=tracking_id,
            )
        )
        plan = await self._coordinator.on_meeting_webhook_confirmed(lead.id, meeting, tracking_id)
        return (
            {
                "lead_created": lead_created,
                "meeting_id": meeting.id,
                "meeting_created": meeting_created,
                "reminders_created": len(plan.created),
            },
            lead.id,
        )

    async def _meeting_for(self, event: WebhookEvent, lead: Lead) -> Optional[Meeting]:
        scheduled = event.payload.get("event") or {}
        if scheduled.get("uri"):
            meeting = await self._meetings.get_by_external_uri(scheduled["uri"])
            if meeting is not None:
                return meeting
        return await self._meetings.current_for_lead(lead.id)

    async def _handle_invitee_canceled(self, event: WebhookEvent, tracking_id: str) -> tuple[dict[str, Any], Optional[str]]:
        lead = await self._resolve_lead(event)
        if lead is None:
            return {"lead_found": False}, None

        invitee = event.payload.get("invitee") or {}
        meeting = await self._meeting_for(event, lead)
        cancelled = 0
        if meeting is not None:
            await self._meetings.update_status(meeting.id, MeetingStatus.CANCELED, self._clock(), tracking_id)
            cancelled = await self._coordinator.on_meeting_canceled(lead.id, meeting, tracking_id)

        # A reschedule cancels only the old meeting; the lead keeps its booking
        rescheduled = bool(invitee.get("rescheduled") or event.payload.get("rescheduled"))
        remaining = await self._meetings.current_for_lead(lead.id)
        lead_canceled = not rescheduled and (remaining is None or not remaining.is_active())
        if lead_canceled:
            lead.status = LeadStatus.CANCELED
            lead.canceled_at = _parse_time(invitee.get("canceled_at")) or self._clock()
            lead.cancellation_reason = (invitee.get("cancellation") or {}).get("reason")
            lead.tracking_id = tracking_id
            await self._leads.save(lead)
        return (
            {
                "meeting_id": meeting.id if meeting else None,
                "reminders_cancelled": cancelled,
                "lead_canceled": lead_canceled,
            },
            lead.id,
        )

    async def _handle_invitee_rescheduled(self, event: WebhookEvent, tracking_id: str) -> tuple[dict[str, Any], str]:
        """Cancel the lead's previous meeting, then book the new time like invitee.created."""
        scheduled = event.payload.get("event") or {}
        if _parse_time(scheduled.get("start_time")) is None:
            raise ValueError("invitee.rescheduled payload has no event start_time")

        lead = await self._resolve_lead(event)
        previous = await self._meetings.current_for_lead(lead.id) if lead else None
        cancelled = 0
        if previous is not None and previous.is_active() and previous.external_event_uri != scheduled.get("uri"):
            await self._meetings.update_status(previous.id, MeetingStatus.CANCELED, self._clock(), tracking_id)
            cancelled = await self._coordinator.on_meeting_canceled(previous.lead_id, previous, tracking_id)
        else:
            previous = None

        detail, lead_id = await self._handle_invitee_created(event, tracking_id)
        detail.update(
            {"previous_meeting_id": previous.id if previous else None, "reminders_cancelled": cancelled}
        )
        return detail, lead_id

    async def _handle_invitee_no_show(self, event: WebhookEvent, tracking_id: str) -> tuple[dict[str, Any], Optional[str]]:
        lead = await self._resolve_lead(event)
        if lead is None:
            return {"lead_found": False}, None
        meeting = await self._meeting_for(event, lead)
        if meeting is None:
            return {"meeting_found": False}, lead.id
        await self._meetings.update_status(meeting.id, MeetingStatus.NO_SHOW, self._clock(), tracking_id)
        cancelled = await self._coordinator.on_meeting_canceled(lead.id, meeting, tracking_id)
        return {"meeting_id": meeting.id, "reminders_cancelled": cancelled}, lead.id
