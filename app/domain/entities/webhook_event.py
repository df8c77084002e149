"""Webhook event entity (one Event Inbox row)."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ProcessingStatus(str, Enum):
    """Inbox row states."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


class WebhookEventType:
    """Event types understood by the inbox processor."""

    LEAD_CREATED = "lead.created"
    INVITEE_CREATED = "invitee.created"
    INVITEE_CANCELED = "invitee.canceled"
    INVITEE_RESCHEDULED = "invitee.rescheduled"
    INVITEE_NO_SHOW = "invitee_no_show.created"


@dataclass
class WebhookEvent:
    """A received inbound event, stored before it is interpreted."""

    id: str
    source: str
    event_type: str
    external_event_id: str
    raw_payload: dict[str, Any]
    lead_id: Optional[str] = None
    processed_payload: Optional[dict[str, Any]] = None
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    processing_attempts: int = 0
    last_processing_attempt: Optional[datetime] = None
    error_message: Optional[str] = None
    tracking_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    processed_at: Optional[datetime] = None

    @property
    def payload(self) -> dict[str, Any]:
        """Inner ``payload`` object of the envelope (empty when absent)."""
        inner = self.raw_payload.get("payload")
        return inner if isinstance(inner, dict) else {}
