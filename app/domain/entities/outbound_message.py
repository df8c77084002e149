"""Outbound message entity (one row of the delivery queue)."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4


class Channel(str, Enum):
    """Delivery channel."""

    EMAIL = "email"
    SMS = "sms"


class MessageStatus(str, Enum):
    """Queue states: pending|scheduled -> sending -> sent | scheduled (retry) | failed."""

    PENDING = "pending"
    SENDING = "sending"
    SENT = "sent"
    SCHEDULED = "scheduled"
    FAILED = "failed"

    @property
    def is_due_state(self) -> bool:
        """States the queue drainer picks up once ``scheduled_for`` has passed."""
        return self in (MessageStatus.PENDING, MessageStatus.SCHEDULED)


@dataclass
class OutboundMessage:
    """A rendered email or SMS waiting to be handed to a provider."""

    id: str
    lead_id: str
    channel: Channel
    recipient: str
    body: str
    message_type: str
    dedupe_key: str
    subject: Optional[str] = None
    html_body: Optional[str] = None
    status: MessageStatus = MessageStatus.PENDING
    scheduled_for: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    retry_count: int = 0
    max_retries: int = 3
    provider_message_id: Optional[str] = None
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    tracking_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def new(
        cls,
        lead_id: str,
        channel: Channel,
        recipient: str,
        body: str,
        message_type: str,
        dedupe_key: str,
        subject: Optional[str] = None,
        html_body: Optional[str] = None,
        scheduled_for: Optional[datetime] = None,
        max_retries: int = 3,
        metadata: Optional[dict[str, Any]] = None,
        tracking_id: Optional[str] = None,
    ) -> "OutboundMessage":
        """Build a fresh pending message with a generated id."""
        return cls(
            id=str(uuid4()),
            lead_id=lead_id,
            channel=channel,
            recipient=recipient,
            body=body,
            message_type=message_type,
            dedupe_key=dedupe_key,
            subject=subject,
            html_body=html_body,
            scheduled_for=scheduled_for or datetime.now(timezone.utc),
            max_retries=max_retries,
            metadata=dict(metadata or {}),
            tracking_id=tracking_id,
        )

    @property
    def meeting_id(self) -> Optional[str]:
        return self.metadata.get("meeting_id")

    @property
    def reminder_kind(self) -> Optional[str]:
        return self.metadata.get("reminder_kind")

    def is_meeting_reminder(self) -> bool:
        """Check whether a successful send must set a meeting reminder flag."""
        return bool(self.meeting_id and self.reminder_kind)
