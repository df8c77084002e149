"""Meeting entity."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional


class MeetingStatus(str, Enum):
    """Meeting status."""

    SCHEDULED = "scheduled"
    CANCELED = "canceled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class ReminderKind(str, Enum):
    """One reminder slot per (offset, channel); each has its own sent flag."""

    EMAIL_24H = "email_24h"
    EMAIL_1H = "email_1h"
    SMS_24H = "sms_24h"
    SMS_1H = "sms_1h"

    @classmethod
    def for_offset(cls, offset: str, channel: str) -> "ReminderKind":
        """
        Resolve the reminder kind for an offset and channel.

        Args:
            offset: "24h" or "1h"
            channel: "email" or "sms"

        Returns:
            Matching reminder kind

        Raises:
            ValueError: If the combination is unknown
        """
        return cls(f"{channel}_{offset}")

    @property
    def channel(self) -> str:
        """Delivery channel of this reminder."""
        return self.value.split("_", 1)[0]

    @property
    def offset(self) -> str:
        """Offset label ("24h" or "1h")."""
        return self.value.split("_", 1)[1]

    @property
    def lead_time(self) -> timedelta:
        """Time before the meeting start at which the reminder fires."""
        return timedelta(hours=24) if self.offset == "24h" else timedelta(hours=1)


@dataclass
class Meeting:
    """A confirmed appointment derived from a scheduling webhook."""

    id: str
    lead_id: str
    start_time: datetime
    end_time: datetime
    agent_id: Optional[str] = None
    external_event_uri: Optional[str] = None
    title: str = "Consultation Meeting"
    timezone: str = "UTC"
    status: MeetingStatus = MeetingStatus.SCHEDULED
    location: Optional[str] = None
    # Idempotency guards for the reminder planner; only set after a successful send
    reminder_24h_sent: bool = False
    reminder_1h_sent: bool = False
    sms_24h_sent: bool = False
    sms_1h_sent: bool = False
    tracking_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def is_active(self) -> bool:
        """Check whether the meeting is still going to happen."""
        return self.status == MeetingStatus.SCHEDULED

    def reminder_sent(self, kind: ReminderKind) -> bool:
        """
        Check the sent flag for a reminder slot.

        Args:
            kind: Reminder slot

        Returns:
            True if the reminder was already delivered
        """
        return {
            ReminderKind.EMAIL_24H: self.reminder_24h_sent,
            ReminderKind.EMAIL_1H: self.reminder_1h_sent,
            ReminderKind.SMS_24H: self.sms_24h_sent,
            ReminderKind.SMS_1H: self.sms_1h_sent,
        }[kind]

    def fire_time(self, kind: ReminderKind) -> datetime:
        """Moment the given reminder is due."""
        return self.start_time - kind.lead_time


@dataclass(frozen=True)
class MeetingReminder:
    """Append-only history record of a reminder delivery."""

    meeting_id: str
    reminder_type: str  # "24h" or "1h"
    delivery_method: str  # "email" or "sms"
    scheduled_for: datetime
    status: str = "sent"
    sent_at: Optional[datetime] = None
    provider_message_id: Optional[str] = None
    error_message: Optional[str] = None
    tracking_id: Optional[str] = None
