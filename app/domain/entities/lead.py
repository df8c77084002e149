"""Lead entity."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class LeadStatus(str, Enum):
    """Lead lifecycle status."""

    NEW = "new"
    ASSIGNED = "assigned"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELED = "canceled"


@dataclass
class Lead:
    """A prospective customer walking through the notification lifecycle."""

    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    source: str = "manual"
    external_id: Optional[str] = None
    status: LeadStatus = LeadStatus.NEW
    assigned_agent_id: Optional[str] = None
    # Meeting schedule fields, set by webhook processing
    scheduled_at: Optional[datetime] = None
    meeting_end_time: Optional[datetime] = None
    meeting_location: Optional[str] = None
    canceled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    # Processing bookkeeping
    processing_attempts: int = 0
    last_processing_error: Optional[str] = None
    tracking_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def full_name(self) -> str:
        """Display name, falling back to the email address."""
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.email

    def is_assigned(self) -> bool:
        """Check whether an agent owns this lead."""
        return self.assigned_agent_id is not None

    def has_scheduled_meeting(self) -> bool:
        """Check whether the lead currently has a booked meeting."""
        return self.status == LeadStatus.SCHEDULED and self.scheduled_at is not None
