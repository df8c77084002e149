"""Typed parameters carried in an automation task's metadata bag.

Every task row stores a JSON ``metadata`` object. Its shape depends on the
row's ``step_name``; this module maps each step to a frozen dataclass so the
bag is validated when a task is built or loaded instead of when a step runs.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Union

from app.domain.entities.automation_task import StepName

CHANNELS = ("email", "sms")


def _parse_datetime(value: Any, field_name: str) -> datetime:
    """Parse an ISO timestamp (or pass a datetime through) as UTC-aware."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"{field_name} must be an ISO timestamp")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class SchedulingInvitationParameters:
    """Parameters for ``meeting_scheduling_invitation``."""

    scheduling_link: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"scheduling_link": self.scheduling_link}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SchedulingInvitationParameters":
        return cls(scheduling_link=data.get("scheduling_link"))


@dataclass(frozen=True)
class MonitorMeetingParameters:
    """Parameters for ``monitor_meeting_status``.

    ``monitoring_started_at`` is copied from row to row along the monitoring
    chain so the window is measured from the first check, not the latest.
    """

    monitoring_started_at: datetime
    check_interval_hours: int = 6
    max_monitoring_days: int = 7
    previous_check_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        """Validate monitoring parameters."""
        if self.monitoring_started_at.tzinfo is None:
            raise ValueError("monitoring_started_at must be timezone-aware")
        if self.check_interval_hours <= 0:
            raise ValueError("check_interval_hours must be positive")
        if self.max_monitoring_days <= 0:
            raise ValueError("max_monitoring_days must be positive")

    def next_check(self, checked_at: datetime) -> "MonitorMeetingParameters":
        """Parameters for the successor row in the chain."""
        return MonitorMeetingParameters(
            monitoring_started_at=self.monitoring_started_at,
            check_interval_hours=self.check_interval_hours,
            max_monitoring_days=self.max_monitoring_days,
            previous_check_at=checked_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "monitoring_started_at": self.monitoring_started_at.isoformat(),
            "check_interval_hours": self.check_interval_hours,
            "max_monitoring_days": self.max_monitoring_days,
            "previous_check_at": (
                self.previous_check_at.isoformat() if self.previous_check_at else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MonitorMeetingParameters":
        previous = data.get("previous_check_at")
        return cls(
            monitoring_started_at=_parse_datetime(
                data.get("monitoring_started_at"), "monitoring_started_at"
            ),
            check_interval_hours=int(data.get("check_interval_hours", 6)),
            max_monitoring_days=int(data.get("max_monitoring_days", 7)),
            previous_check_at=(
                _parse_datetime(previous, "previous_check_at") if previous else None
            ),
        )


@dataclass(frozen=True)
class FollowupReminderParameters:
    """Parameters for ``followup_reminder_24h``."""

    reminder_type: str = "unscheduled_meeting"

    def to_dict(self) -> dict[str, Any]:
        return {"reminder_type": self.reminder_type}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FollowupReminderParameters":
        return cls(reminder_type=data.get("reminder_type", "unscheduled_meeting"))


@dataclass(frozen=True)
class MeetingReminderParameters:
    """Parameters for ``meeting_reminder_24h`` and ``meeting_reminder_1h``."""

    meeting_id: str
    channel: str
    meeting_start: datetime

    def __post_init__(self) -> None:
        """Validate reminder parameters."""
        if not self.meeting_id:
            raise ValueError("meeting_id is required for meeting reminders")
        if self.channel not in CHANNELS:
            raise ValueError(f"Unsupported reminder channel: {self.channel}")
        if self.meeting_start.tzinfo is None:
            raise ValueError("meeting_start must be timezone-aware")

    def to_dict(self) -> dict[str, Any]:
        return {
            "meeting_id": self.meeting_id,
            "channel": self.channel,
            "meeting_start": self.meeting_start.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MeetingReminderParameters":
        return cls(
            meeting_id=str(data.get("meeting_id") or ""),
            channel=data.get("channel", "email"),
            meeting_start=_parse_datetime(data.get("meeting_start"), "meeting_start"),
        )


TaskParameters = Union[
    SchedulingInvitationParameters,
    MonitorMeetingParameters,
    FollowupReminderParameters,
    MeetingReminderParameters,
]

STEP_PARAMETER_TYPES: dict[StepName, type] = {
    StepName.MEETING_SCHEDULING_INVITATION: SchedulingInvitationParameters,
    StepName.MONITOR_MEETING_STATUS: MonitorMeetingParameters,
    StepName.FOLLOWUP_REMINDER_24H: FollowupReminderParameters,
    StepName.MEETING_REMINDER_24H: MeetingReminderParameters,
    StepName.MEETING_REMINDER_1H: MeetingReminderParameters,
}


def validate_parameters(step_name: StepName, parameters: TaskParameters) -> None:
    """
    Ensure the parameter variant matches the step.

    Args:
        step_name: Task step
        parameters: Parameter object

    Raises:
        ValueError: If the variant does not belong to the step
    """
    expected = STEP_PARAMETER_TYPES[step_name]
    if not isinstance(parameters, expected):
        raise ValueError(
            f"Step {step_name.value} expects {expected.__name__}, "
            f"got {type(parameters).__name__}"
        )


def parse_task_parameters(step_name: StepName, data: Optional[dict[str, Any]]) -> TaskParameters:
    """
    Build the typed parameters for a step from a stored metadata bag.

    Args:
        step_name: Task step
        data: Stored metadata (extra keys such as ``result`` are ignored)

    Returns:
        Parameter object for the step

    Raises:
        ValueError: If required parameters are missing or invalid
    """
    return STEP_PARAMETER_TYPES[step_name].from_dict(data or {})
