"""Automation task entity (one Task Store row)."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional
from uuid import uuid4

if TYPE_CHECKING:
    from app.domain.value_objects.task_parameters import TaskParameters


class TaskStatus(str, Enum):
    """Task state machine: pending -> executing -> completed | failed; pending -> cancelled."""

    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (TaskStatus.PENDING, TaskStatus.EXECUTING)


class StepName(str, Enum):
    """Workflow steps; the step name selects the behavior of a row."""

    MEETING_SCHEDULING_INVITATION = "meeting_scheduling_invitation"
    MONITOR_MEETING_STATUS = "monitor_meeting_status"
    FOLLOWUP_REMINDER_24H = "followup_reminder_24h"
    MEETING_REMINDER_24H = "meeting_reminder_24h"
    MEETING_REMINDER_1H = "meeting_reminder_1h"

    @property
    def is_meeting_reminder(self) -> bool:
        return self in (StepName.MEETING_REMINDER_24H, StepName.MEETING_REMINDER_1H)

    @property
    def reminder_offset(self) -> Optional[str]:
        """Offset label for meeting reminder steps ("24h" / "1h")."""
        if self == StepName.MEETING_REMINDER_24H:
            return "24h"
        if self == StepName.MEETING_REMINDER_1H:
            return "1h"
        return None


DEFAULT_WORKFLOW_TYPE = "email_automation"


def task_dedupe_key(step_name: StepName, meeting_id: Optional[str] = None, channel: Optional[str] = None) -> str:
    """
    Key that identifies "the same" task for a lead.

    Single-shot steps use the step name; reminder steps are additionally keyed
    by meeting and channel so one lead can hold several active reminders.
    """
    if step_name.is_meeting_reminder:
        return f"{step_name.value}:{meeting_id}:{channel}"
    return step_name.value


@dataclass
class AutomationTask:
    """One step of a lead workflow, scheduled for a point in time."""

    id: str
    lead_id: str
    step_name: StepName
    scheduled_at: datetime
    parameters: "TaskParameters"
    status: TaskStatus = TaskStatus.PENDING
    workflow_type: str = DEFAULT_WORKFLOW_TYPE
    retry_count: int = 0
    max_retries: int = 3
    executed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    result: Optional[dict[str, Any]] = None
    completed_at: Optional[datetime] = None
    tracking_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        """Validate that the parameters belong to the step."""
        from app.domain.value_objects.task_parameters import validate_parameters

        validate_parameters(self.step_name, self.parameters)

    @classmethod
    def new(
        cls,
        lead_id: str,
        step_name: StepName,
        parameters: "TaskParameters",
        scheduled_at: datetime,
        tracking_id: Optional[str] = None,
        max_retries: int = 3,
    ) -> "AutomationTask":
        """Build a fresh pending task with a generated id."""
        return cls(
            id=str(uuid4()),
            lead_id=lead_id,
            step_name=step_name,
            scheduled_at=scheduled_at,
            parameters=parameters,
            tracking_id=tracking_id,
            max_retries=max_retries,
        )

    @property
    def dedupe_key(self) -> str:
        meeting_id = getattr(self.parameters, "meeting_id", None)
        channel = getattr(self.parameters, "channel", None)
        return task_dedupe_key(self.step_name, meeting_id, channel)

    @property
    def metadata(self) -> dict[str, Any]:
        """Serialized metadata bag (parameters plus the recorded result)."""
        data = self.parameters.to_dict()
        if self.tracking_id:
            data["tracking_id"] = self.tracking_id
        if self.result is not None:
            data["result"] = self.result
        if self.completed_at is not None:
            data["completed_at"] = self.completed_at.isoformat()
        return data
