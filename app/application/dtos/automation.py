"""Automation DTOs returned by use cases and HTTP endpoints."""

from datetime import datetime
from typing import Any, Optional

from app.application.dtos.base import DTO


class AssignmentResult(DTO):
    """Result of assigning a lead to an agent."""

    lead_id: str
    agent_id: str
    agent_name: Optional[str] = None
    already_assigned: bool = False
    tracking_id: Optional[str] = None


class StepOutcome(DTO):
    """Per-step entry of a workflow breakdown."""

    step: str
    reason: Optional[str] = None
    detail: Optional[dict[str, Any]] = None


class WorkflowResult(DTO):
    """Per-step breakdown of a synchronous workflow run."""

    lead_id: str
    tracking_id: str
    completed_steps: list[StepOutcome] = []
    failed_steps: list[StepOutcome] = []
    skipped_steps: list[StepOutcome] = []

    @property
    def success(self) -> bool:
        return not self.failed_steps


class BatchReport(DTO):
    """Counters for one polling cycle."""

    component: str
    tracking_id: str
    selected: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0


class PlannedReminder(DTO):
    """A reminder slot considered by the planner."""

    meeting_id: str
    step_name: str
    channel: str
    fire_at: datetime
    task_id: Optional[str] = None
    skipped_reason: Optional[str] = None


class ReminderPlan(DTO):
    """Reminder tasks created (and slots skipped) for a meeting."""

    meeting_id: str
    created: list[PlannedReminder] = []
    skipped: list[PlannedReminder] = []


class TaskView(DTO):
    """Read-only projection of an automation task."""

    id: str
    step_name: str
    status: str
    scheduled_at: datetime
    executed_at: Optional[datetime] = None
    retry_count: int = 0
    error_message: Optional[str] = None
    metadata: dict[str, Any] = {}


class ReminderGap(DTO):
    """A reminder whose fire time passed without a send or a pending task."""

    meeting_id: str
    reminder_kind: str
    fire_at: datetime


class AutomationStatus(DTO):
    """Aggregate automation state of a lead."""

    lead_id: str
    lead_status: str
    lead_email: str
    assigned_agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    meeting_id: Optional[str] = None
    meeting_start: Optional[datetime] = None
    meeting_status: Optional[str] = None
    reminder_flags: dict[str, bool] = {}
    task_counts: dict[str, int] = {}
    tasks: list[TaskView] = []
    gaps: list[ReminderGap] = []
