"""Plan time-windowed meeting reminder tasks."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

from app.application.dtos.automation import BatchReport, PlannedReminder, ReminderPlan
from app.application.ports.lead_repository import LeadRepository
from app.application.ports.meeting_repository import MeetingRepository
from app.application.ports.task_repository import TaskRepository
from app.domain.entities.automation_task import AutomationTask, StepName, TaskStatus, task_dedupe_key
from app.domain.entities.lead import Lead
from app.domain.entities.meeting import Meeting, ReminderKind
from app.domain.value_objects.task_parameters import MeetingReminderParameters

COMPONENT = "reminder_planner"

REMINDER_STEPS = {
    "24h": StepName.MEETING_REMINDER_24H,
    "1h": StepName.MEETING_REMINDER_1H,
}

# A task in any of these states means the slot is already taken care of
PLANNED_STATUSES = (TaskStatus.PENDING, TaskStatus.EXECUTING, TaskStatus.COMPLETED)


def reminder_channels(lead: Optional[Lead], sms_enabled: bool) -> list[str]:
    """Channels a lead receives reminders on."""
    channels = ["email"]
    if sms_enabled and lead is not None and lead.phone:
        channels.append("sms")
    return channels


class ReminderPlanner:
    """Creates one reminder task per (meeting, offset, channel) slot."""

    def __init__(
        self,
        meeting_repository: MeetingRepository,
        lead_repository: LeadRepository,
        task_repository: TaskRepository,
        sms_enabled: bool = True,
        sweep_horizon_hours: int = 48,
        max_retries: int = 3,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[Callable[..., None]] = None,
    ) -> None:
        self._meetings = meeting_repository
        self._leads = lead_repository
        self._tasks = task_repository
        self._sms_enabled = sms_enabled
        self._sweep_horizon = timedelta(hours=sweep_horizon_hours)
        self._max_retries = max_retries
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logger

    def _log(self, tracking_id: str, **kwargs: Any) -> None:
        if self._logger:
            self._logger(tracking_id, COMPONENT, **kwargs)

    async def plan_for_meeting(self, meeting: Meeting, tracking_id: str) -> ReminderPlan:
        """
        Insert the missing reminder tasks of a meeting.

        A slot is skipped when its fire time has passed, its sent flag is set,
        or a reminder task for the same meeting, step and channel is already
        pending, executing or completed.

        Args:
            meeting: Meeting to plan for
            tracking_id: Correlation token written to created tasks

        Returns:
            Created and skipped slots
        """
        created: list[PlannedReminder] = []
        skipped: list[PlannedReminder] = []
        if not meeting.is_active():
            return ReminderPlan(meeting_id=meeting.id)

        now = self._clock()
        lead = await self._leads.get(meeting.lead_id)
        channels = reminder_channels(lead, self._sms_enabled)

        for offset, step_name in REMINDER_STEPS.items():
            for channel in channels:
                kind = ReminderKind.for_offset(offset, channel)
                fire_at = meeting.fire_time(kind)
                slot = {
                    "meeting_id": meeting.id,
                    "step_name": step_name.value,
                    "channel": channel,
                    "fire_at": fire_at,
                }

                if fire_at <= now:
                    skipped.append(PlannedReminder(**slot, skipped_reason="fire_time_passed"))
                    continue
                if meeting.reminder_sent(kind):
                    skipped.append(PlannedReminder(**slot, skipped_reason="already_sent"))
                    continue
                dedupe_key = task_dedupe_key(step_name, meeting.id, channel)
                if await self._tasks.exists_with_key(meeting.lead_id, dedupe_key, PLANNED_STATUSES):
                    skipped.append(PlannedReminder(**slot, skipped_reason="already_planned"))
                    continue

                task = AutomationTask.new(
                    lead_id=meeting.lead_id,
                    step_name=step_name,
                    parameters=MeetingReminderParameters(
                        meeting_id=meeting.id,
                        channel=channel,
                        meeting_start=meeting.start_time,
                    ),
                    scheduled_at=fire_at,
                    tracking_id=tracking_id,
                    max_retries=self._max_retries,
                )
                if await self._tasks.add(task):
                    created.append(PlannedReminder(**slot, task_id=task.id))
                else:
                    # Lost an insert race to another planner
                    skipped.append(PlannedReminder(**slot, skipped_reason="already_planned"))

        if created:
            self._log(
                tracking_id,
                event="reminders_planned",
                meeting_id=meeting.id,
                created=[f"{r.step_name}:{r.channel}" for r in created],
            )
        return ReminderPlan(meeting_id=meeting.id, created=created, skipped=skipped)

    async def sweep(self, tracking_id: Optional[str] = None) -> BatchReport:
        """
        Re-plan reminders for meetings starting within the sweep horizon.

        Args:
            tracking_id: Correlation token for the cycle (generated if omitted)

        Returns:
            Counters: processed meetings, succeeded = reminder tasks created
        """
        tracking_id = tracking_id or str(uuid4())
        now = self._clock()
        meetings = await self._meetings.list_upcoming(now, now + self._sweep_horizon)
        created = 0
        for meeting in meetings:
            plan = await self.plan_for_meeting(meeting, tracking_id)
            created += len(plan.created)

        if created:
            self._log(tracking_id, event="sweep_healed_gaps", meetings=len(meetings), created=created)
        return BatchReport(
            component=COMPONENT,
            tracking_id=tracking_id,
            selected=len(meetings),
            processed=len(meetings),
            succeeded=created,
        )
