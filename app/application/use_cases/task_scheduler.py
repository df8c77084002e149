"""Claim due automation tasks and execute the step each one encodes."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional
from uuid import uuid4

from app.application.dtos.automation import BatchReport
from app.application.ports.lead_repository import LeadRepository
from app.application.ports.meeting_repository import MeetingRepository
from app.application.ports.task_repository import TaskRepository
from app.application.use_cases.notification_composer import NotificationComposer
from app.application.use_cases.reminder_planner import ReminderPlanner
from app.domain.entities.automation_task import AutomationTask, StepName
from app.domain.entities.lead import Lead
from app.domain.entities.meeting import ReminderKind
from app.domain.entities.outbound_message import OutboundMessage
from app.domain.errors import NotFoundError, PreconditionFailed, WorkflowStepError
from app.domain.value_objects.task_parameters import MeetingReminderParameters, MonitorMeetingParameters

COMPONENT = "task_scheduler"


@dataclass
class StepResult:
    """What a step handler produced: the stored result and an optional successor row."""

    result: dict[str, Any]
    successor: Optional[AutomationTask] = None


def _queued(message: OutboundMessage, created: bool) -> dict[str, Any]:
    if not created:
        raise PreconditionFailed("already_sent")
    return {"message_id": message.id, "queued": True}


class TaskScheduler:
    """Task state machine driver.

    ``pending -> executing`` is a conditional claim; the handler outcome moves
    the row to ``completed`` (including skips) or ``failed``. Failed rows are
    not retried automatically.
    """

    def __init__(
        self,
        task_repository: TaskRepository,
        lead_repository: LeadRepository,
        meeting_repository: MeetingRepository,
        composer: NotificationComposer,
        reminder_planner: ReminderPlanner,
        batch_size: int = 50,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[Callable[..., None]] = None,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            task_repository: Task store
            lead_repository: Leads
            meeting_repository: Meetings
            composer: Notification composer (enqueue-once)
            reminder_planner: Planner triggered when monitoring finds a meeting
            batch_size: Maximum tasks per cycle
            clock: Current UTC time provider
            logger: Optional logger function (tracking_id, component, **kwargs)
        """
        self._tasks = task_repository
        self._leads = lead_repository
        self._meetings = meeting_repository
        self._composer = composer
        self._planner = reminder_planner
        self._batch_size = batch_size
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logger
        self._handlers: dict[StepName, Callable[[AutomationTask, str], Awaitable[StepResult]]] = {
            StepName.MEETING_SCHEDULING_INVITATION: self._send_invitation,
            StepName.MONITOR_MEETING_STATUS: self._monitor_meeting_status,
            StepName.FOLLOWUP_REMINDER_24H: self._send_followup,
            StepName.MEETING_REMINDER_24H: self._send_meeting_reminder,
            StepName.MEETING_REMINDER_1H: self._send_meeting_reminder,
        }

    def _log(self, tracking_id: str, **kwargs: Any) -> None:
        if self._logger:
            self._logger(tracking_id, COMPONENT, **kwargs)

    async def run_once(self, tracking_id: Optional[str] = None) -> BatchReport:
        """
        Execute one batch of due tasks, oldest first, sequentially.

        Args:
            tracking_id: Correlation token for the cycle (generated if omitted)

        Returns:
            Counters for the cycle
        """
        tracking_id = tracking_id or str(uuid4())
        due = await self._tasks.list_due(self._clock(), self._batch_size)
        counts = {"succeeded": 0, "failed": 0, "skipped": 0}

        for task in due:
            outcome = await self.execute_task(task, tracking_id)
            counts[outcome] += 1

        report = BatchReport(
            component=COMPONENT,
            tracking_id=tracking_id,
            selected=len(due),
            processed=counts["succeeded"] + counts["failed"],
            **counts,
        )
        if due:
            self._log(tracking_id, event="batch_completed", **report.model_dump(exclude={"component", "tracking_id"}))
        return report

    async def execute_task(self, task: AutomationTask, tracking_id: str) -> str:
        """
        Claim and run a single task.

        Args:
            task: Task selected as due
            tracking_id: Correlation token

        Returns:
            "succeeded", "failed", or "skipped" when another worker owns the task
        """
        if not await self._tasks.claim(task.id, self._clock(), tracking_id):
            self._log(tracking_id, event="claim_lost", task_id=task.id)
            return "skipped"
        self._log(
            tracking_id,
            task_id=task.id,
            step_name=task.step_name.value,
            status_before="pending",
            status_after="executing",
        )

        try:
            outcome = await self._handlers[task.step_name](task, tracking_id)
        except PreconditionFailed as e:
            outcome = StepResult(result={"skipped": True, "reason": e.reason})
        except Exception as e:
            error = e if isinstance(e, WorkflowStepError) else WorkflowStepError(task.step_name.value, str(e))
            await self._tasks.fail(task.id, str(error), self._clock())
            self._log(
                tracking_id,
                level=logging.ERROR,
                task_id=task.id,
                step_name=task.step_name.value,
                status_before="executing",
                status_after="failed",
                error=str(error),
            )
            return "failed"

        now = self._clock()
        if outcome.successor is not None:
            if not await self._tasks.complete_and_reschedule(task.id, outcome.result, outcome.successor, now):
                self._log(tracking_id, task_id=task.id, step_name=task.step_name.value, event="completion_lost")
                return "skipped"
        else:
            await self._tasks.complete(task.id, outcome.result, now)
        self._log(
            tracking_id,
            task_id=task.id,
            step_name=task.step_name.value,
            status_before="executing",
            status_after="completed",
            result=outcome.result,
        )
        return "succeeded"

    async def cancel_pending(
        self,
        lead_id: str,
        step_name: StepName,
        meeting_id: Optional[str] = None,
        tracking_id: Optional[str] = None,
    ) -> int:
        """
        Cancel pending tasks of a step for a lead.

        Args:
            lead_id: Lead identifier
            step_name: Step to cancel
            meeting_id: Restrict to reminders of one meeting
            tracking_id: Correlation token written to the cancelled rows

        Returns:
            Number of cancelled rows
        """
        return await self._tasks.cancel_pending(lead_id, step_name, meeting_id, tracking_id)

    async def _require_lead(self, lead_id: str) -> Lead:
        lead = await self._leads.get(lead_id)
        if lead is None:
            raise NotFoundError("Lead", lead_id)
        return lead

    async def _send_invitation(self, task: AutomationTask, tracking_id: str) -> StepResult:
        lead = await self._require_lead(task.lead_id)
        message, created = await self._composer.enqueue_invitation(lead, tracking_id)
        result = _queued(message, created)
        result["scheduling_link"] = message.metadata.get("scheduling_link")
        return StepResult(result=result)

    async def _monitor_meeting_status(self, task: AutomationTask, tracking_id: str) -> StepResult:
        params: MonitorMeetingParameters = task.parameters
        now = self._clock()

        meeting = await self._meetings.current_for_lead(task.lead_id)
        if meeting is not None and meeting.is_active():
            plan = await self._planner.plan_for_meeting(meeting, tracking_id)
            return StepResult(
                result={
                    "outcome": "meeting_scheduled",
                    "meeting_id": meeting.id,
                    "reminders_created": len(plan.created),
                }
            )

        if now - params.monitoring_started_at > timedelta(days=params.max_monitoring_days):
            return StepResult(result={"outcome": "monitoring_expired"})

        next_check_at = now + timedelta(hours=params.check_interval_hours)
        successor = AutomationTask.new(
            lead_id=task.lead_id,
            step_name=StepName.MONITOR_MEETING_STATUS,
            parameters=params.next_check(now),
            scheduled_at=next_check_at,
            tracking_id=tracking_id,
            max_retries=task.max_retries,
        )
        return StepResult(
            result={"outcome": "continue_monitoring", "next_check_at": next_check_at.isoformat()},
            successor=successor,
        )

    async def _send_followup(self, task: AutomationTask, tracking_id: str) -> StepResult:
        lead = await self._require_lead(task.lead_id)
        meeting = await self._meetings.current_for_lead(lead.id)
        if (meeting is not None and meeting.is_active()) or lead.has_scheduled_meeting():
            raise PreconditionFailed("meeting_scheduled")
        message, created = await self._composer.enqueue_followup(lead, tracking_id)
        return StepResult(result=_queued(message, created))

    async def _send_meeting_reminder(self, task: AutomationTask, tracking_id: str) -> StepResult:
        params: MeetingReminderParameters = task.parameters
        meeting = await self._meetings.get(params.meeting_id)
        if meeting is None or not meeting.is_active():
            raise PreconditionFailed("meeting_cancelled")

        kind = ReminderKind.for_offset(task.step_name.reminder_offset, params.channel)
        if meeting.reminder_sent(kind):
            raise PreconditionFailed("already_sent")

        lead = await self._require_lead(task.lead_id)
        message, created = await self._composer.enqueue_meeting_reminder(lead, meeting, kind, tracking_id)
        result = _queued(message, created)
        result["reminder_kind"] = kind.value
        return StepResult(result=result)
