"""Top-level orchestration of a lead's automation lifecycle."""

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

from app.application.dtos.automation import (
    AutomationStatus,
    BatchReport,
    ReminderGap,
    ReminderPlan,
    StepOutcome,
    TaskView,
    WorkflowResult,
)
from app.application.ports.agent_repository import AgentRepository
from app.application.ports.lead_repository import LeadRepository
from app.application.ports.meeting_repository import MeetingRepository
from app.application.ports.task_repository import TaskRepository
from app.application.use_cases.assign_lead_to_agent import AssignLeadToAgent
from app.application.use_cases.notification_composer import NotificationComposer
from app.application.use_cases.queue_drainer import QueueDrainer
from app.application.use_cases.reminder_planner import REMINDER_STEPS, ReminderPlanner, reminder_channels
from app.domain.entities.automation_task import AutomationTask, StepName, TaskStatus, task_dedupe_key
from app.domain.entities.meeting import Meeting, ReminderKind
from app.domain.entities.outbound_message import MessageStatus
from app.domain.errors import NoEligibleAgentError, NotFoundError
from app.domain.value_objects.task_parameters import (
    FollowupReminderParameters,
    MonitorMeetingParameters,
    SchedulingInvitationParameters,
)

COMPONENT = "lifecycle"


class LifecycleCoordinator:
    """Reacts to lead and meeting signals and exposes the synchronous workflow."""

    def __init__(
        self,
        lead_repository: LeadRepository,
        agent_repository: AgentRepository,
        meeting_repository: MeetingRepository,
        task_repository: TaskRepository,
        assign_lead: AssignLeadToAgent,
        composer: NotificationComposer,
        queue_drainer: QueueDrainer,
        reminder_planner: ReminderPlanner,
        monitor_initial_delay_minutes: int = 60,
        monitor_check_interval_hours: int = 6,
        monitor_max_days: int = 7,
        followup_delay_hours: int = 24,
        sms_reminders_enabled: bool = True,
        max_retries: int = 3,
        orphan_grace_minutes: int = 10,
        orphan_max_attempts: int = 5,
        batch_size: int = 50,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[Callable[..., None]] = None,
    ) -> None:
        self._leads = lead_repository
        self._agents = agent_repository
        self._meetings = meeting_repository
        self._tasks = task_repository
        self._assign_lead = assign_lead
        self._composer = composer
        self._drainer = queue_drainer
        self._planner = reminder_planner
        self._monitor_initial_delay = timedelta(minutes=monitor_initial_delay_minutes)
        self._monitor_check_interval_hours = monitor_check_interval_hours
        self._monitor_max_days = monitor_max_days
        self._followup_delay = timedelta(hours=followup_delay_hours)
        self._sms_reminders_enabled = sms_reminders_enabled
        self._max_retries = max_retries
        self._orphan_grace = timedelta(minutes=orphan_grace_minutes)
        self._orphan_max_attempts = orphan_max_attempts
        self._batch_size = batch_size
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logger

    def _log(self, tracking_id: str, **kwargs: Any) -> None:
        if self._logger:
            self._logger(tracking_id, COMPONENT, **kwargs)

    def _monitor_task(self, lead_id: str, now: datetime, tracking_id: str) -> AutomationTask:
        return AutomationTask.new(
            lead_id=lead_id,
            step_name=StepName.MONITOR_MEETING_STATUS,
            parameters=MonitorMeetingParameters(
                monitoring_started_at=now,
                check_interval_hours=self._monitor_check_interval_hours,
                max_monitoring_days=self._monitor_max_days,
            ),
            scheduled_at=now + self._monitor_initial_delay,
            tracking_id=tracking_id,
            max_retries=self._max_retries,
        )

    async def _assign(self, lead_id: str, tracking_id: str, result: dict[str, list[StepOutcome]]) -> None:
        """Run assignment and record the outcome; a missing agent is a fallback, not a failure."""
        try:
            assignment = await self._assign_lead.execute(lead_id, tracking_id)
        except NoEligibleAgentError:
            result["skipped_steps"].append(
                StepOutcome(step="assignment", reason="no_eligible_agent", detail={"fallback": "generic_link"})
            )
            return
        if assignment.already_assigned:
            result["skipped_steps"].append(
                StepOutcome(step="assignment", reason="already_assigned", detail={"agent_id": assignment.agent_id})
            )
        else:
            result["completed_steps"].append(
                StepOutcome(step="assignment", detail={"agent_id": assignment.agent_id})
            )

    async def on_lead_created(self, lead_id: str, tracking_id: str) -> WorkflowResult:
        """
        Assign the lead and schedule its initial workflow tasks.

        Schedules the invitation (now), the first monitoring check and the
        24h follow-up. Tasks already active for the lead are reported as
        skipped.

        Args:
            lead_id: New lead
            tracking_id: Correlation token

        Returns:
            Per-step breakdown

        Raises:
            NotFoundError: If the lead does not exist
        """
        if await self._leads.get(lead_id) is None:
            raise NotFoundError("Lead", lead_id)

        steps: dict[str, list[StepOutcome]] = {"completed_steps": [], "failed_steps": [], "skipped_steps": []}
        await self._assign(lead_id, tracking_id, steps)

        now = self._clock()
        tasks = [
            AutomationTask.new(
                lead_id=lead_id,
                step_name=StepName.MEETING_SCHEDULING_INVITATION,
                parameters=SchedulingInvitationParameters(),
                scheduled_at=now,
                tracking_id=tracking_id,
                max_retries=self._max_retries,
            ),
            self._monitor_task(lead_id, now, tracking_id),
            AutomationTask.new(
                lead_id=lead_id,
                step_name=StepName.FOLLOWUP_REMINDER_24H,
                parameters=FollowupReminderParameters(),
                scheduled_at=now + self._followup_delay,
                tracking_id=tracking_id,
                max_retries=self._max_retries,
            ),
        ]
        for task in tasks:
            step = f"schedule:{task.step_name.value}"
            if await self._tasks.add(task):
                steps["completed_steps"].append(
                    StepOutcome(step=step, detail={"task_id": task.id, "scheduled_at": task.scheduled_at.isoformat()})
                )
            else:
                steps["skipped_steps"].append(StepOutcome(step=step, reason="already_scheduled"))

        self._log(tracking_id, event="lead_workflow_started", lead_id=lead_id, scheduled=len(steps["completed_steps"]))
        return WorkflowResult(lead_id=lead_id, tracking_id=tracking_id, **steps)

    async def process_orphan_leads(self, tracking_id: Optional[str] = None) -> BatchReport:
        """
        Start the workflow of `new` leads that never got one.

        Covers leads stored by a webhook whose workflow setup then failed.
        Failures are counted on the lead and retried on later cycles until
        the attempt cap is reached.

        Args:
            tracking_id: Correlation token for the cycle (generated if omitted)

        Returns:
            Counters for the cycle
        """
        tracking_id = tracking_id or str(uuid4())
        orphans = await self._leads.list_orphaned(
            self._clock() - self._orphan_grace, self._orphan_max_attempts, self._batch_size
        )
        succeeded = failed = 0
        for lead in orphans:
            try:
                await self.on_lead_created(lead.id, tracking_id)
                succeeded += 1
            except Exception as e:
                failed += 1
                await self._leads.record_processing_failure(lead.id, str(e), tracking_id)
                self._log(
                    tracking_id,
                    level=logging.ERROR,
                    event="orphan_lead_failed",
                    lead_id=lead.id,
                    attempts=lead.processing_attempts + 1,
                    error=str(e),
                )
        if orphans:
            self._log(tracking_id, event="orphan_leads_processed", selected=len(orphans), failed=failed)
        return BatchReport(
            component="orphan_leads",
            tracking_id=tracking_id,
            selected=len(orphans),
            processed=len(orphans),
            succeeded=succeeded,
            failed=failed,
        )

    async def on_meeting_webhook_confirmed(self, lead_id: str, meeting: Meeting, tracking_id: str) -> ReminderPlan:
        """
        Stop follow-ups for a lead that booked and plan the meeting reminders.

        Args:
            lead_id: Lead that booked
            meeting: Confirmed meeting
            tracking_id: Correlation token

        Returns:
            Reminder plan for the meeting
        """
        cancelled = await self._tasks.cancel_pending(
            lead_id, StepName.FOLLOWUP_REMINDER_24H, tracking_id=tracking_id
        )
        plan = await self._planner.plan_for_meeting(meeting, tracking_id)
        self._log(
            tracking_id,
            event="meeting_confirmed",
            lead_id=lead_id,
            meeting_id=meeting.id,
            followups_cancelled=cancelled,
            reminders_created=len(plan.created),
        )
        return plan

    async def on_meeting_canceled(self, lead_id: str, meeting: Meeting, tracking_id: str) -> int:
        """
        Cancel the pending reminder tasks of a meeting.

        Args:
            lead_id: Lead of the meeting
            meeting: Canceled meeting
            tracking_id: Correlation token

        Returns:
            Number of cancelled reminder tasks
        """
        cancelled = 0
        for step_name in REMINDER_STEPS.values():
            cancelled += await self._tasks.cancel_pending(
                lead_id, step_name, meeting_id=meeting.id, tracking_id=tracking_id
            )
        self._log(tracking_id, event="meeting_canceled", lead_id=lead_id, meeting_id=meeting.id, reminders_cancelled=cancelled)
        return cancelled

    async def get_automation_status(self, lead_id: str) -> AutomationStatus:
        """
        Build a read-only view of a lead's automation state.

        Args:
            lead_id: Lead identifier

        Returns:
            Lead, agent, meeting, task counts, tasks and reminder gaps

        Raises:
            NotFoundError: If the lead does not exist
        """
        lead = await self._leads.get(lead_id)
        if lead is None:
            raise NotFoundError("Lead", lead_id)

        agent = await self._agents.get(lead.assigned_agent_id) if lead.assigned_agent_id else None
        meeting = await self._meetings.current_for_lead(lead_id)
        tasks = await self._tasks.list_for_lead(lead_id)

        status = {
            "lead_id": lead.id,
            "lead_status": lead.status.value,
            "lead_email": lead.email,
            "assigned_agent_id": lead.assigned_agent_id,
            "agent_name": agent.full_name if agent else None,
            "task_counts": dict(Counter(task.status.value for task in tasks)),
            "tasks": [
                TaskView(
                    id=task.id,
                    step_name=task.step_name.value,
                    status=task.status.value,
                    scheduled_at=task.scheduled_at,
                    executed_at=task.executed_at,
                    retry_count=task.retry_count,
                    error_message=task.error_message,
                    metadata=task.metadata,
                )
                for task in tasks
            ],
        }
        if meeting is not None:
            status.update(
                {
                    "meeting_id": meeting.id,
                    "meeting_start": meeting.start_time,
                    "meeting_status": meeting.status.value,
                    "reminder_flags": {kind.value: meeting.reminder_sent(kind) for kind in ReminderKind},
                    "gaps": self._reminder_gaps(lead, meeting, tasks),
                }
            )
        return AutomationStatus(**status)

    def _reminder_gaps(self, lead, meeting: Meeting, tasks: list[AutomationTask]) -> list[ReminderGap]:
        """Slots whose fire time passed with the flag unset and no active task."""
        if not meeting.is_active():
            return []
        now = self._clock()
        active_keys = {task.dedupe_key for task in tasks if task.status.is_active}
        gaps = []
        for offset, step_name in REMINDER_STEPS.items():
            for channel in reminder_channels(lead, self._sms_reminders_enabled):
                kind = ReminderKind.for_offset(offset, channel)
                fire_at = meeting.fire_time(kind)
                if fire_at > now or meeting.reminder_sent(kind):
                    continue
                if task_dedupe_key(step_name, meeting.id, channel) in active_keys:
                    continue
                gaps.append(ReminderGap(meeting_id=meeting.id, reminder_kind=kind.value, fire_at=fire_at))
        return gaps

    async def execute_complete_workflow(self, lead_id: str, tracking_id: str) -> WorkflowResult:
        """
        Run assignment, invitation delivery and monitoring setup synchronously.

        "Already assigned" and "already sent" outcomes are reported as skipped
        steps. The invitation goes through the same dedupe key and message
        claim as the scheduled task, so the two paths never double-send.

        Args:
            lead_id: Lead identifier
            tracking_id: Correlation token

        Returns:
            Per-step breakdown

        Raises:
            NotFoundError: If the lead does not exist
        """
        lead = await self._leads.get(lead_id)
        if lead is None:
            raise NotFoundError("Lead", lead_id)

        steps: dict[str, list[StepOutcome]] = {"completed_steps": [], "failed_steps": [], "skipped_steps": []}

        try:
            await self._assign(lead_id, tracking_id, steps)
        except Exception as e:
            steps["failed_steps"].append(StepOutcome(step="assignment", reason=str(e)))

        # Re-read so the invitation uses the agent chosen above
        lead = await self._leads.get(lead_id) or lead
        try:
            message, created = await self._composer.enqueue_invitation(lead, tracking_id)
            if created:
                steps["completed_steps"].append(StepOutcome(step="invitation", detail={"message_id": message.id}))
            elif message.status in (MessageStatus.SENT, MessageStatus.SENDING):
                steps["skipped_steps"].append(
                    StepOutcome(step="invitation", reason="already_sent", detail={"message_id": message.id})
                )
            else:
                steps["skipped_steps"].append(
                    StepOutcome(step="invitation", reason="already_queued", detail={"message_id": message.id})
                )

            delivered = await self._drainer.deliver(message.id, tracking_id)
            if delivered == MessageStatus.SENT and message.status.is_due_state:
                steps["completed_steps"].append(StepOutcome(step="dispatch", detail={"message_id": message.id}))
            elif delivered in (MessageStatus.SENT, MessageStatus.SENDING):
                steps["skipped_steps"].append(StepOutcome(step="dispatch", reason="already_sent"))
            else:
                steps["failed_steps"].append(
                    StepOutcome(
                        step="dispatch",
                        reason="delivery_failed",
                        detail={"message_id": message.id, "message_status": delivered.value if delivered else None},
                    )
                )
        except Exception as e:
            self._log(tracking_id, level=logging.ERROR, event="invitation_failed", lead_id=lead_id, error=str(e))
            steps["failed_steps"].append(StepOutcome(step="invitation", reason=str(e)))

        try:
            if await self._tasks.add(self._monitor_task(lead_id, self._clock(), tracking_id)):
                steps["completed_steps"].append(StepOutcome(step="monitoring"))
            else:
                steps["skipped_steps"].append(StepOutcome(step="monitoring", reason="already_monitoring"))
        except Exception as e:
            steps["failed_steps"].append(StepOutcome(step="monitoring", reason=str(e)))

        result = WorkflowResult(lead_id=lead_id, tracking_id=tracking_id, **steps)
        self._log(
            tracking_id,
            event="workflow_executed",
            lead_id=lead_id,
            completed=[s.step for s in result.completed_steps],
            skipped=[s.step for s in result.skipped_steps],
            failed=[s.step for s in result.failed_steps],
        )
        return result
