"""Dependency injection container."""

from datetime import datetime
from typing import Any, Callable, Optional

from app.adapters.outbound.persistence import (
    PostgresAgentRepository,
    PostgresLeadRepository,
    PostgresMeetingRepository,
    PostgresOutboundMessageRepository,
    PostgresTaskRepository,
    PostgresWebhookEventRepository,
)
from app.application.ports.idempotency_store import IdempotencyStore
from app.application.ports.message_renderer import MessageRenderer
from app.application.ports.notification_dispatcher import NotificationDispatcher
from app.application.use_cases.assign_lead_to_agent import AssignLeadToAgent
from app.application.use_cases.event_inbox import EventInbox
from app.application.use_cases.lifecycle_coordinator import LifecycleCoordinator
from app.application.use_cases.notification_composer import NotificationComposer
from app.application.use_cases.queue_drainer import QueueDrainer
from app.application.use_cases.reminder_planner import ReminderPlanner
from app.application.use_cases.task_scheduler import TaskScheduler
from app.infrastructure.config.settings import Settings
from app.infrastructure.db import SessionFactory


class Container:
    """Wires repositories and use cases around one session factory."""

    def __init__(
        self,
        settings: Settings,
        dispatcher: NotificationDispatcher,
        renderer: MessageRenderer,
        idempotency_store: Optional[IdempotencyStore] = None,
        session_factory: Optional[SessionFactory] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[Callable[..., None]] = None,
    ) -> None:
        """Initialize container with dependencies."""
        # Repositories
        self.lead_repository = PostgresLeadRepository(session_factory)
        self.agent_repository = PostgresAgentRepository(session_factory)
        self.task_repository = PostgresTaskRepository(session_factory)
        self.message_repository = PostgresOutboundMessageRepository(session_factory)
        self.event_repository = PostgresWebhookEventRepository(session_factory)
        self.meeting_repository = PostgresMeetingRepository(session_factory)

        common: dict[str, Any] = {"clock": clock, "logger": logger}

        # Use cases
        self.assign_lead = AssignLeadToAgent(
            self.lead_repository,
            self.agent_repository,
            require_scheduling_integration=settings.require_scheduling_integration,
            logger=logger,
        )
        self.composer = NotificationComposer(
            self.message_repository,
            self.agent_repository,
            renderer,
            default_scheduling_link=settings.default_scheduling_link,
            max_retries=settings.message_max_retries,
            clock=clock,
        )
        self.queue_drainer = QueueDrainer(
            self.message_repository,
            self.meeting_repository,
            dispatcher,
            batch_size=settings.queue_batch_size,
            **common,
        )
        self.reminder_planner = ReminderPlanner(
            self.meeting_repository,
            self.lead_repository,
            self.task_repository,
            sms_enabled=settings.sms_reminders_enabled,
            sweep_horizon_hours=settings.reminder_sweep_horizon_hours,
            max_retries=settings.task_max_retries,
            **common,
        )
        self.task_scheduler = TaskScheduler(
            self.task_repository,
            self.lead_repository,
            self.meeting_repository,
            self.composer,
            self.reminder_planner,
            batch_size=settings.task_batch_size,
            **common,
        )
        self.coordinator = LifecycleCoordinator(
            self.lead_repository,
            self.agent_repository,
            self.meeting_repository,
            self.task_repository,
            self.assign_lead,
            self.composer,
            self.queue_drainer,
            self.reminder_planner,
            monitor_initial_delay_minutes=settings.monitor_initial_delay_minutes,
            monitor_check_interval_hours=settings.monitor_check_interval_hours,
            monitor_max_days=settings.monitor_max_days,
            followup_delay_hours=settings.followup_delay_hours,
            sms_reminders_enabled=settings.sms_reminders_enabled,
            max_retries=settings.task_max_retries,
            orphan_grace_minutes=settings.orphan_lead_grace_minutes,
            orphan_max_attempts=settings.orphan_lead_max_attempts,
            batch_size=settings.task_batch_size,
            **common,
        )
        self.event_inbox = EventInbox(
            self.event_repository,
            self.lead_repository,
            self.meeting_repository,
            self.coordinator,
            idempotency_store=idempotency_store,
            idempotency_ttl_seconds=settings.webhook_idempotency_ttl_seconds,
            stale_after_minutes=settings.inbox_stale_after_minutes,
            batch_size=settings.task_batch_size,
            **common,
        )
