"""Dependency injection factory functions."""

from typing import Any, Optional

from app.adapters.outbound.idempotency.noop_idempotency_store import NoOpIdempotencyStore
from app.adapters.outbound.idempotency.redis_idempotency_store import RedisIdempotencyStore
from app.adapters.outbound.notifications.channel_routing_dispatcher import (
    ChannelRoutingDispatcher,
    LoggingNotificationDispatcher,
)
from app.adapters.outbound.notifications.smtp_email_dispatcher import SmtpEmailDispatcher
from app.adapters.outbound.notifications.template_message_renderer import TemplateMessageRenderer
from app.adapters.outbound.notifications.twilio_sms_dispatcher import TwilioSmsDispatcher
from app.application.ports.idempotency_store import IdempotencyStore
from app.application.ports.message_renderer import MessageRenderer
from app.application.ports.notification_dispatcher import NotificationDispatcher
from app.infrastructure.config.settings import settings
from app.infrastructure.logging.logger import log_event
from app.infrastructure.scheduling.polling_loop import PollingLoop, SchedulerRegistry
from app.infrastructure.wiring.container import Container


def log_use_case_event(tracking_id: str, component: str, **kwargs: Any) -> None:
    """Logger function handed to use cases (tracking_id, component, **kwargs)."""
    log_event(tracking_id, component, **kwargs)


def create_notification_dispatcher() -> NotificationDispatcher:
    """
    Factory function to create the notification dispatcher.

    Returns:
        Dry-run dispatcher when NOTIFICATIONS_DRY_RUN is set, otherwise a
        channel router over the configured SMTP and Twilio adapters
    """
    if settings.notifications_dry_run:
        return LoggingNotificationDispatcher()

    email = None
    if settings.smtp_host and settings.smtp_from_email:
        email = SmtpEmailDispatcher(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            from_email=settings.smtp_from_email,
            from_name=settings.smtp_from_name,
            use_tls=settings.smtp_use_tls,
        )

    sms = None
    if settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_from_number:
        sms = TwilioSmsDispatcher(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_from_number,
        )

    return ChannelRoutingDispatcher(email=email, sms=sms)


def create_message_renderer() -> MessageRenderer:
    """
    Factory function to create the message renderer.

    Returns:
        MessageRenderer instance
    """
    return TemplateMessageRenderer()


def create_idempotency_store() -> IdempotencyStore:
    """
    Factory function to create idempotency store.

    Returns:
        IdempotencyStore instance (Redis or NoOp)
    """
    if not settings.webhook_idempotency_enabled:
        return NoOpIdempotencyStore()

    if not settings.redis_url:
        # The inbox unique constraint still deduplicates without Redis
        return NoOpIdempotencyStore()

    return RedisIdempotencyStore(settings.redis_url)


def create_container(**overrides: Any) -> Container:
    """
    Factory function to create the service container from settings.

    Args:
        **overrides: Container keyword arguments replacing the defaults
            (session_factory, dispatcher, renderer, idempotency_store, clock)

    Returns:
        Container instance
    """
    kwargs: dict[str, Any] = {
        "settings": settings,
        "dispatcher": create_notification_dispatcher(),
        "renderer": create_message_renderer(),
        "idempotency_store": create_idempotency_store(),
        "logger": log_use_case_event,
    }
    kwargs.update(overrides)
    return Container(**kwargs)


def register_polling_loops(container: Container, registry: SchedulerRegistry) -> list[PollingLoop]:
    """
    Register the background loops on a registry.

    Args:
        container: Wired services
        registry: Registry that owns the loops

    Returns:
        Registered loops
    """
    loops = [
        PollingLoop(
            "task_scheduler",
            settings.task_scheduler_interval_seconds,
            container.task_scheduler.run_once,
        ),
        PollingLoop(
            "queue_drainer",
            settings.queue_drainer_interval_seconds,
            container.queue_drainer.run_once,
        ),
        PollingLoop(
            "reminder_sweep",
            settings.reminder_sweep_interval_seconds,
            container.reminder_planner.sweep,
        ),
        PollingLoop(
            "event_inbox",
            settings.event_inbox_interval_seconds,
            container.event_inbox.process_pending,
        ),
        PollingLoop(
            "orphan_leads",
            settings.orphan_lead_interval_seconds,
            container.coordinator.process_orphan_leads,
        ),
    ]
    return [registry.register(loop) for loop in loops]


_container: Optional[Container] = None


def get_container() -> Container:
    """Process-wide container, created on first use."""
    global _container
    if _container is None:
        _container = create_container()
    return _container
