"""Dispatcher that routes each message to the adapter for its channel."""

from typing import Optional
from uuid import uuid4

from app.application.dtos.notification import DispatchResult, RenderedContent
from app.application.ports.notification_dispatcher import NotificationDispatcher
from app.domain.entities.outbound_message import Channel
from app.infrastructure.logging.logger import hash_for_logging, logger


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Dry-run dispatcher: logs the message and reports success."""

    async def send(self, channel: Channel, to: str, content: RenderedContent) -> DispatchResult:
        logger.info(
            f"[dry-run] {channel.value} to {hash_for_logging(to)}: "
            f"subject={content.subject!r} body_length={len(content.body)}"
        )
        return DispatchResult.ok(f"dry-run-{uuid4()}", "dry_run")


class ChannelRoutingDispatcher(NotificationDispatcher):
    """Routes email and SMS to their own dispatchers."""

    def __init__(
        self,
        email: Optional[NotificationDispatcher] = None,
        sms: Optional[NotificationDispatcher] = None,
    ) -> None:
        self._dispatchers = {Channel.EMAIL: email, Channel.SMS: sms}

    async def send(self, channel: Channel, to: str, content: RenderedContent) -> DispatchResult:
        dispatcher = self._dispatchers.get(channel)
        if dispatcher is None:
            # Unconfigured channels fail the attempt; the queue applies its retry policy
            return DispatchResult.failed(f"No dispatcher configured for {channel.value}", "none")
        return await dispatcher.send(channel, to, content)
