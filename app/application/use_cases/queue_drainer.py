"""Drain due outbound messages through the notification dispatcher."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

from app.application.dtos.automation import BatchReport
from app.application.dtos.notification import DispatchResult, RenderedContent
from app.application.ports.meeting_repository import MeetingRepository
from app.application.ports.notification_dispatcher import NotificationDispatcher
from app.application.ports.outbound_message_repository import OutboundMessageRepository
from app.domain.entities.meeting import MeetingReminder, ReminderKind
from app.domain.entities.outbound_message import MessageStatus, OutboundMessage
from app.domain.errors import TransientDeliveryError

COMPONENT = "queue_drainer"


def next_attempt_at(now: datetime, retry_count: int) -> datetime:
    """Linear backoff: the k-th retry waits k minutes."""
    return now + timedelta(minutes=retry_count)


class QueueDrainer:
    """Claims due messages one at a time and records the delivery outcome.

    A message is claimed by a conditional update from the status it had when
    selected (pending or scheduled) to ``sending``; losing the claim means
    another drainer owns the message.
    """

    def __init__(
        self,
        message_repository: OutboundMessageRepository,
        meeting_repository: MeetingRepository,
        dispatcher: NotificationDispatcher,
        batch_size: int = 10,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[Callable[..., None]] = None,
    ) -> None:
        """
        Initialize the drainer.

        Args:
            message_repository: Outbound message queue
            meeting_repository: Meetings (reminder flags are set on success)
            dispatcher: Channel dispatcher
            batch_size: Maximum messages per cycle
            clock: Current UTC time provider
            logger: Optional logger function (tracking_id, component, **kwargs)
        """
        self._messages = message_repository
        self._meetings = meeting_repository
        self._dispatcher = dispatcher
        self._batch_size = batch_size
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logger

    def _log(self, tracking_id: str, **kwargs: Any) -> None:
        if self._logger:
            self._logger(tracking_id, COMPONENT, **kwargs)

    async def run_once(self, tracking_id: Optional[str] = None) -> BatchReport:
        """
        Process one batch of due messages sequentially.

        Args:
            tracking_id: Correlation token for the cycle (generated if omitted)

        Returns:
            Counters for the cycle
        """
        tracking_id = tracking_id or str(uuid4())
        due = await self._messages.list_due(self._clock(), self._batch_size)
        counts = {"succeeded": 0, "failed": 0, "skipped": 0}

        for message in due:
            status = await self._process(message, tracking_id)
            if status is None:
                counts["skipped"] += 1
            elif status == MessageStatus.SENT:
                counts["succeeded"] += 1
            else:
                counts["failed"] += 1

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

    async def deliver(self, message_id: str, tracking_id: str) -> Optional[MessageStatus]:
        """
        Deliver a single message now, regardless of its scheduled time.

        Args:
            message_id: Message to deliver
            tracking_id: Correlation token

        Returns:
            Status after the attempt, the current status if the message is not
            claimable (already sending or sent), or None if it does not exist
        """
        message = await self._messages.get(message_id)
        if message is None:
            return None
        if not message.status.is_due_state:
            return message.status
        status = await self._process(message, tracking_id)
        if status is None:
            current = await self._messages.get(message_id)
            return current.status if current else None
        return status

    async def _process(self, message: OutboundMessage, tracking_id: str) -> Optional[MessageStatus]:
        """Claim, dispatch and record one message; None when the claim was lost."""
        if not await self._messages.claim(message.id, message.status):
            self._log(tracking_id, event="claim_lost", message_id=message.id)
            return None

        content = RenderedContent(
            subject=message.subject,
            body=message.body,
            html_body=message.html_body,
        )
        try:
            result = await self._dispatcher.send(message.channel, message.recipient, content)
        except TransientDeliveryError as e:
            result = DispatchResult.failed(str(e), e.provider or "unknown")
        except Exception as e:
            # The row is already in sending; record the failure so it is retried
            self._log(tracking_id, level=logging.ERROR, event="dispatch_error", message_id=message.id, error=str(e))
            result = DispatchResult.failed(f"Unexpected dispatch error: {e}", "unknown")

        now = self._clock()
        if result.success:
            await self._messages.mark_sent(message.id, result.provider_message_id, now, tracking_id)
            if message.is_meeting_reminder():
                await self._record_reminder(message, result, now, tracking_id)
            self._log(
                tracking_id,
                event="message_sent",
                message_id=message.id,
                channel=message.channel.value,
                provider=result.provider,
            )
            return MessageStatus.SENT

        retry_count = message.retry_count + 1
        error = result.error or "Unknown delivery error"
        if retry_count >= message.max_retries:
            await self._messages.mark_failed(message.id, retry_count, error, tracking_id)
            status = MessageStatus.FAILED
        else:
            await self._messages.schedule_retry(
                message.id, retry_count, next_attempt_at(now, retry_count), error, tracking_id
            )
            status = MessageStatus.SCHEDULED
        self._log(
            tracking_id,
            level=logging.WARNING,
            event="delivery_failed",
            message_id=message.id,
            channel=message.channel.value,
            retry_count=retry_count,
            message_status=status.value,
            error=error,
        )
        return status

    async def _record_reminder(
        self,
        message: OutboundMessage,
        result: DispatchResult,
        sent_at: datetime,
        tracking_id: str,
    ) -> None:
        kind = ReminderKind(message.reminder_kind)
        await self._meetings.record_reminder_sent(
            kind,
            MeetingReminder(
                meeting_id=message.meeting_id,
                reminder_type=kind.offset,
                delivery_method=kind.channel,
                scheduled_for=message.scheduled_for,
                sent_at=sent_at,
                provider_message_id=result.provider_message_id,
                tracking_id=tracking_id,
            ),
        )
