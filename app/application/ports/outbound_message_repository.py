"""Outbound message repository port (the delivery queue)."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from app.domain.entities.outbound_message import MessageStatus, OutboundMessage


class OutboundMessageRepository(ABC):
    """Port interface for outbound message queue."""

    @abstractmethod
    async def enqueue_once(self, message: OutboundMessage) -> tuple[OutboundMessage, bool]:
        """
        Insert a message unless one with the same dedupe key exists.

        A previously failed message with the same key is put back in the
        queue instead of inserting a new row.

        Args:
            message: Message to enqueue

        Returns:
            Tuple of (stored message, True if this call queued it)
        """
        pass

    @abstractmethod
    async def get(self, message_id: str) -> Optional[OutboundMessage]:
        """
        Get a message by id.

        Args:
            message_id: Message identifier

        Returns:
            Message, or None if not found
        """
        pass

    @abstractmethod
    async def list_due(self, now: datetime, limit: int) -> list[OutboundMessage]:
        """
        List pending or scheduled messages due for delivery, oldest first.

        Args:
            now: Reference time
            limit: Maximum rows to return

        Returns:
            Due messages
        """
        pass

    @abstractmethod
    async def claim(self, message_id: str, expected_status: MessageStatus) -> bool:
        """
        Move a message from its pre-claim status to sending.

        Args:
            message_id: Message identifier
            expected_status: Status observed when the message was selected

        Returns:
            True if this caller won the claim
        """
        pass

    @abstractmethod
    async def mark_sent(
        self,
        message_id: str,
        provider_message_id: Optional[str],
        sent_at: datetime,
        tracking_id: Optional[str] = None,
    ) -> None:
        """
        Record a successful send.

        Args:
            message_id: Message identifier
            provider_message_id: Provider-side id
            sent_at: Send time
            tracking_id: Correlation token of the delivering cycle
        """
        pass

    @abstractmethod
    async def schedule_retry(
        self,
        message_id: str,
        retry_count: int,
        scheduled_for: datetime,
        error_message: str,
        tracking_id: Optional[str] = None,
    ) -> None:
        """
        Put a message back in the queue after a failed attempt.

        Args:
            message_id: Message identifier
            retry_count: New retry count
            scheduled_for: Next attempt time
            error_message: Error of the failed attempt
            tracking_id: Correlation token of the delivering cycle
        """
        pass

    @abstractmethod
    async def mark_failed(
        self,
        message_id: str,
        retry_count: int,
        error_message: str,
        tracking_id: Optional[str] = None,
    ) -> None:
        """
        Give up on a message.

        Args:
            message_id: Message identifier
            retry_count: Final retry count
            error_message: Error of the last attempt
            tracking_id: Correlation token of the delivering cycle
        """
        pass
