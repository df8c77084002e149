"""Webhook event repository port (the Event Inbox)."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from app.domain.entities.webhook_event import WebhookEvent


class WebhookEventRepository(ABC):
    """Port interface for inbound event storage."""

    @abstractmethod
    async def add(self, event: WebhookEvent) -> tuple[WebhookEvent, bool]:
        """
        Store an event unless (source, external_event_id) was already received.

        Args:
            event: Event to store

        Returns:
            Tuple of (stored event, True if newly inserted)
        """
        pass

    @abstractmethod
    async def get(self, event_id: str) -> Optional[WebhookEvent]:
        """
        Get an event by id.

        Args:
            event_id: Event identifier

        Returns:
            Event, or None if not found
        """
        pass

    @abstractmethod
    async def claim(self, event_id: str, expected_attempts: int, now: datetime) -> bool:
        """
        Start a processing attempt on a pending event.

        Increments processing_attempts only if the row is still pending and
        its attempt counter still equals ``expected_attempts``.

        Args:
            event_id: Event identifier
            expected_attempts: Attempt counter observed by the caller
            now: Attempt time

        Returns:
            True if this caller won the claim
        """
        pass

    @abstractmethod
    async def mark_processed(
        self,
        event_id: str,
        processed_payload: dict[str, Any],
        lead_id: Optional[str],
        now: datetime,
    ) -> None:
        """
        Record a successful interpretation.

        Args:
            event_id: Event identifier
            processed_payload: Summary of what was done
            lead_id: Lead the event resolved to
            now: Processing time
        """
        pass

    @abstractmethod
    async def mark_failed(self, event_id: str, error_message: str, now: datetime) -> None:
        """
        Record a failed interpretation.

        Args:
            event_id: Event identifier
            error_message: Failure description
            now: Processing time
        """
        pass

    @abstractmethod
    async def list_pending(self, received_before: datetime, limit: int) -> list[WebhookEvent]:
        """
        List pending events received before a cutoff, oldest first.

        Args:
            received_before: Only events older than this are returned
            limit: Maximum rows to return

        Returns:
            Pending events
        """
        pass
