"""Notification dispatcher port."""

from abc import ABC, abstractmethod

from app.application.dtos.notification import DispatchResult, RenderedContent
from app.domain.entities.outbound_message import Channel


class NotificationDispatcher(ABC):
    """Port interface for sending a single email or SMS."""

    @abstractmethod
    async def send(self, channel: Channel, to: str, content: RenderedContent) -> DispatchResult:
        """
        Send one message.

        Args:
            channel: Delivery channel
            to: Email address or E.164 phone number
            content: Rendered content

        Returns:
            DispatchResult with the provider message id, or the error

        Raises:
            TransientDeliveryError: If the provider call fails unexpectedly
        """
        pass
