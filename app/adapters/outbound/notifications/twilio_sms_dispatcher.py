"""Twilio SMS dispatcher adapter."""

import asyncio
from typing import Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client as TwilioClient

from app.application.dtos.notification import DispatchResult, RenderedContent
from app.application.ports.notification_dispatcher import NotificationDispatcher
from app.domain.entities.outbound_message import Channel
from app.domain.errors import TransientDeliveryError
from app.infrastructure.logging.logger import hash_for_logging, logger

PROVIDER = "twilio"


class TwilioSmsDispatcher(NotificationDispatcher):
    """Sends SMS through the Twilio REST API.

    The Twilio SDK is synchronous, so calls run in the default executor.
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        client: Optional[TwilioClient] = None,
    ) -> None:
        self._from_number = from_number
        self._client = client or TwilioClient(account_sid, auth_token)

    async def send(self, channel: Channel, to: str, content: RenderedContent) -> DispatchResult:
        """
        Send one SMS.

        Args:
            channel: Must be ``Channel.SMS``
            to: E.164 phone number
            content: Rendered content (``body`` is sent)

        Returns:
            DispatchResult carrying the Twilio message SID, or the API error

        Raises:
            TransientDeliveryError: If the HTTP call itself fails
        """
        if channel != Channel.SMS:
            return DispatchResult.failed(f"Twilio cannot deliver {channel.value}", PROVIDER)

        loop = asyncio.get_running_loop()
        try:
            message = await loop.run_in_executor(
                None,
                lambda: self._client.messages.create(
                    body=content.body,
                    from_=self._from_number,
                    to=to,
                ),
            )
        except TwilioRestException as e:
            logger.error(f"Twilio rejected SMS to {hash_for_logging(to)}: {e.code} {e.msg}")
            return DispatchResult.failed(f"Twilio error {e.code}: {e.msg}", PROVIDER)
        except Exception as e:
            raise TransientDeliveryError(f"Twilio request failed: {e}", provider=PROVIDER) from e

        return DispatchResult.ok(message.sid, PROVIDER)
