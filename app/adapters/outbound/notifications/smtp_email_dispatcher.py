"""SMTP email dispatcher adapter."""

import asyncio
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid

from app.application.dtos.notification import DispatchResult, RenderedContent
from app.application.ports.notification_dispatcher import NotificationDispatcher
from app.domain.entities.outbound_message import Channel
from app.domain.errors import TransientDeliveryError
from app.infrastructure.logging.logger import hash_for_logging, logger

PROVIDER = "smtp"


class SmtpEmailDispatcher(NotificationDispatcher):
    """Sends email through an SMTP relay (STARTTLS when enabled)."""

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        from_email: str,
        from_name: str = "Lead Automation",
        use_tls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize SMTP dispatcher.

        Args:
            host: SMTP server hostname
            port: SMTP port (587 for STARTTLS)
            user: SMTP username
            password: SMTP password
            from_email: Sender address
            from_name: Sender display name
            use_tls: Upgrade the connection with STARTTLS
            timeout: Socket timeout in seconds
        """
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._from_email = from_email
        self._from_name = from_name
        self._use_tls = use_tls
        self._timeout = timeout

    def _build_message(self, to: str, content: RenderedContent, message_id: str):
        if content.html_body:
            message = MIMEMultipart("alternative")
            message.attach(MIMEText(content.body, "plain", "utf-8"))
            message.attach(MIMEText(content.html_body, "html", "utf-8"))
        else:
            message = MIMEText(content.body, "plain", "utf-8")
        message["Subject"] = content.subject or ""
        message["From"] = formataddr((self._from_name, self._from_email))
        message["To"] = to
        message["Message-ID"] = message_id
        return message

    def _send_sync(self, to: str, content: RenderedContent, message_id: str) -> None:
        message = self._build_message(to, content, message_id)
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
            if self._use_tls:
                server.ehlo()
                server.starttls(context=ssl.create_default_context())
                server.ehlo()
            if self._user:
                server.login(self._user, self._password)
            server.sendmail(self._from_email, [to], message.as_string())

    async def send(self, channel: Channel, to: str, content: RenderedContent) -> DispatchResult:
        """
        Send one email.

        Args:
            channel: Must be ``Channel.EMAIL``
            to: Recipient address
            content: Rendered content

        Returns:
            DispatchResult carrying the generated Message-ID, or the SMTP error

        Raises:
            TransientDeliveryError: On connection-level failures
        """
        if channel != Channel.EMAIL:
            return DispatchResult.failed(f"SMTP cannot deliver {channel.value}", PROVIDER)

        message_id = make_msgid(domain=self._from_email.split("@")[-1] or None)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send_sync, to, content, message_id)
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed: {e}")
            return DispatchResult.failed("SMTP authentication failed", PROVIDER)
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error sending to {hash_for_logging(to)}: {e}")
            return DispatchResult.failed(f"SMTP error: {e}", PROVIDER)
        except OSError as e:
            raise TransientDeliveryError(f"SMTP connection failed: {e}", provider=PROVIDER) from e

        return DispatchResult.ok(message_id, PROVIDER)
