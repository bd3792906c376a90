"""Outgoing email delivery."""
import asyncio
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage as MIMEMessage

import structlog

from ..config import settings
from ..core.exceptions import EmailDeliveryError
from ..core.logging import BusinessLogger

logger = structlog.get_logger("services.email")


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    body: str


class EmailService:
    """Send mail through the configured backend.

    ``console`` only logs recipient and subject; ``smtp`` delivers through a
    STARTTLS connection in a worker thread. Any failure raises
    ``EmailDeliveryError``.
    """

    def __init__(self, backend: str = None):
        self.backend = backend or settings.email.backend

    async def send(self, message: EmailMessage) -> None:
        try:
            if self.backend == "smtp":
                await asyncio.to_thread(self._send_smtp, message)
            elif self.backend == "console":
                logger.info("Email sent", backend="console", to=message.to, subject=message.subject)
            else:
                raise ValueError(f"Unknown email backend '{self.backend}'")
        except Exception as exc:
            BusinessLogger.log_email_failed(message.to, message.subject, str(exc))
            raise EmailDeliveryError() from exc

    def _send_smtp(self, message: EmailMessage) -> None:
        config = settings.email
        msg = MIMEMessage()
        msg["Subject"] = message.subject
        msg["From"] = config.sender
        msg["To"] = message.to
        msg.set_content(message.body)

        with smtplib.SMTP(config.smtp_host, config.smtp_port, timeout=config.timeout) as server:
            if config.use_tls:
                server.starttls(context=ssl.create_default_context())
            if config.smtp_user:
                server.login(config.smtp_user, config.smtp_password or "")
            server.send_message(msg)


def get_email_service() -> EmailService:
    """Email dependency for FastAPI."""
    return EmailService()
