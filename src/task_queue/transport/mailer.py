"""SMTP mail collaborator used by the email task handler."""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

from task_queue.errors import MailDeliveryError

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    """Protocol implemented by mail transports."""

    def send(self, to: str, subject: str, body: str) -> None:
        """Deliver one message or raise ``MailDeliveryError``."""


@dataclass(slots=True)
class SmtpSettings:
    """SMTP connection settings."""

    host: str = "sandbox.smtp.mailtrap.io"
    port: int = 2525
    username: str = ""
    password: str = ""
    sender: str = "noreply@taskqueue.local"
    timeout_seconds: float = 30.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)


class SmtpMailer:
    """Sends mail over SMTP with plain auth.

    Without credentials the message is only logged and counted as delivered.
    """

    def __init__(self, settings: SmtpSettings) -> None:
        self.settings = settings
        if settings.has_credentials:
            logger.info("Email sender initialized host=%s port=%s", settings.host, settings.port)
        else:
            logger.warning(
                "SMTP credentials not set; email will be logged only. "
                "Set TASK_QUEUE_SMTP_USERNAME and TASK_QUEUE_SMTP_PASSWORD to send mail.",
            )

    def send(self, to: str, subject: str, body: str) -> None:
        logger.info("Email task: to=%s subject=%s", to, subject)
        logger.debug("Email body: %s", body)
        if not self.settings.has_credentials:
            logger.info("Demo mode: email to %s logged but not sent", to)
            return

        message = EmailMessage()
        message["From"] = self.settings.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        try:
            with smtplib.SMTP(
                self.settings.host,
                self.settings.port,
                timeout=self.settings.timeout_seconds,
            ) as client:
                client.login(self.settings.username, self.settings.password)
                client.send_message(message)
        except (smtplib.SMTPException, OSError) as error:
            logger.warning("Failed to send email to %s: %s", to, error)
            raise MailDeliveryError(f"Failed to send email to {to}: {error}") from error

        logger.info("Email sent to %s via %s", to, self.settings.host)
