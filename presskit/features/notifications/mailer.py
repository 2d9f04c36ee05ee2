"""
Mail transport protocol and SMTP implementation.

The notification service only depends on the Mailer protocol so tests can
record outgoing mail instead of talking to a relay.
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol

from presskit.core.config import Settings
from presskit.core.errors import ExternalServiceError

logger = logging.getLogger("presskit")


class Mailer(Protocol):
    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> None:
        """
        Deliver one message.

        Raises:
            ExternalServiceError: If the relay rejects or cannot be reached
        """
        ...


class SmtpMailer:
    """SMTP implementation of the Mailer protocol."""

    def __init__(self, settings: Settings):
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.secure = settings.SMTP_SECURE
        self.user = settings.SMTP_USER
        self.password = settings.SMTP_PASS
        self.sender = f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM}>"

    def _build(self, to: str, subject: str, html: str, text: Optional[str]) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        if text:
            msg.attach(MIMEText(text, "plain"))
        msg.attach(MIMEText(html, "html"))
        return msg

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> None:
        if not self.host:
            logger.warning("email.not_configured", extra={"to": to, "subject": subject})
            return

        msg = self._build(to, subject, html, text)
        try:
            if self.secure:
                server = smtplib.SMTP_SSL(self.host, self.port, timeout=10)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=10)
            with server:
                if not self.secure:
                    server.starttls()
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("email.send_failed", extra={"to": to, "subject": subject, "error_message": str(exc)})
            raise ExternalServiceError("Failed to send email") from exc

        logger.info("email.sent", extra={"to": to, "subject": subject})
