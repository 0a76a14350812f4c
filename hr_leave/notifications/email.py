"""SMTP email dispatcher.

Sends plain-text transactional mail. ``send_email`` raises on transport
failures (``smtplib.SMTPException`` / ``OSError``); the leave notifier
catches and logs them so that a mail outage never fails a workflow step.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Iterable, Optional, Union

from hr_leave.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """Email service for leave notifications via SMTP (STARTTLS)."""

    def __init__(
        self,
        smtp_host: str = "smtp.gmail.com",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        from_email: str = "",
        from_name: str = "HR Leave",
        timeout: int = 10,
        enabled: bool = True,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.timeout = timeout
        self.enabled = enabled

    @classmethod
    def from_settings(cls) -> EmailService:
        return cls(
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            smtp_user=settings.SMTP_USER,
            smtp_password=settings.SMTP_PASSWORD,
            from_email=settings.SMTP_FROM_EMAIL,
            from_name=settings.SMTP_FROM_NAME,
            timeout=settings.SMTP_TIMEOUT_SECONDS,
            enabled=settings.EMAIL_ENABLED,
        )

    @property
    def is_configured(self) -> bool:
        return self.enabled and bool(self.smtp_user and self.smtp_password)

    def _build_message(self, recipients: list[str], subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = ", ".join(recipients)
        msg.set_content(body)
        return msg

    def _send_sync(self, recipients: list[str], subject: str, body: str) -> None:
        msg = self._build_message(recipients, subject, body)
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
            server.starttls()
            server.login(self.smtp_user, self.smtp_password)
            server.send_message(msg)

    async def send_email(
        self,
        address: Union[str, Iterable[str]],
        subject: str,
        body: str,
    ) -> bool:
        """Send *body* to one address or a list of addresses.

        Returns False when email is disabled or there is nobody to send to.
        """
        recipients = [address] if isinstance(address, str) else list(dict.fromkeys(address))
        recipients = [r for r in recipients if r]
        if not recipients:
            return False
        if not self.is_configured:
            logger.debug("Email disabled; skipping '%s' to %s", subject, recipients)
            return False

        await asyncio.to_thread(self._send_sync, recipients, subject, body)
        logger.info("Email '%s' sent to %d recipient(s)", subject, len(recipients))
        return True


_default_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Process-wide EmailService built from settings (FastAPI dependency)."""
    global _default_email_service
    if _default_email_service is None:
        _default_email_service = EmailService.from_settings()
    return _default_email_service
