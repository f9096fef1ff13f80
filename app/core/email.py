"""Outbound email delivery adapters."""

from __future__ import annotations

import asyncio
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from functools import lru_cache
from typing import Protocol

from app.config import get_settings


class EmailDeliveryError(Exception):
    """Raised when a message could not be handed to the mail transport."""


class EmailSender(Protocol):
    """Contract for email delivery adapters."""

    async def send(self, to_email: str, subject: str, body: str) -> None:
        """Deliver a plaintext email or raise EmailDeliveryError."""


@dataclass(frozen=True)
class SmtpEmailSender:
    """SMTP sender; blocking I/O runs in a worker thread with a bounded timeout."""

    host: str
    port: int
    email_from: str
    username: str | None = None
    password: str | None = None
    use_tls: bool = False
    timeout_seconds: float = 10.0

    async def send(self, to_email: str, subject: str, body: str) -> None:
        """Send a plaintext email through SMTP."""
        try:
            await asyncio.to_thread(
                self._send_blocking,
                to_email=to_email,
                subject=subject,
                body=body,
            )
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(f"SMTP delivery to {self.host}:{self.port} failed.") from exc

    def _send_blocking(self, to_email: str, subject: str, body: str) -> None:
        """Send plaintext email using stdlib SMTP client."""
        message = EmailMessage()
        message["From"] = self.email_from
        message["To"] = to_email
        message["Subject"] = subject
        message.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username and self.password:
                smtp.login(self.username, self.password)
            smtp.send_message(message)


@lru_cache
def get_email_sender() -> EmailSender:
    """Create and cache the configured SMTP sender."""
    settings = get_settings()
    email = settings.email
    return SmtpEmailSender(
        host=email.smtp_host,
        port=email.smtp_port,
        email_from=email.email_from,
        username=email.smtp_username,
        password=email.smtp_password.get_secret_value() if email.smtp_password else None,
        use_tls=email.use_tls,
        timeout_seconds=email.timeout_seconds,
    )
