"""Outbound email — verification codes and admin notifications.

Delivery never raises: every send reports success as a bool so callers can
choose their own policy (the verification flow surfaces failures, feedback
notifications only log them).
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from collections import deque
from email.message import EmailMessage

from config.prompts.tutor import VERIFICATION_EMAIL_HTML

logger = logging.getLogger(__name__)


class EmailService(ABC):
    """Delivery service interface."""

    def __init__(self, subject: str, code_ttl_minutes: int = 10) -> None:
        self._subject = subject
        self._code_ttl_minutes = code_ttl_minutes

    @abstractmethod
    async def send_email(self, to: str, subject: str, html: str) -> bool: ...

    async def send_verification_code(self, identity: str, code: str) -> bool:
        html = VERIFICATION_EMAIL_HTML.format(
            code=code, ttl_minutes=self._code_ttl_minutes,
        )
        sent = await self.send_email(identity, self._subject, html)
        if sent:
            logger.info("Verification email sent to %s", identity)
        return sent


class SMTPEmailService(EmailService):
    """SMTP delivery; the blocking client runs in a worker thread."""

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        sender: str = "",
        use_ssl: bool = True,
        timeout: int = 30,
        subject: str = "Your ICS TA Bot Verification Code",
        code_ttl_minutes: int = 10,
    ) -> None:
        super().__init__(subject=subject, code_ttl_minutes=code_ttl_minutes)
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._sender = sender or user
        self._use_ssl = use_ssl
        self._timeout = timeout

    def _send_sync(self, message: EmailMessage) -> None:
        if self._use_ssl:
            with smtplib.SMTP_SSL(self._host, self._port, timeout=self._timeout) as smtp:
                smtp.login(self._user, self._password)
                smtp.send_message(message)
        else:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
                smtp.starttls()
                smtp.login(self._user, self._password)
                smtp.send_message(message)

    async def send_email(self, to: str, subject: str, html: str) -> bool:
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML-capable mail client.")
        message.add_alternative(html, subtype="html")
        try:
            await asyncio.to_thread(self._send_sync, message)
            return True
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Error sending email to %s: %s", to, exc)
            return False


class LoggingEmailService(EmailService):
    """Development stand-in used when no SMTP account is configured.

    Keeps the newest *outbox_size* messages in ``outbox``.  The body, which
    may hold a verification code, is only logged at DEBUG.
    """

    def __init__(
        self, subject: str = "", code_ttl_minutes: int = 10, outbox_size: int = 100,
    ) -> None:
        super().__init__(subject=subject, code_ttl_minutes=code_ttl_minutes)
        self.outbox: deque[tuple[str, str, str]] = deque(maxlen=outbox_size)

    async def send_email(self, to: str, subject: str, html: str) -> bool:
        self.outbox.append((to, subject, html))
        logger.warning("SMTP not configured; email to %s not sent (%s)", to, subject)
        logger.debug("Unsent email body for %s:\n%s", to, html)
        return True
