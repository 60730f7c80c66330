"""One-time code delivery over SMTP."""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import make_msgid
import html
import logging
import smtplib
from typing import Iterator, Protocol

from impact_core.core.config import Settings
from impact_core.core.errors import NotificationDeliveryError

logger = logging.getLogger(__name__)

# Well-known mail services, mirroring the names accepted in EMAIL_SERVICE.
SMTP_SERVICES: dict[str, tuple[str, int]] = {
    "gmail": ("smtp.gmail.com", 587),
    "outlook": ("smtp.office365.com", 587),
    "hotmail": ("smtp.office365.com", 587),
    "yahoo": ("smtp.mail.yahoo.com", 587),
    "sendgrid": ("smtp.sendgrid.net", 587),
    "mailgun": ("smtp.mailgun.org", 587),
}

SENDER_NAME = "Impact Analyzer"
SUBJECT = "Verify Your Email - Impact Analyzer"


class CodeNotifier(Protocol):
    async def send_code(self, address: str, code: str, display_name: str | None) -> str: ...


class LoggingCodeNotifier:
    """Development notifier: logs the delivery instead of sending mail."""

    async def send_code(self, address: str, code: str, display_name: str | None) -> str:
        message_id = make_msgid(domain="impact-analyzer.local")
        logger.info("email delivery suppressed to=%s message_id=%s", address, message_id)
        return message_id


class SmtpCodeNotifier:
    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str,
        password: str,
        timeout_seconds: float = 15.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.timeout_seconds = timeout_seconds

    async def send_code(self, address: str, code: str, display_name: str | None) -> str:
        message = build_code_message(
            sender=self.username,
            address=address,
            code=code,
            display_name=display_name,
        )
        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationDeliveryError(f"failed to deliver verification code: {exc}") from exc
        message_id = str(message["Message-ID"])
        logger.info("verification email sent to=%s message_id=%s", address, message_id)
        return message_id

    def _deliver(self, message: EmailMessage) -> None:
        with self._connection() as smtp:
            smtp.send_message(message)

    @contextmanager
    def _connection(self) -> Iterator[smtplib.SMTP]:
        if self.port == 465:
            server: smtplib.SMTP = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout_seconds)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds)
        try:
            if self.port != 465:
                server.starttls()
            server.login(self.username, self.password)
            yield server
        finally:
            try:
                server.quit()
            except (smtplib.SMTPException, OSError):
                logger.debug("SMTP quit failed", exc_info=True)


def build_code_message(*, sender: str, address: str, code: str, display_name: str | None) -> EmailMessage:
    greeting = f"Hello, {display_name}!" if display_name else "Hello!"
    message = EmailMessage()
    message["Subject"] = SUBJECT
    message["From"] = f'"{SENDER_NAME}" <{sender}>'
    message["To"] = address
    message["Message-ID"] = make_msgid(domain=sender.partition("@")[2] or None)
    message.set_content(
        f"{greeting}\n\n"
        f"Your verification code is {code}. It expires in 10 minutes.\n\n"
        "If you didn't request this code, you can safely ignore this email. "
        "Never share this code with anyone.\n"
    )
    message.add_alternative(
        "<html><body>"
        f"<p>{html.escape(greeting)}</p>"
        "<p>Use the verification code below to complete your registration. "
        "This code expires in <strong>10 minutes</strong>.</p>"
        f'<p style="font-size:32px;letter-spacing:8px;font-family:monospace">{html.escape(code)}</p>'
        "<p>If you didn't request this code, you can safely ignore this email.</p>"
        f"<p>&copy; {datetime.now(timezone.utc).year} {SENDER_NAME}</p>"
        "</body></html>",
        subtype="html",
    )
    return message


def build_notifier(settings: Settings) -> CodeNotifier:
    if not settings.email_user or not settings.email_pass:
        logger.info("EMAIL_USER/EMAIL_PASS not set; verification codes will only be logged")
        return LoggingCodeNotifier()

    host, port = SMTP_SERVICES.get(settings.email_service.lower(), (None, 587))
    host = settings.email_smtp_host or host
    if not host:
        raise ValueError(f"unknown EMAIL_SERVICE {settings.email_service!r}; set EMAIL_SMTP_HOST")
    return SmtpCodeNotifier(
        host=host,
        port=settings.email_smtp_port or port,
        username=settings.email_user,
        password=settings.email_pass,
        timeout_seconds=settings.email_timeout_seconds,
    )
