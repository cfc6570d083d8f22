"""Outbound email delivery for account notifications."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

from .config import Settings, get_settings
from .domain.errors import NotificationFailed

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Delivers a message to an account handle; raises ``NotificationFailed`` on failure."""

    def send(self, destination: str, subject: str, body_text: str, body_html: str) -> None: ...


class SmtpNotifier:
    """Send multipart text/HTML email through an SMTP relay."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        if not self._settings.smtp_host:
            logger.warning("SMTP_HOST not configured; account emails will fail to send")

    def build_message(
        self, destination: str, subject: str, body_text: str, body_html: str
    ) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._settings.smtp_from
        message["To"] = destination
        message["Subject"] = subject
        message.set_content(body_text)
        message.add_alternative(body_html, subtype="html")
        return message

    def send(self, destination: str, subject: str, body_text: str, body_html: str) -> None:
        settings = self._settings
        if not settings.smtp_host:
            raise NotificationFailed("email transport is not configured")

        message = self.build_message(destination, subject, body_text, body_html)
        smtp_class = smtplib.SMTP_SSL if settings.smtp_ssl else smtplib.SMTP
        try:
            with smtp_class(
                settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout_seconds
            ) as server:
                if settings.smtp_starttls and not settings.smtp_ssl:
                    server.starttls()
                if settings.smtp_user:
                    server.login(settings.smtp_user, settings.smtp_password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("failed to send email via %s: %s", settings.smtp_host, exc)
            raise NotificationFailed() from exc
        logger.info("email %r sent", subject)
