from __future__ import annotations

import smtplib
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Protocol

from ticket_notifications.core.logging import get_logger
from ticket_notifications.core.settings import Settings

logger = get_logger("notifications.emailer")


class EmailNotConfiguredError(RuntimeError):
    pass


class EmailSendError(RuntimeError):
    pass


class EmailTransport(Protocol):
    def send(self, *, sender: str, to: str, subject: str, text: str) -> str: ...


class SmtpEmailTransport:
    """Blocking SMTP sender. Callers on the event loop go through a threadpool."""

    def __init__(
        self,
        *,
        host: str | None,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        use_ssl: bool = False,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.host = (host or "").strip()
        self.port = port
        self.username = (username or "").strip()
        self.password = password
        self.use_tls = use_tls
        self.use_ssl = use_ssl
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> SmtpEmailTransport:
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            use_ssl=settings.SMTP_USE_SSL,
            timeout_seconds=settings.SMTP_TIMEOUT_SECONDS,
        )

    def send(self, *, sender: str, to: str, subject: str, text: str) -> str:
        if not self.host or not sender.strip():
            raise EmailNotConfiguredError("SMTP transport is not configured.")
        if not to.strip():
            raise EmailSendError("Recipient address is empty.")

        message_id = make_msgid(domain=_domain_of(sender))
        message = EmailMessage()
        message["From"] = sender
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = message_id
        message.set_content(text, charset="utf-8")

        recipient_domain = _domain_of(to)
        try:
            if self.use_ssl:
                with smtplib.SMTP_SSL(host=self.host, port=self.port, timeout=self.timeout_seconds) as server:
                    self._login_if_needed(server)
                    server.send_message(message)
            else:
                with smtplib.SMTP(host=self.host, port=self.port, timeout=self.timeout_seconds) as server:
                    if self.use_tls:
                        server.starttls()
                    self._login_if_needed(server)
                    server.send_message(message)
        except (OSError, smtplib.SMTPException) as exc:
            logger.warning(
                "notifications.email_send_failed",
                extra={"component": "email", "recipient_domain": recipient_domain},
            )
            raise EmailSendError("Failed to send notification email.") from exc

        logger.info(
            "notifications.email_sent",
            extra={"component": "email", "recipient_domain": recipient_domain, "message_id": message_id},
        )
        return message_id

    def _login_if_needed(self, server: smtplib.SMTP) -> None:
        if self.username and self.password:
            server.login(self.username, self.password)


def _domain_of(address: str) -> str:
    value = address.strip().lower().rstrip(">")
    if "@" not in value:
        return "unknown"
    return value.rsplit("@", maxsplit=1)[-1] or "unknown"
