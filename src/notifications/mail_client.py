# src/notifications/mail_client.py
"""
SMTP-клиент на aiosmtplib.
Каждая отправка ограничена таймаутом; последняя попытка запоминается
для диагностики.
"""

from __future__ import annotations

import asyncio
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Any

import aiosmtplib

from src.common.exceptions import ConfigurationMissing, TransientDeliveryError
from src.common.logger import log_error, log_info
from src.shared.models.notifications import MailAttempt, MailMessage


class SmtpMailClient:
    """Отправка писем через SMTP-релей."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        secure: bool = False,
        username: str = "",
        password: str = "",
        default_sender: str = "Ride Notify <no-reply@ride-notify.local>",
        timeout: float = 15.0,
    ) -> None:
        self.host = host
        self.port = port
        self.secure = secure
        self.username = username
        self.password = "".join(password.split())
        self.default_sender = default_sender
        self.timeout = timeout
        self.last_attempt: MailAttempt | None = None

    @classmethod
    def from_settings(cls) -> SmtpMailClient:
        from src.config import settings

        mail = settings.mail
        return cls(
            host=mail.SMTP_HOST,
            port=mail.SMTP_PORT,
            secure=mail.SMTP_SECURE,
            username=mail.SMTP_USER,
            password=mail.SMTP_PASS,
            default_sender=mail.MAIL_FROM,
            timeout=mail.MAIL_SEND_TIMEOUT,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.host)

    def build_message(self, message: MailMessage) -> EmailMessage:
        """Собирает MIME-письмо: text/plain и, если есть, text/html."""
        sender = message.sender or self.default_sender
        email = EmailMessage()
        email["From"] = sender
        email["To"] = message.recipient
        email["Subject"] = message.subject
        email["Message-ID"] = make_msgid(domain=sender.rpartition("@")[2].rstrip(">") or None)
        email.set_content(message.text or "")
        if message.html:
            email.add_alternative(message.html, subtype="html")
        return email

    async def send(self, message: MailMessage) -> str:
        """
        Отправляет письмо.

        Returns:
            Message-ID отправленного письма

        Raises:
            ConfigurationMissing: не задан SMTP-хост
            TransientDeliveryError: сеть, отказ сервера или таймаут
        """
        if not self.is_configured:
            raise ConfigurationMissing("SMTP-хост не задан", channel="email")

        email = self.build_message(message)
        attempt = MailAttempt(sender=email["From"], recipient=message.recipient, subject=message.subject)
        self.last_attempt = attempt

        try:
            _, response = await asyncio.wait_for(
                aiosmtplib.send(
                    email,
                    hostname=self.host,
                    port=self.port,
                    username=self.username or None,
                    password=self.password or None,
                    use_tls=self.secure,
                    start_tls=False if self.secure else None,
                    timeout=self.timeout,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            attempt.error = f"Таймаут отправки ({self.timeout}s)"
            await log_error(f"Письмо не отправлено: {attempt.error}", extra={"subject": message.subject})
            raise TransientDeliveryError(attempt.error, channel="email") from e
        except (aiosmtplib.SMTPException, OSError) as e:
            attempt.error = str(e) or e.__class__.__name__
            await log_error(f"Письмо не отправлено: {attempt.error}", extra={"subject": message.subject})
            raise TransientDeliveryError(attempt.error, channel="email") from e

        attempt.success = True
        attempt.message_id = email["Message-ID"]
        attempt.response = response
        await log_info(f"Письмо отправлено: {message.subject}", extra={"message_id": attempt.message_id})
        return attempt.message_id

    def diagnostics(self) -> dict[str, Any]:
        """Конфигурация релея без секретов."""
        return {
            "configured": self.is_configured,
            "host": self.host or "(not set)",
            "port": self.port,
            "secure": self.secure,
            "user": f"***{self.username[-10:]}" if self.username else "(not set)",
            "password": f"***[{len(self.password)} chars]" if self.password else "(not set)",
            "from": self.default_sender,
            "timeout": self.timeout,
        }

    def last_attempt_diagnostics(self) -> dict[str, Any] | None:
        """Последняя попытка отправки без персональных данных."""
        if self.last_attempt is None:
            return None
        return self.last_attempt.masked()
