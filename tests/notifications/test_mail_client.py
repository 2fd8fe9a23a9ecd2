# tests/notifications/test_mail_client.py
"""
Тесты для SMTP клиента.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import aiosmtplib
import pytest

from src.common.exceptions import ConfigurationMissing, TransientDeliveryError
from src.notifications.mail_client import SmtpMailClient
from src.shared.models.notifications import MailMessage


@pytest.fixture
def client() -> SmtpMailClient:
    return SmtpMailClient(
        host="smtp.example.com",
        port=465,
        secure=True,
        username="notifications@example.com",
        password="abcd efgh ijkl mnop",
        default_sender="Ride Notify <no-reply@example.com>",
        timeout=5.0,
    )


@pytest.fixture
def message() -> MailMessage:
    return MailMessage(
        recipient="anna.smith@example.com",
        subject="Booking Confirmed",
        text="Your ride is confirmed.",
        html="<p>Your ride is confirmed.</p>",
        related_entity_id="b-1001",
    )


class TestBuildMessage:
    """Тесты для сборки MIME-письма."""

    def test_headers_and_alternatives(self, client: SmtpMailClient, message: MailMessage) -> None:
        """Письмо содержит заголовки, текст и HTML-альтернативу."""
        email = client.build_message(message)

        assert email["From"] == "Ride Notify <no-reply@example.com>"
        assert email["To"] == "anna.smith@example.com"
        assert email["Subject"] == "Booking Confirmed"
        assert email["Message-ID"].endswith("@example.com>")
        assert email.is_multipart()
        assert email.get_body(preferencelist=("html",)).get_content().strip() == "<p>Your ride is confirmed.</p>"

    def test_text_only(self, client: SmtpMailClient) -> None:
        """Без HTML письмо остаётся однотельным."""
        email = client.build_message(MailMessage(recipient="a@example.com", subject="S", text="body"))

        assert not email.is_multipart()

    def test_explicit_sender(self, client: SmtpMailClient, message: MailMessage) -> None:
        """Отправитель письма важнее отправителя по умолчанию."""
        email = client.build_message(message.model_copy(update={"sender": "ops@rides.example.org"}))

        assert email["From"] == "ops@rides.example.org"


class TestSend:
    """Тесты для SmtpMailClient.send."""

    def test_password_whitespace_stripped(self, client: SmtpMailClient) -> None:
        """Пробелы из пароля приложения удаляются."""
        assert client.password == "abcdefghijklmnop"

    @pytest.mark.asyncio
    async def test_not_configured(self, message: MailMessage) -> None:
        """Без SMTP-хоста отправка не выполняется."""
        client = SmtpMailClient(host="")

        with patch("src.notifications.mail_client.aiosmtplib.send", new_callable=AsyncMock) as mock_send:
            with pytest.raises(ConfigurationMissing):
                await client.send(message)

        mock_send.assert_not_called()
        assert client.last_attempt is None

    @pytest.mark.asyncio
    async def test_success(self, client: SmtpMailClient, message: MailMessage) -> None:
        """Успешная отправка возвращает Message-ID и запоминает попытку."""
        with patch(
            "src.notifications.mail_client.aiosmtplib.send",
            new_callable=AsyncMock,
            return_value=({}, "250 OK queued"),
        ) as mock_send:
            message_id = await client.send(message)

        kwargs = mock_send.call_args.kwargs
        assert kwargs["hostname"] == "smtp.example.com"
        assert kwargs["port"] == 465
        assert kwargs["use_tls"] is True
        assert kwargs["password"] == "abcdefghijklmnop"
        assert client.last_attempt.success is True
        assert client.last_attempt.message_id == message_id
        assert client.last_attempt.response == "250 OK queued"

    @pytest.mark.asyncio
    async def test_smtp_error_is_transient(self, client: SmtpMailClient, message: MailMessage) -> None:
        """Ошибка SMTP превращается во временную ошибку доставки."""
        with patch(
            "src.notifications.mail_client.aiosmtplib.send",
            new_callable=AsyncMock,
            side_effect=aiosmtplib.SMTPConnectError("Connection refused"),
        ):
            with pytest.raises(TransientDeliveryError):
                await client.send(message)

        assert client.last_attempt.success is False
        assert "Connection refused" in client.last_attempt.error

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self, message: MailMessage) -> None:
        """Зависший релей прерывается по таймауту."""
        client = SmtpMailClient(host="smtp.example.com", timeout=0.01)

        async def hang(*args, **kwargs):
            await asyncio.sleep(1)

        with patch("src.notifications.mail_client.aiosmtplib.send", side_effect=hang):
            with pytest.raises(TransientDeliveryError):
                await client.send(message)

        assert "0.01" in client.last_attempt.error


class TestDiagnostics:
    """Тесты для диагностики SMTP."""

    def test_diagnostics_hide_secrets(self, client: SmtpMailClient) -> None:
        """Пароль и логин не раскрываются."""
        diag = client.diagnostics()

        assert diag["configured"] is True
        assert diag["password"] == "***[16 chars]"
        assert "abcd" not in str(diag)
        assert diag["user"].startswith("***")

    def test_diagnostics_not_configured(self) -> None:
        """Незаданные параметры помечаются явно."""
        diag = SmtpMailClient(host="").diagnostics()

        assert diag["configured"] is False
        assert diag["host"] == "(not set)"
        assert diag["password"] == "(not set)"

    @pytest.mark.asyncio
    async def test_last_attempt_masked(self, client: SmtpMailClient, message: MailMessage) -> None:
        """Адреса в последней попытке скрыты."""
        assert client.last_attempt_diagnostics() is None

        with patch(
            "src.notifications.mail_client.aiosmtplib.send",
            new_callable=AsyncMock,
            return_value=({}, "250 OK"),
        ):
            await client.send(message)

        diag = client.last_attempt_diagnostics()
        assert diag["recipient"] == "***@example.com"
        assert diag["sender"] == "***@example.com"
        assert diag["success"] is True
