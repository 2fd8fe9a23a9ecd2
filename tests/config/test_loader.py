# tests/config/test_loader.py
"""
Тесты для модуля загрузки конфигурации.
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from src.config.loader import (
    get_project_root,
    get_config_path,
    load_config_json,
    SystemSettings,
    StorageSettings,
    RedisSettings,
    RabbitMQSettings,
    WebPushSettings,
    MailSettings,
    RetryQueueSettings,
    StreamSettings,
    Settings,
    _as_bool,
    _env_first,
)


class TestGetProjectRoot:
    """Тесты для функции get_project_root."""

    def test_returns_path_object(self) -> None:
        """Проверяет, что возвращается объект Path."""
        assert isinstance(get_project_root(), Path)

    def test_root_contains_src_and_config(self) -> None:
        """Проверяет наличие директорий src и config в корне."""
        root = get_project_root()
        assert (root / "src").exists()
        assert (root / "config").exists()


class TestLoadConfigJson:
    """Тесты для функции load_config_json."""

    def test_path_ends_with_config_json(self) -> None:
        """Проверяет правильность имени файла."""
        path = get_config_path()
        assert path.name == "config.json"
        assert path.parent.name == "config"

    def test_contains_required_keys(self) -> None:
        """Проверяет наличие обязательных ключей."""
        config = load_config_json()

        for key in ("PROJECT_NAME", "VERSION", "STORAGE_BACKEND", "RETRY_BASE_DELAY", "STREAM_KEEPALIVE_INTERVAL"):
            assert key in config, f"Отсутствует ключ: {key}"

    def test_raises_file_not_found(self, tmp_path: Path) -> None:
        """Проверяет исключение при отсутствии файла."""
        with patch("src.config.loader.get_config_path") as mock_path:
            mock_path.return_value = tmp_path / "nonexistent.json"

            with pytest.raises(FileNotFoundError):
                load_config_json()


class TestHelpers:
    """Тесты для вспомогательных функций."""

    @pytest.mark.parametrize("value,expected", [
        (True, True),
        (False, False),
        ("true", True),
        ("1", True),
        ("Yes", True),
        ("off", False),
        ("", False),
    ])
    def test_as_bool(self, value, expected) -> None:
        """Проверяет разбор флагов окружения."""
        assert _as_bool(value) is expected

    def test_env_first_prefers_first_set_variable(self) -> None:
        """Первая заданная переменная выигрывает."""
        with patch.dict(os.environ, {"MAIL_HOST": "mail.example.com"}, clear=False):
            os.environ.pop("SMTP_HOST", None)
            assert _env_first("SMTP_HOST", "MAIL_HOST", default="x") == "mail.example.com"

    def test_env_first_default(self) -> None:
        """Без переменных возвращается значение по умолчанию."""
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("NO_SUCH_VAR_1", None)
            os.environ.pop("NO_SUCH_VAR_2", None)
            assert _env_first("NO_SUCH_VAR_1", "NO_SUCH_VAR_2", default=42) == 42


class TestSectionModels:
    """Тесты для моделей секций."""

    def test_system_defaults(self) -> None:
        """Проверяет значения по умолчанию."""
        settings = SystemSettings()
        assert settings.PROJECT_NAME == "ride_notify"
        assert settings.COMPONENT_MODE == "notifications"

    def test_storage_backend_validated(self) -> None:
        """Допустимы только file и redis."""
        assert StorageSettings(STORAGE_BACKEND="REDIS").STORAGE_BACKEND == "redis"
        with pytest.raises(ValidationError):
            StorageSettings(STORAGE_BACKEND="postgres")

    def test_storage_relative_data_path(self) -> None:
        """Относительный DATA_DIR считается от корня проекта."""
        storage = StorageSettings(DATA_DIR="data")
        assert storage.data_path == get_project_root() / "data"

    def test_storage_absolute_data_path(self, tmp_path: Path) -> None:
        """Абсолютный DATA_DIR используется как есть."""
        storage = StorageSettings(DATA_DIR=str(tmp_path))
        assert storage.data_path == tmp_path

    def test_redis_url(self) -> None:
        """Проверяет сборку URL Redis."""
        assert RedisSettings(REDIS_PASSWORD="secret").url == "redis://:secret@localhost:6379/0"

    def test_rabbitmq_url(self) -> None:
        """Проверяет сборку URL RabbitMQ."""
        with patch.dict(os.environ, {"RABBITMQ_PASSWORD": ""}):
            rabbit = RabbitMQSettings(RABBITMQ_USER="u", RABBITMQ_PASSWORD="p")
        assert rabbit.url == "amqp://u:p@localhost:5672/"
        assert rabbit.USE_EVENT_BUS is False

    def test_web_push_is_configured(self) -> None:
        """Push настроен только при обоих ключах."""
        assert WebPushSettings(VAPID_PUBLIC_KEY="pub", VAPID_PRIVATE_KEY="priv").is_configured is True
        with patch.dict(os.environ, {"VAPID_PRIVATE_KEY": ""}):
            assert WebPushSettings(VAPID_PUBLIC_KEY="pub").is_configured is False
        assert WebPushSettings().PUSH_TTL == 60

    def test_mail_password_spaces_stripped(self) -> None:
        """Пароль приложения вводится группами через пробел."""
        mail = MailSettings(SMTP_HOST="smtp.example.com", SMTP_PASS="abcd efgh ijkl mnop")
        assert mail.SMTP_PASS == "abcdefghijklmnop"
        assert mail.is_configured is True

    def test_mail_not_configured_without_host(self) -> None:
        """Без SMTP_HOST почта отключена."""
        assert MailSettings().is_configured is False

    def test_retry_queue_defaults(self) -> None:
        """По умолчанию число попыток не ограничено."""
        retry = RetryQueueSettings()
        assert retry.RETRY_MAX_ATTEMPTS == 0
        assert retry.RETRY_BASE_DELAY < retry.RETRY_MAX_DELAY

    def test_stream_defaults(self) -> None:
        """Keep-alive раз в 20 секунд, откат на broadcast включён."""
        stream = StreamSettings()
        assert stream.STREAM_KEEPALIVE_INTERVAL == 20.0
        assert stream.STREAM_TRANSPORT_PING > stream.STREAM_KEEPALIVE_INTERVAL
        assert stream.STREAM_CONFIRM_BROADCAST_FALLBACK is True


class TestSettings:
    """Тесты для главного класса настроек."""

    def test_from_config_json(self) -> None:
        """Проверяет загрузку всех секций из config.json."""
        settings = Settings.from_config_json()

        assert settings.system.PROJECT_NAME == "ride_notify"
        assert settings.storage.STORAGE_BACKEND in ("file", "redis")
        assert settings.web_push.PUSH_TTL == 60
        assert settings.stream.STREAM_MAX_FAILED_WRITES == 3
        assert settings.stream.STREAM_TRANSPORT_PING == 300

    def test_env_overrides_mail_aliases(self) -> None:
        """Имена MAIL_* принимаются наравне с SMTP_*."""
        env = {"MAIL_HOST": "relay.example.com", "MAIL_PORT": "465", "MAIL_SECURE": "true"}
        with patch.dict(os.environ, env):
            for name in ("SMTP_HOST", "SMTP_PORT", "SMTP_SECURE"):
                os.environ.pop(name, None)
            settings = Settings.from_config_json()

        assert settings.mail.SMTP_HOST == "relay.example.com"
        assert settings.mail.SMTP_PORT == 465
        assert settings.mail.SMTP_SECURE is True

    def test_env_overrides_retry_ceiling(self) -> None:
        """RETRY_MAX_ATTEMPTS можно задать из окружения."""
        with patch.dict(os.environ, {"RETRY_MAX_ATTEMPTS": "5"}):
            settings = Settings.from_config_json()
        assert settings.retry_queue.RETRY_MAX_ATTEMPTS == 5

    def test_admin_token_from_env(self) -> None:
        """Токен администратора берётся из окружения."""
        with patch.dict(os.environ, {"ADMIN_TOKEN": "tok"}):
            settings = Settings.from_config_json()
        assert settings.security.ADMIN_TOKEN == "tok"
