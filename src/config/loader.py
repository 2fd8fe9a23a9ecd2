# src/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины — config/config.json.
Секретные данные переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации."""
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """Загружает config.json и возвращает словарь."""
    config_path = get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


def _env_first(*names: str, default: Any = None) -> Any:
    """Возвращает значение первой заданной переменной окружения."""
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


def _as_bool(value: Any) -> bool:
    """Приводит строковые флаги окружения к bool."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "ride_notify"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    COMPONENT_MODE: str = "notifications"


class DeploymentSettings(BaseModel):
    """Настройки развертывания сервиса уведомлений."""
    NOTIFICATIONS_HOST: str = "0.0.0.0"
    NOTIFICATIONS_PORT: int = 8083


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/ride_notify.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760


class StorageSettings(BaseModel):
    """Настройки хранилища подписок и очереди повторов."""
    STORAGE_BACKEND: str = "file"  # file, redis
    DATA_DIR: str = "data"
    PUSH_SUBSCRIPTIONS_FILE: str = "push-subscriptions.json"
    RETRY_QUEUE_FILE: str = "email-queue.json"
    REDIS_PUSH_KEY: str = "push:subscriptions"
    REDIS_QUEUE_KEY: str = "mail:retry_queue"

    @field_validator("STORAGE_BACKEND")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Проверяет тип хранилища."""
        v = v.lower()
        if v not in ("file", "redis"):
            raise ValueError(f"Неизвестный тип хранилища: {v}")
        return v

    @property
    def data_path(self) -> Path:
        """Абсолютный путь к директории данных."""
        path = Path(self.DATA_DIR)
        if not path.is_absolute():
            path = get_project_root() / path
        return path


class RedisSettings(BaseModel):
    """Настройки Redis."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "ride_notify"
    REDIS_MAX_CONNECTIONS: int = 20

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class RabbitMQSettings(BaseModel):
    """Настройки RabbitMQ."""
    USE_EVENT_BUS: bool = False
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EXCHANGE: str = "booking.events"
    RABBITMQ_PREFETCH_COUNT: int = 10

    @field_validator("RABBITMQ_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        env_pass = os.getenv("RABBITMQ_PASSWORD", "")
        if env_pass:
            return env_pass
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к RabbitMQ."""
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"
        )


class WebPushSettings(BaseModel):
    """Настройки Web Push (VAPID)."""
    VAPID_PUBLIC_KEY: str = ""
    VAPID_PRIVATE_KEY: str = ""
    VAPID_SUBJECT: str = "mailto:admin@ride-notify.local"
    PUSH_TTL: int = 60
    PUSH_TAG: str = "ride-notify"

    @field_validator("VAPID_PRIVATE_KEY", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает приватный ключ из переменных окружения."""
        if not v:
            return os.getenv("VAPID_PRIVATE_KEY", "")
        return v

    @property
    def is_configured(self) -> bool:
        """Заданы ли оба ключа VAPID."""
        return bool(self.VAPID_PUBLIC_KEY and self.VAPID_PRIVATE_KEY)


class MailSettings(BaseModel):
    """Настройки SMTP и адресов почты."""
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_SECURE: bool = False
    SMTP_USER: str = ""
    SMTP_PASS: str = ""
    MAIL_FROM: str = "Ride Notify <no-reply@ride-notify.local>"
    ADMIN_EMAIL: str = ""
    MAIL_SEND_TIMEOUT: float = 15.0
    APP_BASE_URL: str = "http://localhost:8083"

    @field_validator("SMTP_PASS", mode="before")
    @classmethod
    def strip_spaces(cls, v: str | None) -> str:
        """Пароли приложений выдаются с пробелами для читаемости."""
        return "".join((v or "").split())

    @property
    def is_configured(self) -> bool:
        """Задан ли SMTP-хост."""
        return bool(self.SMTP_HOST)


class RetryQueueSettings(BaseModel):
    """Настройки очереди повторной отправки писем."""
    RETRY_INTERVAL: float = 30.0
    RETRY_BATCH_LIMIT: int = 20
    RETRY_BASE_DELAY: float = 30.0
    RETRY_MAX_DELAY: float = 3600.0
    RETRY_MAX_ATTEMPTS: int = 0  # 0 = без ограничения


class StreamSettings(BaseModel):
    """Настройки SSE потока."""
    STREAM_KEEPALIVE_INTERVAL: float = 20.0
    STREAM_TRANSPORT_PING: int = 300
    STREAM_QUEUE_SIZE: int = 100
    STREAM_MAX_FAILED_WRITES: int = 3
    STREAM_CONFIRM_BROADCAST_FALLBACK: bool = True


class SecuritySettings(BaseModel):
    """Настройки доступа к привилегированным эндпоинтам."""
    ADMIN_TOKEN: str = ""

    @field_validator("ADMIN_TOKEN", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает токен из переменных окружения."""
        if not v:
            return os.getenv("ADMIN_TOKEN", "")
        return v


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    web_push: WebPushSettings = Field(default_factory=WebPushSettings)
    mail: MailSettings = Field(default_factory=MailSettings)
    retry_queue: RetryQueueSettings = Field(default_factory=RetryQueueSettings)
    stream: StreamSettings = Field(default_factory=StreamSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def from_config_json(cls) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Секреты переопределяются из переменных окружения.
        """
        config_data = load_config_json()

        # Фильтруем комментарии (ключи, начинающиеся с _comment_)
        filtered_data = {k: v for k, v in config_data.items() if not k.startswith("_comment_")}

        # Маппинг полей в секции
        return cls(
            system=SystemSettings(
                PROJECT_NAME=filtered_data.get("PROJECT_NAME", "ride_notify"),
                VERSION=filtered_data.get("VERSION", "1.0.0"),
                DEBUG=filtered_data.get("DEBUG", False),
                ENVIRONMENT=os.getenv("ENVIRONMENT", filtered_data.get("ENVIRONMENT", "development")),
                COMPONENT_MODE=os.getenv("COMPONENT_MODE", filtered_data.get("COMPONENT_MODE", "notifications")),
            ),
            deployment=DeploymentSettings(
                NOTIFICATIONS_HOST=os.getenv("NOTIFICATIONS_HOST", filtered_data.get("NOTIFICATIONS_HOST", "0.0.0.0")),
                NOTIFICATIONS_PORT=int(os.getenv("NOTIFICATIONS_PORT", filtered_data.get("NOTIFICATIONS_PORT", 8083))),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=os.getenv("LOG_LEVEL", filtered_data.get("LOG_LEVEL", "INFO")),
                LOG_TO_FILE=filtered_data.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=filtered_data.get("LOG_FILE_PATH", "logs/ride_notify.log"),
                LOG_FORMAT=filtered_data.get("LOG_FORMAT", "colored"),
                LOG_MAX_BYTES=filtered_data.get("LOG_MAX_BYTES", 10485760),
            ),
            storage=StorageSettings(
                STORAGE_BACKEND=os.getenv("STORAGE_BACKEND", filtered_data.get("STORAGE_BACKEND", "file")),
                DATA_DIR=os.getenv("DATA_DIR", filtered_data.get("DATA_DIR", "data")),
                PUSH_SUBSCRIPTIONS_FILE=filtered_data.get("PUSH_SUBSCRIPTIONS_FILE", "push-subscriptions.json"),
                RETRY_QUEUE_FILE=filtered_data.get("RETRY_QUEUE_FILE", "email-queue.json"),
                REDIS_PUSH_KEY=filtered_data.get("REDIS_PUSH_KEY", "push:subscriptions"),
                REDIS_QUEUE_KEY=filtered_data.get("REDIS_QUEUE_KEY", "mail:retry_queue"),
            ),
            redis=RedisSettings(
                REDIS_HOST=os.getenv("REDIS_HOST", filtered_data.get("REDIS_HOST", "localhost")),
                REDIS_PORT=int(os.getenv("REDIS_PORT", filtered_data.get("REDIS_PORT", 6379))),
                REDIS_DB=filtered_data.get("REDIS_DB", 0),
                REDIS_PASSWORD=os.getenv("REDIS_PASSWORD", filtered_data.get("REDIS_PASSWORD", "")),
                REDIS_NAMESPACE=filtered_data.get("REDIS_NAMESPACE", "ride_notify"),
                REDIS_MAX_CONNECTIONS=filtered_data.get("REDIS_MAX_CONNECTIONS", 20),
            ),
            rabbitmq=RabbitMQSettings(
                USE_EVENT_BUS=_as_bool(os.getenv("USE_EVENT_BUS", filtered_data.get("USE_EVENT_BUS", False))),
                RABBITMQ_HOST=os.getenv("RABBITMQ_HOST", filtered_data.get("RABBITMQ_HOST", "localhost")),
                RABBITMQ_PORT=int(os.getenv("RABBITMQ_PORT", filtered_data.get("RABBITMQ_PORT", 5672))),
                RABBITMQ_USER=os.getenv("RABBITMQ_USER", filtered_data.get("RABBITMQ_USER", "guest")),
                RABBITMQ_PASSWORD=os.getenv("RABBITMQ_PASSWORD", filtered_data.get("RABBITMQ_PASSWORD", "guest")),
                RABBITMQ_VHOST=filtered_data.get("RABBITMQ_VHOST", "/"),
                RABBITMQ_EXCHANGE=filtered_data.get("RABBITMQ_EXCHANGE", "booking.events"),
                RABBITMQ_PREFETCH_COUNT=filtered_data.get("RABBITMQ_PREFETCH_COUNT", 10),
            ),
            web_push=WebPushSettings(
                VAPID_PUBLIC_KEY=os.getenv("VAPID_PUBLIC_KEY", filtered_data.get("VAPID_PUBLIC_KEY", "")),
                VAPID_PRIVATE_KEY=os.getenv("VAPID_PRIVATE_KEY", filtered_data.get("VAPID_PRIVATE_KEY", "")),
                VAPID_SUBJECT=os.getenv("VAPID_SUBJECT", filtered_data.get("VAPID_SUBJECT", "mailto:admin@ride-notify.local")),
                PUSH_TTL=filtered_data.get("PUSH_TTL", 60),
                PUSH_TAG=filtered_data.get("PUSH_TAG", "ride-notify"),
            ),
            mail=MailSettings(
                # Поддерживаются оба набора имён: SMTP_* и MAIL_*
                SMTP_HOST=_env_first("SMTP_HOST", "MAIL_HOST", default=filtered_data.get("SMTP_HOST", "")),
                SMTP_PORT=int(_env_first("SMTP_PORT", "MAIL_PORT", default=filtered_data.get("SMTP_PORT", 587))),
                SMTP_SECURE=_as_bool(_env_first("SMTP_SECURE", "MAIL_SECURE", default=filtered_data.get("SMTP_SECURE", False))),
                SMTP_USER=_env_first("SMTP_USER", "MAIL_USER", default=filtered_data.get("SMTP_USER", "")),
                SMTP_PASS=_env_first("SMTP_PASS", "MAIL_PASS", default=filtered_data.get("SMTP_PASS", "")),
                MAIL_FROM=_env_first(
                    "FROM_EMAIL", "MAIL_FROM", "SMTP_FROM",
                    default=filtered_data.get("MAIL_FROM", "Ride Notify <no-reply@ride-notify.local>"),
                ),
                ADMIN_EMAIL=_env_first("ADMIN_EMAIL", "ADMIN_EMAILS", default=filtered_data.get("ADMIN_EMAIL", "")),
                MAIL_SEND_TIMEOUT=filtered_data.get("MAIL_SEND_TIMEOUT", 15.0),
                APP_BASE_URL=os.getenv("APP_BASE_URL", filtered_data.get("APP_BASE_URL", "http://localhost:8083")),
            ),
            retry_queue=RetryQueueSettings(
                RETRY_INTERVAL=filtered_data.get("RETRY_INTERVAL", 30.0),
                RETRY_BATCH_LIMIT=filtered_data.get("RETRY_BATCH_LIMIT", 20),
                RETRY_BASE_DELAY=filtered_data.get("RETRY_BASE_DELAY", 30.0),
                RETRY_MAX_DELAY=filtered_data.get("RETRY_MAX_DELAY", 3600.0),
                RETRY_MAX_ATTEMPTS=int(os.getenv("RETRY_MAX_ATTEMPTS", filtered_data.get("RETRY_MAX_ATTEMPTS", 0))),
            ),
            stream=StreamSettings(
                STREAM_KEEPALIVE_INTERVAL=filtered_data.get("STREAM_KEEPALIVE_INTERVAL", 20.0),
                STREAM_TRANSPORT_PING=filtered_data.get("STREAM_TRANSPORT_PING", 300),
                STREAM_QUEUE_SIZE=filtered_data.get("STREAM_QUEUE_SIZE", 100),
                STREAM_MAX_FAILED_WRITES=filtered_data.get("STREAM_MAX_FAILED_WRITES", 3),
                STREAM_CONFIRM_BROADCAST_FALLBACK=filtered_data.get("STREAM_CONFIRM_BROADCAST_FALLBACK", True),
            ),
            security=SecuritySettings(
                ADMIN_TOKEN=os.getenv("ADMIN_TOKEN", filtered_data.get("ADMIN_TOKEN", "")),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Использует кэширование для производительности.
    """
    from dotenv import load_dotenv

    # Загружаем .env файл
    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
