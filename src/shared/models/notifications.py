# src/shared/models/notifications.py
"""
Модели домена уведомлений: снимок бронирования, push-подписки,
элементы очереди повторов и записи о попытках отправки почты.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from src.common.constants import SubscriberRole


def utc_now() -> datetime:
    """Текущее время в UTC."""
    return datetime.now(timezone.utc)


# =============================================================================
# БРОНИРОВАНИЕ
# =============================================================================

class BookingSnapshot(BaseModel):
    """
    Снимок полей бронирования, нужных для уведомлений.
    Неизвестные поля сохраняются и пересылаются как есть.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(validation_alias=AliasChoices("id", "_id", "bookingId"))
    name: str = ""
    email: str | None = None
    phone: str | None = None
    pickup: str = ""
    destination: str = ""
    estimated_price: Any = Field(
        default=None,
        validation_alias=AliasChoices("estimated_price", "estimatedPrice"),
        serialization_alias="estimatedPrice",
    )
    date: str | None = None
    time: str | None = None
    status: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        """Идентификатор может прийти числом."""
        if v is None or str(v).strip() == "":
            raise ValueError("Пустой идентификатор бронирования")
        return str(v)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        """Пустая строка означает отсутствие адреса."""
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    def to_payload(self) -> dict[str, Any]:
        """Сериализует снимок для отправки клиентам."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# PUSH-ПОДПИСКИ
# =============================================================================

class PushSubscriptionKeys(BaseModel):
    """Ключи шифрования push-подписки (непрозрачные для сервиса)."""

    model_config = ConfigDict(extra="allow")

    p256dh: str
    auth: str


class PushSubscriptionInfo(BaseModel):
    """Подписка в том виде, в котором её отдаёт браузер."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    endpoint: str
    keys: PushSubscriptionKeys
    expiration_time: int | float | None = Field(
        default=None,
        validation_alias=AliasChoices("expiration_time", "expirationTime"),
    )

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Endpoint обязателен."""
        v = v.strip()
        if not v:
            raise ValueError("Пустой endpoint подписки")
        return v


class PushSubscriptionRecord(BaseModel):
    """Сохранённая push-подписка. Ключ уникальности: endpoint."""

    endpoint: str
    keys: PushSubscriptionKeys
    owner_identity: str | None = None
    role: SubscriberRole | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime | None = None

    @field_validator("role", mode="before")
    @classmethod
    def parse_role(cls, v: Any) -> SubscriberRole | None:
        """Принимает как новые, так и устаревшие имена ролей."""
        if isinstance(v, SubscriberRole) or v is None:
            return v
        return SubscriberRole.normalize(str(v))

    @property
    def correlation_id(self) -> None:
        """У push-подписки нет привязки к бронированию."""
        return None

    def to_subscription_info(self) -> dict[str, Any]:
        """Формат, который ожидает клиент Web Push."""
        return {
            "endpoint": self.endpoint,
            "keys": self.keys.model_dump(),
        }


# =============================================================================
# ПОЧТА
# =============================================================================

class MailMessage(BaseModel):
    """Письмо, готовое к отправке."""

    recipient: str
    subject: str
    sender: str | None = None
    text: str | None = None
    html: str | None = None
    related_entity_id: str | None = None

    @model_validator(mode="after")
    def require_body(self) -> "MailMessage":
        """Нужен хотя бы один из вариантов тела письма."""
        if not self.text and not self.html:
            raise ValueError("Письмо без текста и HTML")
        return self


class RetryQueueItem(BaseModel):
    """Элемент очереди повторной отправки письма."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    recipient: str
    sender: str | None = None
    subject: str
    text: str | None = None
    html: str | None = None
    attempts: int = Field(default=0, ge=0)
    next_attempt_at: datetime = Field(default_factory=utc_now)
    last_error: str | None = None
    related_entity_id: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    abandoned_at: datetime | None = None

    @classmethod
    def from_message(cls, message: MailMessage, now: datetime) -> "RetryQueueItem":
        """Создаёт элемент очереди из письма, отправка которого не удалась."""
        return cls(
            recipient=message.recipient,
            sender=message.sender,
            subject=message.subject,
            text=message.text,
            html=message.html,
            related_entity_id=message.related_entity_id,
            attempts=0,
            next_attempt_at=now,
            created_at=now,
        )

    def to_message(self) -> MailMessage:
        """Восстанавливает письмо для повторной отправки."""
        return MailMessage(
            recipient=self.recipient,
            sender=self.sender,
            subject=self.subject,
            text=self.text,
            html=self.html,
            related_entity_id=self.related_entity_id,
        )

    def is_due(self, now: datetime) -> bool:
        """Пора ли повторить отправку."""
        return self.abandoned_at is None and self.next_attempt_at <= now


def mask_address(value: str | None) -> str | None:
    """Скрывает локальную часть адреса: "Name <user@host>" -> "***@host"."""
    if not value:
        return value
    _, sep, domain = value.rpartition("@")
    if not sep:
        return "***"
    return f"***@{domain.rstrip('>').strip()}"


class MailAttempt(BaseModel):
    """Запись о последней попытке отправки письма."""

    time: datetime = Field(default_factory=utc_now)
    sender: str
    recipient: str
    subject: str
    success: bool = False
    message_id: str | None = None
    response: str | None = None
    error: str | None = None

    def masked(self) -> dict[str, Any]:
        """Версия для диагностики без персональных данных."""
        data = self.model_dump(mode="json")
        data["sender"] = mask_address(self.sender)
        data["recipient"] = mask_address(self.recipient)
        if self.response:
            data["response"] = self.response[:200]
        return data
