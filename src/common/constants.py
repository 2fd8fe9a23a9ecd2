# src/common/constants.py
"""
Общие константы и перечисления.
"""

from __future__ import annotations

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class SubscriberRole(str, Enum):
    """Роли получателей уведомлений."""
    OPERATOR = "operator"
    CLIENT = "client"

    @classmethod
    def normalize(cls, value: str | None) -> SubscriberRole | None:
        """
        Приводит строку роли к перечислению.
        Принимает устаревшие имена admin/user. Неизвестное значение даёт None.
        """
        if not value:
            return None
        value = value.strip().lower()
        value = _LEGACY_ROLES.get(value, value)
        try:
            return cls(value)
        except ValueError:
            return None


_LEGACY_ROLES = {
    "admin": SubscriberRole.OPERATOR.value,
    "user": SubscriberRole.CLIENT.value,
}


class BookingEventKind(str, Enum):
    """Виды событий жизненного цикла бронирования."""
    CREATED = "created"
    CONFIRMED = "confirmed"


class StreamEvent(str, Enum):
    """Имена событий SSE потока."""
    BOOKING_CREATED = "booking-created"
    BOOKING_CONFIRMED = "booking-confirmed"


class PushResult(str, Enum):
    """Результат отправки одного push-сообщения."""
    DELIVERED = "delivered"
    GONE = "gone"
    TRANSIENT = "transient"
