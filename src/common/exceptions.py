# src/common/exceptions.py
"""
Исключения каналов доставки уведомлений.
"""

from __future__ import annotations


class DeliveryError(Exception):
    """Базовая ошибка канала доставки."""

    def __init__(self, message: str, *, channel: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.channel = channel
        self.status_code = status_code


class TransientDeliveryError(DeliveryError):
    """Временная ошибка: сеть, 5xx, таймаут. Можно повторить."""


class PermanentInvalidTarget(DeliveryError):
    """Адресат больше не существует (404/410). Повторять нельзя."""


class ConfigurationMissing(DeliveryError):
    """Канал не настроен (нет ключей VAPID или SMTP-хоста)."""
