# src/notifications/push_client.py
"""
Клиент Web Push (VAPID).
Отправляет одно сообщение на один endpoint и классифицирует результат.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import requests
from pywebpush import WebPushException, webpush

from src.common.exceptions import ConfigurationMissing, PermanentInvalidTarget, TransientDeliveryError
from src.common.logger import log_debug
from src.shared.models.notifications import PushSubscriptionRecord


# Push-сервис сообщает, что подписка истекла или отозвана
GONE_STATUS_CODES = frozenset({404, 410})


class WebPushClient:
    """Обёртка над pywebpush.webpush (синхронный вызов уходит в поток)."""

    def __init__(
        self,
        public_key: str,
        private_key: str,
        subject: str,
        ttl: int = 60,
    ) -> None:
        self.public_key = public_key
        self.private_key = private_key
        self.subject = subject
        self.ttl = ttl

    @classmethod
    def from_settings(cls) -> WebPushClient:
        from src.config import settings

        return cls(
            public_key=settings.web_push.VAPID_PUBLIC_KEY,
            private_key=settings.web_push.VAPID_PRIVATE_KEY,
            subject=settings.web_push.VAPID_SUBJECT,
            ttl=settings.web_push.PUSH_TTL,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.public_key and self.private_key)

    async def send(self, subscription: PushSubscriptionRecord, payload: dict[str, Any]) -> None:
        """
        Отправляет payload на endpoint подписки.

        Raises:
            ConfigurationMissing: не заданы ключи VAPID
            PermanentInvalidTarget: push-сервис ответил 404/410
            TransientDeliveryError: любая другая ошибка
        """
        if not self.is_configured:
            raise ConfigurationMissing("Ключи VAPID не заданы", channel="push")

        data = json.dumps(payload, ensure_ascii=False, default=str)
        try:
            await asyncio.to_thread(
                webpush,
                subscription_info=subscription.to_subscription_info(),
                data=data,
                vapid_private_key=self.private_key,
                # webpush дописывает aud/exp в claims, поэтому словарь каждый раз новый
                vapid_claims={"sub": self.subject},
                ttl=self.ttl,
            )
        except WebPushException as e:
            status = e.response.status_code if e.response is not None else None
            if status in GONE_STATUS_CODES:
                raise PermanentInvalidTarget(str(e), channel="push", status_code=status) from e
            raise TransientDeliveryError(str(e), channel="push", status_code=status) from e
        except (requests.RequestException, OSError) as e:
            raise TransientDeliveryError(str(e), channel="push") from e
        except Exception as e:
            # например ValueError("Invalid EC key.") на испорченном p256dh
            raise TransientDeliveryError(str(e) or e.__class__.__name__, channel="push") from e

        await log_debug(f"Push доставлен: {subscription.endpoint[:60]}")
