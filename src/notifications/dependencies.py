# src/notifications/dependencies.py
"""
Сборка компонентов сервиса уведомлений и зависимости FastAPI.
Все хранилища создаются один раз при старте и передаются явно.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass

from fastapi import Header, HTTPException, Request

from src.infra.record_store import RecordSetStore, build_record_store
from src.notifications.live_registry import LiveConnectionRegistry
from src.notifications.mail_client import SmtpMailClient
from src.notifications.orchestrator import FanOutOrchestrator
from src.notifications.push_client import WebPushClient
from src.notifications.retry_queue import QueueProcessor, RetryQueue
from src.notifications.subscriptions import DEFAULT_PUSH_OPTIONS, PushDispatcher, SubscriptionStore


@dataclass
class NotificationContainer:
    """Набор связанных компонентов одного процесса."""
    registry: LiveConnectionRegistry
    subscriptions: SubscriptionStore
    dispatcher: PushDispatcher
    push_client: WebPushClient
    mail_client: SmtpMailClient
    retry_queue: RetryQueue
    processor: QueueProcessor
    orchestrator: FanOutOrchestrator


def build_container(
    push_records: RecordSetStore | None = None,
    queue_records: RecordSetStore | None = None,
    push_client: WebPushClient | None = None,
    mail_client: SmtpMailClient | None = None,
) -> NotificationContainer:
    """Создаёт компоненты по настройкам; любой из них можно подменить."""
    from src.config import settings

    registry = LiveConnectionRegistry(max_failed_writes=settings.stream.STREAM_MAX_FAILED_WRITES)

    push_client = push_client or WebPushClient.from_settings()
    subscriptions = SubscriptionStore(push_records or build_record_store("push"))
    dispatcher = PushDispatcher(
        subscriptions,
        push_client,
        default_options={**DEFAULT_PUSH_OPTIONS, "tag": settings.web_push.PUSH_TAG},
    )

    mail_client = mail_client or SmtpMailClient.from_settings()
    retry_queue = RetryQueue(
        queue_records or build_record_store("queue"),
        base_delay=settings.retry_queue.RETRY_BASE_DELAY,
        max_delay=settings.retry_queue.RETRY_MAX_DELAY,
        max_attempts=settings.retry_queue.RETRY_MAX_ATTEMPTS,
    )
    processor = QueueProcessor(
        retry_queue,
        mail_client,
        interval=settings.retry_queue.RETRY_INTERVAL,
        batch_limit=settings.retry_queue.RETRY_BATCH_LIMIT,
        send_timeout=settings.mail.MAIL_SEND_TIMEOUT,
    )

    orchestrator = FanOutOrchestrator(
        registry=registry,
        dispatcher=dispatcher,
        mail_client=mail_client,
        retry_queue=retry_queue,
        admin_email=settings.mail.ADMIN_EMAIL,
        base_url=settings.mail.APP_BASE_URL,
        confirm_broadcast_fallback=settings.stream.STREAM_CONFIRM_BROADCAST_FALLBACK,
    )

    return NotificationContainer(
        registry=registry,
        subscriptions=subscriptions,
        dispatcher=dispatcher,
        push_client=push_client,
        mail_client=mail_client,
        retry_queue=retry_queue,
        processor=processor,
        orchestrator=orchestrator,
    )


# =============================================================================
# ЗАВИСИМОСТИ FASTAPI
# =============================================================================

def get_container(request: Request) -> NotificationContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Сервис уведомлений не инициализирован")
    return container


def get_registry(request: Request) -> LiveConnectionRegistry:
    return get_container(request).registry


def get_subscription_store(request: Request) -> SubscriptionStore:
    return get_container(request).subscriptions


def get_orchestrator(request: Request) -> FanOutOrchestrator:
    return get_container(request).orchestrator


def require_admin_token(x_admin_token: str | None = Header(default=None)) -> None:
    """Проверяет токен привилегированных эндпоинтов."""
    from src.config import settings

    expected = settings.security.ADMIN_TOKEN
    if not expected:
        raise HTTPException(status_code=403, detail="Привилегированные операции отключены: ADMIN_TOKEN не задан")
    if not x_admin_token or not secrets.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=403, detail="Неверный токен администратора")
