# src/notifications/routes.py
"""
HTTP API сервиса уведомлений: push-подписки, SSE поток,
внутренние хуки событий бронирования и диагностика.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from src.common.constants import BookingEventKind
from src.common.exceptions import ConfigurationMissing, DeliveryError
from src.common.logger import log_info
from src.config import settings
from src.notifications import messages
from src.notifications.dependencies import (
    NotificationContainer,
    get_container,
    get_orchestrator,
    get_registry,
    get_subscription_store,
    require_admin_token,
)
from src.notifications.live_registry import LiveConnectionRegistry, QueueConnection
from src.notifications.orchestrator import FanOutOrchestrator
from src.notifications.subscriptions import SubscriptionStore
from src.shared.models.common import AcceptedResponse
from src.shared.models.notifications import BookingSnapshot, PushSubscriptionInfo, mask_address


router = APIRouter()


class SubscribeRequest(BaseModel):
    """Тело запроса на push-подписку."""
    subscription: PushSubscriptionInfo
    email: Optional[str] = None
    role: Optional[str] = None


# =============================================================================
# PUSH
# =============================================================================

@router.get("/api/push/vapidPublicKey", tags=["Push"])
async def get_vapid_public_key() -> dict:
    """Публичный ключ VAPID для подписки в браузере."""
    return {"publicKey": settings.web_push.VAPID_PUBLIC_KEY}


@router.post("/api/push/subscribe", tags=["Push"])
async def subscribe_push(
    request: SubscribeRequest,
    store: SubscriptionStore = Depends(get_subscription_store),
) -> dict:
    record = await store.subscribe(request.subscription, owner_identity=request.email, role=request.role)
    return {
        "success": True,
        "endpoint": record.endpoint,
        "role": record.role.value if record.role else None,
    }


@router.delete(
    "/api/push/subscriptions-clear",
    tags=["Push"],
    dependencies=[Depends(require_admin_token)],
)
async def clear_push_subscriptions(
    store: SubscriptionStore = Depends(get_subscription_store),
) -> dict:
    removed = await store.clear_all()
    return {"success": True, "removed": removed}


# =============================================================================
# SSE ПОТОК
# =============================================================================

@router.get("/api/notifications/stream", tags=["Stream"])
async def notifications_stream(
    role: Optional[str] = Query(None),
    email: Optional[str] = Query(None),
    booking_id: Optional[str] = Query(None, alias="bookingId"),
    registry: LiveConnectionRegistry = Depends(get_registry),
):
    """Поток событий бронирования (text/event-stream)."""
    connection = QueueConnection(maxsize=settings.stream.STREAM_QUEUE_SIZE)
    handle = await registry.register(connection, role=role, owner_identity=email, correlation_id=booking_id)

    async def event_stream():
        try:
            async for event in connection.events():
                yield event
        finally:
            await registry.unregister(handle)

    return EventSourceResponse(
        event_stream(),
        # keep-alive шлёт heartbeat реестра, ping sse_starlette только страховка транспорта
        ping=settings.stream.STREAM_TRANSPORT_PING,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# =============================================================================
# СОБЫТИЯ БРОНИРОВАНИЯ
# =============================================================================

@router.post(
    "/api/events/bookings/created",
    response_model=AcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Events"],
)
async def booking_created(
    booking: BookingSnapshot,
    orchestrator: FanOutOrchestrator = Depends(get_orchestrator),
) -> AcceptedResponse:
    orchestrator.handle(BookingEventKind.CREATED, booking)
    await log_info(f"Событие booking.created принято: {booking.id}")
    return AcceptedResponse(booking_id=booking.id, event=BookingEventKind.CREATED.value)


@router.post(
    "/api/events/bookings/confirmed",
    response_model=AcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Events"],
)
async def booking_confirmed(
    booking: BookingSnapshot,
    orchestrator: FanOutOrchestrator = Depends(get_orchestrator),
) -> AcceptedResponse:
    orchestrator.handle(BookingEventKind.CONFIRMED, booking)
    await log_info(f"Событие booking.confirmed принято: {booking.id}")
    return AcceptedResponse(booking_id=booking.id, event=BookingEventKind.CONFIRMED.value)


# =============================================================================
# ДИАГНОСТИКА
# =============================================================================

@router.get("/api/diagnostics/mail", tags=["Diagnostics"])
async def mail_diagnostics(container: NotificationContainer = Depends(get_container)) -> dict:
    """Конфигурация SMTP без секретов."""
    return {
        "status": "ok",
        "config": container.mail_client.diagnostics(),
        "admin_email_configured": bool(settings.mail.ADMIN_EMAIL),
    }


@router.get("/api/diagnostics/mail-last", tags=["Diagnostics"])
async def last_mail_attempt(container: NotificationContainer = Depends(get_container)) -> dict:
    """Последняя попытка отправки письма (адреса скрыты)."""
    last = container.mail_client.last_attempt_diagnostics()
    if last is None:
        return {"status": "ok", "message": "no attempts recorded yet", "last": None}
    return {"status": "ok", "last": last}


@router.post(
    "/api/diagnostics/mail-test",
    tags=["Diagnostics"],
    dependencies=[Depends(require_admin_token)],
)
async def send_test_mail(container: NotificationContainer = Depends(get_container)) -> dict:
    """
    Отправляет тестовое письмо на ADMIN_EMAIL напрямую через релей.
    В очередь повторов письмо не попадает.
    """
    admin_email = container.orchestrator.admin_email
    if not admin_email:
        raise HTTPException(status_code=400, detail="ADMIN_EMAIL не задан")

    try:
        message_id = await container.mail_client.send(messages.relay_check_email(admin_email))
    except ConfigurationMissing as e:
        raise HTTPException(status_code=503, detail=str(e))
    except DeliveryError as e:
        raise HTTPException(
            status_code=502,
            detail={"error": str(e), "last": container.mail_client.last_attempt_diagnostics()},
        )

    await log_info("Тестовое письмо отправлено", extra={"message_id": message_id})
    return {"success": True, "message_id": message_id, "sent_to": mask_address(admin_email)}


@router.get(
    "/api/diagnostics/queue",
    tags=["Diagnostics"],
    dependencies=[Depends(require_admin_token)],
)
async def queue_diagnostics(container: NotificationContainer = Depends(get_container)) -> dict:
    """Содержимое очереди повторов для оператора."""
    items = await container.retry_queue.list_items()
    return {
        "stats": await container.retry_queue.get_stats(),
        "processor": container.processor.get_stats(),
        "items": [
            {
                "id": item.id,
                "subject": item.subject,
                "attempts": item.attempts,
                "next_attempt_at": item.next_attempt_at.isoformat(),
                "last_error": item.last_error,
                "related_entity_id": item.related_entity_id,
                "created_at": item.created_at.isoformat(),
                "abandoned_at": item.abandoned_at.isoformat() if item.abandoned_at else None,
            }
            for item in items
        ],
    }


@router.delete(
    "/api/diagnostics/queue/abandoned",
    tags=["Diagnostics"],
    dependencies=[Depends(require_admin_token)],
)
async def purge_abandoned(container: NotificationContainer = Depends(get_container)) -> dict:
    removed = await container.retry_queue.purge_abandoned()
    return {"success": True, "removed": removed}
