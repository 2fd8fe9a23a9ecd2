# src/worker/notifications.py
"""
Воркер уведомлений о бронированиях.
Принимает события booking.created / booking.confirmed из RabbitMQ
и передаёт снимок бронирования оркестратору рассылки.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import ValidationError

from src.common.constants import BookingEventKind
from src.common.logger import log_warning
from src.infra.event_bus import DomainEvent, EventBus, EventTypes
from src.notifications.orchestrator import FanOutOrchestrator
from src.shared.models.notifications import BookingSnapshot
from src.worker.base import BaseWorker


_EVENT_KINDS = {
    EventTypes.BOOKING_CREATED: BookingEventKind.CREATED,
    EventTypes.BOOKING_CONFIRMED: BookingEventKind.CONFIRMED,
}


class BookingNotificationWorker(BaseWorker):
    """Мост между шиной событий и оркестратором рассылки."""

    def __init__(self, orchestrator: FanOutOrchestrator, event_bus: Optional[EventBus] = None) -> None:
        super().__init__(event_bus)
        self.orchestrator = orchestrator

    @property
    def name(self) -> str:
        return "BookingNotificationWorker"

    @property
    def subscriptions(self) -> List[str]:
        return list(_EVENT_KINDS)

    async def handle_event(self, event: DomainEvent) -> None:
        kind = _EVENT_KINDS.get(event.event_type)
        if kind is None:
            return

        # Снимок может лежать в payload["booking"] или прямо в payload
        raw = event.payload.get("booking", event.payload)
        try:
            booking = BookingSnapshot.model_validate(raw)
        except ValidationError as e:
            await log_warning(
                f"Событие {event.event_type} без корректного снимка бронирования: {e.error_count()} ошибок",
                extra={"event_id": event.event_id},
            )
            return

        self.orchestrator.handle(kind, booking)
