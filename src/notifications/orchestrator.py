# src/notifications/orchestrator.py
"""
Оркестратор рассылки событий бронирования.

На каждое событие независимо и параллельно запускаются три ветки:
SSE-реестр, push-рассылка и письмо (с откатом в очередь повторов).
Вызывающий код не ждёт их завершения, а ошибки веток не влияют
ни друг на друга, ни на вызывающего.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable

from src.common.constants import BookingEventKind, StreamEvent, SubscriberRole
from src.common.exceptions import ConfigurationMissing, DeliveryError
from src.common.logger import log_debug, log_error, log_info, log_warning
from src.notifications import messages
from src.notifications.live_registry import LiveConnectionRegistry
from src.notifications.mail_client import SmtpMailClient
from src.notifications.matchers import IdentityMatcher, RoleMatcher, booking_owner_matcher
from src.notifications.retry_queue import RetryQueue
from src.notifications.subscriptions import PushDispatcher
from src.shared.models.notifications import BookingSnapshot, MailMessage


class FanOutOrchestrator:
    """Единая точка входа для событий жизненного цикла бронирования."""

    def __init__(
        self,
        registry: LiveConnectionRegistry,
        dispatcher: PushDispatcher,
        mail_client: SmtpMailClient,
        retry_queue: RetryQueue,
        admin_email: str = "",
        base_url: str = "",
        confirm_broadcast_fallback: bool = True,
    ) -> None:
        self.registry = registry
        self.dispatcher = dispatcher
        self.mail_client = mail_client
        self.retry_queue = retry_queue
        self.admin_email = admin_email
        self.base_url = base_url
        self.confirm_broadcast_fallback = confirm_broadcast_fallback
        self._tasks: set[asyncio.Task] = set()
        self._mail_warning_logged = False
        self._events = {kind.value: 0 for kind in BookingEventKind}
        self._branch_failures = 0

    # =========================================================================
    # ВХОДНЫЕ ТОЧКИ
    # =========================================================================

    def handle(self, kind: BookingEventKind, booking: BookingSnapshot) -> None:
        """Планирует рассылку и сразу возвращает управление."""
        match kind:
            case BookingEventKind.CREATED:
                self.on_booking_created(booking)
            case BookingEventKind.CONFIRMED:
                self.on_booking_confirmed(booking)

    def on_booking_created(self, booking: BookingSnapshot) -> None:
        """Новое бронирование: операторам в поток и push, письмо оператору."""
        self._events[BookingEventKind.CREATED.value] += 1
        payload = {"booking": booking.to_payload()}
        self._spawn(
            "stream",
            self.registry.send_to(RoleMatcher(SubscriberRole.OPERATOR), StreamEvent.BOOKING_CREATED.value, payload),
        )
        self._spawn(
            "push",
            self.dispatcher.dispatch(RoleMatcher(SubscriberRole.OPERATOR), messages.booking_created_push(booking)),
        )
        if self.admin_email:
            email = messages.operator_new_booking_email(booking, self.admin_email, self.base_url)
            self._spawn("email", self.deliver_mail(email))
        else:
            self._spawn("email", log_warning("Письмо оператору не отправлено: ADMIN_EMAIL не задан"))

    def on_booking_confirmed(self, booking: BookingSnapshot) -> None:
        """Подтверждение: адресно в поток (плюс откат на всех), push владельцу, письмо клиенту."""
        self._events[BookingEventKind.CONFIRMED.value] += 1
        self._spawn("stream", self._stream_confirmed(booking))
        if booking.email:
            self._spawn(
                "push",
                self.dispatcher.dispatch(IdentityMatcher(booking.email), messages.booking_confirmed_push(booking)),
            )
        email = messages.client_confirmation_email(booking)
        if email is not None:
            self._spawn("email", self.deliver_mail(email))
        else:
            self._spawn("email", log_warning(f"Письмо клиенту не отправлено: нет email в бронировании {booking.id}"))

    # =========================================================================
    # ВЕТКИ
    # =========================================================================

    async def _stream_confirmed(self, booking: BookingSnapshot) -> None:
        payload = {"booking": booking.to_payload()}
        event = StreamEvent.BOOKING_CONFIRMED.value
        reached = await self.registry.send_to(booking_owner_matcher(booking.id, booking.email), event, payload)
        if self.confirm_broadcast_fallback:
            await self.registry.broadcast(event, payload, exclude=reached)

    async def deliver_mail(self, message: MailMessage) -> bool:
        """
        Прямая отправка письма; при ошибке доставки письмо уходит
        в очередь повторов.

        Returns:
            True если письмо отправлено сразу
        """
        try:
            await self.mail_client.send(message)
        except ConfigurationMissing:
            if not self._mail_warning_logged:
                self._mail_warning_logged = True
                await log_warning("Почта отключена: SMTP-хост не задан")
            return False
        except DeliveryError as e:
            await self.retry_queue.enqueue(message, error=str(e))
            return False
        return True

    # =========================================================================
    # ЗАДАЧИ
    # =========================================================================

    def _spawn(self, branch: str, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(self._guard(branch, coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, branch: str, coro: Awaitable[Any]) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._branch_failures += 1
            await log_error(f"Ошибка ветки рассылки {branch}: {e}", exc_info=True)
        else:
            await log_debug(f"Ветка рассылки {branch} завершена")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Ждёт завершения запущенных веток (при остановке и в тестах)."""
        if not self._tasks:
            return
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            await log_info(f"Остановка: отменяются {len(pending)} незавершённых веток рассылки")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    def get_stats(self) -> dict[str, Any]:
        return {
            "events": dict(self._events),
            "pending_tasks": self.pending,
            "branch_failures": self._branch_failures,
        }
