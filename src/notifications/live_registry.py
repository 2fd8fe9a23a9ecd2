# src/notifications/live_registry.py
"""
Реестр открытых SSE-соединений.
Хранит подписчиков с метаданными маршрутизации и рассылает им события.
Доставка best-effort, at-most-once: повторов нет.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Protocol
from uuid import uuid4

from sse_starlette.sse import ServerSentEvent

from src.common.constants import SubscriberRole
from src.common.exceptions import TransientDeliveryError
from src.common.logger import log_debug, log_info, log_warning
from src.notifications.matchers import Matcher


class StreamConnection(Protocol):
    """Транспорт, в который реестр пишет кадры."""

    async def send(self, event: ServerSentEvent) -> None:
        ...

    def close(self) -> None:
        ...


class QueueConnection:
    """
    Соединение поверх asyncio.Queue.
    Реестр кладёт кадры в очередь, HTTP-обработчик отдаёт их клиенту.
    Переполненная очередь означает, что клиент не читает поток.
    """

    def __init__(self, maxsize: int = 100) -> None:
        self._queue: asyncio.Queue[ServerSentEvent | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: ServerSentEvent) -> None:
        if self._closed:
            raise TransientDeliveryError("Соединение закрыто", channel="stream")
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            raise TransientDeliveryError("Очередь соединения переполнена", channel="stream") from None

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Освобождаем место под маркер конца потока
        while self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def events(self) -> AsyncIterator[ServerSentEvent]:
        """Отдаёт кадры до закрытия соединения."""
        while True:
            item = await self._queue.get()
            if item is None:
                return
            yield item


@dataclass
class LiveSubscriber:
    """Запись об открытом соединении."""
    handle: str
    connection: StreamConnection
    role: SubscriberRole | None = None
    owner_identity: str | None = None
    correlation_id: str | None = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    failed_writes: int = 0

    def describe(self) -> dict[str, Any]:
        return {
            "handle": self.handle,
            "role": self.role.value if self.role else None,
            "has_identity": bool(self.owner_identity),
            "correlation_id": self.correlation_id,
            "connected_at": self.connected_at.isoformat(),
            "failed_writes": self.failed_writes,
        }


def _make_event(event_name: str, payload: Any) -> ServerSentEvent:
    return ServerSentEvent(data=json.dumps(payload, ensure_ascii=False, default=str), event=event_name)


class LiveConnectionRegistry:
    """
    Реестр SSE-подписчиков одного процесса.

    Поддерживает:
    - Регистрацию/удаление соединений (удаление только по сигналу транспорта)
    - broadcast всем и send_to по матчеру
    - Периодический keep-alive с вытеснением зависших соединений
    """

    def __init__(self, max_failed_writes: int = 3) -> None:
        self._subscribers: dict[str, LiveSubscriber] = {}
        self.max_failed_writes = max_failed_writes
        self._total_connections = 0
        self._total_events_sent = 0
        self._total_write_failures = 0
        self._total_evicted = 0
        self._heartbeat_task: asyncio.Task | None = None

    @property
    def active_connections(self) -> int:
        return len(self._subscribers)

    def get(self, handle: str) -> LiveSubscriber | None:
        return self._subscribers.get(handle)

    async def register(
        self,
        connection: StreamConnection,
        role: str | SubscriberRole | None = None,
        owner_identity: str | None = None,
        correlation_id: str | None = None,
    ) -> str:
        """
        Регистрирует соединение и сразу шлёт комментарий "connected".

        Returns:
            Handle подписчика для последующего unregister
        """
        if isinstance(role, str) or role is None:
            role = SubscriberRole.normalize(role)

        subscriber = LiveSubscriber(
            handle=uuid4().hex,
            connection=connection,
            role=role,
            owner_identity=(owner_identity or "").strip() or None,
            correlation_id=(correlation_id or "").strip() or None,
        )
        self._subscribers[subscriber.handle] = subscriber
        self._total_connections += 1

        await self._write(subscriber, ServerSentEvent(comment="connected"))
        await log_info(
            f"SSE клиент подключён, всего={self.active_connections}",
            extra={"handle": subscriber.handle, "role": role.value if role else None},
        )
        return subscriber.handle

    async def unregister(self, handle: str) -> None:
        """Удаляет подписчика. Повторный вызов безопасен."""
        subscriber = self._subscribers.pop(handle, None)
        if subscriber is None:
            return
        subscriber.connection.close()
        await log_info(f"SSE клиент отключён, всего={self.active_connections}", extra={"handle": handle})

    async def broadcast(
        self,
        event_name: str,
        payload: Any,
        exclude: set[str] | None = None,
    ) -> set[str]:
        """
        Пишет событие всем подписчикам.

        Returns:
            Handles, которым запись удалась
        """
        targets = [s for s in self._snapshot() if not exclude or s.handle not in exclude]
        return await self._deliver(targets, _make_event(event_name, payload))

    async def send_to(self, matcher: Matcher, event_name: str, payload: Any) -> set[str]:
        """То же, что broadcast, но только подписчикам, подходящим под матчер."""
        targets = [s for s in self._snapshot() if matcher.matches(s)]
        return await self._deliver(targets, _make_event(event_name, payload))

    async def heartbeat(self) -> int:
        """
        Пишет keep-alive комментарий всем подписчикам.
        Подписчик, у которого подряд не удались max_failed_writes записей,
        вытесняется.

        Returns:
            Количество вытесненных подписчиков
        """
        ping = ServerSentEvent(comment="ping")
        evicted = 0
        for subscriber in self._snapshot():
            ok = await self._write(subscriber, ping)
            if ok or self.max_failed_writes <= 0:
                continue
            if subscriber.failed_writes >= self.max_failed_writes:
                await log_warning(
                    f"SSE клиент не читает поток, вытесняется после {subscriber.failed_writes} неудачных записей",
                    extra={"handle": subscriber.handle},
                )
                await self.unregister(subscriber.handle)
                self._total_evicted += 1
                evicted += 1
        return evicted

    async def run_heartbeat(self, interval: float) -> None:
        """Цикл keep-alive до отмены задачи."""
        while True:
            await asyncio.sleep(interval)
            await self.heartbeat()

    def start_heartbeat(self, interval: float) -> None:
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.create_task(self.run_heartbeat(interval))

    async def stop_heartbeat(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            await asyncio.gather(self._heartbeat_task, return_exceptions=True)
            self._heartbeat_task = None

    async def close_all(self) -> None:
        for subscriber in self._snapshot():
            await self.unregister(subscriber.handle)

    def get_stats(self) -> dict[str, Any]:
        """Статистика реестра."""
        by_role: dict[str, int] = {}
        for subscriber in self._subscribers.values():
            key = subscriber.role.value if subscriber.role else "unset"
            by_role[key] = by_role.get(key, 0) + 1
        return {
            "active_connections": self.active_connections,
            "by_role": by_role,
            "total_connections": self._total_connections,
            "total_events_sent": self._total_events_sent,
            "total_write_failures": self._total_write_failures,
            "total_evicted": self._total_evicted,
        }

    def _snapshot(self) -> list[LiveSubscriber]:
        return list(self._subscribers.values())

    async def _deliver(self, targets: list[LiveSubscriber], event: ServerSentEvent) -> set[str]:
        delivered: set[str] = set()
        for subscriber in targets:
            if await self._write(subscriber, event):
                delivered.add(subscriber.handle)
        await log_debug(f"SSE событие {event.event}: доставлено {len(delivered)} из {len(targets)}")
        return delivered

    async def _write(self, subscriber: LiveSubscriber, event: ServerSentEvent) -> bool:
        try:
            await subscriber.connection.send(event)
        except Exception as e:
            # Ошибка записи не удаляет подписчика: это делает транспорт или heartbeat
            subscriber.failed_writes += 1
            self._total_write_failures += 1
            await log_warning(
                f"Не удалось записать в SSE соединение: {e}",
                extra={"handle": subscriber.handle},
            )
            return False
        subscriber.failed_writes = 0
        if event.event:
            self._total_events_sent += 1
        return True
