# src/notifications/retry_queue.py
"""
Очередь повторной отправки писем и её обработчик.

Элемент попадает в очередь, когда прямая отправка не удалась, и
удаляется после первой успешной отправки. После каждой неудачи
следующая попытка откладывается на min(base * 2^attempts, cap).
Гарантия at-least-once: падение между отправкой и удалением
приводит к повторной отправке.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Callable

from pydantic import ValidationError

from src.common.exceptions import ConfigurationMissing, DeliveryError
from src.common.logger import log_debug, log_error, log_info, log_warning
from src.infra.record_store import RecordSetStore
from src.notifications.mail_client import SmtpMailClient
from src.shared.models.notifications import MailMessage, RetryQueueItem, utc_now


def compute_backoff(attempts: int, base_delay: float, max_delay: float) -> float:
    """Задержка в секундах после attempts неудачных повторов."""
    if attempts < 0:
        raise ValueError("attempts не может быть отрицательным")
    if base_delay <= 0:
        return 0.0
    if attempts >= 64 or base_delay * (2 ** attempts) >= max_delay:
        return float(max_delay)
    return float(base_delay * (2 ** attempts))


class RetryQueue:
    """Долговременная очередь писем на повторную отправку."""

    def __init__(
        self,
        records: RecordSetStore,
        base_delay: float = 30.0,
        max_delay: float = 3600.0,
        max_attempts: int = 0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.records = records
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self.clock = clock
        self._lock = asyncio.Lock()

    async def enqueue(self, message: MailMessage, error: str | None = None) -> RetryQueueItem:
        """Ставит письмо в очередь: attempts=0, следующая попытка сейчас."""
        item = RetryQueueItem.from_message(message, now=self.clock())
        item.last_error = error
        async with self._lock:
            items = await self._load()
            items.append(item)
            await self._save(items)
        await log_info(
            "Письмо поставлено в очередь повторов",
            extra={"item_id": item.id, "related_entity_id": item.related_entity_id},
        )
        return item

    async def list_items(self) -> list[RetryQueueItem]:
        return await self._load()

    async def size(self) -> int:
        return len(await self._load())

    async def get(self, item_id: str) -> RetryQueueItem | None:
        return next((i for i in await self._load() if i.id == item_id), None)

    async def due_items(self, limit: int) -> list[RetryQueueItem]:
        """Элементы, которым пора повторить отправку, старые первыми."""
        now = self.clock()
        due = [i for i in await self._load() if i.is_due(now)]
        due.sort(key=lambda i: i.created_at)
        return due[:limit] if limit > 0 else due

    async def mark_sent(self, item_id: str) -> bool:
        """Удаляет успешно отправленный элемент."""
        async with self._lock:
            items = await self._load()
            remaining = [i for i in items if i.id != item_id]
            if len(remaining) == len(items):
                return False
            await self._save(remaining)
        return True

    async def mark_failed(self, item_id: str, error: str) -> RetryQueueItem | None:
        """
        Фиксирует неудачную попытку: attempts += 1, следующая попытка
        через min(base * 2^attempts, cap). При заданном max_attempts
        элемент, достигший предела, помечается abandoned_at.
        """
        async with self._lock:
            items = await self._load()
            item = next((i for i in items if i.id == item_id), None)
            if item is None:
                return None

            now = self.clock()
            item.attempts += 1
            item.last_error = error
            delay = compute_backoff(item.attempts, self.base_delay, self.max_delay)
            # next_attempt_at не убывает между последовательными неудачами
            item.next_attempt_at = max(item.next_attempt_at, now + timedelta(seconds=delay))
            if self.max_attempts > 0 and item.attempts >= self.max_attempts:
                item.abandoned_at = now

            await self._save(items)

        if item.abandoned_at is not None:
            await log_error(
                f"Письмо снято с повторов после {item.attempts} попыток",
                extra={"item_id": item.id, "last_error": error},
            )
        return item

    async def purge_abandoned(self) -> int:
        """Удаляет элементы, снятые с повторов."""
        async with self._lock:
            items = await self._load()
            remaining = [i for i in items if i.abandoned_at is None]
            removed = len(items) - len(remaining)
            if removed:
                await self._save(remaining)
        return removed

    async def get_stats(self) -> dict[str, Any]:
        items = await self._load()
        now = self.clock()
        return {
            "size": len(items),
            "due": sum(1 for i in items if i.is_due(now)),
            "abandoned": sum(1 for i in items if i.abandoned_at is not None),
            "max_attempts": self.max_attempts,
        }

    async def _load(self) -> list[RetryQueueItem]:
        result: list[RetryQueueItem] = []
        for raw in await self.records.load():
            try:
                result.append(RetryQueueItem.model_validate(raw))
            except ValidationError as e:
                await log_warning(f"Пропущен некорректный элемент очереди: {e.error_count()} ошибок")
        return result

    async def _save(self, items: list[RetryQueueItem]) -> None:
        await self.records.replace([i.model_dump(mode="json") for i in items])


class QueueProcessor:
    """
    Периодический обработчик очереди повторов.
    Один таймер; флаг занятости не допускает перекрывающихся проходов.
    """

    def __init__(
        self,
        queue: RetryQueue,
        mail_client: SmtpMailClient,
        interval: float = 30.0,
        batch_limit: int = 20,
        send_timeout: float = 15.0,
    ) -> None:
        self.queue = queue
        self.mail_client = mail_client
        self.interval = interval
        self.batch_limit = batch_limit
        self.send_timeout = send_timeout
        self._busy = False
        self._task: asyncio.Task | None = None
        self._passes = 0
        self._sent = 0
        self._failed = 0

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def process_queue(self, batch_limit: int | None = None) -> int:
        """
        Один проход по очереди.

        Returns:
            Количество успешно отправленных писем
        """
        if self._busy:
            await log_debug("Проход очереди повторов уже выполняется, пропуск")
            return 0
        if not self.mail_client.is_configured:
            return 0

        self._busy = True
        try:
            limit = self.batch_limit if batch_limit is None else batch_limit
            due = await self.queue.due_items(limit)
            sent = 0
            for item in due:
                try:
                    await asyncio.wait_for(self.mail_client.send(item.to_message()), timeout=self.send_timeout)
                except ConfigurationMissing:
                    break
                except (DeliveryError, asyncio.TimeoutError) as e:
                    error = str(e) or "Таймаут отправки"
                    updated = await self.queue.mark_failed(item.id, error)
                    self._failed += 1
                    if updated is not None:
                        await log_warning(
                            f"Повтор письма не удался (попытка {updated.attempts})",
                            extra={"item_id": item.id, "next_attempt_at": updated.next_attempt_at.isoformat()},
                        )
                    continue

                await self.queue.mark_sent(item.id)
                sent += 1
                self._sent += 1

            self._passes += 1
            if due:
                await log_info(f"Проход очереди повторов: отправлено {sent} из {len(due)}")
            return sent
        finally:
            self._busy = False

    async def run(self) -> None:
        """Цикл обработки до отмены задачи."""
        while True:
            try:
                await self.process_queue()
            except Exception as e:
                await log_error(f"Ошибка прохода очереди повторов: {e}", exc_info=True)
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if not self.is_running:
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    def get_stats(self) -> dict[str, Any]:
        return {
            "running": self.is_running,
            "busy": self._busy,
            "interval": self.interval,
            "passes": self._passes,
            "sent": self._sent,
            "failed": self._failed,
        }
