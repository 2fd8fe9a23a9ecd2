# src/notifications/subscriptions.py
"""
Хранилище push-подписок и диспетчер push-рассылки.

Все мутации набора (subscribe, clear_all, удаление после рассылки)
выполняются под одной блокировкой: чтение, изменение и атомарная
запись всего набора не перемежаются.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from pydantic import ValidationError

from src.common.constants import PushResult, SubscriberRole
from src.common.exceptions import ConfigurationMissing, PermanentInvalidTarget, TransientDeliveryError
from src.common.logger import log_debug, log_info, log_warning
from src.infra.record_store import RecordSetStore
from src.notifications.matchers import Matcher
from src.notifications.push_client import WebPushClient
from src.shared.models.notifications import PushSubscriptionInfo, PushSubscriptionRecord, utc_now


DEFAULT_PUSH_OPTIONS: dict[str, Any] = {
    "vibrate": [200, 100, 200],
    "tag": "ride-notify",
    "requireInteraction": True,
}


class SubscriptionStore:
    """Долговременный реестр push-подписок. Уникальный ключ: endpoint."""

    def __init__(
        self,
        records: RecordSetStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.records = records
        self.clock = clock
        self._lock = asyncio.Lock()

    async def list_all(self) -> list[PushSubscriptionRecord]:
        """Снимок всех подписок."""
        return await self._load()

    async def count(self) -> int:
        return len(await self._load())

    async def subscribe(
        self,
        subscription: PushSubscriptionInfo,
        owner_identity: str | None = None,
        role: str | SubscriberRole | None = None,
    ) -> PushSubscriptionRecord:
        """
        Добавляет подписку или обновляет существующую с тем же endpoint.
        Повторный вызов с теми же данными не создаёт дубликат.
        """
        if not isinstance(role, SubscriberRole):
            role = SubscriberRole.normalize(role)
        owner_identity = (owner_identity or "").strip() or None

        async with self._lock:
            items = await self._load()
            existing = next((s for s in items if s.endpoint == subscription.endpoint), None)

            if existing is None:
                record = PushSubscriptionRecord(
                    endpoint=subscription.endpoint,
                    keys=subscription.keys,
                    owner_identity=owner_identity,
                    role=role,
                    created_at=self.clock(),
                )
                items.append(record)
                await log_info("Новая push-подписка", extra={"role": role.value if role else None})
            else:
                existing.keys = subscription.keys
                if owner_identity is not None:
                    existing.owner_identity = owner_identity
                if role is not None:
                    existing.role = role
                existing.updated_at = self.clock()
                record = existing
                await log_debug("Push-подписка обновлена")

            await self._save(items)
            return record

    async def clear_all(self) -> int:
        """Удаляет все подписки (после смены ключей VAPID)."""
        async with self._lock:
            removed = len(await self._load())
            await self._save([])
        await log_info(f"Все push-подписки удалены: {removed}")
        return removed

    async def remove_endpoints(self, endpoints: set[str]) -> int:
        """
        Удаляет подписки по endpoint одной записью набора.
        Набор перечитывается под блокировкой, поэтому подписки,
        добавленные во время рассылки, сохраняются.
        """
        if not endpoints:
            return 0
        async with self._lock:
            items = await self._load()
            remaining = [s for s in items if s.endpoint not in endpoints]
            removed = len(items) - len(remaining)
            if removed:
                await self._save(remaining)
        return removed

    async def _load(self) -> list[PushSubscriptionRecord]:
        result: list[PushSubscriptionRecord] = []
        for raw in await self.records.load():
            try:
                result.append(PushSubscriptionRecord.model_validate(raw))
            except ValidationError as e:
                await log_warning(f"Пропущена некорректная push-подписка: {e.error_count()} ошибок")
        return result

    async def _save(self, items: list[PushSubscriptionRecord]) -> None:
        await self.records.replace([s.model_dump(mode="json") for s in items])


@dataclass
class DispatchReport:
    """Итог одного прохода рассылки."""
    matched: int = 0
    delivered: int = 0
    failed: int = 0
    pruned: int = 0
    skipped: bool = False
    results: dict[str, PushResult] = field(default_factory=dict)


class PushDispatcher:
    """Рассылка push-сообщений подпискам, подходящим под матчер."""

    def __init__(
        self,
        store: SubscriptionStore,
        client: WebPushClient,
        default_options: dict[str, Any] | None = None,
    ) -> None:
        self.store = store
        self.client = client
        self.default_options = dict(default_options if default_options is not None else DEFAULT_PUSH_OPTIONS)
        self._config_warning_logged = False
        self._totals = {"dispatches": 0, "delivered": 0, "failed": 0, "pruned": 0}

    def build_message(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Накладывает опции вызывающего поверх опций по умолчанию."""
        message = dict(payload)
        message["options"] = {**self.default_options, **(payload.get("options") or {})}
        return message

    async def dispatch(self, matcher: Matcher, payload: dict[str, Any]) -> DispatchReport:
        """
        Отправляет payload всем подходящим подпискам из снимка.
        Подписки с ответом 404/410 удаляются одной записью после прохода.
        """
        report = DispatchReport()

        if not self.client.is_configured:
            report.skipped = True
            if not self._config_warning_logged:
                self._config_warning_logged = True
                await log_warning("Push отключён: ключи VAPID не заданы")
            return report

        message = self.build_message(payload)
        gone: set[str] = set()

        for subscription in await self.store.list_all():
            if not matcher.matches(subscription):
                continue
            report.matched += 1
            try:
                await self.client.send(subscription, message)
            except PermanentInvalidTarget as e:
                gone.add(subscription.endpoint)
                report.results[subscription.endpoint] = PushResult.GONE
                await log_info(f"Push-подписка больше недействительна (status={e.status_code}), будет удалена")
            except TransientDeliveryError as e:
                report.failed += 1
                report.results[subscription.endpoint] = PushResult.TRANSIENT
                await log_warning(f"Push не доставлен (status={e.status_code}): {e}")
            except ConfigurationMissing:
                report.skipped = True
                break
            except Exception as e:
                # запись не трогаем, проход продолжается
                report.failed += 1
                report.results[subscription.endpoint] = PushResult.TRANSIENT
                await log_warning(f"Push не доставлен из-за ошибки подписки: {e!r}")
            else:
                report.delivered += 1
                report.results[subscription.endpoint] = PushResult.DELIVERED

        if gone:
            report.pruned = await self.store.remove_endpoints(gone)

        self._totals["dispatches"] += 1
        self._totals["delivered"] += report.delivered
        self._totals["failed"] += report.failed
        self._totals["pruned"] += report.pruned
        return report

    def get_stats(self) -> dict[str, Any]:
        return {"configured": self.client.is_configured, **self._totals}
