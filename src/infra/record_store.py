# src/infra/record_store.py
"""
Примитив персистентности: набор записей, который загружается целиком
и целиком атомарно заменяется при каждой мутации.

Читатель всегда видит либо старый, либо новый набор, но не частично
записанный.
"""

from __future__ import annotations

import asyncio
import json
import os
import secrets
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from src.common.logger import log_debug, log_error, log_warning
from src.infra.redis_client import RedisClient, get_redis


Record = dict[str, Any]


class RecordSetStore(ABC):
    """Абстрактное хранилище набора записей."""

    name: str = "records"

    @abstractmethod
    async def load(self) -> list[Record]:
        """Загружает весь набор. Отсутствующий набор считается пустым."""

    @abstractmethod
    async def replace(self, records: list[Record]) -> None:
        """Атомарно заменяет весь набор."""


class JsonFileRecordSet(RecordSetStore):
    """
    Набор записей в JSON-файле.
    Запись идёт во временный файл рядом с целевым, затем os.replace.
    """

    def __init__(self, path: str | Path, name: str | None = None) -> None:
        self.path = Path(path)
        self.name = name or self.path.stem

    async def load(self) -> list[Record]:
        return await asyncio.to_thread(self._read)

    async def replace(self, records: list[Record]) -> None:
        await asyncio.to_thread(self._write_atomic, records)
        await log_debug(f"Набор {self.name} сохранён: {len(records)} записей")

    def _read(self) -> list[Record]:
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"Файл {self.path} должен содержать JSON-массив")
        return data

    def _write_atomic(self, records: list[Record]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f"{self.path.name}.{secrets.token_hex(6)}.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(records, f, ensure_ascii=False, indent=2, default=str)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise


class RedisRecordSet(RecordSetStore):
    """Набор записей под одним ключом Redis (одна команда SET)."""

    def __init__(self, key: str, redis_client: RedisClient | None = None) -> None:
        self.key = key
        self.name = key
        self.redis = redis_client or get_redis()

    async def load(self) -> list[Record]:
        data = await self.redis.get_json(self.key)
        if data is None:
            return []
        if not isinstance(data, list):
            await log_warning(f"Ключ {self.key} содержит не массив, набор считается пустым")
            return []
        return data

    async def replace(self, records: list[Record]) -> None:
        try:
            await self.redis.set_json(self.key, records)
        except Exception as e:
            await log_error(f"Не удалось сохранить набор {self.key}: {e}")
            raise
        await log_debug(f"Набор {self.key} сохранён: {len(records)} записей")


class MemoryRecordSet(RecordSetStore):
    """Набор записей в памяти процесса (для тестов и локального запуска)."""

    def __init__(self, records: list[Record] | None = None, name: str = "memory") -> None:
        self.name = name
        self._records: list[Record] = list(records or [])
        self.replace_calls = 0

    async def load(self) -> list[Record]:
        return json.loads(json.dumps(self._records, default=str))

    async def replace(self, records: list[Record]) -> None:
        self._records = json.loads(json.dumps(records, default=str))
        self.replace_calls += 1


def build_record_store(kind: str) -> RecordSetStore:
    """
    Создаёт хранилище по настройкам.

    Args:
        kind: "push" для подписок или "queue" для очереди повторов
    """
    from src.config import settings

    storage = settings.storage
    if storage.STORAGE_BACKEND == "redis":
        key = storage.REDIS_PUSH_KEY if kind == "push" else storage.REDIS_QUEUE_KEY
        return RedisRecordSet(key)

    filename = storage.PUSH_SUBSCRIPTIONS_FILE if kind == "push" else storage.RETRY_QUEUE_FILE
    return JsonFileRecordSet(storage.data_path / filename)
