# tests/infra/test_record_store.py
"""
Тесты для атомарных наборов записей.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from src.infra.record_store import (
    JsonFileRecordSet,
    MemoryRecordSet,
    RedisRecordSet,
    build_record_store,
)


class TestJsonFileRecordSet:
    """Тесты для JsonFileRecordSet."""

    @pytest.mark.asyncio
    async def test_missing_file_is_empty_set(self, tmp_path: Path) -> None:
        """Отсутствующий файл читается как пустой набор."""
        store = JsonFileRecordSet(tmp_path / "push-subscriptions.json")

        assert await store.load() == []

    @pytest.mark.asyncio
    async def test_replace_then_load(self, tmp_path: Path) -> None:
        """Записанный набор читается обратно целиком."""
        store = JsonFileRecordSet(tmp_path / "nested" / "email-queue.json")
        records = [{"id": "1", "subject": "Привет"}, {"id": "2", "subject": "Hi"}]

        await store.replace(records)

        assert await store.load() == records
        assert store.name == "email-queue"

    @pytest.mark.asyncio
    async def test_replace_leaves_no_temp_files(self, tmp_path: Path) -> None:
        """После замены рядом с файлом не остаётся временных файлов."""
        store = JsonFileRecordSet(tmp_path / "queue.json")

        await store.replace([{"id": "1"}])
        await store.replace([{"id": "2"}])

        assert [p.name for p in tmp_path.iterdir()] == ["queue.json"]

    @pytest.mark.asyncio
    async def test_failed_write_keeps_previous_set(self, tmp_path: Path) -> None:
        """Сбой во время записи оставляет предыдущий набор нетронутым."""
        path = tmp_path / "queue.json"
        store = JsonFileRecordSet(path)
        await store.replace([{"id": "old"}])

        with patch("src.infra.record_store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                await store.replace([{"id": "new"}])

        assert json.loads(path.read_text(encoding="utf-8")) == [{"id": "old"}]
        assert [p.name for p in tmp_path.iterdir()] == ["queue.json"]

    @pytest.mark.asyncio
    async def test_non_array_file_rejected(self, tmp_path: Path) -> None:
        """Файл должен содержать JSON-массив."""
        path = tmp_path / "queue.json"
        path.write_text('{"id": "1"}', encoding="utf-8")

        with pytest.raises(ValueError):
            await JsonFileRecordSet(path).load()


class TestRedisRecordSet:
    """Тесты для RedisRecordSet."""

    @pytest.mark.asyncio
    async def test_load_missing_key(self) -> None:
        """Отсутствующий ключ читается как пустой набор."""
        redis = AsyncMock()
        redis.get_json = AsyncMock(return_value=None)

        assert await RedisRecordSet("push:subscriptions", redis_client=redis).load() == []

    @pytest.mark.asyncio
    async def test_load_non_list(self) -> None:
        """Значение не-массив считается пустым набором."""
        redis = AsyncMock()
        redis.get_json = AsyncMock(return_value={"oops": True})

        assert await RedisRecordSet("k", redis_client=redis).load() == []

    @pytest.mark.asyncio
    async def test_replace_is_single_set(self) -> None:
        """Весь набор пишется одним set_json."""
        redis = AsyncMock()
        store = RedisRecordSet("mail:retry_queue", redis_client=redis)

        await store.replace([{"id": "1"}, {"id": "2"}])

        redis.set_json.assert_called_once_with("mail:retry_queue", [{"id": "1"}, {"id": "2"}])

    @pytest.mark.asyncio
    async def test_replace_error_propagates(self) -> None:
        """Ошибка Redis пробрасывается вызывающему."""
        redis = AsyncMock()
        redis.set_json = AsyncMock(side_effect=ConnectionError("down"))

        with pytest.raises(ConnectionError):
            await RedisRecordSet("k", redis_client=redis).replace([])


class TestMemoryRecordSet:
    """Тесты для MemoryRecordSet."""

    @pytest.mark.asyncio
    async def test_load_returns_copy(self) -> None:
        """Изменение загруженного набора не меняет хранимый."""
        store = MemoryRecordSet([{"id": "1"}])

        loaded = await store.load()
        loaded.append({"id": "2"})

        assert await store.load() == [{"id": "1"}]

    @pytest.mark.asyncio
    async def test_replace_counts_calls(self) -> None:
        """Каждая замена учитывается."""
        store = MemoryRecordSet()

        await store.replace([{"id": "1"}])
        await store.replace([])

        assert store.replace_calls == 2
        assert await store.load() == []


class TestBuildRecordStore:
    """Тесты для фабрики хранилищ."""

    def test_file_backend(self) -> None:
        """По умолчанию наборы хранятся в файлах DATA_DIR."""
        with patch("src.config.settings") as mock_settings:
            mock_settings.storage.STORAGE_BACKEND = "file"
            mock_settings.storage.data_path = Path("/tmp/data")
            mock_settings.storage.PUSH_SUBSCRIPTIONS_FILE = "push-subscriptions.json"
            mock_settings.storage.RETRY_QUEUE_FILE = "email-queue.json"

            push = build_record_store("push")
            queue = build_record_store("queue")

        assert isinstance(push, JsonFileRecordSet)
        assert push.path == Path("/tmp/data/push-subscriptions.json")
        assert queue.path == Path("/tmp/data/email-queue.json")

    def test_redis_backend(self) -> None:
        """При STORAGE_BACKEND=redis наборы хранятся под ключами Redis."""
        with patch("src.config.settings") as mock_settings:
            mock_settings.storage.STORAGE_BACKEND = "redis"
            mock_settings.storage.REDIS_PUSH_KEY = "push:subscriptions"
            mock_settings.storage.REDIS_QUEUE_KEY = "mail:retry_queue"

            push = build_record_store("push")
            queue = build_record_store("queue")

        assert isinstance(push, RedisRecordSet)
        assert push.key == "push:subscriptions"
        assert queue.key == "mail:retry_queue"
