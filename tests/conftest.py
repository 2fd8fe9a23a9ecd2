# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("STORAGE_BACKEND", "file")
os.environ.setdefault("USE_EVENT_BUS", "false")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("VAPID_PRIVATE_KEY", "")
os.environ.setdefault("SMTP_PASS", "")
os.environ.setdefault("ADMIN_TOKEN", "test_admin_token")

from src.infra.record_store import MemoryRecordSet  # noqa: E402
from src.shared.models.notifications import BookingSnapshot, PushSubscriptionInfo  # noqa: E402


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


# =============================================================================
# ВРЕМЯ
# =============================================================================

class FakeClock:
    """Управляемые часы для очереди повторов и хранилища подписок."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    """Часы, остановленные на фиксированном моменте."""
    return FakeClock(datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc))


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def push_records() -> MemoryRecordSet:
    """Набор push-подписок в памяти."""
    return MemoryRecordSet(name="push")


@pytest.fixture
def queue_records() -> MemoryRecordSet:
    """Набор элементов очереди повторов в памяти."""
    return MemoryRecordSet(name="queue")


@pytest.fixture
def mock_push_client() -> MagicMock:
    """Мок клиента Web Push."""
    client = MagicMock()
    client.is_configured = True
    client.send = AsyncMock(return_value=None)
    return client


@pytest.fixture
def mock_mail_client() -> MagicMock:
    """Мок SMTP клиента."""
    client = MagicMock()
    client.is_configured = True
    client.send = AsyncMock(return_value="<test@ride-notify.local>")
    client.diagnostics = MagicMock(return_value={"configured": True, "host": "smtp.test"})
    client.last_attempt_diagnostics = MagicMock(return_value=None)
    return client


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок шины событий."""
    event_bus = AsyncMock()
    event_bus.subscribe = AsyncMock(return_value=None)
    event_bus.is_connected = True
    return event_bus


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

@pytest.fixture
def sample_booking_data() -> dict[str, Any]:
    """Пример снимка бронирования в том виде, как его присылает сервис бронирований."""
    return {
        "_id": "b-1001",
        "name": "Anna Smith",
        "email": "Anna.Smith@example.com",
        "phone": "+15550001111",
        "pickup": "Airport T1",
        "destination": "Central Station",
        "estimatedPrice": 42.5,
        "date": "2025-03-02",
        "time": "09:30",
        "status": "pending",
    }


@pytest.fixture
def sample_booking(sample_booking_data: dict[str, Any]) -> BookingSnapshot:
    """Снимок бронирования."""
    return BookingSnapshot.model_validate(sample_booking_data)


def make_subscription(endpoint: str = "https://push.example.com/sub/1") -> PushSubscriptionInfo:
    """Подписка браузера с фиктивными ключами."""
    return PushSubscriptionInfo(
        endpoint=endpoint,
        keys={"p256dh": "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA_0QTpQtUbVlUls0VJXg7A8u-Ts1XbjhazAkj7I99e8QcYP7DkM", "auth": "tBHItJI5svbpez7KI4CCXg"},
    )


@pytest.fixture
def subscription_factory():
    """Фабрика подписок браузера."""
    return make_subscription
