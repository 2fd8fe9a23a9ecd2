# src/shared/models/common.py
"""
Общие модели ответов сервиса.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""

    service: str
    status: str = "healthy"  # healthy, degraded, unhealthy
    version: str | None = None
    uptime_seconds: float | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
    # dependencies: {"redis": "healthy", "rabbitmq": "disabled", "smtp": "configured"}


class AcceptedResponse(BaseModel):
    """Ответ на событие, принятое к асинхронной обработке."""

    status: str = "accepted"
    booking_id: str
    event: str


class StatsResponse(BaseModel):
    """Счётчики подсистемы уведомлений."""

    stream: dict[str, Any] = Field(default_factory=dict)
    push: dict[str, Any] = Field(default_factory=dict)
    retry_queue: dict[str, Any] = Field(default_factory=dict)
    fan_out: dict[str, Any] = Field(default_factory=dict)
