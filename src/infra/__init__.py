# src/infra/__init__.py
"""
Инфраструктурный слой.
Работа с внешними сервисами (Redis, RabbitMQ) и персистентность наборов записей.
"""

from src.infra.redis_client import RedisClient, get_redis
from src.infra.event_bus import DomainEvent, EventBus, EventTypes, get_event_bus
from src.infra.record_store import (
    JsonFileRecordSet,
    MemoryRecordSet,
    RecordSetStore,
    RedisRecordSet,
    build_record_store,
)

__all__ = [
    "RedisClient",
    "get_redis",
    "DomainEvent",
    "EventBus",
    "EventTypes",
    "get_event_bus",
    "JsonFileRecordSet",
    "MemoryRecordSet",
    "RecordSetStore",
    "RedisRecordSet",
    "build_record_store",
]
