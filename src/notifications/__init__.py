# src/notifications/__init__.py
"""
Рассылка событий бронирования.

Каналы:
- live_registry: SSE соединения открытых вкладок (операторы и клиенты)
- subscriptions: Web Push подписки и рассылка по ним
- retry_queue: очередь повторной отправки писем
- orchestrator: единая точка входа, запускающая все каналы параллельно
"""

__all__: list[str] = []
