# src/worker/__init__.py
"""
Фоновые воркеры для обработки событий из RabbitMQ.
"""

from src.worker.base import BaseWorker
from src.worker.notifications import BookingNotificationWorker

__all__ = ["BaseWorker", "BookingNotificationWorker"]
