# src/shared/models/__init__.py
"""
Общие Pydantic-модели сервиса уведомлений.
"""

from src.shared.models.common import AcceptedResponse, HealthStatus, StatsResponse
from src.shared.models.notifications import (
    BookingSnapshot,
    MailAttempt,
    MailMessage,
    PushSubscriptionInfo,
    PushSubscriptionKeys,
    PushSubscriptionRecord,
    RetryQueueItem,
    mask_address,
    utc_now,
)

__all__ = [
    "AcceptedResponse",
    "HealthStatus",
    "StatsResponse",
    "BookingSnapshot",
    "MailAttempt",
    "MailMessage",
    "PushSubscriptionInfo",
    "PushSubscriptionKeys",
    "PushSubscriptionRecord",
    "RetryQueueItem",
    "mask_address",
    "utc_now",
]
