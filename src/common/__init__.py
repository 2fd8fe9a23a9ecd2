# src/common/__init__.py
"""
Общие утилиты, константы, исключения и логгер.
"""

from src.common.logger import get_logger, log_info, log_error, log_warning, log_debug, setup_logging
from src.common.constants import TypeMsg, SubscriberRole, BookingEventKind, StreamEvent, PushResult
from src.common.exceptions import (
    DeliveryError,
    TransientDeliveryError,
    PermanentInvalidTarget,
    ConfigurationMissing,
)

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "log_debug",
    "setup_logging",
    "TypeMsg",
    "SubscriberRole",
    "BookingEventKind",
    "StreamEvent",
    "PushResult",
    "DeliveryError",
    "TransientDeliveryError",
    "PermanentInvalidTarget",
    "ConfigurationMissing",
]
