"""Delivery helpers for the infrastructure layer."""

from .manager import NotificationConnectionManager, notification_manager
from .transports import (
    EmailTransport,
    LoggingTransport,
    RealtimeTransport,
    TransportError,
)

__all__ = [
    "EmailTransport",
    "LoggingTransport",
    "NotificationConnectionManager",
    "RealtimeTransport",
    "TransportError",
    "notification_manager",
]
