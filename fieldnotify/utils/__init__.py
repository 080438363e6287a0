"""Utility helpers for reusable functionality."""

from .datetime import (
    ensure_app_timezone,
    now_in_app_timezone,
    to_epoch_seconds,
    to_storage_datetime,
)

__all__ = [
    "ensure_app_timezone",
    "now_in_app_timezone",
    "to_epoch_seconds",
    "to_storage_datetime",
]
