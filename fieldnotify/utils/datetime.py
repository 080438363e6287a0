"""Conversions between event, domain and storage timestamps.

The domain always works with aware datetimes. Naive values coming from
callers are read as app time, and the database stores naive app time so that
every backend compares timestamps the same way.
"""

from __future__ import annotations

from datetime import datetime, tzinfo
from functools import lru_cache

from zoneinfo import ZoneInfo

from fieldnotify.config import get_settings


@lru_cache(maxsize=1)
def _app_timezone() -> tzinfo:
    # ``Settings`` rejects zone names ZoneInfo cannot load.
    return ZoneInfo(get_settings().app_timezone)


def now_in_app_timezone() -> datetime:
    """Return the current time localized to the configured timezone."""

    return datetime.now(tz=_app_timezone())


def ensure_app_timezone(value: datetime | None) -> datetime | None:
    """Express ``value`` in the app timezone, attaching it to naive values."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=_app_timezone())
    return value.astimezone(_app_timezone())


def to_storage_datetime(value: datetime) -> datetime:
    """Return ``value`` as naive app time for a ``DateTime`` column."""

    return value.astimezone(_app_timezone()).replace(tzinfo=None) if value.tzinfo else value


def to_epoch_seconds(value: datetime) -> float:
    """Return the POSIX timestamp of ``value``, treating naive values as app time."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=_app_timezone())
    return value.timestamp()
