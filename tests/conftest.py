"""Shared fixtures for the notification tests."""

from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import anyio
import pytest

# Ensure the project root (which contains the ``fieldnotify`` package) is importable
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("APP_TIMEZONE", "UTC")

from fieldnotify.config import RateLimitTier, Settings  # noqa: E402

# Multiple of every window used in the tests so each test starts on a boundary.
START = datetime.fromtimestamp(1_800_000_000, tz=timezone.utc)


class FakeClock:
    """Manually advanced clock used by the stores and the orchestrator."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class RecordingTransport:
    """Transport that records every message it is asked to send."""

    def __init__(self, *, error: Exception | None = None, delay: float = 0.0) -> None:
        self.sent: list[tuple[str, str, dict[str, Any]]] = []
        self.error = error
        self.delay = delay

    async def send(self, recipient_id: str, channel: str, message: dict[str, Any]) -> None:
        if self.delay:
            await anyio.sleep(self.delay)
        self.sent.append((recipient_id, channel, message))
        if self.error is not None:
            raise self.error


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "store_backend": "memory",
        "delivery_transport": "log",
        "reaper_interval_seconds": 0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def small_tiers() -> dict[str, RateLimitTier]:
    return {
        "standard": RateLimitTier(limit=3, window_seconds=60),
        "urgent": RateLimitTier(limit=5, window_seconds=60),
    }


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""

    from fieldnotify.infrastructure.database import (
        build_engine,
        build_session_factory,
        initialize_database,
    )

    engine = build_engine("sqlite://")
    initialize_database(bind=engine)
    try:
        yield build_session_factory(engine)
    finally:
        engine.dispose()
