"""Background purge of expired dedup records and rate limit consumptions.

Correctness never depends on the reaper: expired records are ignored by the
stores. The reaper only keeps storage from growing without bound.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol

from fieldnotify.utils import now_in_app_timezone

logger = logging.getLogger(__name__)


class _Purgeable(Protocol):
    def purge_expired(self, now: datetime | None = None) -> int:
        ...


class ExpiredRecordReaper:
    """Run ``purge_expired`` on every target in a daemon thread.

    Example:
        >>> reaper = ExpiredRecordReaper([dedup_store, rate_limiter], interval_seconds=60)
        >>> reaper.start()
        >>> ...
        >>> reaper.stop()
    """

    def __init__(
        self,
        targets: list[_Purgeable],
        *,
        interval_seconds: float,
        clock: Callable[[], datetime] = now_in_app_timezone,
    ) -> None:
        self._targets = list(targets)
        self._interval = interval_seconds
        self._clock = clock
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._last_run: datetime | None = None
        self._run_count = 0
        self._error_count = 0

    def start(self) -> None:
        """Start purging in the background; no-op when already running or disabled."""

        if self.is_running:
            return
        if self._interval <= 0:
            logger.info("Expired record reaper disabled")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="fieldnotify-reaper", daemon=True
        )
        self._thread.start()
        logger.info("Expired record reaper started (every %ss)", self._interval)

    def stop(self, timeout: float = 10.0) -> None:
        if self._thread is None:
            return

        self._stop_event.set()
        self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Expired record reaper stopped")

    def run_now(self) -> int:
        """Purge immediately and return the number of removed records."""

        now = self._clock()
        removed = 0
        for target in self._targets:
            removed += target.purge_expired(now)
        self._last_run = now
        self._run_count += 1
        if removed:
            logger.info("Purged %s expired notification record(s)", removed)
        return removed

    def _run_loop(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self.run_now()
            except Exception:
                self._error_count += 1
                logger.exception("Expired record purge failed")

    def get_status(self) -> dict[str, Any]:
        return {
            "running": self.is_running,
            "interval_seconds": self._interval,
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "run_count": self._run_count,
            "error_count": self._error_count,
        }

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def run_count(self) -> int:
        return self._run_count

    @property
    def error_count(self) -> int:
        return self._error_count


__all__ = ["ExpiredRecordReaper"]
