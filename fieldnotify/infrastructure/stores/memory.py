"""In-process implementations of the dedup store, rate limiter and audit log.

They are safe for concurrent use by threads of a single process. Deployments
with several processes must use the SQL implementations instead.
"""

from __future__ import annotations

import itertools
import threading
from collections import deque
from collections.abc import Callable
from contextlib import ExitStack
from dataclasses import replace
from datetime import datetime, timedelta

from fieldnotify.domain.entities import (
    Admission,
    AuditEntry,
    DedupRecord,
    Priority,
    RateConsumption,
    RateDecision,
    RateUsage,
)
from fieldnotify.utils import now_in_app_timezone

from .locks import KeyedLock
from .rate_window import RatePolicy, evaluate, times_in_window, usage

_SHARED_KEY = ("shared",)


class InMemoryDedupStore:
    """Dedup records kept in a dictionary guarded by per-fingerprint locks."""

    def __init__(self, *, clock: Callable[[], datetime] = now_in_app_timezone) -> None:
        self._clock = clock
        self._records: dict[str, DedupRecord] = {}
        self._locks = KeyedLock()

    def try_admit(self, fingerprint: str, ttl_seconds: float) -> Admission:
        with self._locks.hold(fingerprint):
            now = self._clock()
            existing = self._records.get(fingerprint)
            if existing is not None and not existing.is_expired(now):
                return Admission.ALREADY_SEEN
            self._records[fingerprint] = DedupRecord(
                fingerprint=fingerprint,
                first_seen_at=now,
                expires_at=now + timedelta(seconds=ttl_seconds),
            )
            return Admission.ADMITTED

    def release(self, fingerprint: str) -> bool:
        with self._locks.hold(fingerprint):
            return self._records.pop(fingerprint, None) is not None

    def get(self, fingerprint: str) -> DedupRecord | None:
        return self._records.get(fingerprint)

    def purge_expired(self, now: datetime | None = None) -> int:
        now = now or self._clock()
        removed = 0
        for fingerprint, record in list(self._records.items()):
            if not record.is_expired(now):
                continue
            with self._locks.hold(fingerprint):
                current = self._records.get(fingerprint)
                if current is not None and current.is_expired(now):
                    del self._records[fingerprint]
                    removed += 1
        return removed

    def __len__(self) -> int:
        return len(self._records)


class InMemoryRateLimiter:
    """Sliding logs of consumption times, one per recipient.

    When event type or global rules are configured every consumption is also
    appended to a shared log, and consumers hold the shared lock after their
    recipient lock.
    """

    def __init__(
        self,
        policy: RatePolicy,
        *,
        clock: Callable[[], datetime] = now_in_app_timezone,
    ) -> None:
        self._policy = policy
        self._clock = clock
        self._by_recipient: dict[str, deque[RateConsumption]] = {}
        self._shared: deque[RateConsumption] = deque()
        self._locks = KeyedLock()

    def _hold(self, recipient_id: str) -> ExitStack:
        stack = ExitStack()
        stack.enter_context(self._locks.hold(("recipient", recipient_id)))
        if self._policy.has_shared_rules:
            stack.enter_context(self._locks.hold(_SHARED_KEY))
        return stack

    def try_consume(
        self, recipient_id: str, priority: Priority, event_type: str
    ) -> RateDecision:
        tier = self._policy.tier_for(priority)
        if tier is None:
            return RateDecision.exempt()
        rules = self._policy.rules_for(tier, event_type)

        with self._hold(recipient_id):
            now = self._clock()
            own = self._by_recipient.setdefault(recipient_id, deque())
            _drop_expired(own, now - self._policy.recipient_horizon)
            _drop_expired(self._shared, now - self._policy.shared_horizon)

            decision = evaluate(
                rules,
                lambda rule: times_in_window(
                    rule, self._shared if rule.shared else own, recipient_id, now
                ),
                now,
            )
            if decision.allowed:
                consumption = RateConsumption(
                    recipient_id=recipient_id,
                    tier=tier,
                    event_type=event_type,
                    consumed_at=now,
                )
                own.append(consumption)
                if self._policy.has_shared_rules:
                    self._shared.append(consumption)
            return decision

    def status(self, recipient_id: str) -> list[RateUsage]:
        with self._locks.hold(("recipient", recipient_id)):
            now = self._clock()
            own = list(self._by_recipient.get(recipient_id, ()))
        usages = [
            usage(rule, recipient_id, times_in_window(rule, own, recipient_id, now))
            for rule in self._policy.recipient_rules()
        ]
        return sorted(
            (entry for entry in usages if entry is not None), key=lambda entry: entry.rule
        )

    def reset(self, recipient_id: str) -> int:
        with self._hold(recipient_id):
            removed = len(self._by_recipient.pop(recipient_id, ()))
            if self._shared:
                self._shared = deque(
                    consumption
                    for consumption in self._shared
                    if consumption.recipient_id != recipient_id
                )
        return removed

    def purge_expired(self, now: datetime | None = None) -> int:
        now = now or self._clock()
        removed = 0
        for recipient_id in list(self._by_recipient):
            with self._locks.hold(("recipient", recipient_id)):
                own = self._by_recipient.get(recipient_id)
                if own is None:
                    continue
                removed += _drop_expired(own, now - self._policy.recipient_horizon)
                if not own:
                    del self._by_recipient[recipient_id]
        with self._locks.hold(_SHARED_KEY):
            _drop_expired(self._shared, now - self._policy.shared_horizon)
        return removed


def _drop_expired(log: deque[RateConsumption], cutoff: datetime) -> int:
    dropped = 0
    while log and log[0].consumed_at <= cutoff:
        log.popleft()
        dropped += 1
    return dropped


class InMemoryAuditLog:
    """Append-only list of audit entries."""

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def append(self, entry: AuditEntry) -> AuditEntry:
        with self._lock:
            stored = replace(entry, id=next(self._ids))
            self._entries.append(stored)
        return stored

    def list(
        self,
        *,
        job_id: str | None = None,
        recipient_id: str | None = None,
        outcome: str | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        with self._lock:
            entries = list(reversed(self._entries))
        if job_id is not None:
            entries = [entry for entry in entries if entry.job_id == job_id]
        if recipient_id is not None:
            entries = [entry for entry in entries if entry.recipient_id == recipient_id]
        if outcome is not None:
            entries = [entry for entry in entries if entry.outcome.value == outcome]
        if limit is not None:
            entries = entries[:limit]
        return entries

    def count_by_outcome(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        with self._lock:
            for entry in self._entries:
                counts[entry.outcome.value] = counts.get(entry.outcome.value, 0) + 1
        return counts

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["InMemoryAuditLog", "InMemoryDedupStore", "InMemoryRateLimiter"]
