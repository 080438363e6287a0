"""Interfaces the orchestrator depends on."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol

from fieldnotify.domain.entities import (
    Admission,
    AuditEntry,
    DedupRecord,
    Priority,
    RateDecision,
    RateUsage,
)


class DedupStore(Protocol):
    def try_admit(self, fingerprint: str, ttl_seconds: float) -> Admission:
        """Atomically admit ``fingerprint`` unless a live record exists."""

    def release(self, fingerprint: str) -> bool:
        """Forget ``fingerprint`` so the same event can be admitted again."""

    def get(self, fingerprint: str) -> DedupRecord | None:
        ...

    def purge_expired(self, now: datetime | None = None) -> int:
        ...


class RateLimiter(Protocol):
    def try_consume(
        self, recipient_id: str, priority: Priority, event_type: str
    ) -> RateDecision:
        """Atomically consume one unit of ``recipient_id``'s budget."""

    def status(self, recipient_id: str) -> Sequence[RateUsage]:
        ...

    def reset(self, recipient_id: str) -> int:
        ...

    def purge_expired(self, now: datetime | None = None) -> int:
        ...


class AuditSink(Protocol):
    def append(self, entry: AuditEntry) -> AuditEntry:
        ...

    def list(
        self,
        *,
        job_id: str | None = None,
        recipient_id: str | None = None,
        outcome: str | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        ...

    def count_by_outcome(self) -> dict[str, int]:
        ...


class DeliveryTransport(Protocol):
    async def send(
        self, recipient_id: str, channel: str, message: dict[str, Any]
    ) -> None:
        """Deliver ``message``; raise to signal a failed delivery."""


__all__ = ["AuditSink", "DedupStore", "DeliveryTransport", "RateLimiter"]
