"""Domain entity representing one audited notification outcome."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class AuditOutcome(str, Enum):
    """Terminal outcome of a submitted notification event."""

    DELIVERED = "delivered"
    SUPPRESSED_DUPLICATE = "suppressed_duplicate"
    SUPPRESSED_RATE_LIMITED = "suppressed_rate_limited"
    FAILED = "failed"


@dataclass(frozen=True)
class AuditEntry:
    """Append-only record of what happened to a submitted event."""

    id: int | None
    fingerprint: str | None
    recipient_id: str | None
    job_id: str
    event_type: str
    outcome: AuditOutcome
    reason: str
    timestamp: datetime
    source_trigger: str | None = None
    channel: str | None = None


__all__ = ["AuditEntry", "AuditOutcome"]
