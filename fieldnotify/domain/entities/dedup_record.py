"""Domain entity tracking an admitted notification fingerprint."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Admission(str, Enum):
    """Answer of the dedup store for a fingerprint."""

    ADMITTED = "admitted"
    ALREADY_SEEN = "already_seen"


@dataclass(frozen=True)
class DedupRecord:
    """Marker that a fingerprint was admitted until ``expires_at``."""

    fingerprint: str
    first_seen_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


__all__ = ["Admission", "DedupRecord"]
