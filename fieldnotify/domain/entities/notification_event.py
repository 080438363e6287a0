"""Domain entity describing a job change that may notify a staff member."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Sequence


class EventType(str, Enum):
    """Kinds of job changes that notify staff."""

    ASSIGNED = "assigned"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    REMINDER = "reminder"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Priority(str, Enum):
    """Urgency of a notification, from silent to blocking."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


@dataclass(frozen=True)
class NotificationEvent:
    """Single notification request handed to the orchestrator."""

    job_id: str
    recipient_keys: Sequence[str]
    event_type: EventType
    priority: Priority
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)
    source_trigger: str = "unknown"

    def __post_init__(self) -> None:
        if not self.job_id or not self.job_id.strip():
            raise ValueError("job_id must be a non-empty string")
        object.__setattr__(self, "event_type", EventType(self.event_type))
        object.__setattr__(self, "priority", Priority(self.priority))
        object.__setattr__(self, "recipient_keys", tuple(self.recipient_keys))


__all__ = ["EventType", "NotificationEvent", "Priority"]
