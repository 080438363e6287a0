"""Domain entities exposed by the application."""

from .audit_entry import AuditEntry, AuditOutcome
from .dedup_record import Admission, DedupRecord
from .notification_event import EventType, NotificationEvent, Priority
from .outcome import DeliveryResult, SubmitOutcome
from .rate_limit import (
    EVENT_TYPE_SCOPE,
    GLOBAL_SCOPE,
    RECIPIENT_SCOPE,
    RateConsumption,
    RateDecision,
    RateRule,
    RateUsage,
)

__all__ = [
    "Admission",
    "AuditEntry",
    "AuditOutcome",
    "DedupRecord",
    "DeliveryResult",
    "EVENT_TYPE_SCOPE",
    "EventType",
    "GLOBAL_SCOPE",
    "NotificationEvent",
    "Priority",
    "RECIPIENT_SCOPE",
    "RateConsumption",
    "RateDecision",
    "RateRule",
    "RateUsage",
    "SubmitOutcome",
]
