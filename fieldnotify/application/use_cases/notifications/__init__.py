"""Public helpers for deduplicated job notifications."""

from .dispatcher import DeliveryDispatcher
from .events import (
    JobSnapshot,
    notify_job_assigned,
    notify_job_completed,
    notify_job_reminder,
    notify_job_rescheduled,
    notify_job_status_changed,
)
from .fingerprint import build_fingerprint, window_bucket
from .identity import recipient_key, resolve_recipient
from .orchestrator import NotificationOrchestrator

__all__ = [
    "DeliveryDispatcher",
    "JobSnapshot",
    "NotificationOrchestrator",
    "build_fingerprint",
    "notify_job_assigned",
    "notify_job_completed",
    "notify_job_reminder",
    "notify_job_rescheduled",
    "notify_job_status_changed",
    "recipient_key",
    "resolve_recipient",
    "window_bucket",
]
