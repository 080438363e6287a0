"""Aggregate application use cases."""

from .notifications import NotificationOrchestrator, notify_job_assigned

__all__ = [
    "NotificationOrchestrator",
    "notify_job_assigned",
]
