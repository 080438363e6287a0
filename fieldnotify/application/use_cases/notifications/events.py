"""Helpers used by job flows to emit notifications through the orchestrator.

Each helper only builds :class:`NotificationEvent` instances; deduplication,
rate limiting and delivery are left to the orchestrator so every trigger
source behaves the same way.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import anyio

from fieldnotify.domain.entities import (
    EventType,
    NotificationEvent,
    Priority,
    SubmitOutcome,
)
from fieldnotify.utils import ensure_app_timezone, now_in_app_timezone

from .orchestrator import NotificationOrchestrator


@dataclass(frozen=True)
class JobSnapshot:
    """Subset of job attributes copied into notification payloads."""

    job_id: str
    title: str
    job_type: str | None = None
    property_name: str | None = None
    property_address: str | None = None
    scheduled_for: datetime | None = None
    status: str | None = None
    previous_status: str | None = None
    priority: Priority = Priority.MEDIUM

    def summary(self) -> dict[str, Any]:
        scheduled_for = ensure_app_timezone(self.scheduled_for)
        return {
            "job_id": self.job_id,
            "title": self.title,
            "job_type": self.job_type,
            "property_name": self.property_name,
            "property_address": self.property_address,
            "scheduled_for": scheduled_for.isoformat() if scheduled_for else None,
            "status": self.status,
            "previous_status": self.previous_status,
            "deep_link": f"app://jobs/{self.job_id}",
        }


def _location_suffix(job: JobSnapshot) -> str:
    return f" at {job.property_name}" if job.property_name else ""


async def _submit_to_recipients(
    orchestrator: NotificationOrchestrator,
    *,
    job: JobSnapshot,
    recipients: Iterable[Sequence[str]],
    event_type: EventType,
    title: str,
    body: str,
    source_trigger: str,
    occurred_at: datetime | None,
    priority: Priority | None = None,
) -> list[SubmitOutcome]:
    """Submit one event per recipient concurrently and collect the outcomes."""

    timestamp = occurred_at or now_in_app_timezone()
    payload = {"title": title, "body": body, "job": job.summary()}
    events = [
        NotificationEvent(
            job_id=job.job_id,
            recipient_keys=tuple(keys),
            event_type=event_type,
            priority=priority or job.priority,
            occurred_at=timestamp,
            payload=payload,
            source_trigger=source_trigger,
        )
        for keys in recipients
    ]
    outcomes: list[SubmitOutcome | None] = [None] * len(events)

    async def _submit(index: int, event: NotificationEvent) -> None:
        outcomes[index] = await orchestrator.submit(event)

    async with anyio.create_task_group() as task_group:
        for index, event in enumerate(events):
            task_group.start_soon(_submit, index, event)

    return [outcome for outcome in outcomes if outcome is not None]


async def notify_job_assigned(
    orchestrator: NotificationOrchestrator,
    *,
    job: JobSnapshot,
    recipients: Iterable[Sequence[str]],
    source_trigger: str,
    occurred_at: datetime | None = None,
) -> list[SubmitOutcome]:
    """Tell newly assigned staff about ``job``."""

    job_type = (job.job_type or "job").replace("_", " ")
    return await _submit_to_recipients(
        orchestrator,
        job=job,
        recipients=recipients,
        event_type=EventType.ASSIGNED,
        title="New Job Assignment",
        body=f"{job.title} - {job_type}{_location_suffix(job)}",
        source_trigger=source_trigger,
        occurred_at=occurred_at,
    )


async def notify_job_rescheduled(
    orchestrator: NotificationOrchestrator,
    *,
    job: JobSnapshot,
    recipients: Iterable[Sequence[str]],
    source_trigger: str,
    occurred_at: datetime | None = None,
) -> list[SubmitOutcome]:
    """Tell assigned staff that the schedule or details of ``job`` changed."""

    scheduled_for = ensure_app_timezone(job.scheduled_for)
    when = f" to {scheduled_for:%Y-%m-%d %H:%M}" if scheduled_for else ""
    return await _submit_to_recipients(
        orchestrator,
        job=job,
        recipients=recipients,
        event_type=EventType.UPDATED,
        title="Job Rescheduled",
        body=f"{job.title}{_location_suffix(job)} was moved{when}",
        source_trigger=source_trigger,
        occurred_at=occurred_at,
    )


_STATUS_TITLES = {
    "in_progress": "Job Started",
    "completed": "Job Completed",
    "cancelled": "Job Cancelled",
}


async def notify_job_status_changed(
    orchestrator: NotificationOrchestrator,
    *,
    job: JobSnapshot,
    recipients: Iterable[Sequence[str]],
    source_trigger: str,
    occurred_at: datetime | None = None,
) -> list[SubmitOutcome]:
    """Tell supervisors and assignees that the status of ``job`` changed."""

    status = job.status or "unknown"
    if status == "completed":
        event_type = EventType.COMPLETED
    elif status == "cancelled":
        event_type = EventType.CANCELLED
    else:
        event_type = EventType.STATUS_CHANGED

    title = _STATUS_TITLES.get(status, "Job Status Updated")
    change = f"{job.previous_status} -> {status}" if job.previous_status else status
    return await _submit_to_recipients(
        orchestrator,
        job=job,
        recipients=recipients,
        event_type=event_type,
        title=title,
        body=f"{job.title}{_location_suffix(job)}: {change.replace('_', ' ')}",
        source_trigger=source_trigger,
        occurred_at=occurred_at,
    )


async def notify_job_completed(
    orchestrator: NotificationOrchestrator,
    *,
    job: JobSnapshot,
    recipients: Iterable[Sequence[str]],
    source_trigger: str,
    occurred_at: datetime | None = None,
) -> list[SubmitOutcome]:
    """Shortcut for a status change to ``completed``."""

    completed = JobSnapshot(
        job_id=job.job_id,
        title=job.title,
        job_type=job.job_type,
        property_name=job.property_name,
        property_address=job.property_address,
        scheduled_for=job.scheduled_for,
        status="completed",
        previous_status=job.status if job.status != "completed" else job.previous_status,
        priority=job.priority,
    )
    return await notify_job_status_changed(
        orchestrator,
        job=completed,
        recipients=recipients,
        source_trigger=source_trigger,
        occurred_at=occurred_at,
    )


async def notify_job_reminder(
    orchestrator: NotificationOrchestrator,
    *,
    job: JobSnapshot,
    recipients: Iterable[Sequence[str]],
    source_trigger: str,
    occurred_at: datetime | None = None,
) -> list[SubmitOutcome]:
    """Remind assigned staff about an upcoming job."""

    scheduled_for = ensure_app_timezone(job.scheduled_for)
    when = f" starts at {scheduled_for:%H:%M}" if scheduled_for else " is coming up"
    return await _submit_to_recipients(
        orchestrator,
        job=job,
        recipients=recipients,
        event_type=EventType.REMINDER,
        title="Upcoming Job",
        body=f"{job.title}{_location_suffix(job)}{when}",
        source_trigger=source_trigger,
        occurred_at=occurred_at,
    )


__all__ = [
    "JobSnapshot",
    "notify_job_assigned",
    "notify_job_completed",
    "notify_job_reminder",
    "notify_job_rescheduled",
    "notify_job_status_changed",
]
