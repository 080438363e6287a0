"""Pydantic models describing notification submissions."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from fieldnotify.domain.entities import (
    AuditOutcome,
    EventType,
    NotificationEvent,
    Priority,
    SubmitOutcome,
)
from fieldnotify.utils import ensure_app_timezone, now_in_app_timezone


class NotificationEventCreate(BaseModel):
    """Notification signal raised by a job flow."""

    job_id: str = Field(..., min_length=1)
    recipient_keys: list[str] = Field(
        default_factory=list,
        description="Recipient identifiers such as 'account:42' or 'staff:7'",
    )
    event_type: EventType
    priority: Priority = Priority.MEDIUM
    occurred_at: datetime | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    source_trigger: str = Field(default="api", min_length=1)

    def to_entity(self) -> NotificationEvent:
        occurred_at = ensure_app_timezone(self.occurred_at) or now_in_app_timezone()
        return NotificationEvent(
            job_id=self.job_id,
            recipient_keys=tuple(self.recipient_keys),
            event_type=self.event_type,
            priority=self.priority,
            occurred_at=occurred_at,
            payload=self.payload,
            source_trigger=self.source_trigger,
        )


class SubmitOutcomeRead(BaseModel):
    """Outcome of a notification submission."""

    status: AuditOutcome
    reason: str
    fingerprint: str | None = None
    recipient_id: str | None = None
    channel: str | None = None
    audit_entry_id: int | None = None
    audited: bool = True
    error_code: str | None = None
    retryable: bool = False

    @classmethod
    def from_outcome(cls, outcome: SubmitOutcome) -> "SubmitOutcomeRead":
        return cls(
            status=outcome.status,
            reason=outcome.reason,
            fingerprint=outcome.fingerprint,
            recipient_id=outcome.recipient_id,
            channel=outcome.channel,
            audit_entry_id=outcome.audit_entry.id,
            audited=outcome.audited,
            error_code=outcome.error.code if outcome.error else None,
            retryable=outcome.retryable,
        )


__all__ = ["NotificationEventCreate", "SubmitOutcomeRead"]
