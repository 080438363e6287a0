"""Schemas for audit log endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from fieldnotify.domain.entities import AuditOutcome


class AuditEntryRead(BaseModel):
    """Representation of a notification audit entry returned by the API."""

    id: int
    fingerprint: str | None
    recipient_id: str | None
    job_id: str
    event_type: str
    outcome: AuditOutcome
    reason: str
    timestamp: datetime
    source_trigger: str | None = None
    channel: str | None = None

    model_config = ConfigDict(from_attributes=True)


__all__ = ["AuditEntryRead"]
