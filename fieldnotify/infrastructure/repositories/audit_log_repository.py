"""Persistence layer for notification audit records."""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from fieldnotify.domain.entities import AuditEntry, AuditOutcome
from fieldnotify.infrastructure.models import AuditEntryModel
from fieldnotify.utils import ensure_app_timezone, to_storage_datetime


class AuditLogRepository:
    """Append and query :class:`AuditEntry` records.

    Entries are never updated or deleted through this repository.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def append(self, entry: AuditEntry) -> AuditEntry:
        model = AuditEntryModel()
        self._apply_entity_to_model(model, entry)
        self.session.add(model)
        self.session.commit()
        self.session.refresh(model)
        return self._to_entity(model)

    def list(
        self,
        *,
        job_id: str | None = None,
        recipient_id: str | None = None,
        outcome: str | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        """Return audit entries, newest first, optionally filtered."""

        query = self.session.query(AuditEntryModel)
        if job_id is not None:
            query = query.filter(AuditEntryModel.job_id == job_id)
        if recipient_id is not None:
            query = query.filter(AuditEntryModel.recipient_id == recipient_id)
        if outcome is not None:
            query = query.filter(AuditEntryModel.outcome == outcome)
        query = query.order_by(AuditEntryModel.id.desc())
        if limit is not None:
            query = query.limit(limit)

        models: Iterable[AuditEntryModel] = query.all()
        return [self._to_entity(model) for model in models]

    def count_by_outcome(self) -> dict[str, int]:
        rows = (
            self.session.query(AuditEntryModel.outcome, func.count(AuditEntryModel.id))
            .group_by(AuditEntryModel.outcome)
            .all()
        )
        return {outcome: count for outcome, count in rows}

    @staticmethod
    def _to_entity(model: AuditEntryModel) -> AuditEntry:
        return AuditEntry(
            id=model.id,
            fingerprint=model.fingerprint,
            recipient_id=model.recipient_id,
            job_id=model.job_id,
            event_type=model.event_type,
            outcome=AuditOutcome(model.outcome),
            reason=model.reason or "",
            timestamp=ensure_app_timezone(model.timestamp),
            source_trigger=model.source_trigger,
            channel=model.channel,
        )

    @staticmethod
    def _apply_entity_to_model(model: AuditEntryModel, entry: AuditEntry) -> None:
        model.fingerprint = entry.fingerprint
        model.recipient_id = entry.recipient_id
        model.job_id = entry.job_id
        model.event_type = entry.event_type
        model.outcome = AuditOutcome(entry.outcome).value
        model.reason = entry.reason
        model.source_trigger = entry.source_trigger
        model.channel = entry.channel
        model.timestamp = to_storage_datetime(entry.timestamp)


__all__ = ["AuditLogRepository"]
