"""Persistence helpers for dedup records.

Methods only flush; the caller owns the transaction so that clearing an
expired record and inserting its replacement commit together.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from fieldnotify.domain.entities import DedupRecord
from fieldnotify.infrastructure.models import DedupRecordModel
from fieldnotify.utils import to_storage_datetime, ensure_app_timezone


class DedupRecordRepository:
    """Provide the queries used by the SQL dedup store."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, fingerprint: str) -> DedupRecord | None:
        model = self.session.get(DedupRecordModel, fingerprint)
        if model is None:
            return None
        return self._to_entity(model)

    def delete_expired(self, fingerprint: str, now: datetime) -> int:
        """Remove the record for ``fingerprint`` if it has expired."""

        return (
            self.session.query(DedupRecordModel)
            .filter(
                DedupRecordModel.fingerprint == fingerprint,
                DedupRecordModel.expires_at <= to_storage_datetime(now),
            )
            .delete(synchronize_session=False)
        )

    def insert(self, record: DedupRecord) -> None:
        """Insert ``record``; raises ``IntegrityError`` when the fingerprint is live."""

        model = DedupRecordModel(
            fingerprint=record.fingerprint,
            first_seen_at=to_storage_datetime(record.first_seen_at),
            expires_at=to_storage_datetime(record.expires_at),
        )
        self.session.add(model)
        self.session.flush()

    def delete(self, fingerprint: str) -> int:
        return (
            self.session.query(DedupRecordModel)
            .filter(DedupRecordModel.fingerprint == fingerprint)
            .delete(synchronize_session=False)
        )

    def purge_expired(self, now: datetime) -> int:
        return (
            self.session.query(DedupRecordModel)
            .filter(DedupRecordModel.expires_at <= to_storage_datetime(now))
            .delete(synchronize_session=False)
        )

    @staticmethod
    def _to_entity(model: DedupRecordModel) -> DedupRecord:
        return DedupRecord(
            fingerprint=model.fingerprint,
            first_seen_at=ensure_app_timezone(model.first_seen_at),
            expires_at=ensure_app_timezone(model.expires_at),
        )


__all__ = ["DedupRecordRepository"]
