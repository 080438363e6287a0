"""SQLAlchemy model for admitted notification fingerprints."""

from sqlalchemy import Column, DateTime, String

from fieldnotify.infrastructure.database import Base


class DedupRecordModel(Base):
    """One row per live fingerprint; the primary key arbitrates admission."""

    __tablename__ = "notification_dedup_record"

    fingerprint = Column(String(64), primary_key=True)
    first_seen_at = Column(DateTime(), nullable=False)
    expires_at = Column(DateTime(), nullable=False, index=True)


__all__ = ["DedupRecordModel"]
