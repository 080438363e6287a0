"""SQLAlchemy model for notification audit records."""

from sqlalchemy import Column, DateTime, Index, Integer, String, Text

from fieldnotify.infrastructure.database import Base

class AuditEntryModel(Base):
    """Database representation of audited notification outcomes."""

    __tablename__ = "notification_audit"
    __table_args__ = (
        Index("ix_notification_audit_job_recipient", "job_id", "recipient_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    fingerprint = Column(String(64), nullable=True, index=True)
    recipient_id = Column(String(255), nullable=True)
    job_id = Column(String(255), nullable=False)
    event_type = Column(String(50), nullable=False)
    outcome = Column(String(40), nullable=False, index=True)
    reason = Column(Text, nullable=False, default="")
    source_trigger = Column(String(120), nullable=True)
    channel = Column(String(50), nullable=True)
    timestamp = Column(DateTime(), nullable=False)


__all__ = ["AuditEntryModel"]
