"""SQLAlchemy models for the rate limiter's sliding logs."""

from sqlalchemy import Column, DateTime, Index, Integer, String

from fieldnotify.infrastructure.database import Base


class RateConsumptionModel(Base):
    """One row per notification that consumed budget."""

    __tablename__ = "notification_rate_consumption"
    __table_args__ = (
        Index("ix_notification_rate_consumption_recipient", "recipient_id", "consumed_at"),
        Index("ix_notification_rate_consumption_event_type", "event_type", "consumed_at"),
    )

    id = Column(Integer, primary_key=True)
    recipient_id = Column(String(255), nullable=False)
    tier = Column(String(50), nullable=False)
    event_type = Column(String(50), nullable=False)
    consumed_at = Column(DateTime(), nullable=False, index=True)
    expires_at = Column(DateTime(), nullable=False, index=True)


class RateLockModel(Base):
    """Row updated first in every consumption to serialize writers of a scope."""

    __tablename__ = "notification_rate_lock"

    scope = Column(String(300), primary_key=True)
    version = Column(Integer, nullable=False, default=0)


__all__ = ["RateConsumptionModel", "RateLockModel"]
