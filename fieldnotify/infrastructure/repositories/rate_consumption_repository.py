"""Persistence helpers for rate limit consumptions.

Methods only flush; the SQL rate limiter owns the transaction.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from fieldnotify.domain.entities import (
    EVENT_TYPE_SCOPE,
    RECIPIENT_SCOPE,
    RateConsumption,
    RateRule,
)
from fieldnotify.infrastructure.models import RateConsumptionModel, RateLockModel
from fieldnotify.utils import ensure_app_timezone, to_storage_datetime


class RateConsumptionRepository:
    """Provide the queries used by the SQL rate limiter."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def has_lock(self, scope: str) -> bool:
        return self.session.get(RateLockModel, scope) is not None

    def create_lock(self, scope: str) -> None:
        """Insert the lock row for ``scope``; raises ``IntegrityError`` if it exists."""

        self.session.add(RateLockModel(scope=scope, version=0))
        self.session.flush()

    def lock(self, scope: str) -> bool:
        """Take the write lock on ``scope`` until the transaction ends.

        Bumping the row's version makes every database hold a row or table
        lock, so concurrent consumers of the same scope count and insert one
        at a time.
        """

        statement = (
            update(RateLockModel)
            .where(RateLockModel.scope == scope)
            .values(version=RateLockModel.version + 1)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(statement).rowcount == 1

    def consumed_times(
        self, rule: RateRule, recipient_id: str, since: datetime
    ) -> list[datetime]:
        """Consumption times after ``since`` counted by ``rule``, oldest first."""

        query = self.session.query(RateConsumptionModel.consumed_at).filter(
            RateConsumptionModel.consumed_at > to_storage_datetime(since)
        )
        if rule.scope == RECIPIENT_SCOPE:
            query = query.filter(RateConsumptionModel.recipient_id == recipient_id)
            if rule.tier is not None:
                query = query.filter(RateConsumptionModel.tier == rule.tier)
        elif rule.scope == EVENT_TYPE_SCOPE:
            query = query.filter(RateConsumptionModel.event_type == rule.event_type)
        rows = query.order_by(RateConsumptionModel.consumed_at).all()
        return [ensure_app_timezone(consumed_at) for (consumed_at,) in rows]

    def insert(self, consumption: RateConsumption, expires_at: datetime) -> None:
        self.session.add(
            RateConsumptionModel(
                recipient_id=consumption.recipient_id,
                tier=consumption.tier,
                event_type=consumption.event_type,
                consumed_at=to_storage_datetime(consumption.consumed_at),
                expires_at=to_storage_datetime(expires_at),
            )
        )
        self.session.flush()

    def delete_for_recipient(self, recipient_id: str) -> int:
        return (
            self.session.query(RateConsumptionModel)
            .filter(RateConsumptionModel.recipient_id == recipient_id)
            .delete(synchronize_session=False)
        )

    def purge_expired(self, now: datetime) -> int:
        return (
            self.session.query(RateConsumptionModel)
            .filter(RateConsumptionModel.expires_at <= to_storage_datetime(now))
            .delete(synchronize_session=False)
        )


__all__ = ["RateConsumptionRepository"]
