"""SQLAlchemy implementations of the dedup store, rate limiter and audit log.

Every operation opens its own session. Atomicity across processes comes from
the database: dedup admission relies on the fingerprint primary key, and rate
consumption counts and inserts while holding a lock row per scope.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from fieldnotify.domain.entities import (
    Admission,
    AuditEntry,
    DedupRecord,
    Priority,
    RateConsumption,
    RateDecision,
    RateRule,
    RateUsage,
)
from fieldnotify.domain.errors import (
    AuditUnavailableError,
    DedupUnavailableError,
    RateLimiterUnavailableError,
)
from fieldnotify.infrastructure.repositories import (
    AuditLogRepository,
    DedupRecordRepository,
    RateConsumptionRepository,
)
from fieldnotify.utils import now_in_app_timezone

from .rate_window import RatePolicy, evaluate, usage

logger = logging.getLogger(__name__)

_GLOBAL_LOCK = "global"


class SqlDedupStore:
    """Dedup records stored in the ``notification_dedup_record`` table."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        clock: Callable[[], datetime] = now_in_app_timezone,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def try_admit(self, fingerprint: str, ttl_seconds: float) -> Admission:
        now = self._clock()
        record = DedupRecord(
            fingerprint=fingerprint,
            first_seen_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )
        try:
            with self._session_factory() as session:
                repository = DedupRecordRepository(session)
                try:
                    repository.delete_expired(fingerprint, now)
                    repository.insert(record)
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    return Admission.ALREADY_SEEN
        except SQLAlchemyError as exc:
            logger.exception("Dedup store query failed for fingerprint %s", fingerprint)
            raise DedupUnavailableError("Dedup store is unavailable") from exc
        return Admission.ADMITTED

    def release(self, fingerprint: str) -> bool:
        try:
            with self._session_factory() as session:
                removed = DedupRecordRepository(session).delete(fingerprint)
                session.commit()
        except SQLAlchemyError as exc:
            logger.exception("Could not release fingerprint %s", fingerprint)
            raise DedupUnavailableError("Dedup store is unavailable") from exc
        return removed > 0

    def get(self, fingerprint: str) -> DedupRecord | None:
        try:
            with self._session_factory() as session:
                return DedupRecordRepository(session).get(fingerprint)
        except SQLAlchemyError as exc:
            raise DedupUnavailableError("Dedup store is unavailable") from exc

    def purge_expired(self, now: datetime | None = None) -> int:
        try:
            with self._session_factory() as session:
                removed = DedupRecordRepository(session).purge_expired(now or self._clock())
                session.commit()
        except SQLAlchemyError as exc:
            raise DedupUnavailableError("Dedup store is unavailable") from exc
        return removed


class SqlRateLimiter:
    """Sliding logs stored in the ``notification_rate_consumption`` table.

    A consumption first bumps the ``notification_rate_lock`` row of the
    recipient (and the global row when shared rules are configured), then
    counts and inserts inside the same transaction.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        policy: RatePolicy,
        *,
        clock: Callable[[], datetime] = now_in_app_timezone,
    ) -> None:
        self._session_factory = session_factory
        self._policy = policy
        self._clock = clock

    def try_consume(
        self, recipient_id: str, priority: Priority, event_type: str
    ) -> RateDecision:
        tier = self._policy.tier_for(priority)
        if tier is None:
            return RateDecision.exempt()
        scopes = [f"recipient:{recipient_id}"]
        if self._policy.has_shared_rules:
            scopes.append(_GLOBAL_LOCK)
        try:
            self._ensure_locks(scopes)
            return self._consume(
                recipient_id, tier, event_type, self._policy.rules_for(tier, event_type), scopes
            )
        except SQLAlchemyError as exc:
            logger.exception("Rate limiter query failed for %s", recipient_id)
            raise RateLimiterUnavailableError("Rate limiter is unavailable") from exc

    def _ensure_locks(self, scopes: list[str]) -> None:
        with self._session_factory() as session:
            missing = [
                scope for scope in scopes if not RateConsumptionRepository(session).has_lock(scope)
            ]
        for scope in missing:
            with self._session_factory() as session:
                try:
                    RateConsumptionRepository(session).create_lock(scope)
                    session.commit()
                except IntegrityError:
                    session.rollback()

    def _consume(
        self,
        recipient_id: str,
        tier: str,
        event_type: str,
        rules: list[RateRule],
        scopes: list[str],
    ) -> RateDecision:
        with self._session_factory() as session:
            repository = RateConsumptionRepository(session)
            for scope in scopes:
                if not repository.lock(scope):
                    raise RateLimiterUnavailableError(f"Rate limit lock '{scope}' is missing")
            now = self._clock()
            decision = evaluate(
                rules,
                lambda rule: repository.consumed_times(rule, recipient_id, rule.window_start(now)),
                now,
            )
            if not decision.allowed:
                session.rollback()
                return decision
            repository.insert(
                RateConsumption(
                    recipient_id=recipient_id,
                    tier=tier,
                    event_type=event_type,
                    consumed_at=now,
                ),
                expires_at=now + self._policy.horizon,
            )
            session.commit()
        return decision

    def status(self, recipient_id: str) -> list[RateUsage]:
        try:
            with self._session_factory() as session:
                repository = RateConsumptionRepository(session)
                now = self._clock()
                usages = [
                    usage(
                        rule,
                        recipient_id,
                        repository.consumed_times(rule, recipient_id, rule.window_start(now)),
                    )
                    for rule in self._policy.recipient_rules()
                ]
        except SQLAlchemyError as exc:
            raise RateLimiterUnavailableError("Rate limiter is unavailable") from exc
        return sorted(
            (entry for entry in usages if entry is not None), key=lambda entry: entry.rule
        )

    def reset(self, recipient_id: str) -> int:
        try:
            with self._session_factory() as session:
                removed = RateConsumptionRepository(session).delete_for_recipient(recipient_id)
                session.commit()
        except SQLAlchemyError as exc:
            logger.exception("Could not reset the rate limit budget of %s", recipient_id)
            raise RateLimiterUnavailableError("Rate limiter is unavailable") from exc
        return removed

    def purge_expired(self, now: datetime | None = None) -> int:
        try:
            with self._session_factory() as session:
                removed = RateConsumptionRepository(session).purge_expired(now or self._clock())
                session.commit()
        except SQLAlchemyError as exc:
            raise RateLimiterUnavailableError("Rate limiter is unavailable") from exc
        return removed


class SqlAuditLog:
    """Audit entries stored in the ``notification_audit`` table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def append(self, entry: AuditEntry) -> AuditEntry:
        try:
            with self._session_factory() as session:
                return AuditLogRepository(session).append(entry)
        except SQLAlchemyError as exc:
            logger.exception(
                "Could not record %s audit entry for job %s", entry.outcome.value, entry.job_id
            )
            raise AuditUnavailableError("Audit log is unavailable") from exc

    def list(
        self,
        *,
        job_id: str | None = None,
        recipient_id: str | None = None,
        outcome: str | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        try:
            with self._session_factory() as session:
                return AuditLogRepository(session).list(
                    job_id=job_id, recipient_id=recipient_id, outcome=outcome, limit=limit
                )
        except SQLAlchemyError as exc:
            raise AuditUnavailableError("Audit log is unavailable") from exc

    def count_by_outcome(self) -> dict[str, int]:
        try:
            with self._session_factory() as session:
                return AuditLogRepository(session).count_by_outcome()
        except SQLAlchemyError as exc:
            raise AuditUnavailableError("Audit log is unavailable") from exc


__all__ = ["SqlAuditLog", "SqlDedupStore", "SqlRateLimiter"]
