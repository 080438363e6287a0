"""Tests for the SQLAlchemy dedup store, rate limiter and audit log."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from fieldnotify.config import EventTypeLimit, RateLimitTier
from fieldnotify.domain.entities import (
    Admission,
    AuditEntry,
    AuditOutcome,
    EventType,
    NotificationEvent,
    Priority,
)
from fieldnotify.domain.errors import (
    AuditUnavailableError,
    DedupUnavailableError,
    RateLimiterUnavailableError,
)
from fieldnotify.infrastructure.database import (
    build_engine,
    build_session_factory,
    initialize_database,
)
from fieldnotify.infrastructure.stores import (
    RatePolicy,
    SqlAuditLog,
    SqlDedupStore,
    SqlRateLimiter,
)
from fieldnotify.interfaces.api.dependencies import build_notification_services

from conftest import START, make_settings

PRIORITY_TIERS = {"low": "standard", "medium": "standard", "high": "standard", "urgent": None}


def _broken_session_factory():
    raise OperationalError("SELECT 1", {}, Exception("database is down"))


def test_dedup_admission_and_expiry(session_factory, clock) -> None:
    store = SqlDedupStore(session_factory, clock=clock)

    assert store.try_admit("fp-1", 300) is Admission.ADMITTED
    assert store.try_admit("fp-1", 300) is Admission.ALREADY_SEEN

    record = store.get("fp-1")
    assert record.first_seen_at == START
    assert record.expires_at == START + timedelta(seconds=300)

    clock.advance(300)
    assert store.try_admit("fp-1", 300) is Admission.ADMITTED
    assert store.get("fp-1").first_seen_at == START + timedelta(seconds=300)


def test_dedup_purge_expired(session_factory, clock) -> None:
    store = SqlDedupStore(session_factory, clock=clock)
    store.try_admit("short", 10)
    store.try_admit("long", 600)

    clock.advance(10)

    assert store.purge_expired() == 1
    assert store.get("short") is None
    assert store.get("long") is not None


def test_dedup_store_fails_closed_when_database_is_down(clock) -> None:
    store = SqlDedupStore(_broken_session_factory, clock=clock)

    with pytest.raises(DedupUnavailableError) as exc_info:
        store.try_admit("fp-1", 300)

    assert exc_info.value.retryable is True
    with pytest.raises(DedupUnavailableError):
        store.release("fp-1")
    with pytest.raises(DedupUnavailableError):
        store.purge_expired()


def test_released_fingerprint_is_admitted_again(session_factory, clock) -> None:
    store = SqlDedupStore(session_factory, clock=clock)
    store.try_admit("fp-1", 300)

    assert store.release("fp-1") is True
    assert store.get("fp-1") is None
    assert store.release("fp-1") is False
    assert store.try_admit("fp-1", 300) is Admission.ADMITTED


def _policy(small_tiers, **rules) -> RatePolicy:
    return RatePolicy(small_tiers, PRIORITY_TIERS, **rules)


def test_rate_limiter_consumes_until_limit(session_factory, clock, small_tiers) -> None:
    limiter = SqlRateLimiter(session_factory, _policy(small_tiers), clock=clock)

    decisions = [limiter.try_consume("42", Priority.MEDIUM, "assigned") for _ in range(4)]

    assert [decision.allowed for decision in decisions] == [True, True, True, False]
    assert [decision.current for decision in decisions] == [1, 2, 3, 3]
    assert decisions[3].retry_after == pytest.approx(60)
    assert limiter.try_consume("43", Priority.MEDIUM, "assigned").allowed


def test_rate_limiter_window_straddling_a_boundary(session_factory, clock, small_tiers) -> None:
    limiter = SqlRateLimiter(session_factory, _policy(small_tiers), clock=clock)
    clock.advance(59)
    for _ in range(3):
        assert limiter.try_consume("42", Priority.MEDIUM, "assigned").allowed

    clock.advance(31)
    assert not limiter.try_consume("42", Priority.MEDIUM, "assigned").allowed

    clock.advance(29)
    assert limiter.try_consume("42", Priority.MEDIUM, "assigned").allowed


def test_rate_limiter_exempt_priority(session_factory, clock, small_tiers) -> None:
    limiter = SqlRateLimiter(session_factory, _policy(small_tiers), clock=clock)

    assert all(
        limiter.try_consume("42", Priority.URGENT, "assigned").allowed for _ in range(10)
    )
    assert limiter.status("42") == []


def test_rate_limiter_recipient_cap(session_factory, clock, small_tiers) -> None:
    limiter = SqlRateLimiter(
        session_factory,
        _policy(small_tiers, recipient_caps={"day": RateLimitTier(limit=4, window_seconds=86400)}),
        clock=clock,
    )
    for _ in range(3):
        limiter.try_consume("42", Priority.MEDIUM, "assigned")

    clock.advance(3600)
    assert limiter.try_consume("42", Priority.HIGH, "assigned").allowed
    clock.advance(3600)
    denied = limiter.try_consume("42", Priority.HIGH, "assigned")

    assert denied.rule == "recipient:day"
    assert denied.retry_after == pytest.approx(86400 - 7200)


def test_rate_limiter_event_type_and_global_rules(session_factory, clock, small_tiers) -> None:
    limiter = SqlRateLimiter(
        session_factory,
        _policy(
            small_tiers,
            event_type_limits={"status_changed": EventTypeLimit(per_minute=5, burst_limit=1)},
            global_limit=RateLimitTier(limit=3, window_seconds=1),
        ),
        clock=clock,
    )

    assert limiter.try_consume("1", Priority.MEDIUM, "status_changed").allowed
    assert limiter.try_consume("2", Priority.MEDIUM, "status_changed").rule == (
        "event:status_changed:burst"
    )
    assert limiter.try_consume("2", Priority.MEDIUM, "assigned").allowed
    assert limiter.try_consume("3", Priority.MEDIUM, "assigned").allowed
    assert limiter.try_consume("4", Priority.MEDIUM, "assigned").rule == "global"


def test_rate_limiter_status_reset_and_purge(session_factory, clock, small_tiers) -> None:
    limiter = SqlRateLimiter(session_factory, _policy(small_tiers), clock=clock)
    limiter.try_consume("42", Priority.MEDIUM, "assigned")
    clock.advance(10)
    limiter.try_consume("42", Priority.MEDIUM, "assigned")
    limiter.try_consume("43", Priority.LOW, "assigned")

    [usage] = limiter.status("42")
    assert usage.rule == "standard"
    assert usage.count == 2
    assert usage.resets_at == START + timedelta(seconds=60)

    assert limiter.reset("42") == 2
    assert limiter.status("42") == []

    clock.advance(60)
    assert limiter.purge_expired() == 1
    assert limiter.status("43") == []


def test_rate_limiter_fails_closed_when_database_is_down(clock, small_tiers) -> None:
    limiter = SqlRateLimiter(_broken_session_factory, _policy(small_tiers), clock=clock)

    with pytest.raises(RateLimiterUnavailableError):
        limiter.try_consume("42", Priority.MEDIUM, "assigned")
    with pytest.raises(RateLimiterUnavailableError):
        limiter.reset("42")
    with pytest.raises(RateLimiterUnavailableError):
        limiter.purge_expired()


@pytest.fixture
def file_session_factory(tmp_path):
    """Session factory on a SQLite file so every thread gets its own connection."""

    engine = build_engine(f"sqlite:///{tmp_path / 'notifications.db'}")
    initialize_database(bind=engine)
    try:
        yield build_session_factory(engine)
    finally:
        engine.dispose()


def _race(func, workers: int = 8) -> list:
    barrier = threading.Barrier(workers)

    def _run(index: int):
        barrier.wait()
        return func(index)

    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(_run, range(workers)))


def test_concurrent_admissions_have_a_single_winner(file_session_factory, clock) -> None:
    store = SqlDedupStore(file_session_factory, clock=clock)

    results = _race(lambda _: store.try_admit("fp-race", 300))

    assert results.count(Admission.ADMITTED) == 1
    assert results.count(Admission.ALREADY_SEEN) == 7


def test_concurrent_consumers_never_exceed_the_limit(
    file_session_factory, clock, small_tiers
) -> None:
    limiter = SqlRateLimiter(file_session_factory, _policy(small_tiers), clock=clock)

    decisions = _race(lambda _: limiter.try_consume("42", Priority.MEDIUM, "assigned"))

    assert sum(decision.allowed for decision in decisions) == 3
    [usage] = limiter.status("42")
    assert usage.count == 3


def test_concurrent_recipients_share_the_global_cap(
    file_session_factory, clock, small_tiers
) -> None:
    limiter = SqlRateLimiter(
        file_session_factory,
        _policy(small_tiers, global_limit=RateLimitTier(limit=4, window_seconds=1)),
        clock=clock,
    )

    decisions = _race(
        lambda index: limiter.try_consume(f"recipient-{index}", Priority.LOW, "assigned")
    )

    assert sum(decision.allowed for decision in decisions) == 4


def test_audit_log_fails_with_taxonomy_error_when_database_is_down() -> None:
    audit_log = SqlAuditLog(_broken_session_factory)

    with pytest.raises(AuditUnavailableError):
        audit_log.append(
            AuditEntry(
                id=None,
                fingerprint=None,
                recipient_id="42",
                job_id="job-1",
                event_type="assigned",
                outcome=AuditOutcome.FAILED,
                reason="",
                timestamp=START,
            )
        )
    with pytest.raises(AuditUnavailableError):
        audit_log.count_by_outcome()


@pytest.mark.anyio
async def test_unreachable_database_fails_closed_without_raising(clock, transport) -> None:
    engine = build_engine("sqlite:////nonexistent-fieldnotify-dir/notifications.db")
    services = build_notification_services(
        make_settings(store_backend="sql"),
        session_factory=build_session_factory(engine),
        transport=transport,
        clock=clock,
    )

    outcome = await services.orchestrator.submit(
        NotificationEvent(
            job_id="job-1",
            recipient_keys=("account:42",),
            event_type=EventType.ASSIGNED,
            priority=Priority.MEDIUM,
            occurred_at=START,
            payload={},
            source_trigger="assignment",
        )
    )

    assert outcome.status is AuditOutcome.FAILED
    assert isinstance(outcome.error, DedupUnavailableError)
    assert outcome.retryable is True
    assert outcome.audited is False
    assert outcome.audit_entry.id is None
    assert transport.sent == []
    engine.dispose()


def test_audit_log_round_trip(session_factory) -> None:
    audit_log = SqlAuditLog(session_factory)
    for job_id, outcome in [
        ("job-1", AuditOutcome.DELIVERED),
        ("job-1", AuditOutcome.SUPPRESSED_RATE_LIMITED),
        ("job-2", AuditOutcome.FAILED),
    ]:
        stored = audit_log.append(
            AuditEntry(
                id=None,
                fingerprint="f" * 64,
                recipient_id="42",
                job_id=job_id,
                event_type="assigned",
                outcome=outcome,
                reason="because",
                timestamp=START,
                source_trigger="assignment",
                channel="banner",
            )
        )
        assert stored.id is not None

    entries = audit_log.list(job_id="job-1")
    assert [entry.outcome for entry in entries] == [
        AuditOutcome.SUPPRESSED_RATE_LIMITED,
        AuditOutcome.DELIVERED,
    ]
    assert entries[0].timestamp == START
    assert entries[0].source_trigger == "assignment"
    assert [entry.job_id for entry in audit_log.list(outcome="failed")] == ["job-2"]
    assert len(audit_log.list(limit=2)) == 2
    assert audit_log.count_by_outcome() == {
        "delivered": 1,
        "suppressed_rate_limited": 1,
        "failed": 1,
    }
