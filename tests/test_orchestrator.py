"""End to end tests of the notification pipeline on in-memory stores."""

from __future__ import annotations

import time
from datetime import timedelta

import anyio
import pytest

from fieldnotify.domain.entities import (
    Admission,
    AuditOutcome,
    EventType,
    NotificationEvent,
    Priority,
)
from fieldnotify.domain.errors import (
    AuditUnavailableError,
    DedupUnavailableError,
    DeliveryFailedError,
    InvalidRecipientError,
    RateLimiterUnavailableError,
)
from fieldnotify.interfaces.api.dependencies import build_notification_services

from conftest import START, RecordingTransport, make_settings

pytestmark = pytest.mark.anyio


def _event(
    job_id: str = "job-1",
    keys: tuple[str, ...] = ("account:42",),
    *,
    event_type: EventType = EventType.ASSIGNED,
    priority: Priority = Priority.MEDIUM,
    seconds: float = 0,
    source_trigger: str = "assignment",
) -> NotificationEvent:
    return NotificationEvent(
        job_id=job_id,
        recipient_keys=keys,
        event_type=event_type,
        priority=priority,
        occurred_at=START + timedelta(seconds=seconds),
        payload={"title": "New Job Assignment"},
        source_trigger=source_trigger,
    )


def _services(clock, transport, **overrides):
    return build_notification_services(
        make_settings(**overrides), transport=transport, clock=clock
    )


async def test_first_assignment_is_delivered(clock, transport) -> None:
    services = _services(clock, transport)

    outcome = await services.orchestrator.submit(_event())

    assert outcome.status is AuditOutcome.DELIVERED
    assert outcome.delivered
    assert outcome.recipient_id == "42"
    assert outcome.channel == "banner"
    assert outcome.audit_entry.outcome is AuditOutcome.DELIVERED
    assert outcome.audit_entry.fingerprint == outcome.fingerprint
    assert outcome.audit_entry.source_trigger == "assignment"
    assert [sent[0] for sent in transport.sent] == ["42"]


async def test_same_change_from_two_triggers_is_delivered_once(clock, transport) -> None:
    services = _services(clock, transport)

    first = await services.orchestrator.submit(_event(keys=("account:42", "staff:7")))
    second = await services.orchestrator.submit(
        _event(keys=("staff:7", "account:42"), seconds=90, source_trigger="listener")
    )

    assert first.status is AuditOutcome.DELIVERED
    assert second.status is AuditOutcome.SUPPRESSED_DUPLICATE
    assert second.fingerprint == first.fingerprint
    assert second.error is None
    assert len(transport.sent) == 1
    assert [entry.outcome for entry in services.audit_log.list()] == [
        AuditOutcome.SUPPRESSED_DUPLICATE,
        AuditOutcome.DELIVERED,
    ]


async def test_duplicates_do_not_consume_rate_budget(clock, transport) -> None:
    services = _services(clock, transport)

    for _ in range(5):
        await services.orchestrator.submit(_event())

    usage = {entry.rule: entry.count for entry in services.rate_limiter.status("42")}
    assert usage == {"standard": 1, "recipient:hour": 1, "recipient:day": 1}


async def test_budget_exhaustion_throttles_distinct_jobs(clock, transport, small_tiers) -> None:
    services = _services(clock, transport, rate_limit_tiers=small_tiers)

    outcomes = [await services.orchestrator.submit(_event(f"job-{n}")) for n in range(4)]

    assert [outcome.status for outcome in outcomes] == [
        AuditOutcome.DELIVERED,
        AuditOutcome.DELIVERED,
        AuditOutcome.DELIVERED,
        AuditOutcome.SUPPRESSED_RATE_LIMITED,
    ]
    assert outcomes[-1].reason == "Budget of 3 exhausted for rule 'standard'"
    assert len(transport.sent) == 3


async def test_urgent_events_use_their_own_budget(clock, transport, small_tiers) -> None:
    services = _services(clock, transport, rate_limit_tiers=small_tiers)
    for n in range(3):
        await services.orchestrator.submit(_event(f"job-{n}"))

    outcome = await services.orchestrator.submit(_event("job-9", priority=Priority.URGENT))

    assert outcome.status is AuditOutcome.DELIVERED
    assert outcome.channel == "modal"


async def test_missing_recipient_is_audited_as_failed(clock, transport) -> None:
    services = _services(clock, transport)

    outcome = await services.orchestrator.submit(_event(keys=("account:", "")))

    assert outcome.status is AuditOutcome.FAILED
    assert isinstance(outcome.error, InvalidRecipientError)
    assert outcome.retryable is False
    assert outcome.recipient_id is None
    assert outcome.fingerprint is None
    assert outcome.audit_entry.job_id == "job-1"
    assert transport.sent == []


async def test_delivery_failure_keeps_the_admission(clock) -> None:
    transport = RecordingTransport(error=RuntimeError("gateway rejected"))
    services = _services(clock, transport)

    failed = await services.orchestrator.submit(_event())
    retried = await services.orchestrator.submit(_event(seconds=5))

    assert failed.status is AuditOutcome.FAILED
    assert isinstance(failed.error, DeliveryFailedError)
    assert failed.reason == "gateway rejected"
    assert failed.retryable is False
    assert retried.status is AuditOutcome.SUPPRESSED_DUPLICATE
    assert len(transport.sent) == 1


async def test_new_window_is_eligible_again(clock, transport) -> None:
    services = _services(clock, transport)

    await services.orchestrator.submit(_event())
    clock.advance(300)
    outcome = await services.orchestrator.submit(_event(seconds=300))

    assert outcome.status is AuditOutcome.DELIVERED
    assert len(transport.sent) == 2


async def test_per_event_type_window_override(clock, transport) -> None:
    services = _services(clock, transport, dedup_window_overrides={"reminder": 60})

    first = await services.orchestrator.submit(_event(event_type=EventType.REMINDER))
    clock.advance(60)
    second = await services.orchestrator.submit(
        _event(event_type=EventType.REMINDER, seconds=60)
    )

    assert first.status is AuditOutcome.DELIVERED
    assert second.status is AuditOutcome.DELIVERED


async def test_concurrent_submissions_deliver_once(clock, transport) -> None:
    services = _services(clock, transport)
    outcomes = []

    async def _submit(index: int) -> None:
        keys = ("account:42", "staff:7") if index % 2 else ("staff:7", "account:42")
        outcomes.append(await services.orchestrator.submit(_event(keys=keys)))

    async with anyio.create_task_group() as task_group:
        for index in range(25):
            task_group.start_soon(_submit, index)

    statuses = [outcome.status for outcome in outcomes]
    assert statuses.count(AuditOutcome.DELIVERED) == 1
    assert statuses.count(AuditOutcome.SUPPRESSED_DUPLICATE) == 24
    assert len(transport.sent) == 1
    assert len(services.audit_log) == 25


class _SlowDedupStore:
    def __init__(self) -> None:
        self.released: list[str] = []

    def try_admit(self, fingerprint: str, ttl_seconds: float) -> Admission:
        time.sleep(0.2)
        return Admission.ADMITTED

    def release(self, fingerprint: str) -> bool:
        self.released.append(fingerprint)
        return True

    def purge_expired(self, now=None) -> int:
        return 0


class _BrokenDedupStore:
    def try_admit(self, fingerprint: str, ttl_seconds: float) -> Admission:
        raise DedupUnavailableError("Dedup store is unavailable")

    def release(self, fingerprint: str) -> bool:
        raise DedupUnavailableError("Dedup store is unavailable")

    def purge_expired(self, now=None) -> int:
        return 0


class _UnreleasableDedupStore:
    def try_admit(self, fingerprint: str, ttl_seconds: float) -> Admission:
        return Admission.ADMITTED

    def release(self, fingerprint: str) -> bool:
        raise DedupUnavailableError("Dedup store is unavailable")


class _BrokenRateLimiter:
    def try_consume(self, recipient_id, priority, event_type):
        raise RuntimeError("connection reset")


class _BrokenAuditLog:
    def append(self, entry):
        raise AuditUnavailableError("Audit log is unavailable")


def _with(services, **replacements):
    orchestrator = services.orchestrator
    for name, value in replacements.items():
        setattr(orchestrator, f"_{name}", value)
    return orchestrator


async def test_dedup_timeout_fails_closed(clock, transport) -> None:
    services = _services(clock, transport, dedup_timeout_seconds=0.05)
    slow_store = _SlowDedupStore()
    orchestrator = _with(services, dedup_store=slow_store)

    outcome = await orchestrator.submit(_event())

    assert outcome.status is AuditOutcome.FAILED
    assert isinstance(outcome.error, DedupUnavailableError)
    assert outcome.retryable is True
    assert "timed out" in outcome.reason
    assert transport.sent == []
    assert services.rate_limiter.status("42") == []

    with anyio.fail_after(2):
        while not slow_store.released:
            await anyio.sleep(0.01)
    assert slow_store.released == [outcome.fingerprint]


async def test_dedup_outage_fails_closed(clock, transport) -> None:
    services = _services(clock, transport)
    orchestrator = _with(services, dedup_store=_BrokenDedupStore())

    outcome = await orchestrator.submit(_event())

    assert outcome.status is AuditOutcome.FAILED
    assert outcome.reason == "Dedup store is unavailable"
    assert outcome.retryable is True
    assert transport.sent == []


async def test_rate_limiter_outage_fails_closed(clock, transport) -> None:
    services = _services(clock, transport)
    orchestrator = _with(services, rate_limiter=_BrokenRateLimiter())

    outcome = await orchestrator.submit(_event())

    assert outcome.status is AuditOutcome.FAILED
    assert isinstance(outcome.error, RateLimiterUnavailableError)
    assert outcome.retryable is True
    assert transport.sent == []
    assert len(services.audit_log) == 1


async def test_resubmit_after_rate_limiter_outage_is_delivered(clock, transport) -> None:
    services = _services(clock, transport)
    limiter = services.rate_limiter
    orchestrator = _with(services, rate_limiter=_BrokenRateLimiter())

    failed = await orchestrator.submit(_event())
    _with(services, rate_limiter=limiter)
    retried = await orchestrator.submit(_event(seconds=5))

    assert failed.status is AuditOutcome.FAILED
    assert failed.retryable is True
    assert retried.status is AuditOutcome.DELIVERED
    assert retried.fingerprint == failed.fingerprint
    assert len(transport.sent) == 1


async def test_unreleased_admission_is_not_retryable(clock, transport) -> None:
    services = _services(clock, transport)
    orchestrator = _with(
        services,
        dedup_store=_UnreleasableDedupStore(),
        rate_limiter=_BrokenRateLimiter(),
    )

    outcome = await orchestrator.submit(_event())

    assert outcome.status is AuditOutcome.FAILED
    assert isinstance(outcome.error, RateLimiterUnavailableError)
    assert outcome.retryable is False
    assert transport.sent == []


async def test_audit_outage_still_returns_the_outcome(clock, transport) -> None:
    services = _services(clock, transport)
    orchestrator = _with(services, audit_log=_BrokenAuditLog())

    outcome = await orchestrator.submit(_event())

    assert outcome.status is AuditOutcome.DELIVERED
    assert outcome.audited is False
    assert outcome.audit_entry.id is None
    assert outcome.audit_entry.outcome is AuditOutcome.DELIVERED
    assert len(transport.sent) == 1


async def test_budget_is_a_true_sliding_window(clock, transport, small_tiers) -> None:
    services = _services(clock, transport, rate_limit_tiers=small_tiers)

    clock.advance(59)
    early = [
        await services.orchestrator.submit(_event(f"job-{n}", seconds=59)) for n in range(3)
    ]
    clock.advance(31)
    late = await services.orchestrator.submit(_event("job-9", seconds=90))

    assert [outcome.status for outcome in early] == [AuditOutcome.DELIVERED] * 3
    assert late.status is AuditOutcome.SUPPRESSED_RATE_LIMITED
    assert len(transport.sent) == 3


async def test_dispatch_timeout_is_recorded_as_failure(clock) -> None:
    transport = RecordingTransport(delay=1.0)
    services = _services(clock, transport, dispatch_timeout_seconds=0.05)

    outcome = await services.orchestrator.submit(_event())

    assert outcome.status is AuditOutcome.FAILED
    assert outcome.reason == "Delivery timed out"
    assert outcome.channel == "banner"
    assert transport.sent == []
