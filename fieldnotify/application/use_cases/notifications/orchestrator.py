"""Single entrypoint that turns a notification event into one audited outcome.

Every caller (assignment flow, status update flow, change listener) hands its
event to :meth:`NotificationOrchestrator.submit`. The pipeline is::

    resolve recipient -> fingerprint -> dedup admission -> rate budget
        -> dispatch -> audit

Only the dedup admission and the rate budget touch shared state and both are
atomic per key inside their stores, so unrelated submissions never wait on
each other unless event type or global rate caps are configured. Blocking
store calls run in worker threads and every stage has its own timeout; a
stage that times out or whose store is down fails closed. An admission whose
rate check failed is released so the caller can resubmit the event.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Generic, TypeVar

import anyio
from anyio import to_thread

from fieldnotify.config import Settings
from fieldnotify.domain.entities import (
    Admission,
    AuditEntry,
    AuditOutcome,
    NotificationEvent,
    RateDecision,
    SubmitOutcome,
)
from fieldnotify.domain.errors import (
    AuditUnavailableError,
    DedupUnavailableError,
    DeliveryFailedError,
    InvalidRecipientError,
    NotificationError,
    RateLimiterUnavailableError,
)
from fieldnotify.utils import now_in_app_timezone

from .dispatcher import DeliveryDispatcher
from .fingerprint import build_fingerprint
from .identity import resolve_recipient
from .ports import AuditSink, DedupStore, RateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PENDING = object()


class _WorkerCall(Generic[T]):
    """Blocking call that may outlive the stage waiting for it.

    When the stage gives up, the result the worker produces later is handed
    to ``on_abandon`` exactly once, either by the worker itself or by
    :meth:`abandon` when the worker had already finished.
    """

    def __init__(self, func: Callable[[], T], on_abandon: Callable[[T], None] | None) -> None:
        self._func = func
        self._on_abandon = on_abandon
        self._lock = threading.Lock()
        self._abandoned = False
        self._result: object = _PENDING

    def __call__(self) -> T:
        result = self._func()
        with self._lock:
            self._result = result
            abandoned = self._abandoned
        if abandoned and self._on_abandon is not None:
            try:
                self._on_abandon(result)
            except Exception:
                logger.exception("Cleanup after an abandoned stage failed")
        return result

    def abandon(self) -> object:
        """Mark the call abandoned; return the result if it is already in."""

        with self._lock:
            self._abandoned = True
            return self._result


class NotificationOrchestrator:
    """Wire identity, dedup, rate limiting, delivery and audit together."""

    def __init__(
        self,
        *,
        settings: Settings,
        dedup_store: DedupStore,
        rate_limiter: RateLimiter,
        dispatcher: DeliveryDispatcher,
        audit_log: AuditSink,
        clock: Callable[[], datetime] = now_in_app_timezone,
    ) -> None:
        self._settings = settings
        self._dedup_store = dedup_store
        self._rate_limiter = rate_limiter
        self._dispatcher = dispatcher
        self._audit_log = audit_log
        self._clock = clock

    @property
    def recipient_key_precedence(self) -> Sequence[str]:
        return self._settings.recipient_key_precedence

    async def submit(self, event: NotificationEvent) -> SubmitOutcome:
        """Process ``event`` and return its audited outcome."""

        event_type = event.event_type.value
        try:
            recipient_id = resolve_recipient(
                event.recipient_keys, self.recipient_key_precedence
            )
        except InvalidRecipientError as exc:
            logger.warning(
                "Dropping %s notification for job %s from %s: %s",
                event_type,
                event.job_id,
                event.source_trigger,
                exc.reason,
            )
            return await self._finish(
                event, AuditOutcome.FAILED, exc.reason, error=exc
            )

        fingerprint = build_fingerprint(
            event.job_id,
            recipient_id,
            event_type,
            event.occurred_at,
            self._settings.dedup_window_for(event_type),
        )

        try:
            admission = await self._run_stage(
                lambda: self._dedup_store.try_admit(
                    fingerprint, self._settings.dedup_ttl_for(event_type)
                ),
                timeout=self._settings.dedup_timeout_seconds,
                stage="dedup check",
                error_type=DedupUnavailableError,
                on_abandon=lambda late: self._release_late_admission(fingerprint, late),
            )
        except DedupUnavailableError as exc:
            logger.warning(
                "Dedup store unavailable for fingerprint %s; refusing admission", fingerprint
            )
            return await self._finish(
                event,
                AuditOutcome.FAILED,
                exc.reason,
                fingerprint=fingerprint,
                recipient_id=recipient_id,
                error=exc,
            )

        if admission is Admission.ALREADY_SEEN:
            logger.info(
                "Suppressed duplicate %s notification for job %s to %s (source: %s)",
                event_type,
                event.job_id,
                recipient_id,
                event.source_trigger,
            )
            return await self._finish(
                event,
                AuditOutcome.SUPPRESSED_DUPLICATE,
                "Fingerprint already admitted in the current dedup window",
                fingerprint=fingerprint,
                recipient_id=recipient_id,
            )

        try:
            decision: RateDecision = await self._run_stage(
                lambda: self._rate_limiter.try_consume(
                    recipient_id, event.priority, event_type
                ),
                timeout=self._settings.rate_limit_timeout_seconds,
                stage="rate check",
                error_type=RateLimiterUnavailableError,
            )
        except RateLimiterUnavailableError as exc:
            logger.warning(
                "Rate limiter unavailable for %s; refusing delivery", recipient_id
            )
            error = await self._release_admission(fingerprint, exc)
            return await self._finish(
                event,
                AuditOutcome.FAILED,
                error.reason,
                fingerprint=fingerprint,
                recipient_id=recipient_id,
                error=error,
            )

        if not decision.allowed:
            logger.info(
                "Rate limited %s notification for job %s to %s (%s/%s for rule %s)",
                event_type,
                event.job_id,
                recipient_id,
                decision.current,
                decision.limit,
                decision.rule,
            )
            return await self._finish(
                event,
                AuditOutcome.SUPPRESSED_RATE_LIMITED,
                f"Budget of {decision.limit} exhausted for rule '{decision.rule}'",
                fingerprint=fingerprint,
                recipient_id=recipient_id,
            )

        channel = self._dispatcher.channel_for(event.priority)
        try:
            with anyio.fail_after(self._settings.dispatch_timeout_seconds):
                result = await self._dispatcher.deliver(
                    recipient_id, event.event_type, event.priority, event.payload
                )
        except TimeoutError:
            error = DeliveryFailedError("Delivery timed out")
            return await self._finish(
                event,
                AuditOutcome.FAILED,
                error.reason,
                fingerprint=fingerprint,
                recipient_id=recipient_id,
                channel=channel,
                error=error,
            )

        if not result.delivered:
            error = DeliveryFailedError(result.reason)
            return await self._finish(
                event,
                AuditOutcome.FAILED,
                error.reason,
                fingerprint=fingerprint,
                recipient_id=recipient_id,
                channel=result.channel,
                error=error,
            )

        logger.info(
            "Delivered %s notification for job %s to %s via %s",
            event_type,
            event.job_id,
            recipient_id,
            result.channel,
        )
        return await self._finish(
            event,
            AuditOutcome.DELIVERED,
            f"Delivered via {result.channel}",
            fingerprint=fingerprint,
            recipient_id=recipient_id,
            channel=result.channel,
        )

    async def _run_stage(
        self,
        func: Callable[[], T],
        *,
        timeout: float,
        stage: str,
        error_type: type[NotificationError],
        on_abandon: Callable[[T], None] | None = None,
    ) -> T:
        """Run a blocking store call in a worker thread within ``timeout``.

        A worker that times out keeps running; ``on_abandon`` receives its
        result so side effects nobody will act on can be undone.
        """

        call = _WorkerCall(func, on_abandon)
        try:
            with anyio.fail_after(timeout):
                return await to_thread.run_sync(call, abandon_on_cancel=True)
        except TimeoutError as exc:
            late = call.abandon()
            if late is not _PENDING and on_abandon is not None:
                try:
                    await to_thread.run_sync(on_abandon, late)
                except Exception:
                    logger.exception("Cleanup after the %s timeout failed", stage)
            raise error_type(f"{stage.capitalize()} timed out after {timeout}s") from exc
        except NotificationError:
            raise
        except Exception as exc:
            logger.exception("Unexpected failure during %s", stage)
            raise error_type(f"{stage.capitalize()} failed: {exc}") from exc

    def _release_late_admission(self, fingerprint: str, admission: Admission) -> None:
        if admission is Admission.ADMITTED:
            self._dedup_store.release(fingerprint)
            logger.info("Released fingerprint %s admitted after its stage timed out", fingerprint)

    async def _release_admission(
        self, fingerprint: str, error: NotificationError
    ) -> NotificationError:
        """Undo the admission of an event that will not be delivered now.

        If the fingerprint cannot be released, a resubmission would only be
        suppressed as a duplicate, so the returned error is not retryable.
        """

        try:
            await self._run_stage(
                lambda: self._dedup_store.release(fingerprint),
                timeout=self._settings.dedup_timeout_seconds,
                stage="dedup release",
                error_type=DedupUnavailableError,
            )
        except DedupUnavailableError as exc:
            logger.error("Fingerprint %s stays admitted: %s", fingerprint, exc.reason)
            return type(error)(error.reason, retryable=False)
        return error

    async def _finish(
        self,
        event: NotificationEvent,
        outcome: AuditOutcome,
        reason: str,
        *,
        fingerprint: str | None = None,
        recipient_id: str | None = None,
        channel: str | None = None,
        error: NotificationError | None = None,
    ) -> SubmitOutcome:
        pending = AuditEntry(
            id=None,
            fingerprint=fingerprint,
            recipient_id=recipient_id,
            job_id=event.job_id,
            event_type=event.event_type.value,
            outcome=outcome,
            reason=reason,
            timestamp=self._clock(),
            source_trigger=event.source_trigger,
            channel=channel,
        )
        try:
            entry = await self._run_stage(
                lambda: self._audit_log.append(pending),
                timeout=self._settings.audit_timeout_seconds,
                stage="audit write",
                error_type=AuditUnavailableError,
            )
        except AuditUnavailableError as exc:
            logger.error(
                "%s outcome for job %s was not audited: %s",
                outcome.value,
                event.job_id,
                exc.reason,
            )
            entry = pending
        return SubmitOutcome(
            status=outcome,
            audit_entry=entry,
            fingerprint=fingerprint,
            recipient_id=recipient_id,
            reason=reason,
            channel=channel,
            error=error,
        )


__all__ = ["NotificationOrchestrator"]
