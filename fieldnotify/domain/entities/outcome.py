"""Results produced by the delivery pipeline."""

from __future__ import annotations

from dataclasses import dataclass

from fieldnotify.domain.errors import NotificationError

from .audit_entry import AuditEntry, AuditOutcome


@dataclass(frozen=True)
class DeliveryResult:
    """What the dispatcher observed when calling the transport."""

    delivered: bool
    channel: str
    reason: str = ""


@dataclass(frozen=True)
class SubmitOutcome:
    """Terminal result returned to the caller of ``submit``."""

    status: AuditOutcome
    audit_entry: AuditEntry
    fingerprint: str | None = None
    recipient_id: str | None = None
    reason: str = ""
    channel: str | None = None
    error: NotificationError | None = None

    @property
    def delivered(self) -> bool:
        return self.status is AuditOutcome.DELIVERED

    @property
    def audited(self) -> bool:
        """False when the audit log could not persist the entry."""

        return self.audit_entry.id is not None

    @property
    def retryable(self) -> bool:
        """Whether resubmitting the same event later may succeed."""

        return self.error is not None and self.error.retryable


__all__ = ["DeliveryResult", "SubmitOutcome"]
