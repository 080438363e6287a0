"""Errors raised by the notification pipeline."""

from __future__ import annotations


class NotificationError(Exception):
    """Base class for pipeline failures that end a submission.

    ``retryable`` defaults to the class value; a caller that knows a retry
    cannot succeed (for example because an admission could not be released)
    may override it for one instance.
    """

    code = "notification_error"
    retryable = False

    def __init__(self, reason: str, *, retryable: bool | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        if retryable is not None:
            self.retryable = retryable


class InvalidRecipientError(NotificationError):
    """No usable recipient identifier was supplied."""

    code = "invalid_recipient"


class DedupUnavailableError(NotificationError):
    """The dedup store could not answer; the event is not admitted."""

    code = "dedup_unavailable"
    retryable = True


class RateLimiterUnavailableError(NotificationError):
    """The rate limiter could not answer; the event is not delivered."""

    code = "rate_limiter_unavailable"
    retryable = True


class DeliveryFailedError(NotificationError):
    """The transport rejected or errored after admission."""

    code = "delivery_failed"


class AuditUnavailableError(NotificationError):
    """The audit log could not record or return entries."""

    code = "audit_unavailable"
    retryable = True


__all__ = [
    "AuditUnavailableError",
    "DedupUnavailableError",
    "DeliveryFailedError",
    "InvalidRecipientError",
    "NotificationError",
    "RateLimiterUnavailableError",
]
