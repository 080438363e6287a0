from .audit_log import AuditEntryRead
from .notification import NotificationEventCreate, SubmitOutcomeRead
from .rate_limit import RateLimitResetRead, RateLimitStatusRead, RateUsageRead

__all__ = [
    "AuditEntryRead",
    "NotificationEventCreate",
    "RateLimitResetRead",
    "RateLimitStatusRead",
    "RateUsageRead",
    "SubmitOutcomeRead",
]
