"""ORM models used by the application infrastructure."""

from .audit_entry import AuditEntryModel
from .dedup_record import DedupRecordModel
from .rate_consumption import RateConsumptionModel, RateLockModel

__all__ = [
    "AuditEntryModel",
    "DedupRecordModel",
    "RateConsumptionModel",
    "RateLockModel",
]
