"""Repository implementations for infrastructure layer."""

from .audit_log_repository import AuditLogRepository
from .dedup_record_repository import DedupRecordRepository
from .rate_consumption_repository import RateConsumptionRepository

__all__ = [
    "AuditLogRepository",
    "DedupRecordRepository",
    "RateConsumptionRepository",
]
