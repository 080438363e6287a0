"""Dedup store, rate limiter and audit log implementations."""

from .locks import KeyedLock
from .memory import InMemoryAuditLog, InMemoryDedupStore, InMemoryRateLimiter
from .rate_window import RatePolicy
from .sql import SqlAuditLog, SqlDedupStore, SqlRateLimiter

__all__ = [
    "InMemoryAuditLog",
    "InMemoryDedupStore",
    "InMemoryRateLimiter",
    "KeyedLock",
    "RatePolicy",
    "SqlAuditLog",
    "SqlDedupStore",
    "SqlRateLimiter",
]
