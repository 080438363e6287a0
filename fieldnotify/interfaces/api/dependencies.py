"""FastAPI dependency utilities and wiring of the notification services."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache

from sqlalchemy.orm import Session, sessionmaker

from fieldnotify.application.use_cases.notifications import (
    DeliveryDispatcher,
    NotificationOrchestrator,
)
from fieldnotify.application.use_cases.notifications.ports import (
    AuditSink,
    DedupStore,
    DeliveryTransport,
    RateLimiter,
)
from fieldnotify.config import Settings, get_settings
from fieldnotify.infrastructure.notifications import (
    EmailTransport,
    LoggingTransport,
    NotificationConnectionManager,
    RealtimeTransport,
    notification_manager,
)
from fieldnotify.infrastructure.reaper import ExpiredRecordReaper
from fieldnotify.infrastructure.stores import (
    InMemoryAuditLog,
    InMemoryDedupStore,
    InMemoryRateLimiter,
    RatePolicy,
    SqlAuditLog,
    SqlDedupStore,
    SqlRateLimiter,
)
from fieldnotify.utils import now_in_app_timezone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationServices:
    """Long lived collaborators shared by every request."""

    orchestrator: NotificationOrchestrator
    dedup_store: DedupStore
    rate_limiter: RateLimiter
    audit_log: AuditSink
    reaper: ExpiredRecordReaper


def build_transport(
    settings: Settings, manager: NotificationConnectionManager = notification_manager
) -> DeliveryTransport:
    """Return the transport selected by ``settings.delivery_transport``."""

    if settings.delivery_transport == "email":
        return EmailTransport()
    if settings.delivery_transport == "log":
        return LoggingTransport()
    return RealtimeTransport(manager)


def build_notification_services(
    settings: Settings,
    *,
    session_factory: sessionmaker[Session] | None = None,
    transport: DeliveryTransport | None = None,
    clock: Callable[[], datetime] = now_in_app_timezone,
) -> NotificationServices:
    """Assemble the stores, dispatcher, orchestrator and reaper for ``settings``."""

    if settings.store_backend == "memory":
        dedup_store: DedupStore = InMemoryDedupStore(clock=clock)
        rate_limiter: RateLimiter = InMemoryRateLimiter(
            RatePolicy.from_settings(settings), clock=clock
        )
        audit_log: AuditSink = InMemoryAuditLog()
    else:
        if session_factory is None:
            from fieldnotify.infrastructure.database import SessionLocal

            session_factory = SessionLocal
        dedup_store = SqlDedupStore(session_factory, clock=clock)
        rate_limiter = SqlRateLimiter(
            session_factory, RatePolicy.from_settings(settings), clock=clock
        )
        audit_log = SqlAuditLog(session_factory)

    dispatcher = DeliveryDispatcher(
        transport or build_transport(settings), settings.channel_policies
    )
    orchestrator = NotificationOrchestrator(
        settings=settings,
        dedup_store=dedup_store,
        rate_limiter=rate_limiter,
        dispatcher=dispatcher,
        audit_log=audit_log,
        clock=clock,
    )
    reaper = ExpiredRecordReaper(
        [dedup_store, rate_limiter],
        interval_seconds=settings.reaper_interval_seconds,
        clock=clock,
    )
    logger.debug(
        "Notification services built with %s stores and %s transport",
        settings.store_backend,
        settings.delivery_transport,
    )
    return NotificationServices(
        orchestrator=orchestrator,
        dedup_store=dedup_store,
        rate_limiter=rate_limiter,
        audit_log=audit_log,
        reaper=reaper,
    )


@lru_cache
def get_notification_services() -> NotificationServices:
    """Return the process wide notification services."""

    return build_notification_services(get_settings())


def reset_notification_services() -> None:
    """Stop the cached reaper and forget the cached services."""

    if get_notification_services.cache_info().currsize:
        get_notification_services().reaper.stop()
    get_notification_services.cache_clear()


def get_orchestrator() -> NotificationOrchestrator:
    return get_notification_services().orchestrator


def get_audit_log() -> AuditSink:
    return get_notification_services().audit_log


def get_rate_limiter() -> RateLimiter:
    return get_notification_services().rate_limiter


__all__ = [
    "NotificationServices",
    "build_notification_services",
    "build_transport",
    "get_audit_log",
    "get_notification_services",
    "get_orchestrator",
    "get_rate_limiter",
    "reset_notification_services",
]
