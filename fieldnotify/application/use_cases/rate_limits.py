"""Use cases for inspecting and resetting recipient notification budgets."""

import logging

from fieldnotify.domain.entities import RateUsage

from .notifications.ports import RateLimiter

logger = logging.getLogger(__name__)


def get_rate_limit_status(rate_limiter: RateLimiter, recipient_id: str) -> list[RateUsage]:
    """Return the rules ``recipient_id`` has used in their current windows."""

    return list(rate_limiter.status(recipient_id))


def reset_recipient_budget(rate_limiter: RateLimiter, recipient_id: str) -> int:
    """Forget every consumption of ``recipient_id`` and return how many were removed."""

    removed = rate_limiter.reset(recipient_id)
    logger.info("Reset %s rate limit consumption(s) for %s", removed, recipient_id)
    return removed


__all__ = ["get_rate_limit_status", "reset_recipient_budget"]
