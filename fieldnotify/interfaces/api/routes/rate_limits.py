"""Routes for inspecting and resetting recipient notification budgets."""

from fastapi import APIRouter, Depends, HTTPException, status

from fieldnotify.application.use_cases.notifications.ports import RateLimiter
from fieldnotify.application.use_cases.rate_limits import (
    get_rate_limit_status as get_rate_limit_status_uc,
    reset_recipient_budget as reset_recipient_budget_uc,
)
from fieldnotify.domain.errors import RateLimiterUnavailableError
from fieldnotify.interfaces.api.dependencies import get_rate_limiter
from fieldnotify.interfaces.api.schemas import (
    RateLimitResetRead,
    RateLimitStatusRead,
    RateUsageRead,
)

router = APIRouter(prefix="/rate-limits", tags=["rate_limits"])


@router.get("/{recipient_id}", response_model=RateLimitStatusRead)
def read_rate_limit_status(
    recipient_id: str,
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> RateLimitStatusRead:
    """Return the rules ``recipient_id`` has used in their current windows."""

    try:
        usages = get_rate_limit_status_uc(rate_limiter, recipient_id)
    except RateLimiterUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.reason
        ) from exc
    return RateLimitStatusRead(
        recipient_id=recipient_id,
        usage=[RateUsageRead.model_validate(entry) for entry in usages],
    )


@router.delete("/{recipient_id}", response_model=RateLimitResetRead)
def reset_rate_limit(
    recipient_id: str,
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> RateLimitResetRead:
    """Reset the budget of ``recipient_id``."""

    try:
        removed = reset_recipient_budget_uc(rate_limiter, recipient_id)
    except RateLimiterUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.reason
        ) from exc
    return RateLimitResetRead(recipient_id=recipient_id, removed=removed)


__all__ = ["router"]
