"""Schemas for recipient rate limit endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class RateUsageRead(BaseModel):
    rule: str
    limit: int
    window_seconds: int
    count: int
    resets_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RateLimitStatusRead(BaseModel):
    """Rules a recipient has used in their current windows."""

    recipient_id: str
    usage: list[RateUsageRead]


class RateLimitResetRead(BaseModel):
    recipient_id: str
    removed: int


__all__ = ["RateLimitResetRead", "RateLimitStatusRead", "RateUsageRead"]
