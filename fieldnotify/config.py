"""Application configuration settings."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fieldnotify.domain.entities import EventType

ENV_FILE = ".env"
ENV_FILE_ENCODING = "utf-8"


class RateLimitTier(BaseModel):
    """Budget shared by every priority mapped to the tier."""

    limit: int = Field(gt=0, description="Maximum notifications per window")
    window_seconds: int = Field(gt=0, description="Length of the sliding window")


class EventTypeLimit(BaseModel):
    """Cap on one event type across every recipient."""

    per_minute: int = Field(gt=0, description="Maximum notifications per 60 seconds")
    burst_limit: int = Field(gt=0, description="Maximum notifications per burst window")
    burst_window_seconds: int = Field(default=10, gt=0)


def _default_rate_limit_tiers() -> dict[str, RateLimitTier]:
    return {
        "standard": RateLimitTier(limit=10, window_seconds=60),
        "urgent": RateLimitTier(limit=20, window_seconds=60),
    }


def _default_recipient_rate_caps() -> dict[str, RateLimitTier]:
    return {
        "hour": RateLimitTier(limit=100, window_seconds=3600),
        "day": RateLimitTier(limit=500, window_seconds=86400),
    }


def _default_priority_tiers() -> dict[str, str | None]:
    return {
        "low": "standard",
        "medium": "standard",
        "high": "standard",
        "urgent": "urgent",
    }


def _default_channel_policies() -> dict[str, str]:
    return {
        "urgent": "modal",
        "high": "banner",
        "medium": "banner",
        "low": "silent",
    }


class Settings(BaseSettings):
    """Application configuration values loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE, env_file_encoding=ENV_FILE_ENCODING, extra="ignore"
    )

    database_url: str = Field(
        default="sqlite:///./fieldnotify.db",
        description="Database connection URL used by SQLAlchemy to connect to the DB",
        min_length=1,
    )
    app_timezone: str = Field(
        default="UTC",
        description="Timezone used for stored timestamps and naive event times",
    )
    store_backend: Literal["sql", "memory"] = Field(
        default="sql",
        description="Backend used for the dedup store, rate limiter and audit log",
    )
    dedup_window_seconds: int = Field(
        default=300,
        gt=0,
        description="Length of the bucket in which repeated signals collapse",
    )
    dedup_window_overrides: dict[str, int] = Field(
        default_factory=dict,
        description="Per event type dedup window lengths, in seconds",
    )
    dedup_ttl_seconds: int | None = Field(
        default=None,
        gt=0,
        description="Lifetime of a dedup record; defaults to the event's window",
    )
    recipient_key_precedence: list[str] = Field(
        default_factory=lambda: ["account", "staff", "legacy"],
        min_length=1,
        description="Recipient identifier kinds, highest precedence first",
    )
    rate_limit_tiers: dict[str, RateLimitTier] = Field(
        default_factory=_default_rate_limit_tiers,
        description="Rate limit budgets keyed by tier name",
    )
    priority_tiers: dict[str, str | None] = Field(
        default_factory=_default_priority_tiers,
        description="Tier consumed by each priority; null exempts the priority",
    )
    recipient_rate_caps: dict[str, RateLimitTier] = Field(
        default_factory=_default_recipient_rate_caps,
        description="Caps on each recipient across every tier, keyed by cap name",
    )
    event_type_rate_limits: dict[str, EventTypeLimit] = Field(
        default_factory=dict,
        description="Per event type minute and burst caps shared by all recipients",
    )
    global_rate_limit: RateLimitTier | None = Field(
        default=None,
        description="Cap on every notification delivered by the process group",
    )
    channel_policies: dict[str, str] = Field(
        default_factory=_default_channel_policies,
        description="Presentation channel selected for each priority",
    )
    dedup_timeout_seconds: float = Field(default=2.0, gt=0)
    rate_limit_timeout_seconds: float = Field(default=2.0, gt=0)
    audit_timeout_seconds: float = Field(default=2.0, gt=0)
    dispatch_timeout_seconds: float = Field(default=10.0, gt=0)
    reaper_interval_seconds: int = Field(
        default=60,
        ge=0,
        description="Seconds between purges of expired records; 0 disables the reaper",
    )
    delivery_transport: Literal["realtime", "email", "log"] = Field(
        default="realtime",
        description="Transport used by the delivery dispatcher",
    )
    sendgrid_api_key: str | None = Field(
        default=None,
        description="SendGrid API key used for sending notification emails via the REST API",
    )
    sendgrid_sender: str | None = Field(
        default=None,
        description="Email address that will appear as the sender of notification emails",
        min_length=3,
    )

    @field_validator("app_timezone")
    @classmethod
    def _validate_app_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone '{value}'") from exc
        return value

    @model_validator(mode="after")
    def _validate_sendgrid_pair(self) -> "Settings":
        if bool(self.sendgrid_api_key) ^ bool(self.sendgrid_sender):
            raise ValueError(
                "SENDGRID_API_KEY and SENDGRID_SENDER must both be provided to enable email"
            )
        if self.sendgrid_sender and "@" not in self.sendgrid_sender:
            raise ValueError("SENDGRID_SENDER must be a valid email address")
        return self

    @model_validator(mode="after")
    def _validate_rate_limits(self) -> "Settings":
        for priority, tier in self.priority_tiers.items():
            if tier is not None and tier not in self.rate_limit_tiers:
                raise ValueError(
                    f"Priority '{priority}' references unknown rate limit tier '{tier}'"
                )
        known = {event_type.value for event_type in EventType}
        unknown = set(self.event_type_rate_limits) - known
        if unknown:
            raise ValueError(f"Unknown event types in rate limits: {sorted(unknown)}")
        return self

    def dedup_window_for(self, event_type: str) -> int:
        """Return the dedup window length, in seconds, for ``event_type``."""

        return self.dedup_window_overrides.get(event_type, self.dedup_window_seconds)

    def dedup_ttl_for(self, event_type: str) -> int:
        """Return the dedup record lifetime, in seconds, for ``event_type``."""

        return self.dedup_ttl_seconds or self.dedup_window_for(event_type)


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the settings cache to force reloading from the environment."""

    get_settings.cache_clear()


__all__ = ["EventTypeLimit", "RateLimitTier", "Settings", "get_settings", "reset_settings_cache"]
