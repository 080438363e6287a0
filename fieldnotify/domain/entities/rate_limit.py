"""Domain entities for per-recipient notification budgets."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

RECIPIENT_SCOPE = "recipient"
EVENT_TYPE_SCOPE = "event_type"
GLOBAL_SCOPE = "global"


@dataclass(frozen=True)
class RateConsumption:
    """One allowed notification, recorded when it consumed budget."""

    recipient_id: str
    tier: str
    event_type: str
    consumed_at: datetime


@dataclass(frozen=True)
class RateRule:
    """At most ``limit`` counted consumptions inside any ``window_seconds``.

    Recipient rules count the consumptions of the recipient being checked,
    restricted to ``tier`` when one is set. Event type rules count every
    recipient's consumptions of ``event_type`` and global rules count all
    consumptions.
    """

    name: str
    scope: str
    limit: int
    window_seconds: int
    tier: str | None = None
    event_type: str | None = None

    @property
    def shared(self) -> bool:
        return self.scope != RECIPIENT_SCOPE

    def window_start(self, now: datetime) -> datetime:
        return now - timedelta(seconds=self.window_seconds)

    def counts(self, consumption: RateConsumption, recipient_id: str) -> bool:
        if self.scope == GLOBAL_SCOPE:
            return True
        if self.scope == EVENT_TYPE_SCOPE:
            return consumption.event_type == self.event_type
        if consumption.recipient_id != recipient_id:
            return False
        return self.tier is None or consumption.tier == self.tier


@dataclass(frozen=True)
class RateUsage:
    """How much of one rule a recipient has used in the current window."""

    recipient_id: str
    rule: str
    limit: int
    window_seconds: int
    count: int
    resets_at: datetime


@dataclass(frozen=True)
class RateDecision:
    """Result of trying to consume one unit of a recipient's budget.

    ``rule`` names the tier that was charged when the consumption is allowed
    and the first rule that refused it otherwise.
    """

    allowed: bool
    rule: str | None
    limit: int | None = None
    current: int = 0
    retry_after: float | None = None

    @classmethod
    def exempt(cls) -> "RateDecision":
        """Decision for priorities that are not rate limited."""

        return cls(allowed=True, rule=None)


__all__ = [
    "EVENT_TYPE_SCOPE",
    "GLOBAL_SCOPE",
    "RECIPIENT_SCOPE",
    "RateConsumption",
    "RateDecision",
    "RateRule",
    "RateUsage",
]
