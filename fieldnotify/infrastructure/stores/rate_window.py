"""Sliding-log rules shared by the rate limiters.

Every allowed notification is recorded once with the time it consumed
budget. A rule admits a new consumption while fewer than ``limit`` of the
consumptions it counts fall inside ``(now - window, now]``, and a
notification is allowed only when every applicable rule admits it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime, timedelta

from fieldnotify.config import EventTypeLimit, RateLimitTier, Settings
from fieldnotify.domain.entities import (
    EVENT_TYPE_SCOPE,
    GLOBAL_SCOPE,
    RECIPIENT_SCOPE,
    Priority,
    RateConsumption,
    RateDecision,
    RateRule,
    RateUsage,
)

MINUTE_SECONDS = 60


class RatePolicy:
    """Rules applied to each consumption, built from the configured limits."""

    def __init__(
        self,
        tiers: Mapping[str, RateLimitTier],
        priority_tiers: Mapping[str, str | None],
        *,
        recipient_caps: Mapping[str, RateLimitTier] | None = None,
        event_type_limits: Mapping[str, EventTypeLimit] | None = None,
        global_limit: RateLimitTier | None = None,
    ) -> None:
        self._priority_tiers = dict(priority_tiers)
        self._tier_rules = {
            name: RateRule(
                name=name,
                scope=RECIPIENT_SCOPE,
                limit=tier.limit,
                window_seconds=tier.window_seconds,
                tier=name,
            )
            for name, tier in tiers.items()
        }
        self._cap_rules = [
            RateRule(
                name=f"recipient:{name}",
                scope=RECIPIENT_SCOPE,
                limit=cap.limit,
                window_seconds=cap.window_seconds,
            )
            for name, cap in (recipient_caps or {}).items()
        ]
        self._event_type_rules: dict[str, list[RateRule]] = {}
        for event_type, limits in (event_type_limits or {}).items():
            self._event_type_rules[event_type] = [
                RateRule(
                    name=f"event:{event_type}:minute",
                    scope=EVENT_TYPE_SCOPE,
                    limit=limits.per_minute,
                    window_seconds=MINUTE_SECONDS,
                    event_type=event_type,
                ),
                RateRule(
                    name=f"event:{event_type}:burst",
                    scope=EVENT_TYPE_SCOPE,
                    limit=limits.burst_limit,
                    window_seconds=limits.burst_window_seconds,
                    event_type=event_type,
                ),
            ]
        self._global_rules = (
            [
                RateRule(
                    name="global",
                    scope=GLOBAL_SCOPE,
                    limit=global_limit.limit,
                    window_seconds=global_limit.window_seconds,
                )
            ]
            if global_limit is not None
            else []
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "RatePolicy":
        return cls(
            settings.rate_limit_tiers,
            settings.priority_tiers,
            recipient_caps=settings.recipient_rate_caps,
            event_type_limits=settings.event_type_rate_limits,
            global_limit=settings.global_rate_limit,
        )

    def tier_for(self, priority: Priority) -> str | None:
        """Return the tier consumed by ``priority``; ``None`` means exempt."""

        return self._priority_tiers.get(Priority(priority).value)

    def rules_for(self, tier: str, event_type: str) -> list[RateRule]:
        """Rules checked for one consumption; the tier rule comes first."""

        return [
            self._tier_rules[tier],
            *self._cap_rules,
            *self._event_type_rules.get(event_type, []),
            *self._global_rules,
        ]

    def recipient_rules(self) -> list[RateRule]:
        return [*self._tier_rules.values(), *self._cap_rules]

    @property
    def has_shared_rules(self) -> bool:
        """Whether some rule counts consumptions of other recipients."""

        return bool(self._event_type_rules or self._global_rules)

    @property
    def recipient_horizon(self) -> timedelta:
        """How long a consumption can still count toward a recipient rule."""

        return _longest(self.recipient_rules())

    @property
    def shared_horizon(self) -> timedelta:
        rules = [rule for rules in self._event_type_rules.values() for rule in rules]
        return _longest([*rules, *self._global_rules])

    @property
    def horizon(self) -> timedelta:
        return max(self.recipient_horizon, self.shared_horizon)


def _longest(rules: Iterable[RateRule]) -> timedelta:
    return timedelta(seconds=max((rule.window_seconds for rule in rules), default=0))


def times_in_window(
    rule: RateRule,
    consumptions: Iterable[RateConsumption],
    recipient_id: str,
    now: datetime,
) -> list[datetime]:
    """Consumption times ``rule`` counts for ``recipient_id``, oldest first."""

    since = rule.window_start(now)
    return sorted(
        consumption.consumed_at
        for consumption in consumptions
        if consumption.consumed_at > since and rule.counts(consumption, recipient_id)
    )


def evaluate(
    rules: Sequence[RateRule],
    times_for: Callable[[RateRule], Sequence[datetime]],
    now: datetime,
) -> RateDecision:
    """Allow one more consumption unless some rule is already at its limit.

    ``times_for`` returns the counted consumption times inside the rule's
    window, oldest first. ``retry_after`` on a refusal is the time until
    enough of them leave the window for the refusing rule to admit again.
    """

    tier_rule = rules[0]
    tier_count = 0
    for rule in rules:
        times = times_for(rule)
        if rule is tier_rule:
            tier_count = len(times)
        if len(times) >= rule.limit:
            release_at = times[len(times) - rule.limit] + timedelta(seconds=rule.window_seconds)
            return RateDecision(
                allowed=False,
                rule=rule.name,
                limit=rule.limit,
                current=len(times),
                retry_after=max(0.0, (release_at - now).total_seconds()),
            )
    return RateDecision(
        allowed=True, rule=tier_rule.name, limit=tier_rule.limit, current=tier_count + 1
    )


def usage(
    rule: RateRule, recipient_id: str, times: Sequence[datetime]
) -> RateUsage | None:
    """Summarize ``times`` for the status endpoint; ``None`` when unused."""

    if not times:
        return None
    return RateUsage(
        recipient_id=recipient_id,
        rule=rule.name,
        limit=rule.limit,
        window_seconds=rule.window_seconds,
        count=len(times),
        resets_at=times[0] + timedelta(seconds=rule.window_seconds),
    )


__all__ = ["RatePolicy", "evaluate", "times_in_window", "usage"]
