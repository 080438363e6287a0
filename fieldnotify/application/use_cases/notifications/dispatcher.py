"""Selection of the presentation channel and the single transport call."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from fieldnotify.domain.entities import DeliveryResult, EventType, Priority

from .ports import DeliveryTransport

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "banner"


class DeliveryDispatcher:
    """Send an admitted notification through the configured transport once."""

    def __init__(
        self,
        transport: DeliveryTransport,
        channel_policies: Mapping[str, str],
        *,
        default_channel: str = DEFAULT_CHANNEL,
    ) -> None:
        self._transport = transport
        self._channel_policies = dict(channel_policies)
        self._default_channel = default_channel

    def channel_for(self, priority: Priority) -> str:
        """Return the channel policy configured for ``priority``."""

        return self._channel_policies.get(Priority(priority).value, self._default_channel)

    async def deliver(
        self,
        recipient_id: str,
        event_type: EventType,
        priority: Priority,
        payload: Mapping[str, Any],
    ) -> DeliveryResult:
        channel = self.channel_for(priority)
        message = {
            "event_type": EventType(event_type).value,
            "priority": Priority(priority).value,
            "channel": channel,
            "payload": dict(payload),
        }
        try:
            await self._transport.send(recipient_id, channel, message)
        except Exception as exc:
            logger.exception(
                "Transport failed to deliver %s notification to %s", event_type, recipient_id
            )
            reason = str(exc) or exc.__class__.__name__
            return DeliveryResult(delivered=False, channel=channel, reason=reason)

        return DeliveryResult(delivered=True, channel=channel)


__all__ = ["DEFAULT_CHANNEL", "DeliveryDispatcher"]
