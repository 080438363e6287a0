"""Delivery transports used by the dispatcher.

A transport performs exactly one delivery attempt per call and raises
:class:`TransportError` when the message was not delivered.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from anyio import to_thread

from . import email as email_module
from .manager import NotificationConnectionManager, notification_manager

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """The transport could not deliver the message."""


class RealtimeTransport:
    """Push notifications to the recipient's open websocket connections."""

    def __init__(self, manager: NotificationConnectionManager = notification_manager) -> None:
        self._manager = manager

    async def send(self, recipient_id: str, channel: str, message: dict[str, Any]) -> None:
        delivered = await self._manager.send_to_recipient(
            recipient_id, {"type": "notification", "channel": channel, "data": message}
        )
        if delivered == 0:
            raise TransportError(f"No active connection for recipient {recipient_id}")


def _payload_address(recipient_id: str, message: dict[str, Any]) -> str | None:
    payload = message.get("payload") or {}
    address = payload.get("email")
    return address if isinstance(address, str) and "@" in address else None


class EmailTransport:
    """Send notifications by email through SendGrid."""

    def __init__(
        self,
        resolve_address: Callable[[str, dict[str, Any]], str | None] = _payload_address,
    ) -> None:
        self._resolve_address = resolve_address

    async def send(self, recipient_id: str, channel: str, message: dict[str, Any]) -> None:
        address = self._resolve_address(recipient_id, message)
        if not address:
            raise TransportError(f"No email address known for recipient {recipient_id}")

        payload = message.get("payload") or {}
        try:
            await to_thread.run_sync(
                lambda: email_module.send_notification_email(
                    address,
                    title=str(payload.get("title") or "Job notification"),
                    body=str(payload.get("body") or ""),
                    channel=channel,
                )
            )
        except email_module.EmailDeliveryError as exc:
            raise TransportError(str(exc)) from exc


class LoggingTransport:
    """Record notifications in the application log instead of delivering them."""

    async def send(self, recipient_id: str, channel: str, message: dict[str, Any]) -> None:
        payload = message.get("payload") or {}
        logger.info(
            "[%s] %s -> %s: %s",
            channel,
            message.get("event_type"),
            recipient_id,
            payload.get("title"),
        )


__all__ = ["EmailTransport", "LoggingTransport", "RealtimeTransport", "TransportError"]
