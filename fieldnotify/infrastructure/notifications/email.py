"""Deliver job notifications by email through SendGrid."""

from __future__ import annotations

import html
import json
import logging
from typing import Any

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from fieldnotify.config import get_settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """SendGrid did not accept a notification email."""


def _rejection_reason(status_code: int | None, body: Any) -> str:
    """Describe a SendGrid rejection using the ``errors`` of its JSON body."""

    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    try:
        parsed = json.loads(body) if body else None
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        details = "; ".join(
            str(error["message"])
            for error in parsed.get("errors") or []
            if isinstance(error, dict) and error.get("message")
        )
    else:
        details = str(body).strip() if body else ""

    reason = f"SendGrid rejected the message ({status_code})"
    return f"{reason}: {details}" if details else reason


def _render(title: str, body: str) -> str:
    return f"<p><strong>{html.escape(title)}</strong></p><p>{html.escape(body)}</p>"


def send_notification_email(recipient: str, *, title: str, body: str, channel: str) -> None:
    """Send one notification email; urgent channels are flagged in the subject.

    Raises :class:`EmailDeliveryError` when email is not configured or
    SendGrid does not accept the message.
    """

    settings = get_settings()
    if not (settings.sendgrid_api_key and settings.sendgrid_sender):
        raise EmailDeliveryError("SendGrid is not configured")

    message = Mail(
        from_email=settings.sendgrid_sender,
        to_emails=recipient,
        subject=f"[Urgent] {title}" if channel == "modal" else title,
        html_content=_render(title, body),
    )
    try:
        response = SendGridAPIClient(settings.sendgrid_api_key).send(message)
    except Exception as exc:
        status_code = getattr(exc, "status_code", None)
        if status_code is None:
            logger.exception("Error sending email via SendGrid")
            raise EmailDeliveryError(f"SendGrid request failed: {exc}") from exc
        reason = _rejection_reason(status_code, getattr(exc, "body", None))
        logger.error("%s", reason)
        raise EmailDeliveryError(reason) from exc

    if not 200 <= response.status_code < 300:
        reason = _rejection_reason(response.status_code, getattr(response, "body", None))
        logger.error("%s", reason)
        raise EmailDeliveryError(reason)


__all__ = ["EmailDeliveryError", "send_notification_email"]
