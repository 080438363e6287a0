"""Deterministic keys that identify the same logical notification."""

from __future__ import annotations

import json
from datetime import datetime
from hashlib import sha256

from fieldnotify.utils import to_epoch_seconds


def window_bucket(occurred_at: datetime, window_seconds: int) -> int:
    """Return the start, in epoch seconds, of the window holding ``occurred_at``."""

    if window_seconds <= 0:
        raise ValueError("window_seconds must be positive")
    epoch = int(to_epoch_seconds(occurred_at))
    return epoch - (epoch % window_seconds)


def build_fingerprint(
    job_id: str,
    recipient_id: str,
    event_type: str,
    occurred_at: datetime,
    window_seconds: int,
) -> str:
    """Return the sha256 hex fingerprint for one job, recipient and event type."""

    bucket = window_bucket(occurred_at, window_seconds)
    material = json.dumps(
        [job_id, recipient_id, str(event_type), bucket],
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return sha256(material.encode("utf-8")).hexdigest()


__all__ = ["build_fingerprint", "window_bucket"]
