"""Canonicalization of the several identifiers that denote one staff member."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Final

from fieldnotify.domain.errors import InvalidRecipientError

KEY_SEPARATOR: Final[str] = ":"
LEGACY_KIND: Final[str] = "legacy"


def recipient_key(kind: str, value: str) -> str:
    """Return the qualified raw key ``kind:value``."""

    return f"{kind}{KEY_SEPARATOR}{value}"


def split_recipient_key(raw_key: str, known_kinds: Iterable[str]) -> tuple[str, str]:
    """Split ``raw_key`` into ``(kind, value)``.

    Bare values, and values whose prefix is not a known kind, belong to the
    legacy assignment field.
    """

    kind, separator, value = raw_key.partition(KEY_SEPARATOR)
    if separator and kind in set(known_kinds):
        return kind, value.strip()
    return LEGACY_KIND, raw_key.strip()


def resolve_recipient(
    recipient_keys: Sequence[str | None], precedence: Sequence[str]
) -> str:
    """Return the canonical recipient id for ``recipient_keys``.

    The first kind in ``precedence`` with a non-empty value wins. Several
    values of that kind resolve to the smallest one so the input order never
    matters.
    """

    values_by_kind: dict[str, set[str]] = {}
    for raw_key in recipient_keys:
        if not raw_key:
            continue
        kind, value = split_recipient_key(raw_key, precedence)
        if value:
            values_by_kind.setdefault(kind, set()).add(value)

    for kind in precedence:
        candidates = values_by_kind.get(kind)
        if candidates:
            return min(candidates)

    raise InvalidRecipientError("No usable recipient identifier was provided")


__all__ = [
    "KEY_SEPARATOR",
    "LEGACY_KIND",
    "recipient_key",
    "resolve_recipient",
    "split_recipient_key",
]
