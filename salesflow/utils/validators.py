"""Deterministic validators and sanitizers used by the webhook and agents."""

from __future__ import annotations

import re

_NON_DIGITS = re.compile(r"\D+")
_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def sanitize_text(value: str | None, max_len: int = 20000) -> str:
    """Sanitize free-form content before persistence."""
    if value is None:
        return ""
    cleaned = str(value).replace("\x00", "").strip()
    cleaned = cleaned[:max_len]
    return cleaned


def normalize_phone(value: str | None) -> str:
    """Digits of a WhatsApp JID or raw number, without the server suffix."""
    if not value:
        return ""
    local_part = str(value).split("@", 1)[0]
    # Multi-device JIDs carry a ":<device>" suffix on the local part.
    local_part = local_part.split(":", 1)[0]
    return _NON_DIGITS.sub("", local_part)


def strip_code_fence(value: str | None) -> str:
    """Remove a markdown code fence wrapped around a JSON completion."""
    text = sanitize_text(value)
    return _CODE_FENCE.sub("", text).strip()
