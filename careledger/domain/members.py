"""Domain helpers for member identity and contact validation."""
from __future__ import annotations

import re

EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
_NON_DIGITS = re.compile(r"[^0-9]")


def member_id_from_phone(phone: str | None) -> str:
    """Members are keyed by the digits of their phone number."""
    return _NON_DIGITS.sub("", phone or "")


def is_valid_email(value: str | None) -> bool:
    if not value:
        return False
    return bool(EMAIL_PATTERN.fullmatch(value.strip()))
