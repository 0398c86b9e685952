"""Membership tiers, discount rates and price rounding."""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from enum import Enum


class MemberTier(str, Enum):
    SILVER = "SILVER"
    GOLD = "GOLD"
    ROYAL = "ROYAL"


TIER_DISCOUNTS: dict[MemberTier, Decimal] = {
    MemberTier.ROYAL: Decimal("0.20"),
    MemberTier.GOLD: Decimal("0.15"),
    MemberTier.SILVER: Decimal("0.10"),
}

_TIER_ORDER = [MemberTier.SILVER, MemberTier.GOLD, MemberTier.ROYAL]


def parse_tier(value: str | MemberTier | None) -> MemberTier:
    """Unknown or empty values fall back to SILVER."""
    if isinstance(value, MemberTier):
        return value
    try:
        return MemberTier((value or "").strip().upper())
    except ValueError:
        return MemberTier.SILVER


def discount_rate(tier: str | MemberTier | None) -> Decimal:
    return TIER_DISCOUNTS[parse_tier(tier)]


def discounted_price(original_price: int, rate: Decimal) -> int:
    """original × (1 − rate), rounded half-up to the nearest won."""
    value = Decimal(int(original_price)) * (Decimal(1) - rate)
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def tier_for_deposit(deposit: int, *, gold_threshold: int, royal_threshold: int) -> MemberTier:
    if deposit >= royal_threshold:
        return MemberTier.ROYAL
    if deposit >= gold_threshold:
        return MemberTier.GOLD
    return MemberTier.SILVER


def higher_tier(current: str | MemberTier | None, candidate: MemberTier) -> MemberTier:
    """Tiers only move up; a smaller derived tier never downgrades a member."""
    current_tier = parse_tier(current)
    if _TIER_ORDER.index(candidate) > _TIER_ORDER.index(current_tier):
        return candidate
    return current_tier
