from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from careledger.domain.care import (  # noqa: E402
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_WAITING,
    can_transition,
    ensure_transition,
)
from careledger.domain.errors import (  # noqa: E402
    ConsistencyError,
    InsufficientBalanceError,
    InvalidTransitionError,
    ValidationError,
)
from careledger.domain.ledger import apply_balance_change, check_invariant  # noqa: E402
from careledger.domain.members import is_valid_email, member_id_from_phone  # noqa: E402
from careledger.domain.tiers import (  # noqa: E402
    MemberTier,
    discount_rate,
    discounted_price,
    higher_tier,
    parse_tier,
    tier_for_deposit,
)


def _member(deposit=0, used=0, remaining=None):
    return SimpleNamespace(
        id="m1",
        deposit=deposit,
        used=used,
        remaining=deposit - used if remaining is None else remaining,
    )


@pytest.mark.parametrize(
    "tier, rate",
    [("SILVER", "0.10"), ("GOLD", "0.15"), ("ROYAL", "0.20"), ("gold", "0.15"), ("", "0.10"), (None, "0.10")],
)
def test_discount_rate_by_tier(tier, rate):
    assert discount_rate(tier) == Decimal(rate)


def test_discounted_price_rounds_half_up():
    assert discounted_price(100_000, Decimal("0.15")) == 85_000
    assert discounted_price(100_000, Decimal("0.10")) == 90_000
    assert discounted_price(15, Decimal("0.10")) == 14  # 13.5
    assert discounted_price(5, Decimal("0.10")) == 5  # 4.5
    assert discounted_price(33_333, Decimal("0.15")) == 28_333  # 28333.05


def test_tier_for_deposit_thresholds():
    kwargs = {"gold_threshold": 5_000_000, "royal_threshold": 10_000_000}
    assert tier_for_deposit(0, **kwargs) is MemberTier.SILVER
    assert tier_for_deposit(4_999_999, **kwargs) is MemberTier.SILVER
    assert tier_for_deposit(5_000_000, **kwargs) is MemberTier.GOLD
    assert tier_for_deposit(10_000_000, **kwargs) is MemberTier.ROYAL


def test_higher_tier_never_downgrades():
    assert higher_tier("ROYAL", MemberTier.SILVER) is MemberTier.ROYAL
    assert higher_tier("SILVER", MemberTier.GOLD) is MemberTier.GOLD
    assert higher_tier("unknown", MemberTier.SILVER) is MemberTier.SILVER
    assert parse_tier(MemberTier.GOLD) is MemberTier.GOLD


def test_apply_balance_change_keeps_remaining_in_sync():
    member = _member(deposit=1_000_000)

    balance = apply_balance_change(member, used_delta=85_000)
    assert (balance.deposit, balance.used, balance.remaining) == (1_000_000, 85_000, 915_000)
    balance = apply_balance_change(member, deposit_delta=50_000)
    assert balance.remaining == 965_000
    assert member.remaining == member.deposit - member.used


def test_apply_balance_change_rejects_overdraft_and_negative_deltas():
    member = _member(deposit=10_000)

    with pytest.raises(InsufficientBalanceError):
        apply_balance_change(member, used_delta=10_001)
    assert (member.deposit, member.used, member.remaining) == (10_000, 0, 10_000)

    with pytest.raises(ValidationError):
        apply_balance_change(member, deposit_delta=-1)
    with pytest.raises(ValidationError):
        apply_balance_change(member, used_delta=-1)


def test_apply_balance_change_refuses_corrupt_balance():
    member = _member(deposit=100, used=10, remaining=50)
    with pytest.raises(ConsistencyError):
        check_invariant(member)
    with pytest.raises(ConsistencyError):
        apply_balance_change(member, used_delta=1)


def test_care_status_transitions():
    assert can_transition(STATUS_WAITING, STATUS_COMPLETED)
    assert can_transition(STATUS_WAITING, STATUS_CANCELLED)
    assert not can_transition(STATUS_COMPLETED, STATUS_CANCELLED)
    assert not can_transition(STATUS_CANCELLED, STATUS_COMPLETED)
    with pytest.raises(InvalidTransitionError):
        ensure_transition("care_1", STATUS_CANCELLED, STATUS_COMPLETED)


def test_member_identity_helpers():
    assert member_id_from_phone("010-1234-5678") == "01012345678"
    assert member_id_from_phone(" 010 1234 5678 ") == "01012345678"
    assert member_id_from_phone(None) == ""
    assert is_valid_email("lee@example.com")
    assert not is_valid_email("lee@example")
    assert not is_valid_email("")
