"""
Single mutation path for a member's balance triple.

Every caller that changes deposit or used goes through apply_balance_change so
that remaining = deposit - used holds after each write.
"""
from __future__ import annotations

from dataclasses import dataclass

from .errors import ConsistencyError, InsufficientBalanceError, ValidationError

KIND_DEPOSIT = "DEPOSIT"
KIND_SETTLEMENT = "SETTLEMENT"

CONTRACT_MEMBERSHIP = "MEMBERSHIP"
CONTRACT_TYPES = frozenset({CONTRACT_MEMBERSHIP, "WAIVER", "PT_AGREEMENT"})


@dataclass(frozen=True)
class Balance:
    deposit: int
    used: int
    remaining: int


def balance_of(member) -> Balance:
    return Balance(int(member.deposit or 0), int(member.used or 0), int(member.remaining or 0))


def check_invariant(member) -> None:
    bal = balance_of(member)
    if bal.remaining != bal.deposit - bal.used:
        raise ConsistencyError(
            f"Member {member.id} balance is inconsistent "
            f"(deposit={bal.deposit}, used={bal.used}, remaining={bal.remaining})"
        )


def apply_balance_change(member, *, deposit_delta: int = 0, used_delta: int = 0) -> Balance:
    """Mutate the member in place and return the new balance."""
    if deposit_delta < 0 or used_delta < 0:
        raise ValidationError("Balance deltas must not be negative.")
    check_invariant(member)
    current = balance_of(member)
    deposit = current.deposit + deposit_delta
    used = current.used + used_delta
    remaining = deposit - used
    if remaining < 0:
        raise InsufficientBalanceError(
            f"잔액이 부족합니다. (remaining={current.remaining}, required={used_delta})"
        )
    member.deposit = deposit
    member.used = used
    member.remaining = remaining
    return Balance(deposit, used, remaining)
