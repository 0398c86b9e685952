"""Helpers for the per-member write transactions."""
from __future__ import annotations

import secrets
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from careledger.db.models import CareRecord, Contract, LedgerEntry, Member
from careledger.domain.errors import ConcurrentUpdateError


def lock_member(session: Session, member_id: str) -> Member | None:
    stmt = select(Member).where(Member.id == member_id).with_for_update()
    return session.execute(stmt).scalar_one_or_none()


def lock_care_record(session: Session, record_id: str) -> CareRecord | None:
    stmt = select(CareRecord).where(CareRecord.id == record_id).with_for_update()
    return session.execute(stmt).scalar_one_or_none()


def commit_or_conflict(session: Session, target: str) -> None:
    """Commit; a version mismatch means another writer got there first."""
    try:
        session.commit()
    except StaleDataError as exc:
        session.rollback()
        raise ConcurrentUpdateError(f"{target} was modified concurrently; retry the operation.") from exc


def add_ledger_entry(
    session: Session,
    member: Member,
    kind: str,
    amount: int,
    *,
    care_record_id: str | None = None,
    contract_id: str | None = None,
    note: str | None = None,
) -> LedgerEntry:
    """Journal the balance as it stands after the change just applied to member."""
    entry = LedgerEntry(
        member_id=member.id,
        kind=kind,
        amount=amount,
        deposit_after=member.deposit,
        used_after=member.used,
        remaining_after=member.remaining,
        care_record_id=care_record_id,
        contract_id=contract_id,
        note=note,
    )
    session.add(entry)
    return entry


def add_contract(
    session: Session,
    member: Member,
    amount: int,
    *,
    contract_type: str,
    type_name: str = "",
    signature: str | None = None,
) -> Contract:
    now = datetime.now(timezone.utc)
    contract = Contract(
        id=f"con_{int(now.timestamp() * 1000)}_{secrets.token_hex(3)}",
        member_id=member.id,
        type=contract_type,
        type_name=type_name,
        amount=amount,
        status="COMPLETED",
        signature=signature,
        year_month=now.strftime("%Y-%m"),
        created_at=now,
    )
    session.add(contract)
    return contract
