"""High-level data access helpers backed by SQLAlchemy."""
from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, or_, select, update

from careledger.db.models import (
    AuditLog,
    CareRecord,
    Contract,
    LedgerEntry,
    Member,
    Notification,
    Therapist,
)
from careledger.db.session import get_session
from careledger.services.transactions import commit_or_conflict

# Balance and version columns only change through the ledger services; phone
# is the member key and is fixed at registration.
MEMBER_PROFILE_FIELDS = frozenset(
    {"name", "email", "gender", "core_goal", "ai_recommended", "admin_note", "expiry_date"}
)


def new_id(prefix: str) -> str:
    return f"{prefix}_{int(datetime.now(timezone.utc).timestamp() * 1000)}_{secrets.token_hex(3)}"


class SQLRepository:
    """CRUD helpers wrapping the SQLAlchemy session."""

    # -------------------------- members --------------------------
    def get_member(self, member_id: str, *, include_deleted: bool = False) -> Optional[Member]:
        with get_session() as session:
            member = session.get(Member, member_id)
            if member and not include_deleted and member.status == "deleted":
                return None
            return member

    def list_members(self) -> list[Member]:
        with get_session() as session:
            stmt = select(Member).where(Member.status != "deleted").order_by(Member.joined_at)
            return session.execute(stmt).scalars().all()

    def search_members(self, query: str) -> list[Member]:
        needle = (query or "").strip().lower()
        with get_session() as session:
            stmt = select(Member).where(Member.status != "deleted")
            if needle:
                pattern = f"%{needle}%"
                stmt = stmt.where(or_(func.lower(Member.name).like(pattern), Member.phone.like(pattern)))
            return session.execute(stmt.order_by(Member.name)).scalars().all()

    def update_member(self, member_id: str, **fields) -> Member:
        """Partial update of profile fields. Balance columns are rejected."""
        illegal = set(fields) - MEMBER_PROFILE_FIELDS
        if illegal:
            raise ValueError(f"Fields not updatable here: {', '.join(sorted(illegal))}")
        with get_session() as session:
            member = session.get(Member, member_id)
            if not member or member.status == "deleted":
                raise LookupError(member_id)
            for key, value in fields.items():
                setattr(member, key, value)
            commit_or_conflict(session, f"Member {member_id}")
            session.refresh(member)
            return member

    def set_member_recommendation(self, member_id: str, text: str) -> None:
        # Touches only ai_recommended; the balance version is left alone.
        with get_session() as session:
            stmt = (
                update(Member)
                .where(Member.id == member_id)
                .values(ai_recommended=text, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            session.execute(stmt)
            session.commit()

    def count_members(self) -> int:
        with get_session() as session:
            stmt = select(func.count()).select_from(Member).where(Member.status != "deleted")
            return int(session.execute(stmt).scalar_one())

    def count_low_balance_members(self, threshold: int) -> int:
        with get_session() as session:
            stmt = (
                select(func.count())
                .select_from(Member)
                .where(Member.status != "deleted", Member.remaining < threshold)
            )
            return int(session.execute(stmt).scalar_one())

    # -------------------------- therapists --------------------------
    def get_therapist(self, therapist_id: str) -> Optional[Therapist]:
        with get_session() as session:
            return session.get(Therapist, therapist_id)

    def list_therapists(self) -> list[Therapist]:
        with get_session() as session:
            return session.execute(select(Therapist).order_by(Therapist.name)).scalars().all()

    def create_therapist(self, name: str, specialty: str = "", phone: str = "") -> Therapist:
        entity = Therapist(id=new_id("ther"), name=name, specialty=specialty, phone=phone)
        with get_session() as session:
            session.add(entity)
            session.commit()
            session.refresh(entity)
            return entity

    # -------------------------- care records --------------------------
    def get_care_record(self, record_id: str) -> Optional[CareRecord]:
        with get_session() as session:
            return session.get(CareRecord, record_id)

    def get_member_care_history(self, member_id: str, status: str | None = None) -> list[CareRecord]:
        with get_session() as session:
            stmt = select(CareRecord).where(CareRecord.member_id == member_id)
            if status:
                stmt = stmt.where(CareRecord.status == status)
            return session.execute(stmt.order_by(CareRecord.requested_at)).scalars().all()

    def count_care_records(self, status: str, year_month: str | None = None) -> int:
        with get_session() as session:
            stmt = select(func.count()).select_from(CareRecord).where(CareRecord.status == status)
            if year_month:
                stmt = stmt.where(CareRecord.year_month == year_month)
            return int(session.execute(stmt).scalar_one())

    def sum_completed_charges(self, member_id: str) -> int:
        with get_session() as session:
            stmt = select(func.coalesce(func.sum(CareRecord.discounted_price), 0)).where(
                CareRecord.member_id == member_id, CareRecord.status == "COMPLETED"
            )
            return int(session.execute(stmt).scalar_one())

    # -------------------------- ledger --------------------------
    def get_ledger_entries(self, member_id: str) -> list[LedgerEntry]:
        with get_session() as session:
            stmt = select(LedgerEntry).where(LedgerEntry.member_id == member_id).order_by(LedgerEntry.id)
            return session.execute(stmt).scalars().all()

    def get_member_contracts(self, member_id: str) -> list[Contract]:
        with get_session() as session:
            stmt = select(Contract).where(Contract.member_id == member_id).order_by(Contract.created_at)
            return session.execute(stmt).scalars().all()

    # -------------------------- notifications --------------------------
    def get_notification(self, notification_id: str) -> Optional[Notification]:
        with get_session() as session:
            return session.get(Notification, notification_id)

    def get_member_notifications(self, member_id: str) -> list[Notification]:
        with get_session() as session:
            stmt = (
                select(Notification)
                .where(Notification.member_id == member_id)
                .order_by(Notification.created_at.desc(), Notification.id.desc())
            )
            return session.execute(stmt).scalars().all()

    def get_undelivered_notifications(self, max_attempts: int) -> list[Notification]:
        with get_session() as session:
            stmt = (
                select(Notification)
                .where(
                    Notification.delivered_at.is_(None),
                    Notification.recipient != "",
                    Notification.attempts < max_attempts,
                )
                .order_by(Notification.created_at)
            )
            return session.execute(stmt).scalars().all()

    def mark_notification_read(self, notification_id: str) -> bool:
        with get_session() as session:
            entity = session.get(Notification, notification_id)
            if not entity:
                return False
            entity.is_read = True
            session.commit()
            return True

    def record_delivery_attempt(self, notification_id: str, *, delivered: bool, error: str | None = None) -> None:
        with get_session() as session:
            entity = session.get(Notification, notification_id)
            if not entity:
                return
            entity.attempts = int(entity.attempts or 0) + 1
            if delivered:
                entity.delivered_at = datetime.now(timezone.utc)
                entity.last_error = None
            else:
                entity.last_error = error
            session.commit()

    # -------------------------- audit --------------------------
    def list_audit_logs(self, target: str | None = None) -> list[AuditLog]:
        with get_session() as session:
            stmt = select(AuditLog)
            if target:
                stmt = stmt.where(AuditLog.target == target)
            return session.execute(stmt.order_by(AuditLog.id.desc())).scalars().all()
