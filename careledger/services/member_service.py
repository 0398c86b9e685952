"""
Member registration, profile and deposit use cases.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select

from careledger.core.config import get_settings
from careledger.core.context import OperatorContext, Scope
from careledger.core.locks import member_lock
from careledger.db.models import AuditLog, CareRecord, Contract, Member, Therapist
from careledger.db.session import get_session
from careledger.domain.care import STATUS_CANCELLED, STATUS_WAITING
from careledger.domain.errors import (
    ConsistencyError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from careledger.domain.ledger import (
    CONTRACT_MEMBERSHIP,
    CONTRACT_TYPES,
    KIND_DEPOSIT,
    apply_balance_change,
    check_invariant,
)
from careledger.domain.members import is_valid_email, member_id_from_phone
from careledger.domain.tiers import MemberTier, higher_tier, parse_tier, tier_for_deposit
from careledger.repositories.sql_repository import MEMBER_PROFILE_FIELDS, SQLRepository
from careledger.services.audit import record_audit
from careledger.services.transactions import (
    add_contract,
    add_ledger_entry,
    commit_or_conflict,
    lock_member,
)

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "active"
STATUS_DELETED = "deleted"


def require_scope(ctx: OperatorContext, scope: Scope) -> None:
    if not ctx.can(scope):
        raise PermissionDeniedError(f"{ctx.name} ({ctx.role.value}) lacks {scope.value}")


@dataclass
class LedgerReport:
    member_id: str
    deposit: int
    used: int
    remaining: int
    completed_charges: int


@dataclass
class MemberService:
    """Handles member registration, profile edits, top-ups and soft deletion."""

    repository: SQLRepository | None = None

    def __post_init__(self):
        self.settings = get_settings()
        if self.repository is None:
            self.repository = SQLRepository()

    # -------------------------------------- helpers --------------------------------------
    @staticmethod
    def _check_contract_type(contract_type: str) -> str:
        value = (contract_type or CONTRACT_MEMBERSHIP).strip().upper()
        if value not in CONTRACT_TYPES:
            raise ValidationError(f"알 수 없는 계약 유형입니다: {contract_type}")
        return value

    def _record_deposit(
        self,
        session,
        member: Member,
        amount: int,
        *,
        contract_type: str,
        type_name: str,
        signature: str | None,
        note: str | None,
    ) -> Contract:
        contract = add_contract(
            session, member, amount, contract_type=contract_type, type_name=type_name, signature=signature
        )
        entry = add_ledger_entry(session, member, KIND_DEPOSIT, amount, contract_id=contract.id, note=note)
        entry.contract = contract
        return contract

    def _derived_tier(self, deposit: int) -> MemberTier:
        return tier_for_deposit(
            deposit,
            gold_threshold=self.settings.tier_gold_threshold,
            royal_threshold=self.settings.tier_royal_threshold,
        )

    # -------------------------------------- members --------------------------------------
    def register_member(
        self,
        ctx: OperatorContext,
        *,
        name: str,
        phone: str,
        email: str = "",
        deposit: int = 0,
        gender: str | None = None,
        tier: str | None = None,
        core_goal: str = "",
        contract_type: str = CONTRACT_MEMBERSHIP,
        contract_name: str = "",
        signature: str | None = None,
    ) -> Member:
        require_scope(ctx, Scope.MEMBER_MANAGE)
        contract_type = self._check_contract_type(contract_type)
        name = (name or "").strip()
        email = (email or "").strip()
        member_id = member_id_from_phone(phone)
        if not name:
            raise ValidationError("회원명을 입력해 주세요.")
        if not member_id:
            raise ValidationError("휴대폰 번호가 올바르지 않습니다.")
        if email and not is_valid_email(email):
            raise ValidationError("이메일 형식이 올바르지 않습니다.")
        if isinstance(deposit, bool) or not isinstance(deposit, int) or deposit < 0:
            raise ValidationError("예치금은 0 이상의 정수여야 합니다.")

        with member_lock(member_id), get_session() as session:
            existing = session.get(Member, member_id)
            if existing is not None:
                if existing.status == STATUS_DELETED:
                    raise ValidationError("삭제된 회원의 번호입니다.", code="deleted_member", status_code=409)
                raise ValidationError("이미 등록된 휴대폰 번호입니다.", code="duplicate", status_code=409)
            resolved_tier = parse_tier(tier) if tier else self._derived_tier(deposit)
            member = Member(
                id=member_id,
                name=name,
                phone=(phone or "").strip(),
                email=email,
                gender=gender,
                tier=resolved_tier.value,
                deposit=0,
                used=0,
                remaining=0,
                core_goal=core_goal or "",
                ai_recommended="",
                status=STATUS_ACTIVE,
            )
            if deposit:
                apply_balance_change(member, deposit_delta=deposit)
            session.add(member)
            session.flush()
            if deposit:
                self._record_deposit(
                    session, member, deposit, contract_type=contract_type, type_name=contract_name,
                    signature=signature, note="initial deposit",
                )
            record_audit(session, ctx, "REGISTER", f"member:{member_id}", f"deposit={deposit}, tier={member.tier}")
            commit_or_conflict(session, f"Member {member_id}")
            session.refresh(member)
        logger.info("Registered member %s (tier=%s, deposit=%s)", member_id, member.tier, deposit)
        return member

    def get_member(self, member_id: str) -> Member:
        member = self.repository.get_member(member_id)
        if not member:
            raise NotFoundError(f"Member {member_id} not found")
        return member

    def search_members(self, query: str = "") -> list[Member]:
        return self.repository.search_members(query)

    def update_profile(self, ctx: OperatorContext, member_id: str, **fields) -> Member:
        require_scope(ctx, Scope.MEMBER_MANAGE)
        unknown = set(fields) - MEMBER_PROFILE_FIELDS
        if unknown:
            raise ValidationError(f"수정할 수 없는 항목입니다: {', '.join(sorted(unknown))}")
        if "email" in fields and fields["email"] and not is_valid_email(fields["email"]):
            raise ValidationError("이메일 형식이 올바르지 않습니다.")
        try:
            return self.repository.update_member(member_id, **fields)
        except LookupError:
            raise NotFoundError(f"Member {member_id} not found")

    def top_up(
        self,
        ctx: OperatorContext,
        member_id: str,
        amount: int,
        note: str = "",
        *,
        contract_type: str = CONTRACT_MEMBERSHIP,
        contract_name: str = "",
        signature: str | None = None,
    ) -> Member:
        """Add a deposit under a signed contract; the tier may move up but never down."""
        require_scope(ctx, Scope.MEMBER_MANAGE)
        contract_type = self._check_contract_type(contract_type)
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("충전 금액은 0보다 커야 합니다.")
        with member_lock(member_id), get_session() as session:
            member = lock_member(session, member_id)
            if member is None or member.status == STATUS_DELETED:
                raise NotFoundError(f"Member {member_id} not found")
            apply_balance_change(member, deposit_delta=amount)
            member.tier = higher_tier(member.tier, self._derived_tier(member.deposit)).value
            contract = self._record_deposit(
                session, member, amount, contract_type=contract_type, type_name=contract_name,
                signature=signature, note=note or None,
            )
            record_audit(
                session, ctx, "TOP_UP", f"member:{member_id}",
                f"amount={amount}, contract={contract.id} ({contract_type})",
            )
            commit_or_conflict(session, f"Member {member_id}")
            session.refresh(member)
        logger.info("Top-up %s for member %s; remaining=%s", amount, member_id, member.remaining)
        return member

    def delete_member(self, ctx: OperatorContext, member_id: str) -> None:
        """Soft delete. Pending care records are cancelled with the member."""
        require_scope(ctx, Scope.MEMBER_DELETE)
        with member_lock(member_id), get_session() as session:
            member = lock_member(session, member_id)
            if member is None or member.status == STATUS_DELETED:
                raise NotFoundError(f"Member {member_id} not found")
            member.status = STATUS_DELETED
            stmt = select(CareRecord).where(CareRecord.member_id == member_id, CareRecord.status == STATUS_WAITING)
            pending = session.execute(stmt).scalars().all()
            for record in pending:
                record.status = STATUS_CANCELLED
                record.cancel_reason = "member deleted"
            record_audit(session, ctx, "DELETE", f"member:{member_id}", f"cancelled={len(pending)}")
            commit_or_conflict(session, f"Member {member_id}")
        logger.info("Member %s soft-deleted", member_id)

    def member_contracts(self, member_id: str) -> list[Contract]:
        if not self.repository.get_member(member_id, include_deleted=True):
            raise NotFoundError(f"Member {member_id} not found")
        return self.repository.get_member_contracts(member_id)

    def verify_member_ledger(self, member_id: str) -> LedgerReport:
        """Raise ConsistencyError when the balance triple and completed charges disagree."""
        member = self.repository.get_member(member_id, include_deleted=True)
        if not member:
            raise NotFoundError(f"Member {member_id} not found")
        check_invariant(member)
        charges = self.repository.sum_completed_charges(member_id)
        if int(member.used) != charges:
            raise ConsistencyError(
                f"Member {member_id} used={member.used} but completed care totals {charges}"
            )
        return LedgerReport(member.id, member.deposit, member.used, member.remaining, charges)

    def audit_trail(self, ctx: OperatorContext, target: str | None = None) -> list[AuditLog]:
        require_scope(ctx, Scope.AUDIT_VIEW)
        return self.repository.list_audit_logs(target)

    # -------------------------------------- therapists --------------------------------------
    def add_therapist(self, ctx: OperatorContext, name: str, specialty: str = "", phone: str = "") -> Therapist:
        require_scope(ctx, Scope.MEMBER_MANAGE)
        name = (name or "").strip()
        if not name:
            raise ValidationError("테라피스트 이름을 입력해 주세요.")
        return self.repository.create_therapist(name, (specialty or "").strip(), (phone or "").strip())

    def list_therapists(self) -> list[Therapist]:
        return self.repository.list_therapists()
