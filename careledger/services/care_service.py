"""
Care session billing and signature lifecycle.

A session is opened by staff in WAITING_SIGNATURE with its discounted price
fixed at creation. The balance only moves when the member signs: settlement
deducts the price, completes the record and queues a notification in one
transaction. Recommendation refresh and email delivery run afterwards and may
fail without touching the settled state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from careledger.core.config import get_settings
from careledger.core.context import OperatorContext, Scope
from careledger.core.locks import member_lock
from careledger.db.models import CareRecord, Member
from careledger.db.session import get_session
from careledger.domain.care import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_WAITING,
    ensure_transition,
)
from careledger.domain.errors import (
    ConsistencyError,
    InsufficientBalanceError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from careledger.domain.ledger import KIND_SETTLEMENT, apply_balance_change
from careledger.domain.tiers import discount_rate, discounted_price
from careledger.repositories.sql_repository import SQLRepository, new_id
from careledger.services.audit import record_audit
from careledger.services.member_service import require_scope
from careledger.services.notification_service import (
    TYPE_SETTLEMENT,
    TYPE_SIGNATURE_REQUEST,
    NotificationService,
)
from careledger.services.recommendation_service import (
    OpenAIRecommendationProvider,
    RecommendationProvider,
    fetch_recommendation,
)
from careledger.services.transactions import (
    add_ledger_entry,
    commit_or_conflict,
    lock_care_record,
    lock_member,
)

logger = logging.getLogger(__name__)

Scheduler = Callable[..., Any]


def run_inline(func: Callable[..., Any], *args: Any) -> None:
    func(*args)


def settlement_message(record: CareRecord, remaining: int) -> str:
    service = record.content or "웰니스 케어"
    return f"[Wellness] {service} 이용. 차감액: {record.discounted_price:,}원. 잔액: {remaining:,}원."


@dataclass
class DashboardStats:
    pending_signatures: int
    active_members: int
    low_balance_members: int
    completed_this_month: int


class CareLedgerService:
    """Opens care sessions and settles them against member balances."""

    def __init__(
        self,
        repository: SQLRepository | None = None,
        notifications: NotificationService | None = None,
        provider: RecommendationProvider | None = None,
    ) -> None:
        self.settings = get_settings()
        self.repository = repository or SQLRepository()
        self.notifications = notifications or NotificationService(self.repository)
        self.provider = provider if provider is not None else OpenAIRecommendationProvider()

    # -------------------------------------- sessions --------------------------------------
    def process_care_session(
        self,
        ctx: OperatorContext,
        member_id: str,
        therapist_id: str,
        original_price: int,
        feedback: str = "",
        recommendation: str = "",
        content: str = "",
    ) -> CareRecord:
        require_scope(ctx, Scope.CARE_MANAGE)
        if isinstance(original_price, bool) or not isinstance(original_price, int) or original_price <= 0:
            raise ValidationError("금액을 입력해 주세요. (original_price must be > 0)")
        member = self.repository.get_member(member_id)
        if not member:
            raise NotFoundError(f"Member {member_id} not found")
        therapist = self.repository.get_therapist(therapist_id)
        if not therapist:
            raise NotFoundError(f"Therapist {therapist_id} not found")

        rate = discount_rate(member.tier)
        price = discounted_price(original_price, rate)
        if int(member.remaining) < price:
            raise InsufficientBalanceError(
                f"잔액이 부족합니다. (remaining={member.remaining}, required={price})"
            )

        now = datetime.now(timezone.utc)
        record = CareRecord(
            id=new_id("care"),
            member_id=member.id,
            therapist_id=therapist.id,
            therapist_name=therapist.name,
            content=(content or "").strip(),
            original_price=original_price,
            discount_rate=float(rate),
            discounted_price=price,
            feedback=feedback or "",
            recommendation=recommendation or "",
            status=STATUS_WAITING,
            signature=None,
            signed_at=None,
            cancel_reason=None,
            resend_count=0,
            date=now.date().isoformat(),
            year_month=now.strftime("%Y-%m"),
            requested_at=now,
            created_at=now,
        )
        with get_session() as session:
            session.add(record)
            record_audit(session, ctx, "CARE_CREATE", f"care:{record.id}", f"member={member.id}, price={price}")
            session.commit()
        logger.info(
            "Care session %s opened for member %s: %s -> %s (rate %s)",
            record.id, member.id, original_price, price, rate,
        )
        return record

    def sign_care_record(
        self,
        ctx: OperatorContext,
        record_id: str,
        signature: str,
        *,
        schedule: Scheduler | None = None,
    ) -> CareRecord:
        """
        Settle a care record. Re-signing a COMPLETED record is a no-op.

        Either balance, record, journal, outbox and audit all commit together or
        nothing does. Follow-ups are handed to `schedule` after commit
        (FastAPI BackgroundTasks.add_task in the HTTP layer, inline otherwise).
        """
        existing = self.repository.get_care_record(record_id)
        if not existing:
            raise NotFoundError(f"Care record {record_id} not found")
        if not ctx.acts_for_member(existing.member_id):
            raise PermissionDeniedError("다른 회원의 기록에는 서명할 수 없습니다.")
        if existing.status == STATUS_COMPLETED:
            logger.info("Care record %s already completed; ignoring duplicate signature", record_id)
            return existing
        signature = (signature or "").strip()
        if not signature:
            raise ValidationError("회원 서명이 필요합니다.")

        member_id = existing.member_id
        with member_lock(member_id), get_session() as session:
            record = lock_care_record(session, record_id)
            if record is None:
                raise NotFoundError(f"Care record {record_id} not found")
            if record.status == STATUS_COMPLETED:
                return record
            ensure_transition(record.id, record.status, STATUS_COMPLETED)
            member = lock_member(session, member_id)
            if member is None:
                raise ConsistencyError(f"Care record {record_id} references missing member {member_id}")

            balance = apply_balance_change(member, used_delta=int(record.discounted_price))
            record.status = STATUS_COMPLETED
            record.signature = signature
            record.signed_at = datetime.now(timezone.utc)
            add_ledger_entry(session, member, KIND_SETTLEMENT, int(record.discounted_price), care_record_id=record.id)
            notification = self.notifications.queue(
                session,
                member,
                "케어 이용 및 차감 안내",
                settlement_message(record, balance.remaining),
                kind=TYPE_SETTLEMENT,
            )
            record_audit(
                session, ctx, "CARE_SETTLE", f"care:{record.id}",
                f"member={member_id}, amount={record.discounted_price}, remaining={balance.remaining}",
            )
            commit_or_conflict(session, f"Member {member_id}")
            notification_id = notification.id

        logger.info(
            "Care record %s settled: member %s charged %s, remaining %s",
            record_id, member_id, record.discounted_price, balance.remaining,
        )
        (schedule or run_inline)(self.run_settlement_follow_ups, member_id, notification_id)
        return record

    def run_settlement_follow_ups(self, member_id: str, notification_id: str) -> None:
        """Best effort; failures are logged and never undo a settlement."""
        try:
            self.refresh_recommendation(member_id)
        except Exception:  # the settlement is already committed
            logger.warning("Recommendation refresh for member %s failed", member_id, exc_info=True)
        try:
            self.notifications.deliver(notification_id)
        except Exception:
            logger.warning("Delivery of notification %s failed", notification_id, exc_info=True)

    def refresh_recommendation(self, member_id: str) -> str:
        member = self.repository.get_member(member_id, include_deleted=True)
        if not member:
            raise ConsistencyError(f"Member {member_id} disappeared after settlement")
        history = [
            r.content
            for r in self.repository.get_member_care_history(member_id, status=STATUS_COMPLETED)
            if r.content
        ]
        text = fetch_recommendation(
            self.provider,
            member.core_goal or "",
            history,
            timeout=self.settings.recommendation_timeout_seconds,
        )
        self.repository.set_member_recommendation(member_id, text)
        return text

    # -------------------------------------- administration --------------------------------------
    def cancel_care_record(self, ctx: OperatorContext, record_id: str, reason: str = "") -> CareRecord:
        require_scope(ctx, Scope.CARE_MANAGE)
        existing = self.repository.get_care_record(record_id)
        if not existing:
            raise NotFoundError(f"Care record {record_id} not found")
        if existing.status == STATUS_CANCELLED:
            return existing
        with member_lock(existing.member_id), get_session() as session:
            record = lock_care_record(session, record_id)
            if record is None:
                raise NotFoundError(f"Care record {record_id} not found")
            if record.status == STATUS_CANCELLED:
                return record
            ensure_transition(record.id, record.status, STATUS_CANCELLED)
            record.status = STATUS_CANCELLED
            record.cancel_reason = (reason or "").strip() or None
            record_audit(session, ctx, "CARE_CANCEL", f"care:{record.id}", reason or "")
            session.commit()
        logger.info("Care record %s cancelled by %s", record_id, ctx.name)
        return record

    def resend_signature_request(
        self,
        ctx: OperatorContext,
        record_id: str,
        *,
        schedule: Scheduler | None = None,
    ) -> CareRecord:
        require_scope(ctx, Scope.CARE_MANAGE)
        with get_session() as session:
            record = lock_care_record(session, record_id)
            if record is None:
                raise NotFoundError(f"Care record {record_id} not found")
            if record.status != STATUS_WAITING:
                raise InvalidTransitionError(f"Care record {record_id} is {record.status}; no signature pending")
            member = session.get(Member, record.member_id)
            if member is None:
                raise ConsistencyError(f"Care record {record_id} references missing member {record.member_id}")
            record.resend_count = int(record.resend_count or 0) + 1
            record.requested_at = datetime.now(timezone.utc)
            notification = self.notifications.queue(
                session,
                member,
                "서명 요청 안내",
                f"{record.content or '웰니스 케어'} 이용 내역 확인 및 서명을 요청드립니다. "
                f"차감 예정액: {record.discounted_price:,}원.",
                kind=TYPE_SIGNATURE_REQUEST,
            )
            record_audit(session, ctx, "CARE_RESEND", f"care:{record.id}", f"count={record.resend_count}")
            session.commit()
            notification_id = notification.id
        (schedule or run_inline)(self.notifications.deliver, notification_id)
        return record

    # -------------------------------------- queries --------------------------------------
    def get_care_record(self, record_id: str) -> CareRecord:
        record = self.repository.get_care_record(record_id)
        if not record:
            raise NotFoundError(f"Care record {record_id} not found")
        return record

    def member_care_history(self, member_id: str) -> list[CareRecord]:
        if not self.repository.get_member(member_id, include_deleted=True):
            raise NotFoundError(f"Member {member_id} not found")
        return self.repository.get_member_care_history(member_id)

    def pending_signatures(self, member_id: str) -> list[CareRecord]:
        return self.repository.get_member_care_history(member_id, status=STATUS_WAITING)

    def dashboard_stats(self, ctx: OperatorContext) -> DashboardStats:
        require_scope(ctx, Scope.DASHBOARD_VIEW)
        this_month = datetime.now(timezone.utc).strftime("%Y-%m")
        return DashboardStats(
            pending_signatures=self.repository.count_care_records(STATUS_WAITING),
            active_members=self.repository.count_members(),
            low_balance_members=self.repository.count_low_balance_members(self.settings.low_balance_threshold),
            completed_this_month=self.repository.count_care_records(STATUS_COMPLETED, this_month),
        )
