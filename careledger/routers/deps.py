"""Shared router helpers: service lookup and access checks."""
from __future__ import annotations

from fastapi import Request

from careledger.core.context import OperatorContext
from careledger.domain.errors import PermissionDeniedError
from careledger.services.care_service import CareLedgerService
from careledger.services.member_service import MemberService
from careledger.services.notification_service import NotificationService


def _state_attr(request: Request, name: str):
    svc = getattr(getattr(request.app, "state", None), name, None)
    if not svc:
        raise RuntimeError(f"{name} not configured")
    return svc


def member_service(request: Request) -> MemberService:
    return _state_attr(request, "member_service")


def care_service(request: Request) -> CareLedgerService:
    return _state_attr(request, "care_service")


def notification_service(request: Request) -> NotificationService:
    return _state_attr(request, "notification_service")


def ensure_member_access(ctx: OperatorContext, member_id: str) -> None:
    if not ctx.acts_for_member(member_id):
        raise PermissionDeniedError("본인의 정보만 조회할 수 있습니다.")
