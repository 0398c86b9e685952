from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from careledger.core.context import OperatorContext, Scope, context_from_request
from careledger.routers.deps import (
    care_service,
    ensure_member_access,
    member_service,
    notification_service,
)
from careledger.routers.serializers import (
    care_record_to_dict,
    contract_to_dict,
    ledger_entry_to_dict,
    member_to_dict,
    notification_to_dict,
)
from careledger.services.member_service import require_scope

router = APIRouter(prefix="/members", tags=["members"])


class RegisterMemberIn(BaseModel):
    name: str
    phone: str
    email: str = ""
    deposit: int = 0
    gender: Optional[str] = None
    tier: Optional[str] = None
    core_goal: str = ""
    contract_type: str = "MEMBERSHIP"
    contract_name: str = ""
    signature: Optional[str] = None


class UpdateProfileIn(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    gender: Optional[str] = None
    core_goal: Optional[str] = None
    admin_note: Optional[str] = None
    expiry_date: Optional[str] = None


class TopUpIn(BaseModel):
    amount: int
    note: str = ""
    contract_type: str = "MEMBERSHIP"
    contract_name: str = ""
    signature: Optional[str] = None


@router.post("", status_code=201)
def register_member(payload: RegisterMemberIn, request: Request, ctx: OperatorContext = Depends(context_from_request)):
    member = member_service(request).register_member(ctx, **payload.model_dump())
    return member_to_dict(member)


@router.get("")
def search_members(request: Request, q: str = "", ctx: OperatorContext = Depends(context_from_request)):
    require_scope(ctx, Scope.MEMBER_MANAGE)
    return [member_to_dict(m) for m in member_service(request).search_members(q)]


@router.get("/{member_id}")
def get_member(member_id: str, request: Request, ctx: OperatorContext = Depends(context_from_request)):
    ensure_member_access(ctx, member_id)
    return member_to_dict(member_service(request).get_member(member_id))


@router.patch("/{member_id}")
def update_member(
    member_id: str,
    payload: UpdateProfileIn,
    request: Request,
    ctx: OperatorContext = Depends(context_from_request),
):
    fields = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    member = member_service(request).update_profile(ctx, member_id, **fields)
    return member_to_dict(member)


@router.post("/{member_id}/top-ups")
def top_up(member_id: str, payload: TopUpIn, request: Request, ctx: OperatorContext = Depends(context_from_request)):
    member = member_service(request).top_up(
        ctx,
        member_id,
        payload.amount,
        payload.note,
        contract_type=payload.contract_type,
        contract_name=payload.contract_name,
        signature=payload.signature,
    )
    return member_to_dict(member)


@router.delete("/{member_id}", status_code=204)
def delete_member(member_id: str, request: Request, ctx: OperatorContext = Depends(context_from_request)):
    member_service(request).delete_member(ctx, member_id)


@router.get("/{member_id}/ledger")
def member_ledger(member_id: str, request: Request, ctx: OperatorContext = Depends(context_from_request)):
    ensure_member_access(ctx, member_id)
    svc = member_service(request)
    report = svc.verify_member_ledger(member_id)
    return {
        "member_id": report.member_id,
        "deposit": report.deposit,
        "used": report.used,
        "remaining": report.remaining,
        "completed_charges": report.completed_charges,
        "entries": [ledger_entry_to_dict(e) for e in svc.repository.get_ledger_entries(member_id)],
    }


@router.get("/{member_id}/care")
def member_care_history(member_id: str, request: Request, ctx: OperatorContext = Depends(context_from_request)):
    ensure_member_access(ctx, member_id)
    return [care_record_to_dict(r) for r in care_service(request).member_care_history(member_id)]


@router.get("/{member_id}/pending")
def member_pending_signatures(member_id: str, request: Request, ctx: OperatorContext = Depends(context_from_request)):
    ensure_member_access(ctx, member_id)
    return [care_record_to_dict(r) for r in care_service(request).pending_signatures(member_id)]


@router.get("/{member_id}/notifications")
def member_notifications(member_id: str, request: Request, ctx: OperatorContext = Depends(context_from_request)):
    ensure_member_access(ctx, member_id)
    return [notification_to_dict(n) for n in notification_service(request).list_notifications(member_id)]


@router.get("/{member_id}/contracts")
def member_contracts(member_id: str, request: Request, ctx: OperatorContext = Depends(context_from_request)):
    ensure_member_access(ctx, member_id)
    return [contract_to_dict(c) for c in member_service(request).member_contracts(member_id)]
