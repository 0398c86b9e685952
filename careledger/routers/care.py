from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from pydantic import BaseModel

from careledger.core.context import OperatorContext, context_from_request
from careledger.core.rate_limiter import throttle_signatures
from careledger.routers.deps import care_service, ensure_member_access
from careledger.routers.serializers import care_record_to_dict

router = APIRouter(prefix="/care", tags=["care"])


class CareSessionIn(BaseModel):
    member_id: str
    therapist_id: str
    original_price: int
    feedback: str = ""
    recommendation: str = ""
    content: str = ""


class SignatureIn(BaseModel):
    signature: str


class CancelIn(BaseModel):
    reason: str = ""


@router.post("/sessions", status_code=201)
def process_care_session(payload: CareSessionIn, request: Request, ctx: OperatorContext = Depends(context_from_request)):
    record = care_service(request).process_care_session(
        ctx,
        payload.member_id,
        payload.therapist_id,
        payload.original_price,
        payload.feedback,
        payload.recommendation,
        payload.content,
    )
    return care_record_to_dict(record)


@router.get("/{record_id}")
def get_care_record(record_id: str, request: Request, ctx: OperatorContext = Depends(context_from_request)):
    record = care_service(request).get_care_record(record_id)
    ensure_member_access(ctx, record.member_id)
    return care_record_to_dict(record, include_signature=True)


@router.post("/{record_id}/sign")
def sign_care_record(
    record_id: str,
    payload: SignatureIn,
    request: Request,
    background_tasks: BackgroundTasks,
    ctx: OperatorContext = Depends(context_from_request),
):
    throttle_signatures(request, ctx)
    record = care_service(request).sign_care_record(
        ctx, record_id, payload.signature, schedule=background_tasks.add_task
    )
    return care_record_to_dict(record)


@router.post("/{record_id}/cancel")
def cancel_care_record(
    record_id: str,
    request: Request,
    payload: CancelIn | None = None,
    ctx: OperatorContext = Depends(context_from_request),
):
    reason = payload.reason if payload else ""
    return care_record_to_dict(care_service(request).cancel_care_record(ctx, record_id, reason))


@router.post("/{record_id}/resend")
def resend_signature_request(
    record_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    ctx: OperatorContext = Depends(context_from_request),
):
    record = care_service(request).resend_signature_request(ctx, record_id, schedule=background_tasks.add_task)
    return care_record_to_dict(record)
