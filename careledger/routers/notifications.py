from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from careledger.core.context import OperatorContext, context_from_request
from careledger.domain.errors import NotFoundError
from careledger.routers.deps import ensure_member_access, notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post("/{notification_id}/read")
def mark_read(notification_id: str, request: Request, ctx: OperatorContext = Depends(context_from_request)):
    svc = notification_service(request)
    entity = svc.repository.get_notification(notification_id)
    if not entity:
        raise NotFoundError(f"Notification {notification_id} not found")
    ensure_member_access(ctx, entity.member_id)
    svc.mark_read(notification_id)
    return {"ok": True}
