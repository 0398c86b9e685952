from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Request

from careledger.core.context import OperatorContext, context_from_request
from careledger.routers.deps import care_service, member_service
from careledger.routers.serializers import audit_to_dict

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats")
def dashboard_stats(request: Request, ctx: OperatorContext = Depends(context_from_request)):
    return asdict(care_service(request).dashboard_stats(ctx))


@router.get("/audit")
def audit_trail(request: Request, target: Optional[str] = None, ctx: OperatorContext = Depends(context_from_request)):
    return [audit_to_dict(a) for a in member_service(request).audit_trail(ctx, target)]
