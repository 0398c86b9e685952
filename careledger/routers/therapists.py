from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from careledger.core.context import OperatorContext, context_from_request
from careledger.routers.deps import member_service
from careledger.routers.serializers import therapist_to_dict

router = APIRouter(prefix="/therapists", tags=["therapists"])


class TherapistIn(BaseModel):
    name: str
    specialty: str = ""
    phone: str = ""


@router.post("", status_code=201)
def add_therapist(payload: TherapistIn, request: Request, ctx: OperatorContext = Depends(context_from_request)):
    therapist = member_service(request).add_therapist(ctx, payload.name, payload.specialty, payload.phone)
    return therapist_to_dict(therapist)


@router.get("")
def list_therapists(request: Request):
    return [therapist_to_dict(t) for t in member_service(request).list_therapists()]
