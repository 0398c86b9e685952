"""Entity -> JSON dict conversion for API responses."""
from __future__ import annotations

from datetime import datetime


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def member_to_dict(entity) -> dict:
    return {
        "id": entity.id,
        "name": entity.name,
        "phone": entity.phone,
        "email": entity.email or "",
        "gender": entity.gender,
        "tier": entity.tier,
        "deposit": int(entity.deposit or 0),
        "used": int(entity.used or 0),
        "remaining": int(entity.remaining or 0),
        "core_goal": entity.core_goal or "",
        "ai_recommended": entity.ai_recommended or "",
        "admin_note": entity.admin_note,
        "expiry_date": entity.expiry_date,
        "status": entity.status,
        "joined_at": _iso(entity.joined_at),
    }


def therapist_to_dict(entity) -> dict:
    return {"id": entity.id, "name": entity.name, "specialty": entity.specialty, "phone": entity.phone}


def care_record_to_dict(entity, *, include_signature: bool = False) -> dict:
    data = {
        "id": entity.id,
        "member_id": entity.member_id,
        "therapist_id": entity.therapist_id,
        "therapist_name": entity.therapist_name,
        "content": entity.content,
        "original_price": int(entity.original_price),
        "discount_rate": float(entity.discount_rate),
        "discounted_price": int(entity.discounted_price),
        "feedback": entity.feedback,
        "recommendation": entity.recommendation,
        "status": entity.status,
        "signed_at": _iso(entity.signed_at),
        "resend_count": int(entity.resend_count or 0),
        "date": entity.date,
        "year_month": entity.year_month,
        "requested_at": _iso(entity.requested_at),
        "cancel_reason": entity.cancel_reason,
    }
    if include_signature:
        data["signature"] = entity.signature
    return data


def ledger_entry_to_dict(entity) -> dict:
    return {
        "kind": entity.kind,
        "amount": int(entity.amount),
        "deposit_after": int(entity.deposit_after),
        "used_after": int(entity.used_after),
        "remaining_after": int(entity.remaining_after),
        "care_record_id": entity.care_record_id,
        "contract_id": entity.contract_id,
        "note": entity.note,
        "created_at": _iso(entity.created_at),
    }


def notification_to_dict(entity) -> dict:
    return {
        "id": entity.id,
        "member_id": entity.member_id,
        "type": entity.type,
        "subject": entity.subject,
        "body": entity.body,
        "is_read": bool(entity.is_read),
        "delivered": entity.delivered_at is not None,
        "created_at": _iso(entity.created_at),
    }


def audit_to_dict(entity) -> dict:
    return {
        "action": entity.action,
        "target": entity.target,
        "actor": entity.actor,
        "details": entity.details,
        "created_at": _iso(entity.created_at),
    }


def contract_to_dict(entity) -> dict:
    return {
        "id": entity.id,
        "member_id": entity.member_id,
        "type": entity.type,
        "type_name": entity.type_name,
        "amount": int(entity.amount),
        "status": entity.status,
        "signed": bool(entity.signature),
        "year_month": entity.year_month,
        "created_at": _iso(entity.created_at),
    }
