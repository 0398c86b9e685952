"""Audit trail rows written inside the caller's transaction."""
from __future__ import annotations

from sqlalchemy.orm import Session

from careledger.core.context import OperatorContext
from careledger.db.models import AuditLog


def record_audit(session: Session, ctx: OperatorContext, action: str, target: str, details: str = "") -> AuditLog:
    entry = AuditLog(action=action, target=target, actor=ctx.name, details=details)
    session.add(entry)
    return entry
