"""Explicit operator context passed into every service call."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from fastapi import Request


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    STAFF = "STAFF"
    MEMBER = "MEMBER"


class Scope(str, Enum):
    DASHBOARD_VIEW = "DASHBOARD_VIEW"
    MEMBER_MANAGE = "MEMBER_MANAGE"
    CARE_MANAGE = "CARE_MANAGE"
    MEMBER_DELETE = "MEMBER_DELETE"
    AUDIT_VIEW = "AUDIT_VIEW"


ROLE_SCOPES: dict[Role, frozenset[Scope]] = {
    Role.SUPER_ADMIN: frozenset(Scope),
    Role.ADMIN: frozenset(Scope),
    Role.STAFF: frozenset({Scope.DASHBOARD_VIEW, Scope.MEMBER_MANAGE, Scope.CARE_MANAGE}),
    Role.MEMBER: frozenset(),
}

OPERATOR_NAME_HEADER = "x-operator-name"
OPERATOR_ROLE_HEADER = "x-operator-role"
MEMBER_ID_HEADER = "x-member-id"


@dataclass(frozen=True)
class OperatorContext:
    """Who is acting. Replaces any global "current user" state."""

    name: str
    role: Role = Role.STAFF
    member_id: str | None = None

    def can(self, scope: Scope) -> bool:
        return scope in ROLE_SCOPES.get(self.role, frozenset())

    def acts_for_member(self, member_id: str) -> bool:
        """Members may only act on their own records; staff roles on any."""
        if self.role != Role.MEMBER:
            return True
        return bool(self.member_id) and self.member_id == member_id


def context_from_request(request: Request) -> OperatorContext:
    """Missing or unknown roles get the least privileged role, MEMBER."""
    name = (request.headers.get(OPERATOR_NAME_HEADER) or "").strip() or "anonymous"
    raw_role = (request.headers.get(OPERATOR_ROLE_HEADER) or "").strip().upper()
    try:
        role = Role(raw_role)
    except ValueError:
        role = Role.MEMBER
    member_id = (request.headers.get(MEMBER_ID_HEADER) or "").strip() or None
    return OperatorContext(name=name, role=role, member_id=member_id)
