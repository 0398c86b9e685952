"""Care record lifecycle."""
from __future__ import annotations

from .errors import InvalidTransitionError

STATUS_WAITING = "WAITING_SIGNATURE"
STATUS_COMPLETED = "COMPLETED"
STATUS_CANCELLED = "CANCELLED"

_TRANSITIONS = {
    STATUS_WAITING: {STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_COMPLETED: set(),
    STATUS_CANCELLED: set(),
}


def can_transition(current: str, target: str) -> bool:
    return target in _TRANSITIONS.get(current, set())


def ensure_transition(record_id: str, current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(f"Care record {record_id} cannot move from {current} to {target}")
