"""Error taxonomy shared by the ledger services."""
from __future__ import annotations


class LedgerError(Exception):
    """Base class; carries an HTTP-friendly code and status."""

    code = "ledger_error"
    status_code = 400

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code


class ValidationError(LedgerError):
    """Bad input; raised before any state change."""

    code = "invalid"
    status_code = 400


class InsufficientBalanceError(ValidationError):
    code = "insufficient_balance"


class InvalidTransitionError(ValidationError):
    code = "invalid_transition"
    status_code = 409


class NotFoundError(LedgerError):
    code = "not_found"
    status_code = 404


class ConsistencyError(LedgerError):
    """Stored data contradicts itself (e.g. a record pointing at a missing member)."""

    code = "inconsistent"
    status_code = 500


class ConcurrentUpdateError(LedgerError):
    code = "conflict"
    status_code = 409


class PermissionDeniedError(LedgerError):
    code = "forbidden"
    status_code = 403
