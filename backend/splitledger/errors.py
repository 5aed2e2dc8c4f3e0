# Overview: Domain error taxonomy shared by services and routes.

"""
Settlement engine errors.

Five families, each mapped to one HTTP status by the routes:

    ValidationError    400  bad input shape/range (negative rate, empty reason)
    StateError         409  illegal transition for the current status
    AuthorizationError 403  caller lacks the required role or ownership
    NotFoundError      404  referenced entity absent
    ConcurrencyError   409  optimistic check lost; safe to retry once

Concrete errors carry a stable `code` so clients can branch on the exact
failure (e.g. "BillLocked" vs "AlreadyProcessed") without parsing messages.
"""

from __future__ import annotations


class SettlementError(Exception):
    """Base for every error the engine raises on purpose."""

    code = "SettlementError"
    http_status = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code}


# =============================================================================
# FAMILIES
# =============================================================================

class ValidationError(SettlementError):
    """400-level input problem."""
    code = "ValidationError"
    http_status = 400


class StateError(SettlementError):
    """Transition not allowed from the current status."""
    code = "StateError"
    http_status = 409


class AuthorizationError(SettlementError):
    code = "AuthorizationError"
    http_status = 403


class NotFoundError(SettlementError):
    code = "NotFoundError"
    http_status = 404


class ConcurrencyError(SettlementError):
    code = "ConcurrencyError"
    http_status = 409


# =============================================================================
# CONCRETE ERRORS
# =============================================================================

class InvalidAmount(ValidationError):
    code = "InvalidAmount"


class EmptyBill(ValidationError):
    code = "EmptyBill"


class InvalidSplit(ValidationError):
    code = "InvalidSplit"


class MissingProof(ValidationError):
    code = "MissingProof"


class MissingReason(ValidationError):
    code = "MissingReason"


class AlreadyProcessed(StateError):
    code = "AlreadyProcessed"


class BillLocked(StateError):
    code = "BillLocked"


class InvalidState(StateError):
    code = "InvalidState"


class DuplicateMember(StateError):
    code = "DuplicateMember"


class Unauthorized(AuthorizationError):
    code = "Unauthorized"


class SelfConfirmationDenied(AuthorizationError):
    code = "SelfConfirmationDenied"


class NotAMember(NotFoundError):
    code = "NotAMember"


class GroupNotFound(NotFoundError):
    code = "GroupNotFound"


class BillNotFound(NotFoundError):
    code = "BillNotFound"


class SplitNotFound(NotFoundError):
    code = "SplitNotFound"


class ConcurrentModification(ConcurrencyError):
    code = "ConcurrentModification"
