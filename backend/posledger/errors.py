# Overview: Error taxonomy shared by services and the HTTP adapter.

"""
Every failure a core operation can surface is one of these kinds.

Each carries a human message plus a details dict naming the entity
involved (account, session, coupon...) so the caller can decide whether
to retry with different input or escalate to a manager.
"""

from __future__ import annotations


class POSError(Exception):
    """Base class for domain errors."""
    code = "pos_error"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(POSError):
    """Malformed or missing input. Never partially applied."""
    code = "validation_error"
    http_status = 400


class ConflictError(POSError):
    """Uniqueness violation (duplicate active session, duplicate code...)."""
    code = "conflict"
    http_status = 409


class NotFoundError(POSError):
    """Referenced entity absent, in another tenant, or in the wrong state."""
    code = "not_found"
    http_status = 404


class InsufficientBalance(POSError):
    """Stored-value debit exceeds the account balance."""
    code = "insufficient_balance"
    http_status = 422


class UsageLimitExceeded(POSError):
    """Coupon or discount rule usage cap reached."""
    code = "usage_limit_exceeded"
    http_status = 409


class PaymentMismatch(POSError):
    """Tendered payments do not cover the sale total."""
    code = "payment_mismatch"
    http_status = 422


class RequiresApproval(POSError):
    """Action needs a manager override that was not supplied."""
    code = "requires_approval"
    http_status = 403
