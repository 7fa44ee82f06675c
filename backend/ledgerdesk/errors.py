# Overview: Error taxonomy for ledger, treasury and shift operations.

"""
Every error carries the HTTP status the API answers with. Routes never
collapse these into a generic failure: the caller (and an auditor) gets
the real cause.

Retry policy:
- ConcurrentModification is raised only after the bounded retry in
  services.concurrency is exhausted.
- Everything else surfaces immediately.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for domain errors."""

    status_code = 400
    code = "ledger_error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.code)

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code}


class ValidationError(LedgerError, ValueError):
    """400-level input problem."""

    code = "validation_error"


class InvalidAmount(LedgerError, ValueError):
    """Amount must be a positive number of cents."""

    code = "invalid_amount"


class Overpayment(InvalidAmount):
    """Payment exceeds the invoice's remaining amount."""

    status_code = 422
    code = "overpayment"


class NotFound(LedgerError, LookupError):
    """Requested record does not exist."""

    status_code = 404
    code = "not_found"


class ShiftNotFound(NotFound):
    """Shift not found."""

    code = "shift_not_found"


class Conflict(LedgerError):
    """409-level business rule conflict (e.g., duplicate phone)."""

    status_code = 409
    code = "conflict"


class ShiftAlreadyOpen(LedgerError):
    """There is already an open shift."""

    status_code = 409
    code = "shift_already_open"


class ShiftAlreadyClosed(LedgerError):
    """Shift is already closed."""

    status_code = 409
    code = "shift_already_closed"


class ConcurrentModification(LedgerError):
    """Record was modified concurrently; retries exhausted."""

    status_code = 409
    code = "concurrent_modification"


class TreasurySideEffectFailed(LedgerError):
    """
    The ledger mutation committed but its treasury entry was not written.

    Never raised out of apply_payment: it is attached to the receipt so the
    caller can reconcile treasury separately.
    """

    status_code = 500
    code = "treasury_side_effect_failed"
