# Overview: Typed failures raised by the transaction engine and surfaced by the API.

from __future__ import annotations


class EngineError(Exception):
    """
    Base class for every business failure raised by a workflow.

    WHY: Routes map these to a JSON body with a stable ``code`` and an HTTP
    status, so callers can branch on the failure kind instead of parsing
    messages. Anything that is not an EngineError is a bug and becomes a 500.
    """

    status_code = 400
    code = "ENGINE_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class NotFoundError(EngineError):
    """Entity id does not resolve in the tenant store."""
    status_code = 404
    code = "NOT_FOUND"


class InvalidStateTransition(EngineError):
    """Operation attempted from a status that does not allow it."""
    status_code = 409
    code = "INVALID_STATE_TRANSITION"


class InsufficientStock(EngineError):
    status_code = 409
    code = "INSUFFICIENT_STOCK"


class NoInventoryRecord(EngineError):
    """No inventory row exists for (branch, product); distinct from zero stock."""
    status_code = 409
    code = "NO_INVENTORY_RECORD"


class PaymentExceedsDue(EngineError):
    code = "PAYMENT_EXCEEDS_DUE"


class DepositBelowMinimum(EngineError):
    code = "DEPOSIT_BELOW_MINIMUM"


class ValidationError(EngineError):
    """Malformed input: empty item list, inactive product, bad percentage..."""
    code = "VALIDATION_ERROR"


class EditWindowExpired(EngineError):
    status_code = 409
    code = "EDIT_WINDOW_EXPIRED"
