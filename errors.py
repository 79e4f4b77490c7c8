"""Domain errors raised by the submission and approval paths.

Every error carries a stable ``code`` (what API clients switch on) and the HTTP
status the API layer renders it with. Keyword arguments passed to the
constructor are kept in ``extra`` and returned alongside the message.
"""
from __future__ import annotations

from typing import Any


class LoanError(Exception):
    code = "loan_error"
    status_code = 400

    def __init__(self, detail: str, **extra: Any) -> None:
        super().__init__(detail)
        self.detail = detail
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "detail": self.detail, **self.extra}


# ---------- validation (bad input, never retried) ----------
class RequestValidationFailed(LoanError):
    status_code = 400


class MissingMetadata(RequestValidationFailed):
    code = "missing_metadata"


class EmptyRequest(RequestValidationFailed):
    code = "empty_request"


class InvalidQuantity(RequestValidationFailed):
    code = "invalid_quantity"


class UnknownOrInactiveEquipment(RequestValidationFailed):
    code = "unknown_or_inactive_equipment"


# ---------- lookup / permission ----------
class NotFound(LoanError):
    code = "not_found"
    status_code = 404


class NotRequester(LoanError):
    code = "not_requester"
    status_code = 403


# ---------- state conflicts (real business outcome, never retried) ----------
class StateConflict(LoanError):
    status_code = 409


class AlreadyProcessed(StateConflict):
    code = "already_processed"


class EquipmentMissing(StateConflict):
    code = "equipment_missing"


class InsufficientStock(StateConflict):
    code = "insufficient_stock"


class InsufficientStockAtSubmission(StateConflict):
    code = "insufficient_stock_at_submission"


class NotReturnable(StateConflict):
    code = "not_returnable"


# ---------- transient ----------
class TransactionConflict(LoanError):
    code = "transaction_conflict"
    status_code = 503
