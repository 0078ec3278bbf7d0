# Overview: Typed error taxonomy for the transaction and ledger engine.

"""
Engine error taxonomy.

Every error carries a human-readable message, a stable ``code`` and an
optional ``details`` dict. Routes turn them into JSON with ``status_code``.

Families:
- ValidationError (400): input the caller can correct.
- NotFoundError (404): referenced entity does not exist.
- ConflictError (409): the request collides with committed state
  (ledger invariants, duplicate numbers, lifecycle rules).

All of them are recoverable at the caller. A failure raised inside a
composite operation always leaves the database exactly as it was.
"""

from __future__ import annotations


class PosError(Exception):
    """Base class for all engine errors."""

    status_code = 400
    code = "pos_error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


# =============================================================================
# 400: CALLER INPUT
# =============================================================================

class ValidationError(PosError):
    """400-level input problem."""
    code = "validation_error"


class InsufficientPaymentError(ValidationError):
    code = "insufficient_payment"


class NoCustomerSelectedError(ValidationError):
    code = "no_customer_selected"


class NoCreditAccountError(ValidationError):
    code = "no_credit_account"


class EmptyReturnError(ValidationError):
    code = "empty_return"


class EmptyReceiptError(ValidationError):
    code = "empty_receipt"


# =============================================================================
# 404: MISSING ENTITIES
# =============================================================================

class NotFoundError(PosError):
    status_code = 404
    code = "not_found"


class ProductNotFoundError(NotFoundError):
    code = "product_not_found"


class CustomerNotFoundError(NotFoundError):
    code = "customer_not_found"


class SupplierNotFoundError(NotFoundError):
    code = "supplier_not_found"


class BillNotFoundError(NotFoundError):
    code = "bill_not_found"


class PurchaseOrderNotFoundError(NotFoundError):
    code = "purchase_order_not_found"


# =============================================================================
# 409: CONFLICTS WITH COMMITTED STATE
# =============================================================================

class ConflictError(PosError):
    """409-level business rule conflict."""
    status_code = 409
    code = "conflict"


class DuplicateReferenceError(ConflictError):
    code = "duplicate_reference"


class InvalidStateTransitionError(ConflictError):
    code = "invalid_state_transition"


class InsufficientStockError(ConflictError):
    code = "insufficient_stock"


class CreditLimitExceededError(ConflictError):
    code = "credit_limit_exceeded"


class OverpaymentError(ConflictError):
    code = "overpayment"
