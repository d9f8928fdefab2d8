"""
Typed failures for the order, stock, cash and shift services.

Services raise these; routes turn them into JSON error bodies with the
error's http_status. Expected business failures are raised before the first
write, so no rollback is needed for them. Anything unexpected inside a
transaction is rolled back and surfaced as PosSystemError (see
services/concurrency.atomic).
"""

from __future__ import annotations


class ContextError(RuntimeError):
    """Tenant/branch/user context missing. Programming error, not a business failure."""


class PosError(Exception):
    code = "ERROR"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


# =============================================================================
# VALIDATION (400)
# =============================================================================

class ValidationError(PosError):
    code = "VALIDATION_ERROR"
    http_status = 400


class EmptyOrder(ValidationError):
    code = "ORDER_EMPTY"


class OverpaymentLimit(ValidationError):
    code = "PAYMENT_OVERPAYMENT_LIMIT"


# =============================================================================
# LOOKUP (404)
# =============================================================================

class NotFoundError(PosError):
    code = "NOT_FOUND"
    http_status = 404


# =============================================================================
# STATE CONFLICTS (409)
# =============================================================================

class StateConflictError(PosError):
    code = "CONFLICT"
    http_status = 409


class InvalidStateTransition(StateConflictError):
    code = "ORDER_INVALID_STATE_TRANSITION"

    def __init__(self, current: str, target: str):
        super().__init__(
            f"Cannot move order from {current} to {target}",
            details={"current_status": current, "target_status": target},
        )


class NoOpenShift(StateConflictError):
    code = "NO_OPEN_SHIFT"


class ShiftAlreadyOpen(StateConflictError):
    code = "SHIFT_ALREADY_OPEN"


class ShiftAlreadyClosed(StateConflictError):
    code = "SHIFT_ALREADY_CLOSED"


class AlreadyReconciled(StateConflictError):
    code = "CASH_REGISTER_ALREADY_RECONCILED"


# =============================================================================
# INSUFFICIENT RESOURCES (422)
# =============================================================================

class InsufficientResourceError(PosError):
    code = "INSUFFICIENT_RESOURCE"
    http_status = 422


class InsufficientStock(InsufficientResourceError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: int, product_name: str | None, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for {product_name or product_id}: "
            f"requested {requested}, available {available}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested": requested,
                "available": available,
                "shortfall": requested - available,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class InsufficientBalance(InsufficientResourceError):
    code = "CASH_REGISTER_INSUFFICIENT_BALANCE"


class PaymentInsufficient(InsufficientResourceError):
    code = "PAYMENT_INSUFFICIENT"


class CreditLimitExceeded(InsufficientResourceError):
    code = "CUSTOMER_CREDIT_LIMIT_EXCEEDED"


# =============================================================================
# CONCURRENCY / SYSTEM
# =============================================================================

class ConcurrencyConflict(PosError):
    code = "CONCURRENCY_CONFLICT"
    http_status = 409


class PosSystemError(PosError):
    code = "SYSTEM_ERROR"
    http_status = 500
