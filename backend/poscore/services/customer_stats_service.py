# Overview: Customer aggregates (order count, spend, loyalty, on-account balance) maintained inside order transactions.

from __future__ import annotations

from flask import current_app

from ..context import RequestContext, scoped
from ..errors import CreditLimitExceeded, NotFoundError
from ..models import Customer
from ..time_utils import utcnow
from .concurrency import lock_for_update


def get_customer(
    ctx: RequestContext,
    customer_id: int,
    *,
    lock: bool = False,
    include_deleted: bool = False,
) -> Customer:
    query = scoped(Customer, ctx, include_deleted=include_deleted).filter(Customer.id == customer_id)
    if lock:
        query = lock_for_update(query)
    customer = query.first()
    if not customer:
        raise NotFoundError(
            "Customer not found",
            details={"customer_id": customer_id},
            code="CUSTOMER_NOT_FOUND",
        )
    return customer


def points_for(amount_cents: int) -> int:
    """Loyalty points earned for an amount (floor, one point per currency unit by default)."""
    per_point = current_app.config.get("LOYALTY_CENTS_PER_POINT", 100)
    return max(amount_cents, 0) // per_point


def record_order(customer: Customer, total_cents: int) -> int:
    """Accumulate a completed order. Returns the points awarded."""
    points = points_for(total_cents)
    customer.total_orders += 1
    customer.total_spent_cents += total_cents
    customer.loyalty_points += points
    customer.last_order_at = utcnow()
    return points


def deduct_refund(customer: Customer, refund_cents: int) -> int:
    """Reverse a refunded amount, clamped at zero. Returns the points removed."""
    points = points_for(refund_cents)
    customer.total_spent_cents = max(customer.total_spent_cents - refund_cents, 0)
    customer.loyalty_points = max(customer.loyalty_points - points, 0)
    return points


def charge_account(customer: Customer, amount_cents: int) -> None:
    """Put an amount on the customer's account, within the credit limit."""
    if amount_cents <= 0:
        return
    new_due = customer.total_due_cents + amount_cents
    if new_due > customer.credit_limit_cents:
        raise CreditLimitExceeded(
            "Customer credit limit exceeded",
            details={
                "customer_id": customer.id,
                "credit_limit_cents": customer.credit_limit_cents,
                "current_due_cents": customer.total_due_cents,
                "requested_cents": amount_cents,
            },
        )
    customer.total_due_cents = new_due


def release_account(customer: Customer, amount_cents: int) -> None:
    if amount_cents <= 0:
        return
    customer.total_due_cents = max(customer.total_due_cents - amount_cents, 0)
