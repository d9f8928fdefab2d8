"""
Shift Session Manager.

A shift is one cashier's working session at one branch. It gates which
orders and cash movements belong to which cash count.

INVARIANTS:
- At most one open shift per (tenant, branch, user); the partial unique
  index on shifts backs the pre-check.
- Opening writes the Shift and its OPENING cash entry in one transaction.
- Closing is the single irreversible operation. It is a compare-and-swap on
  Shift.version_id: a close that read a version another request already
  moved fails with ConcurrencyConflict and changes nothing.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..context import RequestContext, branch_scoped, get_user, require_context, scoped, user_name
from ..errors import (
    ConcurrencyConflict,
    NoOpenShift,
    NotFoundError,
    ShiftAlreadyClosed,
    ShiftAlreadyOpen,
    StateConflictError,
    ValidationError,
)
from ..extensions import db
from ..models import Order, Shift
from ..models.cash import TX_OPENING
from ..models.orders import COMPLETED_STATUSES, ORDER_TYPE_SALE, PAYMENT_CARD, PAYMENT_CASH
from ..time_utils import utcnow
from . import cash_ledger_service, notification_service
from .concurrency import atomic, lock_for_update


def _find_open_shift(ctx: RequestContext, user_id: int | None = None, *, lock: bool = False) -> Shift | None:
    query = branch_scoped(Shift, ctx).filter(
        Shift.user_id == (user_id or ctx.user_id),
        Shift.is_closed.is_(False),
    )
    if lock:
        query = lock_for_update(query)
    return query.first()


def _get_branch_shift(ctx: RequestContext, shift_id: int, *, lock: bool = False) -> Shift:
    query = branch_scoped(Shift, ctx).filter(Shift.id == shift_id)
    if lock:
        query = lock_for_update(query)
    shift = query.first()
    if not shift:
        raise NotFoundError("Shift not found", details={"shift_id": shift_id}, code="SHIFT_NOT_FOUND")
    return shift


def _compute_session_totals(shift: Shift) -> dict:
    """
    Totals of the sales completed in this shift.

    Sales that were later refunded still count: they were completed here.
    total_cash_cents is the cash kept (cash tendered minus change).
    total_card_cents counts CARD tenders only; other non-cash tenders
    (STORE_CREDIT, CHECK, GIFT_CARD) are in neither total.
    """
    orders = (
        db.session.query(Order)
        .filter(
            Order.shift_id == shift.id,
            Order.order_type == ORDER_TYPE_SALE,
            Order.status.in_(COMPLETED_STATUSES),
        )
        .all()
    )
    total_cash = 0
    total_card = 0
    for order in orders:
        for payment in order.payments:
            if payment.method == PAYMENT_CASH:
                total_cash += payment.amount_cents
            elif payment.method == PAYMENT_CARD:
                total_card += payment.amount_cents
        total_cash -= order.change_cents
    return {
        "total_orders": len(orders),
        "total_cash_cents": total_cash,
        "total_card_cents": total_card,
    }


def require_open_shift(ctx: RequestContext) -> Shift:
    """The acting user's open shift in the acting branch, or NoOpenShift."""
    shift = _find_open_shift(ctx)
    if not shift:
        raise NoOpenShift(
            "No open shift for this user in this branch",
            details={"branch_id": ctx.branch_id, "user_id": ctx.user_id},
        )
    return shift


def touch_activity(shift: Shift) -> None:
    if not shift.is_closed:
        shift.last_activity_at = utcnow()


# =============================================================================
# OPEN / CLOSE
# =============================================================================

def open_shift(ctx: RequestContext, opening_balance_cents: int, notes: str | None = None) -> Shift:
    require_context(ctx)
    if not isinstance(opening_balance_cents, int) or isinstance(opening_balance_cents, bool) \
            or opening_balance_cents < 0:
        raise ValidationError("Opening balance must be a non-negative number of cents")

    user = get_user(ctx)
    if _find_open_shift(ctx):
        raise ShiftAlreadyOpen(
            "An open shift already exists for this user in this branch",
            details={"branch_id": ctx.branch_id, "user_id": ctx.user_id},
        )

    with atomic("open shift"):
        now = utcnow()
        shift = Shift(
            tenant_id=ctx.tenant_id,
            branch_id=ctx.branch_id,
            user_id=ctx.user_id,
            opening_balance_cents=opening_balance_cents,
            opened_at=now,
            last_activity_at=now,
            is_closed=False,
            notes=notes,
        )
        db.session.add(shift)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ShiftAlreadyOpen(
                "An open shift already exists for this user in this branch",
                details={"branch_id": ctx.branch_id, "user_id": ctx.user_id},
            ) from exc

        cash_ledger_service.record_transaction(
            ctx,
            TX_OPENING,
            opening_balance_cents,
            f"Shift opened by {user.name}",
            reference_type="SHIFT",
            reference_id=shift.id,
            shift_id=shift.id,
            commit=False,
        )

    current_app.logger.info("Shift %s opened on branch %s by user %s", shift.id, shift.branch_id, shift.user_id)
    return shift


def close_shift(
    ctx: RequestContext,
    closing_balance_cents: int,
    notes: str | None = None,
    *,
    shift_id: int | None = None,
    expected_version: int | None = None,
) -> Shift:
    """
    Close the acting user's shift with a counted closing balance.

    expected_version is the version_id the caller last saw. When it no longer
    matches, another request already changed the shift and this close is
    rejected with ConcurrencyConflict. A version moved by a concurrent writer
    during this transaction is caught at flush the same way.
    """
    require_context(ctx)
    if not isinstance(closing_balance_cents, int) or isinstance(closing_balance_cents, bool) \
            or closing_balance_cents < 0:
        raise ValidationError("Closing balance must be a non-negative number of cents")

    with atomic("close shift"):
        if shift_id is not None:
            shift = _get_branch_shift(ctx, shift_id, lock=True)
            if shift.user_id != ctx.user_id:
                raise NotFoundError("Shift not found", details={"shift_id": shift_id}, code="SHIFT_NOT_FOUND")
        else:
            shift = _find_open_shift(ctx, lock=True)
            if not shift and expected_version is not None:
                # The caller saw an open shift at expected_version; another close won.
                raise ConcurrencyConflict(
                    "The shift was closed by another request. Refresh and try again.",
                    details={"expected_version": expected_version},
                )
            if not shift:
                raise NoOpenShift("No open shift to close")

        if expected_version is not None and shift.version_id != expected_version:
            raise ConcurrencyConflict(
                "The shift was changed by another request. Refresh and try again.",
                details={
                    "shift_id": shift.id,
                    "expected_version": expected_version,
                    "current_version": shift.version_id,
                },
            )
        if shift.is_closed:
            raise ShiftAlreadyClosed("Shift is already closed", details={"shift_id": shift.id})

        totals = _compute_session_totals(shift)
        expected = cash_ledger_service.get_current_balance(ctx, shift.branch_id)

        shift.total_orders = totals["total_orders"]
        shift.total_cash_cents = totals["total_cash_cents"]
        shift.total_card_cents = totals["total_card_cents"]
        shift.closing_balance_cents = closing_balance_cents
        shift.expected_balance_cents = expected
        shift.difference_cents = closing_balance_cents - expected
        shift.closed_at = utcnow()
        shift.is_closed = True
        if notes is not None:
            shift.notes = notes
        db.session.flush()

    current_app.logger.info(
        "Shift %s closed (expected %s, counted %s, difference %s)",
        shift.id, shift.expected_balance_cents, shift.closing_balance_cents, shift.difference_cents,
    )
    notification_service.dispatch(
        notification_service.SHIFT_CLOSED,
        {"shift_id": shift.id, "branch_id": shift.branch_id, "difference_cents": shift.difference_cents},
    )
    return shift


def force_close(
    ctx: RequestContext,
    shift_id: int,
    reason: str,
    *,
    actual_balance_cents: int | None = None,
    notes: str | None = None,
) -> Shift:
    """
    Administrative close of someone else's shift.

    Expected balance is the current ledger balance; without a counted amount
    the shift is closed at the expected balance (difference 0).
    """
    require_context(ctx)
    if not reason or not reason.strip():
        raise ValidationError("Force close reason is required", code="SHIFT_FORCE_CLOSE_REASON_REQUIRED")
    if actual_balance_cents is not None and actual_balance_cents < 0:
        raise ValidationError("Actual balance cannot be negative")

    with atomic("force close shift"):
        shift = _get_branch_shift(ctx, shift_id, lock=True)
        if shift.is_closed:
            raise ShiftAlreadyClosed("Shift is already closed", details={"shift_id": shift.id})

        totals = _compute_session_totals(shift)
        expected = cash_ledger_service.get_current_balance(ctx, shift.branch_id)
        closing = expected if actual_balance_cents is None else actual_balance_cents
        now = utcnow()

        shift.total_orders = totals["total_orders"]
        shift.total_cash_cents = totals["total_cash_cents"]
        shift.total_card_cents = totals["total_card_cents"]
        shift.closing_balance_cents = closing
        shift.expected_balance_cents = expected
        shift.difference_cents = closing - expected
        shift.closed_at = now
        shift.is_closed = True
        shift.is_force_closed = True
        shift.force_closed_by_user_id = ctx.user_id
        shift.force_closed_by_user_name = user_name(ctx)
        shift.force_closed_at = now
        shift.force_close_reason = reason.strip()
        if notes is not None:
            shift.notes = notes
        db.session.flush()

    current_app.logger.info("Shift %s force-closed by user %s: %s", shift.id, ctx.user_id, shift.force_close_reason)
    return shift


def handover(
    ctx: RequestContext,
    shift_id: int,
    to_user_id: int,
    *,
    current_balance_cents: int | None = None,
    notes: str | None = None,
) -> Shift:
    """
    Hand an open shift to another cashier.

    The shift stays open and its cash stays attributed to it; only the owner
    changes. The receiving user may not already have an open shift here.
    """
    require_context(ctx)
    if not to_user_id:
        raise ValidationError("Receiving user is required", code="SHIFT_HANDOVER_USER_REQUIRED")

    target = get_user(ctx, to_user_id)

    with atomic("handover shift"):
        shift = _get_branch_shift(ctx, shift_id, lock=True)
        if shift.is_closed:
            raise ShiftAlreadyClosed("Cannot hand over a closed shift", details={"shift_id": shift.id})
        if shift.is_handed_over:
            raise StateConflictError(
                "Shift was already handed over",
                details={"shift_id": shift.id},
                code="SHIFT_ALREADY_HANDED_OVER",
            )
        if target.id == shift.user_id:
            raise ValidationError("Cannot hand a shift over to its current owner", code="SHIFT_HANDOVER_TO_SAME_USER")
        if _find_open_shift(ctx, target.id):
            raise ShiftAlreadyOpen(
                "Receiving user already has an open shift in this branch",
                details={"user_id": target.id},
            )

        previous_owner = shift.user
        now = utcnow()
        shift.is_handed_over = True
        shift.handed_over_from_user_id = shift.user_id
        shift.handed_over_from_user_name = previous_owner.name if previous_owner else None
        shift.handed_over_to_user_id = target.id
        shift.handed_over_to_user_name = target.name
        shift.handed_over_at = now
        shift.handover_balance_cents = current_balance_cents
        shift.handover_notes = notes
        shift.last_activity_at = now
        shift.user_id = target.id
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ShiftAlreadyOpen(
                "Receiving user already has an open shift in this branch",
                details={"user_id": target.id},
            ) from exc

    current_app.logger.info("Shift %s handed over to user %s", shift.id, target.id)
    return shift


# =============================================================================
# QUERIES
# =============================================================================

def get_current_shift(ctx: RequestContext) -> Shift | None:
    return _find_open_shift(ctx)


def get_shift(ctx: RequestContext, shift_id: int) -> Shift:
    shift = scoped(Shift, ctx).filter(Shift.id == shift_id).first()
    if not shift:
        raise NotFoundError("Shift not found", details={"shift_id": shift_id}, code="SHIFT_NOT_FOUND")
    return shift


def get_user_shifts(ctx: RequestContext, user_id: int | None = None) -> list[Shift]:
    limit = current_app.config.get("SHIFT_HISTORY_LIMIT", 30)
    return (
        branch_scoped(Shift, ctx)
        .filter(Shift.user_id == (user_id or ctx.user_id))
        .order_by(Shift.opened_at.desc(), Shift.id.desc())
        .limit(limit)
        .all()
    )


def get_active_shifts(ctx: RequestContext) -> list[Shift]:
    return (
        branch_scoped(Shift, ctx)
        .filter(Shift.is_closed.is_(False))
        .order_by(Shift.opened_at.asc())
        .all()
    )


def get_shift_summary(ctx: RequestContext, shift_id: int) -> dict:
    """Live totals for an open shift; frozen totals for a closed one."""
    shift = get_shift(ctx, shift_id)
    if shift.is_closed:
        totals = {
            "total_orders": shift.total_orders,
            "total_cash_cents": shift.total_cash_cents,
            "total_card_cents": shift.total_card_cents,
        }
    else:
        totals = _compute_session_totals(shift)

    data = shift.to_dict()
    data.update(totals)
    data["current_balance_cents"] = cash_ledger_service.get_current_balance(ctx, shift.branch_id)
    return data
