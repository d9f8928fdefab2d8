"""
Order Lifecycle Engine.

Turns a cashier's in-progress sale into one atomic set of changes across the
order, stock, cash and customer ledgers.

STATES:
    DRAFT -> PENDING | COMPLETED | CANCELLED
    PENDING -> COMPLETED | CANCELLED
    COMPLETED -> PARTIALLY_REFUNDED | REFUNDED
    PARTIALLY_REFUNDED -> PARTIALLY_REFUNDED | REFUNDED
CANCELLED and REFUNDED are terminal. Items are mutable only in DRAFT.

ATOMICITY: completion and refund each run in one atomic() block. The stock,
cash and customer writes are composed with commit=False, so any failure
rolls every ledger back together. Notifications go out only after commit.

REFUND ARITHMETIC: every refunded amount is computed cumulatively,
    refunded_so_far = round(original * refunded_units / units)
and the step amount is the difference to what was already refunded. Stacked
partial refunds therefore never drift: the last one releases the exact
remainder, and their sum equals the original.
"""

from __future__ import annotations

import json
import secrets

from flask import current_app

from ..context import RequestContext, branch_scoped, get_branch, get_tenant, require_context, scoped, user_name
from ..errors import (
    EmptyOrder,
    InsufficientStock,
    InvalidStateTransition,
    NotFoundError,
    OverpaymentLimit,
    PaymentInsufficient,
    StateConflictError,
    ValidationError,
)
from ..extensions import db
from ..models import Order, OrderItem, Payment, Product, RefundLog
from ..models.cash import TX_REFUND, TX_SALE
from ..models.orders import (
    ORDER_TYPE_RETURN,
    ORDER_TYPE_SALE,
    PAYMENT_CASH,
    PAYMENT_STORE_CREDIT,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_DRAFT,
    STATUS_PARTIALLY_REFUNDED,
    STATUS_PENDING,
    STATUS_REFUNDED,
    VALID_PAYMENT_METHODS,
    VALID_STATUSES,
    can_transition,
)
from ..money import (
    BPS_DENOMINATOR,
    DISCOUNT_PERCENTAGE,
    VALID_DISCOUNT_TYPES,
    discount_amount,
    line_amounts,
    percent_of,
    prorate,
)
from ..time_utils import utcnow
from . import cash_ledger_service, customer_stats_service, notification_service, shift_service, stock_service
from .concurrency import atomic, lock_for_update


# =============================================================================
# HELPERS
# =============================================================================

def _transition(order: Order, target: str) -> None:
    if not can_transition(order.status, target):
        raise InvalidStateTransition(order.status, target)
    order.status = target


def _generate_order_number(prefix: str) -> str:
    """PREFIX-YYYYMMDD-XXXXXX (random hex suffix)."""
    return f"{prefix}-{utcnow():%Y%m%d}-{secrets.token_hex(3).upper()}"


def _get_order(ctx: RequestContext, order_id: int, *, lock: bool = False) -> Order:
    query = branch_scoped(Order, ctx).filter(Order.id == order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if not order:
        raise NotFoundError("Order not found", details={"order_id": order_id}, code="ORDER_NOT_FOUND")
    return order


def _require_editable(order: Order) -> None:
    if order.status != STATUS_DRAFT:
        raise StateConflictError(
            f"Items can only be changed on DRAFT orders (order is {order.status})",
            details={"order_id": order.id, "status": order.status},
            code="ORDER_NOT_EDITABLE",
        )


def _validate_quantity(quantity, **details) -> int:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValidationError(
            "Quantity must be a positive integer",
            details={"quantity": quantity, **details},
        )
    return quantity


def _validate_discount(discount_type: str | None, discount_value: int | None) -> None:
    if discount_type is None and not discount_value:
        return
    if discount_type not in VALID_DISCOUNT_TYPES:
        raise ValidationError(
            f"Invalid discount type: {discount_type}",
            details={"valid_types": list(VALID_DISCOUNT_TYPES)},
        )
    if not isinstance(discount_value, int) or isinstance(discount_value, bool) or discount_value < 0:
        raise ValidationError("Discount value must be a non-negative integer")
    if discount_type == DISCOUNT_PERCENTAGE and discount_value > BPS_DENOMINATOR:
        raise ValidationError("Percentage discount cannot exceed 100%")


def _resolve_tax_rate(product: Product, tenant) -> int:
    """Product rate when set, else the tenant default when tax is enabled, else zero."""
    if product.tax_rate_bps is not None:
        return product.tax_rate_bps
    if tenant.is_tax_enabled:
        return tenant.tax_rate_bps or 0
    return 0


def _get_sellable_product(ctx: RequestContext, product_id: int) -> Product:
    product = scoped(Product, ctx).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError(
            f"Product {product_id} not found",
            details={"product_id": product_id},
            code="PRODUCT_NOT_FOUND",
        )
    if not product.is_active:
        raise ValidationError(
            f"Product {product.name} is not active",
            details={"product_id": product.id},
            code="PRODUCT_INACTIVE",
        )
    return product


def _check_available(ctx: RequestContext, tenant, product: Product, requested: int) -> None:
    if not product.track_inventory or tenant.allow_negative_stock:
        return
    available = stock_service.get_quantity(ctx, product.id)
    if requested > available:
        raise InsufficientStock(product.id, product.name, requested, available)


def _build_item(
    product: Product,
    quantity: int,
    tax_rate_bps: int,
    discount_type: str | None = None,
    discount_value: int | None = None,
) -> OrderItem:
    amounts = line_amounts(product.price_cents, quantity, tax_rate_bps, discount_type, discount_value)
    return OrderItem(
        product_id=product.id,
        product_name=product.name,
        product_sku=product.sku,
        product_barcode=product.barcode,
        unit_price_cents=product.price_cents,
        unit_cost_cents=product.cost_cents,
        quantity=quantity,
        tax_rate_bps=tax_rate_bps,
        discount_type=discount_type,
        discount_value=discount_value,
        subtotal_cents=amounts.subtotal_cents,
        discount_cents=amounts.discount_cents,
        tax_cents=amounts.tax_cents,
        total_cents=amounts.total_cents,
    )


def _reprice_item(item: OrderItem) -> None:
    amounts = line_amounts(
        item.unit_price_cents, item.quantity, item.tax_rate_bps,
        item.discount_type, item.discount_value,
    )
    item.subtotal_cents = amounts.subtotal_cents
    item.discount_cents = amounts.discount_cents
    item.tax_cents = amounts.tax_cents
    item.total_cents = amounts.total_cents


def recalculate_totals(order: Order) -> None:
    """
    total = sum(item totals) - order discount + service charge

    The order discount applies to the item totals; the service charge to
    what remains after it. Each step is rounded to the cent.
    """
    items = list(order.items)
    items_total = sum(item.total_cents for item in items)
    order_discount = discount_amount(items_total, order.discount_type, order.discount_value)
    service_charge = percent_of(items_total - order_discount, order.service_charge_bps or 0)

    order.subtotal_cents = sum(item.subtotal_cents for item in items)
    order.tax_cents = sum(item.tax_cents for item in items)
    order.discount_cents = order_discount
    order.service_charge_cents = service_charge
    order.total_cents = items_total - order_discount + service_charge


def _cash_kept(order: Order) -> int:
    cash = sum(p.amount_cents for p in order.payments if p.method == PAYMENT_CASH)
    return cash - order.change_cents


def _payload(order: Order) -> dict:
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "order_type": order.order_type,
        "status": order.status,
        "total_cents": order.total_cents,
        "branch_id": order.branch_id,
        "tenant_id": order.tenant_id,
    }


# =============================================================================
# CREATE / EDIT
# =============================================================================

def create_order(
    ctx: RequestContext,
    items: list[dict],
    *,
    customer_id: int | None = None,
    order_type: str = ORDER_TYPE_SALE,
    discount_type: str | None = None,
    discount_value: int | None = None,
    service_charge_bps: int = 0,
    notes: str | None = None,
) -> Order:
    """
    Create a DRAFT sale for the acting user's open shift.

    items: [{"product_id": int, "quantity": int,
             "discount_type": "percentage"|"fixed"?, "discount_value": int?}]
    """
    require_context(ctx)
    if order_type != ORDER_TYPE_SALE:
        raise ValidationError("Only SALE orders can be created directly; returns come from refunds")
    shift = shift_service.require_open_shift(ctx)
    if not items:
        raise EmptyOrder("Order must contain at least one item")

    _validate_discount(discount_type, discount_value)
    if not isinstance(service_charge_bps, int) or service_charge_bps < 0 or service_charge_bps > BPS_DENOMINATOR:
        raise ValidationError("Service charge must be between 0 and 10000 basis points")

    tenant = get_tenant(ctx)
    branch = get_branch(ctx)
    customer = None
    if customer_id:
        customer = customer_stats_service.get_customer(ctx, customer_id)

    resolved: list[tuple[Product, int, str | None, int | None]] = []
    requested: dict[int, int] = {}
    for index, raw in enumerate(items):
        product_id = raw.get("product_id")
        if not product_id:
            raise ValidationError("Item is missing product_id", details={"index": index})
        quantity = _validate_quantity(raw.get("quantity"), index=index, product_id=product_id)
        _validate_discount(raw.get("discount_type"), raw.get("discount_value"))
        product = _get_sellable_product(ctx, product_id)
        requested[product.id] = requested.get(product.id, 0) + quantity
        resolved.append((product, quantity, raw.get("discount_type"), raw.get("discount_value")))

    products = {product.id: product for product, *_ in resolved}
    for product_id, quantity in requested.items():
        _check_available(ctx, tenant, products[product_id], quantity)

    with atomic("create order"):
        order = Order(
            tenant_id=ctx.tenant_id,
            branch_id=branch.id,
            branch_name=branch.name,
            branch_address=branch.address,
            branch_phone=branch.phone,
            shift_id=shift.id,
            user_id=ctx.user_id,
            user_name=user_name(ctx),
            order_number=_generate_order_number(current_app.config.get("ORDER_NUMBER_PREFIX", "ORD")),
            status=STATUS_DRAFT,
            order_type=ORDER_TYPE_SALE,
            currency_code=tenant.currency_code,
            discount_type=discount_type if discount_value else None,
            discount_value=discount_value if discount_value else None,
            service_charge_bps=service_charge_bps,
            customer_id=customer.id if customer else None,
            customer_name=customer.name if customer else None,
            customer_phone=customer.phone if customer else None,
            notes=notes,
        )
        db.session.add(order)
        for product, quantity, item_discount_type, item_discount_value in resolved:
            order.items.append(
                _build_item(
                    product, quantity, _resolve_tax_rate(product, tenant),
                    item_discount_type, item_discount_value,
                )
            )
        recalculate_totals(order)
        db.session.flush()

    return order


def add_item(
    ctx: RequestContext,
    order_id: int,
    product_id: int,
    quantity: int,
    *,
    discount_type: str | None = None,
    discount_value: int | None = None,
) -> Order:
    """Add a line to a DRAFT order, merging into an identical existing line."""
    require_context(ctx)
    _validate_quantity(quantity, product_id=product_id)
    _validate_discount(discount_type, discount_value)

    with atomic("add order item"):
        order = _get_order(ctx, order_id, lock=True)
        _require_editable(order)
        tenant = get_tenant(ctx)
        product = _get_sellable_product(ctx, product_id)

        already = sum(item.quantity for item in order.items if item.product_id == product.id)
        _check_available(ctx, tenant, product, already + quantity)

        existing = next(
            (
                item for item in order.items
                if item.product_id == product.id
                and item.discount_type == discount_type
                and (item.discount_value or None) == (discount_value or None)
            ),
            None,
        )
        if existing:
            existing.quantity += quantity
            _reprice_item(existing)
        else:
            order.items.append(
                _build_item(product, quantity, _resolve_tax_rate(product, tenant), discount_type, discount_value)
            )
        recalculate_totals(order)
        db.session.flush()
    return order


def remove_item(ctx: RequestContext, order_id: int, item_id: int) -> Order:
    require_context(ctx)
    with atomic("remove order item"):
        order = _get_order(ctx, order_id, lock=True)
        _require_editable(order)
        item = next((i for i in order.items if i.id == item_id), None)
        if not item:
            raise NotFoundError(
                "Order item not found",
                details={"order_id": order.id, "item_id": item_id},
                code="ORDER_ITEM_NOT_FOUND",
            )
        order.items.remove(item)
        recalculate_totals(order)
        db.session.flush()
    return order


def hold_order(ctx: RequestContext, order_id: int) -> Order:
    """Suspend a DRAFT order (PENDING). It can later be completed or cancelled."""
    require_context(ctx)
    with atomic("hold order"):
        order = _get_order(ctx, order_id, lock=True)
        _transition(order, STATUS_PENDING)
    return order


def cancel_order(ctx: RequestContext, order_id: int, reason: str | None = None) -> Order:
    """Cancel a DRAFT or PENDING order. Nothing was posted, so no ledger is touched."""
    require_context(ctx)
    with atomic("cancel order"):
        order = _get_order(ctx, order_id, lock=True)
        _transition(order, STATUS_CANCELLED)
        order.cancelled_at = utcnow()
        order.cancellation_reason = reason
    current_app.logger.info("Order %s cancelled", order.order_number)
    return order


# =============================================================================
# COMPLETE
# =============================================================================

def _validate_payments(payments: list[dict]) -> list[dict]:
    """
    Normalized tenders with zero-amount entries dropped.

    An empty result is valid only for an order whose total is zero; the
    tendered-versus-total check in complete_order rejects it otherwise.
    """
    cleaned = []
    for index, raw in enumerate(payments):
        method = (raw.get("method") or "").upper()
        amount = raw.get("amount_cents")
        if method not in VALID_PAYMENT_METHODS:
            raise ValidationError(
                f"Invalid payment method: {raw.get('method')}",
                details={"index": index, "valid_methods": list(VALID_PAYMENT_METHODS)},
            )
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise ValidationError(
                "Payment amount must be a non-negative number of cents",
                details={"index": index, "amount_cents": amount},
            )
        if amount == 0:
            continue
        cleaned.append({"method": method, "amount_cents": amount, "reference": raw.get("reference")})
    return cleaned


def complete_order(ctx: RequestContext, order_id: int, payments: list[dict]) -> Order:
    """
    Take payment and post the sale.

    In one transaction: validate the transition and tenders, write Payment
    rows, mark COMPLETED, decrement stock, update customer stats, charge any
    STORE_CREDIT to the customer's account and append a SALE cash entry for
    the cash kept (cash tendered minus change). Non-cash tenders never touch
    the cash ledger.

    payments: [{"method": "CASH"|"CARD"|..., "amount_cents": int, "reference": str?}]
    """
    require_context(ctx)
    tenders = _validate_payments(payments)
    multiplier = current_app.config.get("OVERPAYMENT_MULTIPLIER", 2)

    with atomic("complete order"):
        order = _get_order(ctx, order_id, lock=True)
        if not can_transition(order.status, STATUS_COMPLETED):
            raise InvalidStateTransition(order.status, STATUS_COMPLETED)
        if not order.items:
            raise EmptyOrder("Cannot complete an order with no items", details={"order_id": order.id})

        shift = shift_service.require_open_shift(ctx)
        recalculate_totals(order)
        total = order.total_cents

        tendered = sum(t["amount_cents"] for t in tenders)
        if tendered < total:
            raise PaymentInsufficient(
                "Payment is less than the order total",
                details={"total_cents": total, "tendered_cents": tendered, "shortfall_cents": total - tendered},
            )
        if tendered > total * multiplier:
            raise OverpaymentLimit(
                f"Payment exceeds {multiplier}x the order total",
                details={"total_cents": total, "tendered_cents": tendered, "limit_cents": total * multiplier},
            )

        non_cash = sum(t["amount_cents"] for t in tenders if t["method"] != PAYMENT_CASH)
        if non_cash > total:
            raise ValidationError(
                "Non-cash payments cannot exceed the order total",
                details={"total_cents": total, "non_cash_cents": non_cash},
            )

        change = tendered - total
        cash_tendered = tendered - non_cash
        cash_kept = cash_tendered - change
        credit = sum(t["amount_cents"] for t in tenders if t["method"] == PAYMENT_STORE_CREDIT)

        customer = None
        if order.customer_id:
            customer = customer_stats_service.get_customer(ctx, order.customer_id, lock=True)
        if credit and customer is None:
            raise ValidationError("Store credit requires a customer on the order")
        if credit:
            customer_stats_service.charge_account(customer, credit)

        for tender in tenders:
            order.payments.append(
                Payment(
                    method=tender["method"],
                    amount_cents=tender["amount_cents"],
                    reference=tender["reference"],
                )
            )

        now = utcnow()
        _transition(order, STATUS_COMPLETED)
        order.amount_paid_cents = total - credit
        order.amount_due_cents = credit
        order.change_cents = change
        order.completed_at = now
        order.completed_by_user_id = ctx.user_id
        order.shift_id = shift.id
        db.session.flush()

        stock_service.batch_decrement(
            ctx,
            [(item.product_id, item.quantity) for item in order.items],
            reference_type="ORDER",
            reference_id=order.id,
            reason=f"Sale {order.order_number}",
            commit=False,
        )

        if customer is not None:
            customer_stats_service.record_order(customer, total)

        if cash_kept > 0:
            cash_ledger_service.record_transaction(
                ctx,
                TX_SALE,
                cash_kept,
                f"Sale {order.order_number}",
                reference_type="ORDER",
                reference_id=order.id,
                shift_id=shift.id,
                commit=False,
            )

        shift_service.touch_activity(shift)

    current_app.logger.info(
        "Order %s completed: total %s, change %s, shift %s",
        order.order_number, order.total_cents, order.change_cents, order.shift_id,
    )
    notification_service.dispatch(notification_service.ORDER_COMPLETED, _payload(order))
    return order


# =============================================================================
# REFUND
# =============================================================================

def _refund_history(order: Order) -> dict[int, dict]:
    """
    What earlier refunds already returned, per original item id.

    Amounts are magnitudes (return items store them negated).
    """
    history: dict[int, dict] = {}
    returns = (
        db.session.query(OrderItem)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(
            Order.original_order_id == order.id,
            Order.order_type == ORDER_TYPE_RETURN,
        )
        .all()
    )
    for item in returns:
        entry = history.setdefault(
            item.original_item_id,
            {"quantity": 0, "subtotal": 0, "discount": 0, "tax": 0, "total": 0},
        )
        entry["quantity"] += item.quantity
        entry["subtotal"] -= item.subtotal_cents
        entry["discount"] -= item.discount_cents
        entry["tax"] -= item.tax_cents
        entry["total"] -= item.total_cents
    return history


def _refund_lines(order: Order, items: list[dict] | None, history: dict[int, dict]) -> list[tuple[OrderItem, int]]:
    by_id = {item.id: item for item in order.items}

    if items is None:
        lines = []
        for item in order.items:
            remaining = item.quantity - history.get(item.id, {}).get("quantity", 0)
            if remaining > 0:
                lines.append((item, remaining))
        return lines

    if not items:
        raise ValidationError("Select at least one item to refund")

    requested: dict[int, int] = {}
    for raw in items:
        item_id = raw.get("item_id")
        if item_id not in by_id:
            raise NotFoundError(
                "Order item not found",
                details={"order_id": order.id, "item_id": item_id},
                code="ORDER_ITEM_NOT_FOUND",
            )
        quantity = _validate_quantity(raw.get("quantity"), item_id=item_id)
        requested[item_id] = requested.get(item_id, 0) + quantity

    lines = []
    for item_id, quantity in requested.items():
        item = by_id[item_id]
        refundable = item.quantity - history.get(item_id, {}).get("quantity", 0)
        if quantity > refundable:
            raise ValidationError(
                f"Refund quantity for {item.product_name} exceeds the refundable quantity",
                details={
                    "item_id": item_id,
                    "product_id": item.product_id,
                    "requested": quantity,
                    "refundable": refundable,
                },
            )
        lines.append((item, quantity))
    return lines


def _return_item(item: OrderItem, quantity: int, previous: dict) -> OrderItem:
    """Negated, proportional copy of a sale line for `quantity` more units."""
    units_after = previous.get("quantity", 0) + quantity

    def step(amount: int, key: str) -> int:
        return prorate(amount, units_after, item.quantity) - previous.get(key, 0)

    total = step(item.total_cents, "total")
    tax = step(item.tax_cents, "tax")
    discount = step(item.discount_cents, "discount")
    net = total - tax
    subtotal = net + discount

    return OrderItem(
        product_id=item.product_id,
        product_name=item.product_name,
        product_sku=item.product_sku,
        product_barcode=item.product_barcode,
        unit_price_cents=item.unit_price_cents,
        unit_cost_cents=item.unit_cost_cents,
        quantity=quantity,
        tax_rate_bps=item.tax_rate_bps,
        discount_type=item.discount_type,
        discount_value=item.discount_value,
        subtotal_cents=-subtotal,
        discount_cents=-discount,
        tax_cents=-tax,
        total_cents=-total,
        original_item_id=item.id,
    )


def refund_order(
    ctx: RequestContext,
    order_id: int,
    reason: str | None = None,
    items: list[dict] | None = None,
) -> Order:
    """
    Refund a completed sale fully (items=None) or partially.

    items: [{"item_id": <original order item id>, "quantity": int}]

    Creates a RETURN order holding negated, proportional copies of the
    refunded lines, restores stock, deducts customer stats, releases the
    matching share of any on-account charge and appends a REFUND cash entry
    for the cash share of the refund. Returns the RETURN order.
    """
    require_context(ctx)
    if items is None and (not reason or not reason.strip()):
        raise ValidationError("A reason is required for a full refund", code="REFUND_REASON_REQUIRED")

    with atomic("refund order"):
        original = _get_order(ctx, order_id, lock=True)
        if original.order_type != ORDER_TYPE_SALE:
            raise ValidationError("Return orders cannot be refunded", details={"order_id": original.id})
        if original.status not in (STATUS_COMPLETED, STATUS_PARTIALLY_REFUNDED):
            raise InvalidStateTransition(original.status, STATUS_REFUNDED)

        history = _refund_history(original)
        lines = _refund_lines(original, items, history)
        if not lines:
            raise ValidationError("Nothing left to refund on this order", details={"order_id": original.id})

        return_items = [_return_item(item, qty, history.get(item.id, {})) for item, qty in lines]

        # Order-level discount and service charge follow the share of item
        # totals refunded so far.
        items_total = sum(item.total_cents for item in original.items)
        refunded_before = sum(entry["total"] for entry in history.values())
        refunded_items = -sum(item.total_cents for item in return_items)
        refunded_after = refunded_before + refunded_items

        def order_level(amount: int) -> int:
            if not amount or not items_total:
                return 0
            return prorate(amount, refunded_after, items_total) - prorate(amount, refunded_before, items_total)

        discount_share = order_level(original.discount_cents)
        service_share = order_level(original.service_charge_cents)
        refund_amount = refunded_items - discount_share + service_share

        if original.refund_amount_cents + refund_amount > original.total_cents:
            raise ValidationError(
                "Refund would exceed the order total",
                details={
                    "total_cents": original.total_cents,
                    "already_refunded_cents": original.refund_amount_cents,
                    "requested_cents": refund_amount,
                },
            )

        fully_refunded = all(
            history.get(item.id, {}).get("quantity", 0)
            + sum(q for line_item, q in lines if line_item.id == item.id)
            >= item.quantity
            for item in original.items
        )

        # Cash and on-account shares use the original total as denominator,
        # cumulatively, so the last refund releases the exact remainder.
        refunded_total_after = original.refund_amount_cents + refund_amount

        def tender_share(amount: int) -> int:
            if amount <= 0 or original.total_cents <= 0:
                return 0
            return (
                prorate(amount, refunded_total_after, original.total_cents)
                - prorate(amount, original.refund_amount_cents, original.total_cents)
            )

        cash_refund = tender_share(_cash_kept(original))
        credit_release = tender_share(original.amount_due_cents)

        shift = shift_service.get_current_shift(ctx)
        now = utcnow()
        refund_reason = reason.strip() if reason else None

        return_order = Order(
            tenant_id=original.tenant_id,
            branch_id=original.branch_id,
            branch_name=original.branch_name,
            branch_address=original.branch_address,
            branch_phone=original.branch_phone,
            shift_id=shift.id if shift else None,
            user_id=ctx.user_id,
            user_name=user_name(ctx),
            order_number=_generate_order_number(current_app.config.get("RETURN_NUMBER_PREFIX", "RET")),
            status=STATUS_COMPLETED,
            order_type=ORDER_TYPE_RETURN,
            original_order_id=original.id,
            currency_code=original.currency_code,
            subtotal_cents=sum(item.subtotal_cents for item in return_items),
            discount_cents=-discount_share,
            tax_cents=sum(item.tax_cents for item in return_items),
            service_charge_cents=-service_share,
            total_cents=-refund_amount,
            amount_paid_cents=-refund_amount,
            customer_id=original.customer_id,
            customer_name=original.customer_name,
            customer_phone=original.customer_phone,
            notes=refund_reason,
            completed_at=now,
            completed_by_user_id=ctx.user_id,
        )
        return_order.items.extend(return_items)
        db.session.add(return_order)
        db.session.flush()

        stock_changes = stock_service.batch_increment(
            ctx,
            [(item.product_id, qty) for item, qty in lines],
            reference_type="REFUND",
            reference_id=return_order.id,
            reason=f"Refund {original.order_number}",
            commit=False,
            include_deleted=True,
        )

        _transition(original, STATUS_REFUNDED if fully_refunded else STATUS_PARTIALLY_REFUNDED)
        original.refund_amount_cents += refund_amount
        original.refunded_cash_cents += cash_refund
        original.refunded_at = now
        original.refund_reason = refund_reason
        original.refunded_by_user_id = ctx.user_id
        original.refunded_by_user_name = user_name(ctx)

        db.session.add(
            RefundLog(
                tenant_id=original.tenant_id,
                branch_id=original.branch_id,
                order_id=original.id,
                return_order_id=return_order.id,
                user_id=ctx.user_id,
                refund_amount_cents=refund_amount,
                cash_refund_cents=cash_refund,
                reason=refund_reason,
                stock_changes_json=json.dumps(stock_changes),
            )
        )

        if original.customer_id:
            customer = customer_stats_service.get_customer(
                ctx, original.customer_id, lock=True, include_deleted=True
            )
            customer_stats_service.deduct_refund(customer, refund_amount)
            customer_stats_service.release_account(customer, credit_release)

        if cash_refund > 0:
            cash_ledger_service.record_transaction(
                ctx,
                TX_REFUND,
                cash_refund,
                f"Refund {return_order.order_number} for {original.order_number}",
                reference_type="ORDER",
                reference_id=return_order.id,
                shift_id=shift.id if shift else None,
                commit=False,
            )

    current_app.logger.info(
        "Order %s refunded %s (cash %s) as %s; status %s",
        original.order_number, refund_amount, cash_refund, return_order.order_number, original.status,
    )
    notification_service.dispatch(notification_service.ORDER_REFUNDED, _payload(return_order))
    return return_order


# =============================================================================
# QUERIES
# =============================================================================

def get_order(ctx: RequestContext, order_id: int) -> Order:
    return _get_order(ctx, order_id)


def list_orders(
    ctx: RequestContext,
    *,
    status: str | None = None,
    order_type: str | None = None,
    from_date=None,
    to_date=None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    if status and status not in VALID_STATUSES:
        raise ValidationError(f"Invalid status: {status}", details={"valid_statuses": list(VALID_STATUSES)})
    page = max(page, 1)
    per_page = max(min(per_page, 200), 1)

    query = branch_scoped(Order, ctx)
    if status:
        query = query.filter(Order.status == status)
    if order_type:
        query = query.filter(Order.order_type == order_type)
    if from_date:
        query = query.filter(Order.created_at >= from_date)
    if to_date:
        query = query.filter(Order.created_at <= to_date)

    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "items": [o.to_dict(include_items=False) for o in orders],
        "page": page,
        "per_page": per_page,
        "total": total,
    }


def get_customer_orders(ctx: RequestContext, customer_id: int, *, page: int = 1, per_page: int = 20) -> dict:
    customer_stats_service.get_customer(ctx, customer_id)
    page = max(page, 1)
    per_page = max(min(per_page, 200), 1)

    query = scoped(Order, ctx).filter(Order.customer_id == customer_id)
    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "items": [o.to_dict(include_items=False) for o in orders],
        "page": page,
        "per_page": per_page,
        "total": total,
    }
