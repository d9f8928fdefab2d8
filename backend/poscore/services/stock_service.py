"""
Stock Ledger: per-branch product quantities with an append-only movement log.

Every mutation reads the current quantity (row locked), computes the new one,
writes it back and appends exactly one StockMovement with before/after
values. Movement rows are never edited or deleted.

NEGATIVE STOCK: decrements are refused with InsufficientStock unless the
tenant allows negative stock. Manual adjustments never take stock below zero.

UNTRACKED PRODUCTS: operations on products with track_inventory = False are
no-ops and return None.
"""

from __future__ import annotations

from ..context import RequestContext, branch_scoped, get_tenant, require_context, scoped
from ..errors import InsufficientStock, NotFoundError, ValidationError
from ..extensions import db
from ..models import BranchInventory, Product, StockMovement
from .concurrency import lock_for_update, unit_of_work


MOVEMENT_SALE = "SALE"
MOVEMENT_RETURN = "RETURN"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_RECEIVE = "RECEIVE"


def _get_product(ctx: RequestContext, product_id: int, *, include_deleted: bool = False) -> Product:
    product = scoped(Product, ctx, include_deleted=include_deleted).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError(
            f"Product {product_id} not found",
            details={"product_id": product_id},
            code="PRODUCT_NOT_FOUND",
        )
    return product


def _lock_inventory(ctx: RequestContext, product_id: int) -> BranchInventory:
    """Locked inventory row for (branch, product), created at zero on first use."""
    inventory = lock_for_update(
        db.session.query(BranchInventory).filter_by(
            branch_id=ctx.branch_id,
            product_id=product_id,
        )
    ).first()
    if inventory is None:
        inventory = BranchInventory(
            tenant_id=ctx.tenant_id,
            branch_id=ctx.branch_id,
            product_id=product_id,
            quantity=0,
        )
        db.session.add(inventory)
        db.session.flush()
    return inventory


def _apply(
    ctx: RequestContext,
    product: Product,
    delta: int,
    movement_type: str,
    *,
    reference_type: str | None = None,
    reference_id: int | None = None,
    reason: str | None = None,
    allow_negative: bool = False,
) -> StockMovement:
    inventory = _lock_inventory(ctx, product.id)
    before = inventory.quantity
    after = before + delta

    if after < 0 and not allow_negative:
        raise InsufficientStock(product.id, product.name, -delta, before)

    inventory.quantity = after
    movement = StockMovement(
        tenant_id=ctx.tenant_id,
        branch_id=ctx.branch_id,
        product_id=product.id,
        movement_type=movement_type,
        quantity=delta,
        balance_before=before,
        balance_after=after,
        reference_type=reference_type,
        reference_id=reference_id,
        reason=reason,
        user_id=ctx.user_id,
    )
    db.session.add(movement)
    return movement


def _require_positive(quantity: int) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer", details={"quantity": quantity})


def _movement_audit(product: Product, movement: StockMovement) -> dict:
    return {
        "product_id": product.id,
        "product_name": product.name,
        "quantity": movement.quantity,
        "balance_before": movement.balance_before,
        "balance_after": movement.balance_after,
    }


# =============================================================================
# SINGLE-PRODUCT OPERATIONS
# =============================================================================

def decrement(
    ctx: RequestContext,
    product_id: int,
    quantity: int,
    *,
    reference_type: str | None = None,
    reference_id: int | None = None,
    reason: str | None = None,
    commit: bool = True,
) -> StockMovement | None:
    require_context(ctx)
    _require_positive(quantity)
    product = _get_product(ctx, product_id)
    if not product.track_inventory:
        return None

    allow_negative = get_tenant(ctx).allow_negative_stock
    with unit_of_work("stock decrement", commit=commit):
        movement = _apply(
            ctx, product, -quantity, MOVEMENT_SALE,
            reference_type=reference_type,
            reference_id=reference_id,
            reason=reason,
            allow_negative=allow_negative,
        )
    return movement


def increment(
    ctx: RequestContext,
    product_id: int,
    quantity: int,
    *,
    reference_type: str | None = None,
    reference_id: int | None = None,
    reason: str | None = None,
    movement_type: str = MOVEMENT_RECEIVE,
    commit: bool = True,
) -> StockMovement | None:
    require_context(ctx)
    _require_positive(quantity)
    product = _get_product(ctx, product_id)
    if not product.track_inventory:
        return None

    with unit_of_work("stock increment", commit=commit):
        movement = _apply(
            ctx, product, quantity, movement_type,
            reference_type=reference_type,
            reference_id=reference_id,
            reason=reason,
            allow_negative=True,
        )
    return movement


def adjust(
    ctx: RequestContext,
    product_id: int,
    delta: int,
    reason: str,
    *,
    commit: bool = True,
) -> StockMovement | None:
    """Manual correction. A non-empty reason is mandatory."""
    require_context(ctx)
    if not reason or not reason.strip():
        raise ValidationError("Adjustment reason is required")
    if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
        raise ValidationError("Adjustment must be a non-zero integer", details={"delta": delta})

    product = _get_product(ctx, product_id)
    if not product.track_inventory:
        return None

    with unit_of_work("stock adjustment", commit=commit):
        movement = _apply(
            ctx, product, delta, MOVEMENT_ADJUSTMENT,
            reference_type="MANUAL_ADJUSTMENT",
            reason=reason.strip(),
        )
    return movement


# =============================================================================
# BATCH OPERATIONS (order completion / refund)
# =============================================================================

def _resolve_batch(ctx: RequestContext, items, *, include_deleted: bool = False) -> list[tuple[Product, int]]:
    resolved = []
    for product_id, quantity in items:
        _require_positive(quantity)
        resolved.append((_get_product(ctx, product_id, include_deleted=include_deleted), quantity))
    return resolved


def batch_decrement(
    ctx: RequestContext,
    items,
    *,
    reference_type: str | None = None,
    reference_id: int | None = None,
    reason: str | None = None,
    commit: bool = True,
) -> list[dict]:
    """
    Decrement several products as one step.

    items: iterable of (product_id, quantity). Availability is checked for
    every product (summing repeated products) before the first write, so a
    shortfall on any line writes nothing.

    Returns the audit list of {product_id, product_name, quantity,
    balance_before, balance_after}, one per tracked line.
    """
    require_context(ctx)
    resolved = _resolve_batch(ctx, items)
    allow_negative = get_tenant(ctx).allow_negative_stock

    audit: list[dict] = []
    with unit_of_work("stock batch decrement", commit=commit):
        if not allow_negative:
            requested: dict[int, int] = {}
            products: dict[int, Product] = {}
            for product, quantity in resolved:
                if product.track_inventory:
                    requested[product.id] = requested.get(product.id, 0) + quantity
                    products[product.id] = product
            for product_id, total in requested.items():
                available = _lock_inventory(ctx, product_id).quantity
                if available < total:
                    raise InsufficientStock(product_id, products[product_id].name, total, available)

        for product, quantity in resolved:
            if not product.track_inventory:
                continue
            movement = _apply(
                ctx, product, -quantity, MOVEMENT_SALE,
                reference_type=reference_type,
                reference_id=reference_id,
                reason=reason,
                allow_negative=allow_negative,
            )
            audit.append(_movement_audit(product, movement))
    return audit


def batch_increment(
    ctx: RequestContext,
    items,
    *,
    reference_type: str | None = None,
    reference_id: int | None = None,
    reason: str | None = None,
    movement_type: str = MOVEMENT_RETURN,
    commit: bool = True,
    include_deleted: bool = False,
) -> list[dict]:
    """
    Restore stock for several products in one unit of work.

    include_deleted lets a refund restock products soft-deleted since the sale.
    """
    require_context(ctx)
    resolved = _resolve_batch(ctx, items, include_deleted=include_deleted)

    audit: list[dict] = []
    with unit_of_work("stock batch increment", commit=commit):
        for product, quantity in resolved:
            if not product.track_inventory:
                continue
            movement = _apply(
                ctx, product, quantity, movement_type,
                reference_type=reference_type,
                reference_id=reference_id,
                reason=reason,
                allow_negative=True,
            )
            audit.append(_movement_audit(product, movement))
    return audit


# =============================================================================
# QUERIES
# =============================================================================

def get_quantity(ctx: RequestContext, product_id: int, branch_id: int | None = None) -> int:
    """Current on-hand quantity (0 when the product was never stocked here)."""
    _get_product(ctx, product_id)
    inventory = db.session.query(BranchInventory).filter_by(
        branch_id=branch_id or ctx.branch_id,
        product_id=product_id,
    ).first()
    return inventory.quantity if inventory else 0


def get_history(
    ctx: RequestContext,
    product_id: int,
    *,
    page: int = 1,
    per_page: int = 50,
) -> dict:
    """Movement log for one product at the context branch, newest first."""
    _get_product(ctx, product_id)
    page = max(page, 1)
    per_page = max(min(per_page, 200), 1)

    query = branch_scoped(StockMovement, ctx).filter(StockMovement.product_id == product_id)
    total = query.count()
    movements = (
        query.order_by(StockMovement.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "items": [m.to_dict() for m in movements],
        "page": page,
        "per_page": per_page,
        "total": total,
    }


def get_low_stock(ctx: RequestContext) -> list[BranchInventory]:
    """Tracked, active products at or below their reorder level."""
    return (
        scoped(BranchInventory, ctx)
        .join(Product, Product.id == BranchInventory.product_id)
        .filter(
            BranchInventory.branch_id == ctx.branch_id,
            BranchInventory.quantity <= BranchInventory.reorder_level,
            Product.is_active.is_(True),
            Product.track_inventory.is_(True),
            Product.deleted_at.is_(None),
        )
        .order_by(BranchInventory.quantity.asc())
        .all()
    )


def set_reorder_level(ctx: RequestContext, product_id: int, reorder_level: int) -> BranchInventory:
    require_context(ctx)
    if reorder_level < 0:
        raise ValidationError("Reorder level cannot be negative")
    _get_product(ctx, product_id)
    with unit_of_work("set reorder level"):
        inventory = _lock_inventory(ctx, product_id)
        inventory.reorder_level = reorder_level
    return inventory
