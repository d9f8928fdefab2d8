from __future__ import annotations

from ..extensions import db
from poscore.time_utils import to_utc_z, utcnow


# =============================================================================
# ORDER STATES
# =============================================================================

STATUS_DRAFT = "DRAFT"
STATUS_PENDING = "PENDING"
STATUS_COMPLETED = "COMPLETED"
STATUS_CANCELLED = "CANCELLED"
STATUS_PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
STATUS_REFUNDED = "REFUNDED"

# Every status change is checked against this table. CANCELLED and
# REFUNDED are terminal.
ALLOWED_TRANSITIONS: dict[str, tuple[str, ...]] = {
    STATUS_DRAFT: (STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED),
    STATUS_PENDING: (STATUS_COMPLETED, STATUS_CANCELLED),
    STATUS_COMPLETED: (STATUS_PARTIALLY_REFUNDED, STATUS_REFUNDED),
    STATUS_PARTIALLY_REFUNDED: (STATUS_PARTIALLY_REFUNDED, STATUS_REFUNDED),
    STATUS_CANCELLED: (),
    STATUS_REFUNDED: (),
}

VALID_STATUSES = tuple(ALLOWED_TRANSITIONS)

# Statuses of sale orders that were completed at some point
COMPLETED_STATUSES = (STATUS_COMPLETED, STATUS_PARTIALLY_REFUNDED, STATUS_REFUNDED)

ORDER_TYPE_SALE = "SALE"
ORDER_TYPE_RETURN = "RETURN"

# =============================================================================
# TENDERS
# =============================================================================

PAYMENT_CASH = "CASH"
PAYMENT_CARD = "CARD"
PAYMENT_CHECK = "CHECK"
PAYMENT_GIFT_CARD = "GIFT_CARD"
PAYMENT_STORE_CREDIT = "STORE_CREDIT"

VALID_PAYMENT_METHODS = (
    PAYMENT_CASH,
    PAYMENT_CARD,
    PAYMENT_CHECK,
    PAYMENT_GIFT_CARD,
    PAYMENT_STORE_CREDIT,
)


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, ())


class Order(db.Model):
    """
    Sale or return document.

    SALE orders are built in DRAFT, optionally held (PENDING), then
    COMPLETED or CANCELLED. A completed sale accumulates refund_amount_cents
    through refunds; each refund creates a RETURN order whose monetary fields
    are negative and whose original_order_id points back at the sale.

    SNAPSHOTS: branch, user and customer details are copied at creation so
    the receipt never changes when master data does.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_number"),
        db.Index("ix_orders_branch_status_created", "branch_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    branch_name = db.Column(db.String(120), nullable=True)
    branch_address = db.Column(db.String(255), nullable=True)
    branch_phone = db.Column(db.String(32), nullable=True)

    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    user_name = db.Column(db.String(128), nullable=True)

    # ORD-20260105-A1B2C3
    order_number = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(24), nullable=False, default=STATUS_DRAFT, index=True)
    order_type = db.Column(db.String(16), nullable=False, default=ORDER_TYPE_SALE)
    original_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    currency_code = db.Column(db.String(8), nullable=True)

    # Totals (cents)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    service_charge_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    # Order-level discount: percentage (bps) or fixed (cents)
    discount_type = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Integer, nullable=True)
    service_charge_bps = db.Column(db.Integer, nullable=False, default=0)

    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_due_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    refund_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    # Cash already handed back across refunds, bounded by cash kept at sale
    refunded_cash_cents = db.Column(db.Integer, nullable=False, default=0)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(100), nullable=True)
    customer_phone = db.Column(db.String(20), nullable=True)

    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancellation_reason = db.Column(db.String(500), nullable=True)

    refunded_at = db.Column(db.DateTime, nullable=True)
    refund_reason = db.Column(db.String(500), nullable=True)
    refunded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    refunded_by_user_name = db.Column(db.String(128), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    original_order = db.relationship("Order", remote_side=[id], backref=db.backref("return_orders", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_return(self) -> bool:
        return self.order_type == ORDER_TYPE_RETURN

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "branch_name": self.branch_name,
            "branch_address": self.branch_address,
            "branch_phone": self.branch_phone,
            "shift_id": self.shift_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "order_number": self.order_number,
            "status": self.status,
            "order_type": self.order_type,
            "original_order_id": self.original_order_id,
            "currency_code": self.currency_code,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "service_charge_cents": self.service_charge_cents,
            "total_cents": self.total_cents,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "service_charge_bps": self.service_charge_bps,
            "amount_paid_cents": self.amount_paid_cents,
            "amount_due_cents": self.amount_due_cents,
            "change_cents": self.change_cents,
            "refund_amount_cents": self.refund_amount_cents,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "refunded_at": to_utc_z(self.refunded_at),
            "refund_reason": self.refund_reason,
            "refunded_by_user_name": self.refunded_by_user_name,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class OrderItem(db.Model):
    """
    One line of an order.

    Product name/sku/barcode/price/cost are snapshotted when the line is
    added. On RETURN orders every monetary field is negative, quantity stays
    positive and original_item_id points at the refunded sale line.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=True)
    product_barcode = db.Column(db.String(64), nullable=True)

    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    discount_type = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Integer, nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    original_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    order = db.relationship(
        "Order",
        backref=db.backref("items", lazy=True, cascade="all, delete-orphan", order_by="OrderItem.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "product_barcode": self.product_barcode,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "tax_rate_bps": self.tax_rate_bps,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "original_item_id": self.original_item_id,
        }


class Payment(db.Model):
    """
    One tender applied to an order at completion.

    APPEND-ONLY: created only by order completion. Only CASH tenders touch
    the cash ledger; STORE_CREDIT charges the customer's account.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    method = db.Column(db.String(32), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    order = db.relationship(
        "Order",
        backref=db.backref("payments", lazy=True, order_by="Payment.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "reference": self.reference,
            "created_at": to_utc_z(self.created_at),
        }


class RefundLog(db.Model):
    """
    Audit record written once per refund operation.

    stock_changes_json holds the serialized list of
    {product_id, product_name, quantity, balance_before, balance_after}.
    """
    __tablename__ = "refund_logs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    return_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    refund_amount_cents = db.Column(db.Integer, nullable=False)
    cash_refund_cents = db.Column(db.Integer, nullable=False, default=0)
    reason = db.Column(db.String(500), nullable=True)
    stock_changes_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "return_order_id": self.return_order_id,
            "user_id": self.user_id,
            "refund_amount_cents": self.refund_amount_cents,
            "cash_refund_cents": self.cash_refund_cents,
            "reason": self.reason,
            "stock_changes_json": self.stock_changes_json,
            "created_at": to_utc_z(self.created_at),
        }
