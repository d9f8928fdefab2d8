from __future__ import annotations

from ..extensions import db
from poscore.time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Product master data (read-only from the order/stock services' view).

    MULTI-TENANT: Products are scoped to tenants via tenant_id; quantities are
    per branch (see BranchInventory).

    TAX: tax_rate_bps overrides the tenant default when set.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        db.Index("ix_products_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(64), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False)
    cost_cents = db.Column(db.Integer, nullable=True)
    tax_rate_bps = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    track_inventory = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    deleted_at = db.Column(db.DateTime, nullable=True)

    tenant = db.relationship("Tenant", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "is_active": self.is_active,
            "track_inventory": self.track_inventory,
            "created_at": to_utc_z(self.created_at),
        }


class Customer(db.Model):
    """
    Customer with denormalized loyalty and spend aggregates.

    Aggregates are maintained by customer_stats_service inside the order
    transaction; they are never recomputed in place.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "phone", name="uq_customers_tenant_phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    phone = db.Column(db.String(20), nullable=False)
    name = db.Column(db.String(100), nullable=True)

    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    total_orders = db.Column(db.Integer, nullable=False, default=0)
    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)
    last_order_at = db.Column(db.DateTime, nullable=True)

    # On-account balance owed by the customer, bounded by credit_limit_cents
    total_due_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    deleted_at = db.Column(db.DateTime, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    tenant = db.relationship("Tenant", backref=db.backref("customers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "phone": self.phone,
            "name": self.name,
            "loyalty_points": self.loyalty_points,
            "total_orders": self.total_orders,
            "total_spent_cents": self.total_spent_cents,
            "last_order_at": to_utc_z(self.last_order_at) if self.last_order_at else None,
            "total_due_cents": self.total_due_cents,
            "credit_limit_cents": self.credit_limit_cents,
            "is_active": self.is_active,
            "version_id": self.version_id,
        }
