from __future__ import annotations

from ..extensions import db
from poscore.time_utils import to_utc_z, utcnow


class Shift(db.Model):
    """
    One cashier working session at one branch.

    LIFECYCLE:
    - OPEN: is_closed = False, orders completed by the user attach here
    - CLOSED: totals, expected balance and difference frozen

    EXCLUSIVITY: at most one open shift per (tenant, branch, user), enforced
    by a partial unique index.

    CONCURRENCY: version_id is the compare-and-swap token for close; a close
    that read a stale version fails at flush.

    IMMUTABLE: a closed shift is never reopened. Reconcile only stamps the
    reconciliation fields.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_open_per_user",
            "tenant_id", "branch_id", "user_id",
            unique=True,
            sqlite_where=db.text("is_closed = 0"),
            postgresql_where=db.text("is_closed = false"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_balance_cents = db.Column(db.Integer, nullable=True)
    expected_balance_cents = db.Column(db.Integer, nullable=True)
    difference_cents = db.Column(db.Integer, nullable=True)

    opened_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    closed_at = db.Column(db.DateTime, nullable=True)
    is_closed = db.Column(db.Boolean, nullable=False, default=False, index=True)
    notes = db.Column(db.String(500), nullable=True)

    # Frozen on close, recomputed from completed orders
    total_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    total_card_cents = db.Column(db.Integer, nullable=False, default=0)
    total_orders = db.Column(db.Integer, nullable=False, default=0)

    last_activity_at = db.Column(db.DateTime, nullable=True)

    # Reconciliation
    is_reconciled = db.Column(db.Boolean, nullable=False, default=False)
    reconciled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reconciled_by_user_name = db.Column(db.String(128), nullable=True)
    reconciled_at = db.Column(db.DateTime, nullable=True)
    variance_reason = db.Column(db.String(500), nullable=True)

    # Force close (administrative)
    is_force_closed = db.Column(db.Boolean, nullable=False, default=False)
    force_closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    force_closed_by_user_name = db.Column(db.String(128), nullable=True)
    force_closed_at = db.Column(db.DateTime, nullable=True)
    force_close_reason = db.Column(db.String(500), nullable=True)

    # Handover (administrative)
    is_handed_over = db.Column(db.Boolean, nullable=False, default=False)
    handed_over_from_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    handed_over_from_user_name = db.Column(db.String(128), nullable=True)
    handed_over_to_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    handed_over_to_user_name = db.Column(db.String(128), nullable=True)
    handed_over_at = db.Column(db.DateTime, nullable=True)
    handover_balance_cents = db.Column(db.Integer, nullable=True)
    handover_notes = db.Column(db.String(500), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", foreign_keys=[user_id])
    branch = db.relationship("Branch")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "opening_balance_cents": self.opening_balance_cents,
            "closing_balance_cents": self.closing_balance_cents,
            "expected_balance_cents": self.expected_balance_cents,
            "difference_cents": self.difference_cents,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "is_closed": self.is_closed,
            "notes": self.notes,
            "total_cash_cents": self.total_cash_cents,
            "total_card_cents": self.total_card_cents,
            "total_orders": self.total_orders,
            "last_activity_at": to_utc_z(self.last_activity_at),
            "is_reconciled": self.is_reconciled,
            "reconciled_by_user_name": self.reconciled_by_user_name,
            "reconciled_at": to_utc_z(self.reconciled_at),
            "variance_reason": self.variance_reason,
            "is_force_closed": self.is_force_closed,
            "force_closed_by_user_name": self.force_closed_by_user_name,
            "force_closed_at": to_utc_z(self.force_closed_at),
            "force_close_reason": self.force_close_reason,
            "is_handed_over": self.is_handed_over,
            "handed_over_from_user_name": self.handed_over_from_user_name,
            "handed_over_to_user_name": self.handed_over_to_user_name,
            "handed_over_at": to_utc_z(self.handed_over_at),
            "handover_balance_cents": self.handover_balance_cents,
            "handover_notes": self.handover_notes,
            "version_id": self.version_id,
        }
