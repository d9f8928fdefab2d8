from __future__ import annotations

from ..extensions import db
from poscore.time_utils import to_utc_z, utcnow


# Transaction types and their effect on the drawer balance.
TX_OPENING = "OPENING"
TX_SALE = "SALE"
TX_REFUND = "REFUND"
TX_DEPOSIT = "DEPOSIT"
TX_WITHDRAWAL = "WITHDRAWAL"
TX_ADJUSTMENT = "ADJUSTMENT"
TX_TRANSFER = "TRANSFER"
TX_EXPENSE = "EXPENSE"
TX_SUPPLIER_PAYMENT = "SUPPLIER_PAYMENT"

CREDIT_TYPES = (TX_OPENING, TX_SALE, TX_DEPOSIT)
DEBIT_TYPES = (TX_REFUND, TX_WITHDRAWAL, TX_EXPENSE, TX_SUPPLIER_PAYMENT)
SIGNED_TYPES = (TX_ADJUSTMENT, TX_TRANSFER)

VALID_TRANSACTION_TYPES = CREDIT_TYPES + DEBIT_TYPES + SIGNED_TYPES


class CashLedgerHead(db.Model):
    """
    Per-branch serialization point for the cash ledger.

    Every append locks this row, reads the running balance from it and
    bumps entry_count. version_id makes a concurrent writer that read the
    same head fail at flush instead of producing a second entry with the
    same balance_before.
    """
    __tablename__ = "cash_ledger_heads"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, unique=True)

    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    entry_count = db.Column(db.Integer, nullable=False, default=0)
    last_entry_id = db.Column(db.Integer, nullable=True)

    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "balance_cents": self.balance_cents,
            "entry_count": self.entry_count,
            "last_entry_id": self.last_entry_id,
        }


class CashLedgerEntry(db.Model):
    """
    One cash movement in a branch drawer.

    APPEND-ONLY: entries are never updated or deleted. For a branch, entry
    sequence N has balance_before_cents == balance_after_cents of entry N-1.

    amount_cents is signed: positive adds to the drawer, negative removes.
    """
    __tablename__ = "cash_ledger_entries"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "sequence", name="uq_cash_ledger_branch_sequence"),
        db.UniqueConstraint("tenant_id", "transaction_number", name="uq_cash_ledger_tenant_number"),
        db.Index("ix_cash_ledger_branch_date", "branch_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)

    # CR-2026-0001, reset per tenant per year
    transaction_number = db.Column(db.String(32), nullable=False)
    transaction_type = db.Column(db.String(32), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    description = db.Column(db.String(500), nullable=False)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)
    transfer_reference_id = db.Column(db.Integer, db.ForeignKey("cash_ledger_entries.id"), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    user_name = db.Column(db.String(128), nullable=True)

    transaction_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "sequence": self.sequence,
            "transaction_number": self.transaction_number,
            "transaction_type": self.transaction_type,
            "amount_cents": self.amount_cents,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
            "description": self.description,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "shift_id": self.shift_id,
            "transfer_reference_id": self.transfer_reference_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "transaction_date": to_utc_z(self.transaction_date),
        }
