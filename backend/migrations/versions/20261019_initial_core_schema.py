"""Initial core schema: tenancy, catalog, stock, shifts, cash ledger, orders

Revision ID: 20261019_initial_core
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial_core"
down_revision = None
branch_labels = None
depends_on = None


def _pk():
    return sa.Column("id", sa.Integer(), nullable=False)


def _created_at():
    return sa.Column("created_at", sa.DateTime(), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False)


def _version_id():
    return sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1"))


def upgrade():
    # =========================================================================
    # Tenancy
    # =========================================================================
    op.create_table(
        "tenants",
        _pk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("currency_code", sa.String(8), nullable=False, server_default="EGP"),
        sa.Column("tax_rate_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_tax_enabled", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("allow_negative_stock", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_tenants_is_active", "tenants", ["is_active"], unique=False)

    op.create_table(
        "branches",
        _pk(),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "code", name="uq_branches_tenant_code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_branches_tenant_id", "branches", ["tenant_id"], unique=False)

    op.create_table(
        "users",
        _pk(),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_users_branch_id", ["branch_id"], unique=False)

    # =========================================================================
    # Catalog
    # =========================================================================
    op.create_table(
        "products",
        _pk(),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("barcode", sa.String(64), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("cost_cents", sa.Integer(), nullable=True),
        sa.Column("tax_rate_bps", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("track_inventory", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_products_barcode", ["barcode"], unique=False)
        batch_op.create_index("ix_products_tenant_active", ["tenant_id", "is_active"], unique=False)

    op.create_table(
        "customers",
        _pk(),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("phone", sa.String(20), nullable=False),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("loyalty_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_orders", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_spent_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_order_at", sa.DateTime(), nullable=True),
        sa.Column("total_due_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("credit_limit_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        _version_id(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "phone", name="uq_customers_tenant_phone"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_customers_tenant_id", "customers", ["tenant_id"], unique=False)

    # =========================================================================
    # Stock
    # =========================================================================
    op.create_table(
        "branch_inventory",
        _pk(),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reorder_level", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        _version_id(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("branch_id", "product_id", name="uq_branch_inventory_branch_product"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("branch_inventory", schema=None) as batch_op:
        batch_op.create_index("ix_branch_inventory_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_branch_inventory_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_branch_inventory_product_id", ["product_id"], unique=False)

    op.create_table(
        "stock_movements",
        _pk(),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("movement_type", sa.String(32), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("balance_before", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("reference_type", sa.String(32), nullable=True),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.create_index("ix_stock_movements_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_stock_movements_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_stock_movements_branch_product", ["branch_id", "product_id"], unique=False)
        batch_op.create_index("ix_stock_movements_reference", ["reference_type", "reference_id"], unique=False)

    # =========================================================================
    # Shifts
    # =========================================================================
    op.create_table(
        "shifts",
        _pk(),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("opening_balance_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("closing_balance_cents", sa.Integer(), nullable=True),
        sa.Column("expected_balance_cents", sa.Integer(), nullable=True),
        sa.Column("difference_cents", sa.Integer(), nullable=True),
        sa.Column("opened_at", sa.DateTime(), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("total_cash_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_card_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_orders", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_activity_at", sa.DateTime(), nullable=True),
        sa.Column("is_reconciled", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("reconciled_by_user_id", sa.Integer(), nullable=True),
        sa.Column("reconciled_by_user_name", sa.String(128), nullable=True),
        sa.Column("reconciled_at", sa.DateTime(), nullable=True),
        sa.Column("variance_reason", sa.String(500), nullable=True),
        sa.Column("is_force_closed", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("force_closed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("force_closed_by_user_name", sa.String(128), nullable=True),
        sa.Column("force_closed_at", sa.DateTime(), nullable=True),
        sa.Column("force_close_reason", sa.String(500), nullable=True),
        sa.Column("is_handed_over", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("handed_over_from_user_id", sa.Integer(), nullable=True),
        sa.Column("handed_over_from_user_name", sa.String(128), nullable=True),
        sa.Column("handed_over_to_user_id", sa.Integer(), nullable=True),
        sa.Column("handed_over_to_user_name", sa.String(128), nullable=True),
        sa.Column("handed_over_at", sa.DateTime(), nullable=True),
        sa.Column("handover_balance_cents", sa.Integer(), nullable=True),
        sa.Column("handover_notes", sa.String(500), nullable=True),
        _version_id(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["reconciled_by_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["force_closed_by_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["handed_over_from_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["handed_over_to_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("shifts", schema=None) as batch_op:
        batch_op.create_index("ix_shifts_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_shifts_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_shifts_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_shifts_is_closed", ["is_closed"], unique=False)

    # At most one open shift per (tenant, branch, user)
    op.create_index(
        "uq_shifts_open_per_user",
        "shifts",
        ["tenant_id", "branch_id", "user_id"],
        unique=True,
        sqlite_where=sa.text("is_closed = 0"),
        postgresql_where=sa.text("is_closed = false"),
    )

    # =========================================================================
    # Cash ledger
    # =========================================================================
    op.create_table(
        "cash_ledger_heads",
        _pk(),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("balance_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("entry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_entry_id", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        _version_id(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("branch_id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_cash_ledger_heads_tenant_id", "cash_ledger_heads", ["tenant_id"], unique=False)

    op.create_table(
        "cash_ledger_entries",
        _pk(),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("transaction_number", sa.String(32), nullable=False),
        sa.Column("transaction_type", sa.String(32), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("balance_before_cents", sa.Integer(), nullable=False),
        sa.Column("balance_after_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("reference_type", sa.String(32), nullable=True),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("shift_id", sa.Integer(), nullable=True),
        sa.Column("transfer_reference_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("user_name", sa.String(128), nullable=True),
        sa.Column("transaction_date", sa.DateTime(), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"]),
        sa.ForeignKeyConstraint(["transfer_reference_id"], ["cash_ledger_entries.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("branch_id", "sequence", name="uq_cash_ledger_branch_sequence"),
        sa.UniqueConstraint("tenant_id", "transaction_number", name="uq_cash_ledger_tenant_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("cash_ledger_entries", schema=None) as batch_op:
        batch_op.create_index("ix_cash_ledger_entries_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_cash_ledger_entries_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_cash_ledger_entries_transaction_type", ["transaction_type"], unique=False)
        batch_op.create_index("ix_cash_ledger_entries_shift_id", ["shift_id"], unique=False)
        batch_op.create_index("ix_cash_ledger_branch_date", ["branch_id", "transaction_date"], unique=False)

    # =========================================================================
    # Orders
    # =========================================================================
    op.create_table(
        "orders",
        _pk(),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("branch_name", sa.String(120), nullable=True),
        sa.Column("branch_address", sa.String(255), nullable=True),
        sa.Column("branch_phone", sa.String(32), nullable=True),
        sa.Column("shift_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("user_name", sa.String(128), nullable=True),
        sa.Column("order_number", sa.String(64), nullable=False),
        sa.Column("status", sa.String(24), nullable=False, server_default="DRAFT"),
        sa.Column("order_type", sa.String(16), nullable=False, server_default="SALE"),
        sa.Column("original_order_id", sa.Integer(), nullable=True),
        sa.Column("currency_code", sa.String(8), nullable=True),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("service_charge_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_type", sa.String(16), nullable=True),
        sa.Column("discount_value", sa.Integer(), nullable=True),
        sa.Column("service_charge_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("amount_paid_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("amount_due_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("change_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("refund_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("refunded_cash_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("customer_name", sa.String(100), nullable=True),
        sa.Column("customer_phone", sa.String(20), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        _created_at(),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("completed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column("refunded_at", sa.DateTime(), nullable=True),
        sa.Column("refund_reason", sa.String(500), nullable=True),
        sa.Column("refunded_by_user_id", sa.Integer(), nullable=True),
        sa.Column("refunded_by_user_name", sa.String(128), nullable=True),
        _version_id(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["original_order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["completed_by_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["refunded_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.create_index("ix_orders_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_orders_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_orders_shift_id", ["shift_id"], unique=False)
        batch_op.create_index("ix_orders_status", ["status"], unique=False)
        batch_op.create_index("ix_orders_original_order_id", ["original_order_id"], unique=False)
        batch_op.create_index("ix_orders_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_orders_branch_status_created", ["branch_id", "status", "created_at"], unique=False)

    op.create_table(
        "order_items",
        _pk(),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("product_sku", sa.String(64), nullable=True),
        sa.Column("product_barcode", sa.String(64), nullable=True),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("tax_rate_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_type", sa.String(16), nullable=True),
        sa.Column("discount_value", sa.Integer(), nullable=True),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("discount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("original_item_id", sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["original_item_id"], ["order_items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("order_items", schema=None) as batch_op:
        batch_op.create_index("ix_order_items_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_order_items_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_order_items_original_item_id", ["original_item_id"], unique=False)

    op.create_table(
        "payments",
        _pk(),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("method", sa.String(32), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("reference", sa.String(128), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("payments", schema=None) as batch_op:
        batch_op.create_index("ix_payments_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_payments_method", ["method"], unique=False)

    op.create_table(
        "refund_logs",
        _pk(),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("return_order_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("refund_amount_cents", sa.Integer(), nullable=False),
        sa.Column("cash_refund_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reason", sa.String(500), nullable=True),
        sa.Column("stock_changes_json", sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["return_order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("refund_logs", schema=None) as batch_op:
        batch_op.create_index("ix_refund_logs_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_refund_logs_order_id", ["order_id"], unique=False)


def downgrade():
    op.drop_table("refund_logs")
    op.drop_table("payments")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("cash_ledger_entries")
    op.drop_table("cash_ledger_heads")
    op.drop_index("uq_shifts_open_per_user", table_name="shifts")
    op.drop_table("shifts")
    op.drop_table("stock_movements")
    op.drop_table("branch_inventory")
    op.drop_table("customers")
    op.drop_table("products")
    op.drop_table("users")
    op.drop_table("branches")
    op.drop_table("tenants")
