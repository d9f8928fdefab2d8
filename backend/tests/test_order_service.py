# Overview: Pytest coverage for the order lifecycle engine (create, edit, complete).

"""
Order Lifecycle Tests

Completion must post order, stock, cash and customer changes together or
not at all.
"""

import pytest

from poscore.errors import (
    CreditLimitExceeded,
    EmptyOrder,
    InsufficientStock,
    InvalidStateTransition,
    NoOpenShift,
    OverpaymentLimit,
    PaymentInsufficient,
    PosSystemError,
    StateConflictError,
    ValidationError,
)
from poscore.models import CashLedgerEntry, Customer, Order, Payment, Product, StockMovement
from poscore.models.cash import TX_SALE
from poscore.models.orders import STATUS_CANCELLED, STATUS_COMPLETED, STATUS_DRAFT, STATUS_PENDING
from poscore.services import cash_ledger_service, notification_service, order_service, stock_service


def _sale_entries(db_session, order_id):
    return (
        db_session.query(CashLedgerEntry)
        .filter_by(transaction_type=TX_SALE, reference_id=order_id)
        .all()
    )


class TestCreate:
    def test_totals_with_tax(self, db_session, ctx, product, open_shift):
        """100.00 x 2 at 14% -> item 228.00, order 228.00"""
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 2}])

        item = order.items[0]
        assert item.subtotal_cents == 20000
        assert item.tax_cents == 2800
        assert item.total_cents == 22800
        assert item.tax_rate_bps == 1400
        assert order.total_cents == 22800
        assert order.status == STATUS_DRAFT
        assert order.shift_id == open_shift.id
        assert order.branch_name == "Downtown"
        assert order.order_number.startswith("ORD-")

    def test_product_rate_overrides_tenant(self, db_session, ctx, tenant, open_shift):
        product = Product(tenant_id=tenant.id, sku="BRD", name="Bread", price_cents=1000, tax_rate_bps=0)
        db_session.add(product)
        db_session.commit()
        stock_service.increment(ctx, product.id, 5)

        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])

        assert order.tax_cents == 0
        assert order.total_cents == 1000

    def test_tax_disabled_tenant(self, db_session, ctx, tenant, product, open_shift):
        tenant.is_tax_enabled = False
        db_session.commit()

        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])

        assert order.total_cents == 10000

    def test_discounts_and_service_charge(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(
            ctx,
            [{"product_id": product.id, "quantity": 2, "discount_type": "percentage", "discount_value": 1000}],
            discount_type="fixed",
            discount_value=520,
            service_charge_bps=1000,
        )

        # line: 200.00 - 20.00 = 180.00, tax 25.20, total 205.20
        assert order.items[0].total_cents == 20520
        # order: 205.20 - 5.20 = 200.00, service 10% = 20.00
        assert order.discount_cents == 520
        assert order.service_charge_cents == 2000
        assert order.total_cents == 22000

    def test_requires_open_shift(self, db_session, ctx, product):
        with pytest.raises(NoOpenShift):
            order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])

    def test_requires_items(self, db_session, ctx, open_shift):
        with pytest.raises(EmptyOrder):
            order_service.create_order(ctx, [])

    def test_quantity_must_be_positive(self, db_session, ctx, product, open_shift):
        with pytest.raises(ValidationError):
            order_service.create_order(ctx, [{"product_id": product.id, "quantity": 0}])

    def test_stock_checked_up_front(self, db_session, ctx, product, open_shift):
        with pytest.raises(InsufficientStock):
            order_service.create_order(
                ctx,
                [{"product_id": product.id, "quantity": 6}, {"product_id": product.id, "quantity": 5}],
            )
        assert db_session.query(Order).count() == 0

    def test_inactive_product_rejected(self, db_session, ctx, product, open_shift):
        product.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError) as exc_info:
            order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])
        assert exc_info.value.code == "PRODUCT_INACTIVE"


class TestEditing:
    def test_add_item_merges_identical_line(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])

        order = order_service.add_item(ctx, order.id, product.id, 2)

        assert len(order.items) == 1
        assert order.items[0].quantity == 3
        assert order.total_cents == 34200

    def test_add_item_checks_cumulative_stock(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 8}])
        with pytest.raises(InsufficientStock):
            order_service.add_item(ctx, order.id, product.id, 3)

    def test_remove_item_recalculates(self, db_session, ctx, product, untracked_product, open_shift):
        order = order_service.create_order(
            ctx,
            [{"product_id": product.id, "quantity": 1}, {"product_id": untracked_product.id, "quantity": 1}],
        )
        wrap = next(i for i in order.items if i.product_id == untracked_product.id)

        order = order_service.remove_item(ctx, order.id, wrap.id)

        assert len(order.items) == 1
        assert order.total_cents == 11400

    def test_items_frozen_outside_draft(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])
        order_service.hold_order(ctx, order.id)

        with pytest.raises(StateConflictError) as exc_info:
            order_service.add_item(ctx, order.id, product.id, 1)
        assert exc_info.value.code == "ORDER_NOT_EDITABLE"


class TestStateMachine:
    def test_hold_then_complete(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])
        assert order_service.hold_order(ctx, order.id).status == STATUS_PENDING

        order = order_service.complete_order(ctx, order.id, [{"method": "CASH", "amount_cents": 11400}])

        assert order.status == STATUS_COMPLETED

    def test_cancel_touches_no_ledger(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])

        order = order_service.cancel_order(ctx, order.id, "Customer left")

        assert order.status == STATUS_CANCELLED
        assert order.cancellation_reason == "Customer left"
        assert stock_service.get_quantity(ctx, product.id) == 10
        assert cash_ledger_service.get_current_balance(ctx) == 10000

    def test_cancelled_is_terminal(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])
        order_service.cancel_order(ctx, order.id)

        with pytest.raises(InvalidStateTransition):
            order_service.complete_order(ctx, order.id, [{"method": "CASH", "amount_cents": 11400}])
        with pytest.raises(InvalidStateTransition):
            order_service.hold_order(ctx, order.id)

    def test_completed_cannot_be_cancelled(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])
        order_service.complete_order(ctx, order.id, [{"method": "CASH", "amount_cents": 11400}])

        with pytest.raises(InvalidStateTransition) as exc_info:
            order_service.cancel_order(ctx, order.id)
        assert exc_info.value.details == {"current_status": "COMPLETED", "target_status": "CANCELLED"}


class TestComplete:
    def test_cash_with_change(self, db_session, ctx, product, open_shift):
        """Tender 250.00 on 228.00 -> paid 228.00, change 22.00, SALE +228.00"""
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 2}])

        order = order_service.complete_order(ctx, order.id, [{"method": "CASH", "amount_cents": 25000}])

        assert order.amount_paid_cents == 22800
        assert order.change_cents == 2200
        assert order.completed_at is not None
        entries = _sale_entries(db_session, order.id)
        assert [e.amount_cents for e in entries] == [22800]
        assert entries[0].shift_id == open_shift.id
        assert cash_ledger_service.get_current_balance(ctx) == 32800
        assert stock_service.get_quantity(ctx, product.id) == 8

    def test_card_payment_skips_cash_ledger(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])

        order_service.complete_order(ctx, order.id, [{"method": "CARD", "amount_cents": 11400, "reference": "AUTH1"}])

        assert _sale_entries(db_session, order.id) == []
        assert cash_ledger_service.get_current_balance(ctx) == 10000

    def test_split_tender_keeps_cash_share(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 2}])

        order = order_service.complete_order(
            ctx,
            order.id,
            [{"method": "CARD", "amount_cents": 10000}, {"method": "CASH", "amount_cents": 20000}],
        )

        assert order.change_cents == 7200
        assert [e.amount_cents for e in _sale_entries(db_session, order.id)] == [12800]

    def test_insufficient_payment(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 2}])
        with pytest.raises(PaymentInsufficient):
            order_service.complete_order(ctx, order.id, [{"method": "CASH", "amount_cents": 20000}])

    def test_overpayment_limit(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 2}])
        with pytest.raises(OverpaymentLimit):
            order_service.complete_order(ctx, order.id, [{"method": "CASH", "amount_cents": 45601}])

        order = order_service.complete_order(ctx, order.id, [{"method": "CASH", "amount_cents": 45600}])
        assert order.change_cents == 22800

    def test_non_cash_cannot_exceed_total(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 2}])
        with pytest.raises(ValidationError):
            order_service.complete_order(ctx, order.id, [{"method": "CARD", "amount_cents": 30000}])

    def test_invalid_method(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])
        with pytest.raises(ValidationError):
            order_service.complete_order(ctx, order.id, [{"method": "BITCOIN", "amount_cents": 11400}])

    def test_no_payment_on_priced_order(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])
        with pytest.raises(PaymentInsufficient):
            order_service.complete_order(ctx, order.id, [])

    @pytest.mark.parametrize("payments", [[], [{"method": "CASH", "amount_cents": 0}]])
    def test_zero_total_completes_without_tender(self, db_session, ctx, product, open_shift, payments):
        """A fully discounted line gives a 0.00 order that still posts stock."""
        order = order_service.create_order(
            ctx,
            [{"product_id": product.id, "quantity": 1, "discount_type": "percentage", "discount_value": 10000}],
        )
        assert order.total_cents == 0

        order = order_service.complete_order(ctx, order.id, payments)

        assert order.status == STATUS_COMPLETED
        assert order.amount_paid_cents == 0
        assert order.change_cents == 0
        assert order.payments == []
        assert _sale_entries(db_session, order.id) == []
        assert stock_service.get_quantity(ctx, product.id) == 9
        assert cash_ledger_service.get_current_balance(ctx) == 10000

    def test_zero_total_rejects_overpayment(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(
            ctx,
            [{"product_id": product.id, "quantity": 1, "discount_type": "percentage", "discount_value": 10000}],
        )
        with pytest.raises(OverpaymentLimit):
            order_service.complete_order(ctx, order.id, [{"method": "CASH", "amount_cents": 1}])

    def test_negative_payment_amount(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])
        with pytest.raises(ValidationError):
            order_service.complete_order(ctx, order.id, [{"method": "CASH", "amount_cents": -100}])

    def test_customer_stats_updated(self, db_session, ctx, product, customer, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 2}], customer_id=customer.id)

        order_service.complete_order(ctx, order.id, [{"method": "CASH", "amount_cents": 22800}])

        customer = db_session.get(Customer, customer.id)
        assert customer.total_orders == 1
        assert customer.total_spent_cents == 22800
        assert customer.loyalty_points == 228
        assert customer.last_order_at is not None

    def test_store_credit_charges_account(self, db_session, ctx, product, customer, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 2}], customer_id=customer.id)

        order = order_service.complete_order(ctx, order.id, [{"method": "STORE_CREDIT", "amount_cents": 22800}])

        assert order.amount_due_cents == 22800
        assert order.amount_paid_cents == 0
        assert db_session.get(Customer, customer.id).total_due_cents == 22800
        assert _sale_entries(db_session, order.id) == []

    def test_store_credit_limit(self, db_session, ctx, product, customer, open_shift):
        customer.credit_limit_cents = 1000
        db_session.commit()
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}], customer_id=customer.id)

        with pytest.raises(CreditLimitExceeded):
            order_service.complete_order(ctx, order.id, [{"method": "STORE_CREDIT", "amount_cents": 11400}])

        assert db_session.get(Order, order.id).status == STATUS_DRAFT
        assert stock_service.get_quantity(ctx, product.id) == 10

    def test_store_credit_requires_customer(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])
        with pytest.raises(ValidationError):
            order_service.complete_order(ctx, order.id, [{"method": "STORE_CREDIT", "amount_cents": 11400}])

    def test_stock_shortfall_at_completion_rolls_back(self, db_session, ctx, product, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 5}])
        stock_service.adjust(ctx, product.id, -8, "Damaged in storage")

        with pytest.raises(InsufficientStock):
            order_service.complete_order(ctx, order.id, [{"method": "CASH", "amount_cents": 57000}])

        assert db_session.get(Order, order.id).status == STATUS_DRAFT
        assert db_session.query(Payment).count() == 0
        assert cash_ledger_service.get_current_balance(ctx) == 10000

    def test_unexpected_failure_rolls_back_everything(
        self, db_session, ctx, product, customer, open_shift, monkeypatch
    ):
        """A crash midway leaves order, stock, cash and customer untouched."""
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 2}], customer_id=customer.id)
        movements_before = db_session.query(StockMovement).count()

        def broken_append(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(cash_ledger_service, "record_transaction", broken_append)

        with pytest.raises(PosSystemError) as exc_info:
            order_service.complete_order(ctx, order.id, [{"method": "CASH", "amount_cents": 22800}])

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.http_status == 500
        db_session.expire_all()
        assert db_session.get(Order, order.id).status == STATUS_DRAFT
        assert db_session.query(Payment).count() == 0
        assert db_session.query(StockMovement).count() == movements_before
        assert stock_service.get_quantity(ctx, product.id) == 10
        assert db_session.get(Customer, customer.id).total_orders == 0

    def test_completion_notifies(self, db_session, ctx, product, open_shift):
        received = []
        notification_service.register_handler(
            notification_service.ORDER_COMPLETED,
            lambda event, payload: received.append(payload["status"]),
        )

        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])
        order_service.complete_order(ctx, order.id, [{"method": "CASH", "amount_cents": 11400}])

        assert received == [STATUS_COMPLETED]

    def test_failing_handler_does_not_undo_sale(self, db_session, ctx, product, open_shift):
        def broken_printer(event, payload):
            raise RuntimeError("printer offline")

        notification_service.register_handler(notification_service.ORDER_COMPLETED, broken_printer)

        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])
        order = order_service.complete_order(ctx, order.id, [{"method": "CASH", "amount_cents": 11400}])

        assert order.status == STATUS_COMPLETED


class TestQueries:
    def test_list_filters_by_status(self, db_session, ctx, product, open_shift):
        kept = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])
        cancelled = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])
        order_service.cancel_order(ctx, cancelled.id)

        result = order_service.list_orders(ctx, status=STATUS_DRAFT)

        assert [o["id"] for o in result["items"]] == [kept.id]

    def test_invalid_status_filter(self, db_session, ctx):
        with pytest.raises(ValidationError):
            order_service.list_orders(ctx, status="LOST")

    def test_orders_scoped_to_tenant(self, db_session, ctx, product, open_shift):
        from poscore.context import RequestContext
        from poscore.errors import NotFoundError

        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}])
        stranger = RequestContext(tenant_id=ctx.tenant_id + 1, branch_id=ctx.branch_id, user_id=ctx.user_id)

        with pytest.raises(NotFoundError):
            order_service.get_order(stranger, order.id)
