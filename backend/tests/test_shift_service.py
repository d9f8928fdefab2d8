# Overview: Pytest coverage for shift open/close, exclusivity and administrative actions.

"""
Shift Session Tests

Includes the close race: two closes of the same shift must produce exactly
one success and one ConcurrencyConflict.
"""

import pytest

from poscore.errors import (
    ConcurrencyConflict,
    NoOpenShift,
    NotFoundError,
    ShiftAlreadyClosed,
    ShiftAlreadyOpen,
    StateConflictError,
    ValidationError,
)
from poscore.models import CashLedgerEntry, Shift
from poscore.models.cash import TX_OPENING
from poscore.services import notification_service, order_service, shift_service


def _sell(ctx, product, quantity, payments):
    order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": quantity}])
    return order_service.complete_order(ctx, order.id, payments)


class TestOpen:
    def test_open_writes_opening_entry(self, db_session, ctx, branch):
        shift = shift_service.open_shift(ctx, 10000, notes="Morning")

        assert shift.is_closed is False
        assert shift.opening_balance_cents == 10000
        entry = db_session.query(CashLedgerEntry).filter_by(shift_id=shift.id).one()
        assert entry.transaction_type == TX_OPENING
        assert entry.amount_cents == 10000
        assert entry.reference_type == "SHIFT"

    def test_one_open_shift_per_user_and_branch(self, db_session, ctx, open_shift):
        with pytest.raises(ShiftAlreadyOpen):
            shift_service.open_shift(ctx, 5000)
        assert db_session.query(Shift).count() == 1

    def test_other_user_may_open_in_same_branch(self, db_session, ctx, second_ctx, open_shift):
        other = shift_service.open_shift(second_ctx, 0)
        assert other.id != open_shift.id
        assert len(shift_service.get_active_shifts(ctx)) == 2

    def test_same_user_may_open_in_other_branch(self, db_session, ctx, second_branch, open_shift):
        other = shift_service.open_shift(ctx.for_branch(second_branch.id), 0)
        assert other.branch_id == second_branch.id

    def test_negative_opening_rejected(self, db_session, ctx):
        with pytest.raises(ValidationError):
            shift_service.open_shift(ctx, -1)

    def test_require_open_shift(self, db_session, ctx):
        with pytest.raises(NoOpenShift):
            shift_service.require_open_shift(ctx)


class TestClose:
    def test_close_computes_expected_and_difference(self, db_session, ctx, product, open_shift):
        _sell(ctx, product, 2, [{"method": "CASH", "amount_cents": 25000}])

        shift = shift_service.close_shift(ctx, 32000)

        assert shift.is_closed is True
        assert shift.closed_at is not None
        assert shift.expected_balance_cents == 32800
        assert shift.difference_cents == -800
        assert shift.total_orders == 1
        assert shift.total_cash_cents == 22800
        assert shift.total_card_cents == 0

    def test_card_sales_counted_separately(self, db_session, ctx, product, open_shift):
        _sell(ctx, product, 1, [{"method": "CARD", "amount_cents": 11400}])

        shift = shift_service.close_shift(ctx, 10000)

        assert shift.total_card_cents == 11400
        assert shift.total_cash_cents == 0
        assert shift.difference_cents == 0

    def test_store_credit_is_not_card_takings(self, db_session, ctx, product, customer, open_shift):
        order = order_service.create_order(ctx, [{"product_id": product.id, "quantity": 1}], customer_id=customer.id)
        order_service.complete_order(ctx, order.id, [{"method": "STORE_CREDIT", "amount_cents": 11400}])

        shift = shift_service.close_shift(ctx, 10000)

        assert shift.total_orders == 1
        assert shift.total_card_cents == 0
        assert shift.total_cash_cents == 0

    def test_close_without_open_shift(self, db_session, ctx):
        with pytest.raises(NoOpenShift):
            shift_service.close_shift(ctx, 0)

    def test_closed_shift_cannot_be_closed_again(self, db_session, ctx, open_shift):
        shift_service.close_shift(ctx, 10000, shift_id=open_shift.id)
        with pytest.raises(ShiftAlreadyClosed):
            shift_service.close_shift(ctx, 10000, shift_id=open_shift.id)

    def test_cannot_close_someone_elses_shift(self, db_session, ctx, second_ctx, open_shift):
        with pytest.raises(NotFoundError):
            shift_service.close_shift(second_ctx, 10000, shift_id=open_shift.id)

    def test_close_notifies_after_commit(self, db_session, ctx, open_shift):
        received = []
        notification_service.register_handler(
            notification_service.SHIFT_CLOSED,
            lambda event, payload: received.append(payload),
        )

        shift_service.close_shift(ctx, 9000)

        assert received == [{"shift_id": open_shift.id, "branch_id": open_shift.branch_id, "difference_cents": -1000}]


class TestCloseRace:
    """Two closes of the same shift: exactly one wins."""

    def test_second_close_with_same_version_conflicts(self, db_session, ctx, open_shift):
        version = open_shift.version_id

        closed = shift_service.close_shift(ctx, 10000, shift_id=open_shift.id, expected_version=version)
        assert closed.is_closed is True

        with pytest.raises(ConcurrencyConflict) as exc_info:
            shift_service.close_shift(ctx, 12345, shift_id=open_shift.id, expected_version=version)

        assert exc_info.value.http_status == 409
        db_session.expire_all()
        shift = db_session.get(Shift, open_shift.id)
        assert shift.closing_balance_cents == 10000

    def test_version_moved_during_close_conflicts(self, db_session, ctx, open_shift, monkeypatch):
        """Another writer bumps the version between this close's read and its write."""
        original = shift_service._compute_session_totals
        table = Shift.__table__

        def concurrent_writer(shift):
            db_session.execute(
                table.update()
                .where(table.c.id == shift.id)
                .values(version_id=table.c.version_id + 1)
            )
            return original(shift)

        monkeypatch.setattr(shift_service, "_compute_session_totals", concurrent_writer)

        with pytest.raises(ConcurrencyConflict):
            shift_service.close_shift(ctx, 10000)

        monkeypatch.setattr(shift_service, "_compute_session_totals", original)
        db_session.expire_all()
        shift = db_session.get(Shift, open_shift.id)
        assert shift.is_closed is False
        assert shift.closing_balance_cents is None

        # The loser can retry against fresh state
        assert shift_service.close_shift(ctx, 10000).is_closed is True

    def test_second_close_of_current_shift_conflicts(self, db_session, ctx, open_shift):
        """Without a shift id the loser finds no open shift; its version token still says conflict."""
        version = open_shift.version_id
        shift_service.close_shift(ctx, 10000, expected_version=version)

        with pytest.raises(ConcurrencyConflict):
            shift_service.close_shift(ctx, 10000, expected_version=version)

        with pytest.raises(NoOpenShift):
            shift_service.close_shift(ctx, 10000)


class TestForceClose:
    def test_force_close_at_expected_balance(self, db_session, ctx, second_ctx, open_shift):
        shift = shift_service.force_close(second_ctx, open_shift.id, "Cashier went home")

        assert shift.is_closed is True
        assert shift.is_force_closed is True
        assert shift.force_closed_by_user_name == "Karim"
        assert shift.closing_balance_cents == 10000
        assert shift.difference_cents == 0

    def test_force_close_with_count(self, db_session, ctx, second_ctx, open_shift):
        shift = shift_service.force_close(second_ctx, open_shift.id, "Audit", actual_balance_cents=9800)
        assert shift.difference_cents == -200

    def test_reason_required(self, db_session, ctx, open_shift):
        with pytest.raises(ValidationError):
            shift_service.force_close(ctx, open_shift.id, "")

    def test_already_closed(self, db_session, ctx, open_shift):
        shift_service.close_shift(ctx, 10000)
        with pytest.raises(ShiftAlreadyClosed):
            shift_service.force_close(ctx, open_shift.id, "Late")


class TestHandover:
    def test_handover_moves_ownership(self, db_session, ctx, second_ctx, second_cashier, open_shift):
        shift = shift_service.handover(ctx, open_shift.id, second_cashier.id, current_balance_cents=10000)

        assert shift.user_id == second_cashier.id
        assert shift.is_handed_over is True
        assert shift.handed_over_from_user_name == "Mona"
        assert shift.handed_over_to_user_name == "Karim"
        assert shift.is_closed is False

        with pytest.raises(NoOpenShift):
            shift_service.require_open_shift(ctx)
        assert shift_service.require_open_shift(second_ctx).id == open_shift.id

    def test_handover_only_once(self, db_session, ctx, second_ctx, cashier, second_cashier, open_shift):
        shift_service.handover(ctx, open_shift.id, second_cashier.id)
        with pytest.raises(StateConflictError) as exc_info:
            shift_service.handover(second_ctx, open_shift.id, cashier.id)
        assert exc_info.value.code == "SHIFT_ALREADY_HANDED_OVER"

    def test_receiver_with_open_shift_rejected(self, db_session, ctx, second_ctx, second_cashier, open_shift):
        shift_service.open_shift(second_ctx, 0)
        with pytest.raises(ShiftAlreadyOpen):
            shift_service.handover(ctx, open_shift.id, second_cashier.id)

    def test_handover_to_self_rejected(self, db_session, ctx, cashier, open_shift):
        with pytest.raises(ValidationError):
            shift_service.handover(ctx, open_shift.id, cashier.id)


class TestQueries:
    def test_history_newest_first(self, db_session, ctx):
        first = shift_service.open_shift(ctx, 0)
        shift_service.close_shift(ctx, 0)
        second = shift_service.open_shift(ctx, 0)

        history = shift_service.get_user_shifts(ctx)

        assert [s.id for s in history] == [second.id, first.id]

    def test_summary_of_open_shift_is_live(self, db_session, ctx, product, open_shift):
        _sell(ctx, product, 1, [{"method": "CASH", "amount_cents": 20000}])

        summary = shift_service.get_shift_summary(ctx, open_shift.id)

        assert summary["total_orders"] == 1
        assert summary["total_cash_cents"] == 11400
        assert summary["current_balance_cents"] == 21400
