# Overview: Pytest coverage for the per-branch cash ledger chain.

"""
Cash Ledger Tests

Covers the chain invariant (balance_before == previous balance_after),
transaction numbering, manual movements, inter-branch transfers,
reconciliation and detection of a stale head by a concurrent writer.
"""

from datetime import datetime

import pytest

from poscore.errors import (
    AlreadyReconciled,
    ConcurrencyConflict,
    InsufficientBalance,
    ShiftAlreadyClosed,
    ValidationError,
)
from poscore.extensions import db
from poscore.models import CashLedgerEntry, CashLedgerHead
from poscore.models.cash import TX_ADJUSTMENT, TX_DEPOSIT, TX_EXPENSE, TX_OPENING, TX_SALE, TX_WITHDRAWAL
from poscore.services import cash_ledger_service, shift_service
from poscore.time_utils import use_clock


def _entries(db_session, branch_id):
    return (
        db_session.query(CashLedgerEntry)
        .filter_by(branch_id=branch_id)
        .order_by(CashLedgerEntry.sequence.asc())
        .all()
    )


class TestChain:
    """Appends keep the per-branch chain intact."""

    def test_entries_chain_balances(self, db_session, ctx, branch):
        cash_ledger_service.record_transaction(ctx, TX_OPENING, 10000, "Opening float")
        cash_ledger_service.record_transaction(ctx, TX_SALE, 22800, "Sale")
        cash_ledger_service.record_transaction(ctx, TX_EXPENSE, 1500, "Cleaning supplies")
        cash_ledger_service.record_transaction(ctx, TX_ADJUSTMENT, -300, "Miscount")

        entries = _entries(db_session, branch.id)

        assert [e.sequence for e in entries] == [1, 2, 3, 4]
        assert [e.amount_cents for e in entries] == [10000, 22800, -1500, -300]
        previous_after = 0
        for entry in entries:
            assert entry.balance_before_cents == previous_after
            assert entry.balance_after_cents == entry.balance_before_cents + entry.amount_cents
            previous_after = entry.balance_after_cents

        assert cash_ledger_service.get_current_balance(ctx) == 31000
        assert cash_ledger_service.verify_chain(ctx) == []

    def test_first_entry_starts_from_zero(self, db_session, ctx, branch):
        entry = cash_ledger_service.record_transaction(ctx, TX_DEPOSIT, 500, "Float")

        assert entry.balance_before_cents == 0
        assert entry.balance_after_cents == 500

    def test_typed_amounts_cannot_be_negative(self, db_session, ctx):
        with pytest.raises(ValidationError):
            cash_ledger_service.record_transaction(ctx, TX_SALE, -100, "Bad")

    def test_unknown_type_rejected(self, db_session, ctx):
        with pytest.raises(ValidationError):
            cash_ledger_service.record_transaction(ctx, "LOAN", 100, "Bad")

    def test_adjustment_cannot_be_zero(self, db_session, ctx):
        with pytest.raises(ValidationError):
            cash_ledger_service.record_transaction(ctx, TX_ADJUSTMENT, 0, "Nothing")

    def test_branches_have_separate_chains(self, db_session, ctx, branch, second_branch):
        other_ctx = ctx.for_branch(second_branch.id)
        cash_ledger_service.record_transaction(ctx, TX_DEPOSIT, 1000, "A")
        cash_ledger_service.record_transaction(other_ctx, TX_DEPOSIT, 2000, "B")
        cash_ledger_service.record_transaction(ctx, TX_DEPOSIT, 3000, "A2")

        assert [e.sequence for e in _entries(db_session, branch.id)] == [1, 2]
        assert [e.sequence for e in _entries(db_session, second_branch.id)] == [1]
        assert cash_ledger_service.get_current_balance(ctx) == 4000
        assert cash_ledger_service.get_current_balance(other_ctx) == 2000

    def test_stale_head_is_rejected(self, db_session, ctx, branch):
        """A writer holding an outdated head fails instead of forking the chain."""
        cash_ledger_service.record_transaction(ctx, TX_DEPOSIT, 1000, "Float")

        # Load the head in this transaction, then let another writer move it
        db_session.query(CashLedgerHead).filter_by(branch_id=branch.id).one()
        table = CashLedgerHead.__table__
        db_session.execute(
            table.update()
            .where(table.c.branch_id == branch.id)
            .values(version_id=table.c.version_id + 1)
        )

        with pytest.raises(ConcurrencyConflict) as exc_info:
            cash_ledger_service.record_transaction(ctx, TX_DEPOSIT, 500, "Late writer")

        assert exc_info.value.http_status == 409
        assert len(_entries(db_session, branch.id)) == 1
        assert cash_ledger_service.verify_chain(ctx) == []


class TestTransactionNumbers:
    def test_numbers_increment_per_tenant_and_year(self, db_session, ctx, second_branch):
        with use_clock(lambda: datetime(2026, 3, 1, 9, 0)):
            first = cash_ledger_service.record_transaction(ctx, TX_DEPOSIT, 100, "One")
            second = cash_ledger_service.record_transaction(ctx.for_branch(second_branch.id), TX_DEPOSIT, 100, "Two")

        assert first.transaction_number == "CR-2026-0001"
        assert second.transaction_number == "CR-2026-0002"

    def test_numbers_restart_each_year(self, db_session, ctx):
        with use_clock(lambda: datetime(2026, 12, 31, 23, 0)):
            cash_ledger_service.record_transaction(ctx, TX_DEPOSIT, 100, "Old year")
        with use_clock(lambda: datetime(2027, 1, 1, 8, 0)):
            entry = cash_ledger_service.record_transaction(ctx, TX_DEPOSIT, 100, "New year")

        assert entry.transaction_number == "CR-2027-0001"

    def test_prefix_from_config(self, app, db_session, ctx):
        app.config["CASH_TRANSACTION_PREFIX"] = "CSH"
        try:
            with use_clock(lambda: datetime(2026, 5, 5, 10, 0)):
                entry = cash_ledger_service.record_transaction(ctx, TX_DEPOSIT, 100, "Prefixed")
        finally:
            app.config["CASH_TRANSACTION_PREFIX"] = "CR"

        assert entry.transaction_number == "CSH-2026-0001"


class TestManualTransactions:
    def test_deposit_and_withdrawal(self, db_session, ctx, open_shift):
        deposit = cash_ledger_service.create_manual_transaction(ctx, TX_DEPOSIT, 2000, "Change float")
        withdrawal = cash_ledger_service.create_manual_transaction(ctx, TX_WITHDRAWAL, 5000, "Bank drop")

        assert deposit.amount_cents == 2000
        assert withdrawal.amount_cents == -5000
        assert withdrawal.shift_id == open_shift.id
        assert cash_ledger_service.get_current_balance(ctx) == 7000

    def test_withdrawal_cannot_overdraw(self, db_session, ctx, open_shift):
        with pytest.raises(InsufficientBalance):
            cash_ledger_service.create_manual_transaction(ctx, TX_WITHDRAWAL, 10001, "Too much")
        assert cash_ledger_service.get_current_balance(ctx) == 10000

    def test_only_deposit_or_withdrawal(self, db_session, ctx):
        with pytest.raises(ValidationError) as exc_info:
            cash_ledger_service.create_manual_transaction(ctx, TX_SALE, 100, "Sneaky sale")
        assert exc_info.value.code == "CASH_REGISTER_INVALID_TYPE"

    def test_description_required(self, db_session, ctx):
        with pytest.raises(ValidationError):
            cash_ledger_service.create_manual_transaction(ctx, TX_DEPOSIT, 100, " ")


class TestTransfers:
    def test_transfer_writes_linked_pair(self, db_session, ctx, branch, second_branch, open_shift):
        out_entry, in_entry = cash_ledger_service.transfer(ctx, branch.id, second_branch.id, 4000, "Float")

        assert out_entry.amount_cents == -4000
        assert in_entry.amount_cents == 4000
        assert out_entry.transfer_reference_id == in_entry.id
        assert in_entry.transfer_reference_id == out_entry.id
        assert cash_ledger_service.get_current_balance(ctx, branch.id) == 6000
        assert cash_ledger_service.get_current_balance(ctx, second_branch.id) == 4000

    def test_transfer_requires_funds(self, db_session, ctx, branch, second_branch, open_shift):
        with pytest.raises(InsufficientBalance):
            cash_ledger_service.transfer(ctx, branch.id, second_branch.id, 10001)
        assert _entries(db_session, second_branch.id) == []

    def test_transfer_to_same_branch_rejected(self, db_session, ctx, branch):
        with pytest.raises(ValidationError):
            cash_ledger_service.transfer(ctx, branch.id, branch.id, 100)


class TestReconcile:
    def test_variance_appends_adjustment(self, db_session, ctx, branch, open_shift):
        shift = cash_ledger_service.reconcile(ctx, open_shift.id, 9500, "Coins short")

        assert shift.expected_balance_cents == 10000
        assert shift.difference_cents == -500
        assert shift.is_reconciled is True
        assert shift.reconciled_by_user_name == "Mona"

        last = _entries(db_session, branch.id)[-1]
        assert last.transaction_type == TX_ADJUSTMENT
        assert last.amount_cents == -500
        assert cash_ledger_service.get_current_balance(ctx) == 9500

    def test_exact_count_writes_no_entry(self, db_session, ctx, branch, open_shift):
        cash_ledger_service.reconcile(ctx, open_shift.id, 10000)
        assert len(_entries(db_session, branch.id)) == 1

    def test_reconcile_once(self, db_session, ctx, open_shift):
        cash_ledger_service.reconcile(ctx, open_shift.id, 10000)
        with pytest.raises(AlreadyReconciled):
            cash_ledger_service.reconcile(ctx, open_shift.id, 10000)

    def test_closed_shift_cannot_be_reconciled(self, db_session, ctx, open_shift):
        shift_service.close_shift(ctx, 10000)
        with pytest.raises(ShiftAlreadyClosed):
            cash_ledger_service.reconcile(ctx, open_shift.id, 10000)


class TestQueries:
    def test_transactions_paginated_newest_first(self, db_session, ctx):
        for amount in (100, 200, 300):
            cash_ledger_service.record_transaction(ctx, TX_DEPOSIT, amount, "Deposit")

        page = cash_ledger_service.get_transactions(ctx, per_page=2)

        assert page["total"] == 3
        assert [e["amount_cents"] for e in page["items"]] == [300, 200]

    def test_summary_totals(self, db_session, ctx, open_shift):
        with use_clock(lambda: datetime(2026, 4, 1, 12, 0)):
            cash_ledger_service.record_transaction(ctx, TX_SALE, 22800, "Sale")
            cash_ledger_service.record_transaction(ctx, TX_EXPENSE, 800, "Tea")

        summary = cash_ledger_service.get_summary(ctx, datetime(2026, 4, 1), datetime(2026, 4, 2))

        assert summary["transaction_count"] == 2
        assert summary["total_sale_cents"] == 22800
        assert summary["total_expense_cents"] == 800
        assert summary["opening_balance_cents"] == 10000
        assert summary["closing_balance_cents"] == 32000

    def test_verify_chain_reports_tampering(self, db_session, ctx, branch):
        cash_ledger_service.record_transaction(ctx, TX_DEPOSIT, 1000, "One")
        second = cash_ledger_service.record_transaction(ctx, TX_DEPOSIT, 1000, "Two")

        table = CashLedgerEntry.__table__
        db.session.execute(
            table.update().where(table.c.id == second.id).values(balance_after_cents=9999)
        )
        db.session.commit()

        problems = {p["problem"] for p in cash_ledger_service.verify_chain(ctx)}
        assert "balance_after_mismatch" in problems
        assert "head_mismatch" in problems
