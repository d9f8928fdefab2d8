"""
Cash Ledger: per-branch running cash balance as an append-only chain.

Chain invariant (per branch, ordered by sequence):
    entry[n].balance_before_cents == entry[n-1].balance_after_cents

SERIALIZATION: every append locks the branch's CashLedgerHead row and bumps
it under its version_id. The new entry takes sequence head.entry_count + 1,
unique per branch. A writer that read a stale head fails at flush and the
caller gets ConcurrencyConflict; two entries can never share a
balance_before.

SIGNS: amount_cents is stored signed.
- OPENING, SALE, DEPOSIT add
- REFUND, WITHDRAWAL, EXPENSE, SUPPLIER_PAYMENT subtract
- ADJUSTMENT, TRANSFER carry the sign of the amount given

COMPOSITION: pass commit=False to write inside the caller's transaction
(order completion, refund, shift open/close). With commit=True the function
owns its transaction.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from ..context import RequestContext, branch_scoped, get_branch, require_context, scoped, user_name
from ..errors import (
    AlreadyReconciled,
    InsufficientBalance,
    NotFoundError,
    ShiftAlreadyClosed,
    ValidationError,
)
from ..extensions import db
from ..models import CashLedgerEntry, CashLedgerHead, Shift
from ..models.cash import (
    CREDIT_TYPES,
    DEBIT_TYPES,
    SIGNED_TYPES,
    TX_ADJUSTMENT,
    TX_DEPOSIT,
    TX_TRANSFER,
    TX_WITHDRAWAL,
    VALID_TRANSACTION_TYPES,
)
from ..money import format_cents
from ..time_utils import to_utc_z, utcnow
from .concurrency import lock_for_update, unit_of_work


# =============================================================================
# INTERNALS
# =============================================================================

def _signed_amount(transaction_type: str, amount_cents: int) -> int:
    if transaction_type not in VALID_TRANSACTION_TYPES:
        raise ValidationError(
            f"Invalid cash transaction type: {transaction_type}",
            details={"valid_types": list(VALID_TRANSACTION_TYPES)},
        )
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool):
        raise ValidationError("Amount must be an integer number of cents")

    if transaction_type in SIGNED_TYPES:
        if amount_cents == 0:
            raise ValidationError(f"{transaction_type} amount cannot be zero")
        return amount_cents
    if amount_cents < 0:
        raise ValidationError(f"{transaction_type} amount cannot be negative")
    if transaction_type in DEBIT_TYPES:
        return -amount_cents
    return amount_cents


def _lock_head(tenant_id: int, branch_id: int) -> CashLedgerHead:
    head = lock_for_update(
        db.session.query(CashLedgerHead).filter_by(branch_id=branch_id)
    ).first()
    if head is None:
        head = CashLedgerHead(
            tenant_id=tenant_id,
            branch_id=branch_id,
            balance_cents=0,
            entry_count=0,
        )
        db.session.add(head)
        db.session.flush()
    return head


def _next_transaction_number(tenant_id: int, now: datetime) -> str:
    """
    PREFIX-YEAR-NNNN, restarting at 0001 each year per tenant.

    Derived from the last number issued this year (CR-2026-0041 -> CR-2026-0042).
    """
    prefix = current_app.config.get("CASH_TRANSACTION_PREFIX", "CR")
    year_prefix = f"{prefix}-{now.year}-"
    last = (
        db.session.query(CashLedgerEntry.transaction_number)
        .filter(
            CashLedgerEntry.tenant_id == tenant_id,
            CashLedgerEntry.transaction_number.like(f"{year_prefix}%"),
        )
        .order_by(CashLedgerEntry.id.desc())
        .first()
    )
    next_number = 1
    if last:
        tail = last[0].rsplit("-", 1)[-1]
        if tail.isdigit():
            next_number = int(tail) + 1
    return f"{year_prefix}{next_number:04d}"


def _append(
    ctx: RequestContext,
    branch_id: int,
    transaction_type: str,
    signed_amount: int,
    description: str,
    *,
    reference_type: str | None = None,
    reference_id: int | None = None,
    shift_id: int | None = None,
    transfer_reference_id: int | None = None,
    head: CashLedgerHead | None = None,
) -> CashLedgerEntry:
    if head is None:
        head = _lock_head(ctx.tenant_id, branch_id)

    now = utcnow()
    before = head.balance_cents
    after = before + signed_amount
    sequence = head.entry_count + 1

    entry = CashLedgerEntry(
        tenant_id=ctx.tenant_id,
        branch_id=branch_id,
        sequence=sequence,
        transaction_number=_next_transaction_number(ctx.tenant_id, now),
        transaction_type=transaction_type,
        amount_cents=signed_amount,
        balance_before_cents=before,
        balance_after_cents=after,
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
        shift_id=shift_id,
        transfer_reference_id=transfer_reference_id,
        user_id=ctx.user_id,
        user_name=user_name(ctx),
        transaction_date=now,
        created_at=now,
    )
    db.session.add(entry)
    db.session.flush()

    head.balance_cents = after
    head.entry_count = sequence
    head.last_entry_id = entry.id
    db.session.flush()

    current_app.logger.info(
        "Cash ledger %s %s %s on branch %s (balance %s -> %s)",
        entry.transaction_number,
        transaction_type,
        format_cents(signed_amount),
        branch_id,
        format_cents(before),
        format_cents(after),
    )
    return entry


def _open_shift_id(ctx: RequestContext, branch_id: int) -> int | None:
    shift = (
        scoped(Shift, ctx)
        .filter(
            Shift.branch_id == branch_id,
            Shift.user_id == ctx.user_id,
            Shift.is_closed.is_(False),
        )
        .first()
    )
    return shift.id if shift else None


# =============================================================================
# APPENDS
# =============================================================================

def record_transaction(
    ctx: RequestContext,
    transaction_type: str,
    amount_cents: int,
    description: str,
    *,
    reference_type: str | None = None,
    reference_id: int | None = None,
    shift_id: int | None = None,
    commit: bool = True,
) -> CashLedgerEntry:
    """
    Append one entry to the context branch's chain.

    amount_cents is a magnitude for typed movements (the type decides the
    sign) and a signed value for ADJUSTMENT and TRANSFER.
    """
    require_context(ctx)
    signed = _signed_amount(transaction_type, amount_cents)
    with unit_of_work("cash ledger append", commit=commit):
        entry = _append(
            ctx,
            ctx.branch_id,
            transaction_type,
            signed,
            description,
            reference_type=reference_type,
            reference_id=reference_id,
            shift_id=shift_id,
        )
    return entry


def create_manual_transaction(
    ctx: RequestContext,
    transaction_type: str,
    amount_cents: int,
    description: str,
    *,
    commit: bool = True,
) -> CashLedgerEntry:
    """Cashier-initiated DEPOSIT or WITHDRAWAL. The drawer may not go negative."""
    require_context(ctx)
    if transaction_type not in (TX_DEPOSIT, TX_WITHDRAWAL):
        raise ValidationError(
            "Only DEPOSIT or WITHDRAWAL may be recorded manually",
            code="CASH_REGISTER_INVALID_TYPE",
        )
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
        raise ValidationError("Amount must be a positive number of cents")
    if not description or not description.strip():
        raise ValidationError("Description is required")

    signed = _signed_amount(transaction_type, amount_cents)
    with unit_of_work("manual cash transaction", commit=commit):
        head = _lock_head(ctx.tenant_id, ctx.branch_id)
        if head.balance_cents + signed < 0:
            raise InsufficientBalance(
                "Insufficient cash in the drawer",
                details={"balance_cents": head.balance_cents, "requested_cents": amount_cents},
            )
        entry = _append(
            ctx,
            ctx.branch_id,
            transaction_type,
            signed,
            description.strip(),
            reference_type="MANUAL",
            shift_id=_open_shift_id(ctx, ctx.branch_id),
            head=head,
        )
    return entry


def transfer(
    ctx: RequestContext,
    source_branch_id: int,
    target_branch_id: int,
    amount_cents: int,
    description: str | None = None,
    *,
    commit: bool = True,
) -> tuple[CashLedgerEntry, CashLedgerEntry]:
    """
    Move cash between two branches of the tenant.

    Writes a paired TRANSFER out (-amount, source) and in (+amount, target),
    each pointing at the other through transfer_reference_id.
    """
    require_context(ctx)
    if source_branch_id == target_branch_id:
        raise ValidationError(
            "Source and target branch must differ",
            code="CASH_REGISTER_SAME_BRANCH",
        )
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
        raise ValidationError("Transfer amount must be a positive number of cents")

    source = get_branch(ctx, source_branch_id)
    target = get_branch(ctx, target_branch_id)
    note = f": {description}" if description else ""

    with unit_of_work("cash transfer", commit=commit):
        # Lock heads in id order so two opposite transfers cannot deadlock
        heads = {}
        for branch_id in sorted((source.id, target.id)):
            heads[branch_id] = _lock_head(ctx.tenant_id, branch_id)

        source_head = heads[source.id]
        if source_head.balance_cents < amount_cents:
            raise InsufficientBalance(
                f"Insufficient cash in {source.name}",
                details={
                    "branch_id": source.id,
                    "balance_cents": source_head.balance_cents,
                    "requested_cents": amount_cents,
                },
            )

        out_entry = _append(
            ctx,
            source.id,
            TX_TRANSFER,
            -amount_cents,
            f"Transfer to {target.name}{note}",
            reference_type="TRANSFER",
            shift_id=_open_shift_id(ctx, source.id),
            head=source_head,
        )
        in_entry = _append(
            ctx,
            target.id,
            TX_TRANSFER,
            amount_cents,
            f"Transfer from {source.name}{note}",
            reference_type="TRANSFER",
            shift_id=_open_shift_id(ctx, target.id),
            transfer_reference_id=out_entry.id,
            head=heads[target.id],
        )
        out_entry.transfer_reference_id = in_entry.id
    return out_entry, in_entry


def reconcile(
    ctx: RequestContext,
    shift_id: int,
    actual_balance_cents: int,
    variance_reason: str | None = None,
    *,
    commit: bool = True,
) -> Shift:
    """
    Compare counted cash against the ledger for an open shift.

    expected = balance after the last branch entry since the shift opened
    (0 when there is none); variance = actual - expected. A non-zero
    variance appends an ADJUSTMENT so the ledger ends at the counted amount.
    """
    require_context(ctx)
    if not isinstance(actual_balance_cents, int) or actual_balance_cents < 0:
        raise ValidationError("Actual balance must be a non-negative number of cents")

    with unit_of_work("cash reconcile", commit=commit):
        shift = lock_for_update(scoped(Shift, ctx).filter(Shift.id == shift_id)).first()
        if not shift:
            raise NotFoundError("Shift not found", code="SHIFT_NOT_FOUND")
        if shift.is_closed:
            raise ShiftAlreadyClosed("Only open shifts can be reconciled", details={"shift_id": shift.id})
        if shift.is_reconciled:
            raise AlreadyReconciled("Shift is already reconciled", details={"shift_id": shift.id})

        head = _lock_head(ctx.tenant_id, shift.branch_id)
        expected = _balance_since(shift.branch_id, shift.opened_at)
        variance = actual_balance_cents - expected

        shift.closing_balance_cents = actual_balance_cents
        shift.expected_balance_cents = expected
        shift.difference_cents = variance
        shift.is_reconciled = True
        shift.reconciled_by_user_id = ctx.user_id
        shift.reconciled_by_user_name = user_name(ctx)
        shift.reconciled_at = utcnow()
        shift.variance_reason = variance_reason

        correction = actual_balance_cents - head.balance_cents
        if correction != 0:
            _append(
                ctx,
                shift.branch_id,
                TX_ADJUSTMENT,
                correction,
                f"Reconciliation adjustment: {variance_reason or 'No reason provided'}",
                reference_type="SHIFT",
                reference_id=shift.id,
                shift_id=shift.id,
                head=head,
            )
    return shift


# =============================================================================
# QUERIES
# =============================================================================

def _balance_since(branch_id: int, since: datetime) -> int:
    last = (
        db.session.query(CashLedgerEntry)
        .filter(
            CashLedgerEntry.branch_id == branch_id,
            CashLedgerEntry.transaction_date >= since,
        )
        .order_by(CashLedgerEntry.sequence.desc())
        .first()
    )
    return last.balance_after_cents if last else 0


def get_current_balance(ctx: RequestContext, branch_id: int | None = None) -> int:
    """Running balance of a branch drawer (0 before the first entry)."""
    head = db.session.query(CashLedgerHead).filter_by(
        tenant_id=ctx.tenant_id,
        branch_id=branch_id or ctx.branch_id,
    ).first()
    return head.balance_cents if head else 0


def get_balance(ctx: RequestContext, branch_id: int | None = None) -> dict:
    branch = get_branch(ctx, branch_id)
    last = (
        scoped(CashLedgerEntry, ctx)
        .filter(CashLedgerEntry.branch_id == branch.id)
        .order_by(CashLedgerEntry.sequence.desc())
        .first()
    )
    active_shift = (
        scoped(Shift, ctx)
        .filter(Shift.branch_id == branch.id, Shift.is_closed.is_(False))
        .order_by(Shift.opened_at.desc())
        .first()
    )
    return {
        "branch_id": branch.id,
        "branch_name": branch.name,
        "current_balance_cents": get_current_balance(ctx, branch.id),
        "last_transaction_date": to_utc_z(last.transaction_date) if last else None,
        "active_shift_id": active_shift.id if active_shift else None,
    }


def get_transactions(
    ctx: RequestContext,
    *,
    branch_id: int | None = None,
    transaction_type: str | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    shift_id: int | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    page = max(page, 1)
    per_page = max(min(per_page, 200), 1)

    query = branch_scoped(CashLedgerEntry, ctx, branch_id)
    if transaction_type:
        query = query.filter(CashLedgerEntry.transaction_type == transaction_type)
    if from_date:
        query = query.filter(CashLedgerEntry.transaction_date >= from_date)
    if to_date:
        query = query.filter(CashLedgerEntry.transaction_date <= to_date)
    if shift_id:
        query = query.filter(CashLedgerEntry.shift_id == shift_id)

    total = query.count()
    entries = (
        query.order_by(CashLedgerEntry.sequence.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "items": [e.to_dict() for e in entries],
        "page": page,
        "per_page": per_page,
        "total": total,
    }


def get_summary(
    ctx: RequestContext,
    from_date: datetime,
    to_date: datetime,
    branch_id: int | None = None,
) -> dict:
    """
    Totals per transaction type for a period.

    Totals are magnitudes; transfers are split into in/out. Opening and
    closing balances come from the first and last entry in the period.
    """
    branch = get_branch(ctx, branch_id)
    entries = (
        scoped(CashLedgerEntry, ctx)
        .filter(
            CashLedgerEntry.branch_id == branch.id,
            CashLedgerEntry.transaction_date >= from_date,
            CashLedgerEntry.transaction_date <= to_date,
        )
        .order_by(CashLedgerEntry.sequence.asc())
        .all()
    )

    def total_of(tx_type: str) -> int:
        return sum(abs(e.amount_cents) for e in entries if e.transaction_type == tx_type)

    opening = entries[0].balance_before_cents if entries else 0
    closing = entries[-1].balance_after_cents if entries else opening

    summary = {
        "branch_id": branch.id,
        "from_date": from_date.isoformat(),
        "to_date": to_date.isoformat(),
        "opening_balance_cents": opening,
        "closing_balance_cents": closing,
        "total_adjustments_cents": sum(
            e.amount_cents for e in entries if e.transaction_type == TX_ADJUSTMENT
        ),
        "total_transfers_in_cents": sum(
            e.amount_cents for e in entries
            if e.transaction_type == TX_TRANSFER and e.amount_cents > 0
        ),
        "total_transfers_out_cents": sum(
            -e.amount_cents for e in entries
            if e.transaction_type == TX_TRANSFER and e.amount_cents < 0
        ),
        "transaction_count": len(entries),
    }
    for tx_type in CREDIT_TYPES + DEBIT_TYPES:
        summary[f"total_{tx_type.lower()}_cents"] = total_of(tx_type)
    return summary


def verify_chain(ctx: RequestContext, branch_id: int | None = None) -> list[dict]:
    """
    Walk a branch's chain in sequence order and report every break.

    Checks that sequences are gapless, that each balance_before equals the
    previous balance_after, that balance_after == balance_before + amount,
    and that the head agrees with the last entry. An empty list means the
    chain is intact.
    """
    branch_id = branch_id or ctx.branch_id
    entries = (
        scoped(CashLedgerEntry, ctx)
        .filter(CashLedgerEntry.branch_id == branch_id)
        .order_by(CashLedgerEntry.sequence.asc())
        .all()
    )

    problems: list[dict] = []
    previous_after = 0
    for expected_sequence, entry in enumerate(entries, start=1):
        if entry.sequence != expected_sequence:
            problems.append({
                "entry_id": entry.id,
                "problem": "sequence_gap",
                "expected": expected_sequence,
                "actual": entry.sequence,
            })
        if entry.balance_before_cents != previous_after:
            problems.append({
                "entry_id": entry.id,
                "problem": "balance_before_mismatch",
                "expected": previous_after,
                "actual": entry.balance_before_cents,
            })
        if entry.balance_after_cents != entry.balance_before_cents + entry.amount_cents:
            problems.append({
                "entry_id": entry.id,
                "problem": "balance_after_mismatch",
                "expected": entry.balance_before_cents + entry.amount_cents,
                "actual": entry.balance_after_cents,
            })
        previous_after = entry.balance_after_cents

    head = db.session.query(CashLedgerHead).filter_by(branch_id=branch_id).first()
    head_balance = head.balance_cents if head else 0
    if head_balance != previous_after:
        problems.append({
            "entry_id": None,
            "problem": "head_mismatch",
            "expected": previous_after,
            "actual": head_balance,
        })
    return problems

