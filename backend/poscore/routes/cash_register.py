# Overview: Flask API routes for the branch cash ledger; parses input and returns JSON responses.

"""
Cash Register API Routes

DESIGN:
- Balance and transaction history per branch
- Manual DEPOSIT/WITHDRAWAL only; sale, refund and opening entries are
  written by the order and shift services
- Transfers write a linked pair of entries across two branches
- verify walks the chain and reports breaks (empty list = intact)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PosError, ValidationError
from ..services import cash_ledger_service
from ..decorators import require_context
from ..time_utils import parse_iso_datetime, utcnow


cash_register_bp = Blueprint("cash_register", __name__, url_prefix="/api/cash-register")


@cash_register_bp.get("/balance")
@require_context
def balance_route():
    try:
        balance = cash_ledger_service.get_balance(g.context, request.args.get("branch_id", type=int))
        return jsonify({"balance": balance}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load cash balance")
        return jsonify({"error": "Internal server error"}), 500


@cash_register_bp.get("/transactions")
@require_context
def transactions_route():
    try:
        result = cash_ledger_service.get_transactions(
            g.context,
            branch_id=request.args.get("branch_id", type=int),
            transaction_type=request.args.get("type"),
            from_date=parse_iso_datetime(request.args.get("from")),
            to_date=parse_iso_datetime(request.args.get("to")),
            shift_id=request.args.get("shift_id", type=int),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 20, type=int),
        )
        return jsonify(result), 200
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list cash transactions")
        return jsonify({"error": "Internal server error"}), 500


@cash_register_bp.post("/transactions")
@require_context
def create_transaction_route():
    """
    Request body:
    {
        "transaction_type": "DEPOSIT",   (or "WITHDRAWAL")
        "amount_cents": 5000,
        "description": "Change float top-up"
    }
    """
    try:
        data = request.get_json() or {}
        entry = cash_ledger_service.create_manual_transaction(
            g.context,
            (data.get("transaction_type") or "").upper(),
            data.get("amount_cents"),
            data.get("description"),
        )
        return jsonify({"transaction": entry.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record cash transaction")
        return jsonify({"error": "Internal server error"}), 500


@cash_register_bp.post("/transfer")
@require_context
def transfer_route():
    """
    Request body:
    {
        "source_branch_id": 1,
        "target_branch_id": 2,
        "amount_cents": 20000,
        "description": "..."   (optional)
    }
    """
    try:
        data = request.get_json() or {}
        out_entry, in_entry = cash_ledger_service.transfer(
            g.context,
            data.get("source_branch_id"),
            data.get("target_branch_id"),
            data.get("amount_cents"),
            data.get("description"),
        )
        return jsonify({"out": out_entry.to_dict(), "in": in_entry.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to transfer cash")
        return jsonify({"error": "Internal server error"}), 500


@cash_register_bp.post("/shifts/<int:shift_id>/reconcile")
@require_context
def reconcile_route(shift_id: int):
    """
    Request body:
    {
        "actual_balance_cents": 15250,
        "variance_reason": "Coins miscounted"   (optional)
    }
    """
    try:
        data = request.get_json() or {}
        if data.get("actual_balance_cents") is None:
            return jsonify({"error": "actual_balance_cents required"}), 400
        shift = cash_ledger_service.reconcile(
            g.context,
            shift_id,
            data.get("actual_balance_cents"),
            data.get("variance_reason"),
        )
        return jsonify({"shift": shift.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to reconcile cash register")
        return jsonify({"error": "Internal server error"}), 500


@cash_register_bp.get("/summary")
@require_context
def summary_route():
    try:
        to_date = parse_iso_datetime(request.args.get("to")) or utcnow()
        from_date = parse_iso_datetime(request.args.get("from"))
        if from_date is None:
            raise ValidationError("from is required")
        summary = cash_ledger_service.get_summary(
            g.context,
            from_date,
            to_date,
            request.args.get("branch_id", type=int),
        )
        return jsonify({"summary": summary}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to build cash summary")
        return jsonify({"error": "Internal server error"}), 500


@cash_register_bp.get("/verify")
@require_context
def verify_route():
    try:
        problems = cash_ledger_service.verify_chain(g.context, request.args.get("branch_id", type=int))
        return jsonify({"ok": not problems, "problems": problems}), 200
    except Exception:
        current_app.logger.exception("Failed to verify cash ledger")
        return jsonify({"error": "Internal server error"}), 500
