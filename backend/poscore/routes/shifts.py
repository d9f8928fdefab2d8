# Overview: Flask API routes for shift sessions; parses input and returns JSON responses.

"""
Shift API Routes

DESIGN:
- open -> close, one open shift per (tenant, branch, user)
- close takes the version_id the client last saw; a stale version returns
  409 CONCURRENCY_CONFLICT
- force-close and handover are administrative variants
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PosError
from ..services import shift_service
from ..decorators import require_context


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


@shifts_bp.post("/open")
@require_context
def open_shift_route():
    """
    Request body:
    {
        "opening_balance_cents": 10000,
        "notes": "Morning"    (optional)
    }
    """
    try:
        data = request.get_json() or {}
        shift = shift_service.open_shift(
            g.context,
            data.get("opening_balance_cents", 0),
            notes=data.get("notes"),
        )
        return jsonify({"shift": shift.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to open shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/close")
@require_context
def close_shift_route():
    """
    Request body:
    {
        "closing_balance_cents": 12500,
        "notes": "...",        (optional)
        "shift_id": 3,         (optional)
        "version_id": 2        (compare-and-swap token from the last read)
    }
    """
    try:
        data = request.get_json() or {}
        if data.get("closing_balance_cents") is None:
            return jsonify({"error": "closing_balance_cents required"}), 400
        if data.get("version_id") is None:
            return jsonify({"error": "version_id required"}), 400

        shift = shift_service.close_shift(
            g.context,
            data.get("closing_balance_cents"),
            notes=data.get("notes"),
            shift_id=data.get("shift_id"),
            expected_version=data.get("version_id"),
        )
        return jsonify({"shift": shift.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to close shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/current")
@require_context
def current_shift_route():
    try:
        shift = shift_service.get_current_shift(g.context)
        return jsonify({"shift": shift.to_dict() if shift else None}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load current shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/active")
@require_context
def active_shifts_route():
    try:
        shifts = shift_service.get_active_shifts(g.context)
        return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200
    except Exception:
        current_app.logger.exception("Failed to load active shifts")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/history")
@require_context
def shift_history_route():
    try:
        shifts = shift_service.get_user_shifts(g.context, request.args.get("user_id", type=int))
        return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200
    except Exception:
        current_app.logger.exception("Failed to load shift history")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/<int:shift_id>")
@require_context
def get_shift_route(shift_id: int):
    try:
        shift = shift_service.get_shift(g.context, shift_id)
        return jsonify({"shift": shift.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/<int:shift_id>/summary")
@require_context
def shift_summary_route(shift_id: int):
    try:
        summary = shift_service.get_shift_summary(g.context, shift_id)
        return jsonify({"summary": summary}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load shift summary")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/<int:shift_id>/force-close")
@require_context
def force_close_route(shift_id: int):
    """
    Request body:
    {
        "reason": "Cashier left without closing",
        "actual_balance_cents": 15000,   (optional)
        "notes": "..."                   (optional)
    }
    """
    try:
        data = request.get_json() or {}
        shift = shift_service.force_close(
            g.context,
            shift_id,
            data.get("reason"),
            actual_balance_cents=data.get("actual_balance_cents"),
            notes=data.get("notes"),
        )
        return jsonify({"shift": shift.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to force-close shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/<int:shift_id>/handover")
@require_context
def handover_route(shift_id: int):
    """
    Request body:
    {
        "to_user_id": 7,
        "current_balance_cents": 15000,  (optional)
        "notes": "..."                   (optional)
    }
    """
    try:
        data = request.get_json() or {}
        shift = shift_service.handover(
            g.context,
            shift_id,
            data.get("to_user_id"),
            current_balance_cents=data.get("current_balance_cents"),
            notes=data.get("notes"),
        )
        return jsonify({"shift": shift.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to hand over shift")
        return jsonify({"error": "Internal server error"}), 500
