# Overview: Flask API routes for branch stock; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PosError
from ..services import stock_service
from ..decorators import require_context


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/low-stock")
@require_context
def low_stock_route():
    try:
        rows = stock_service.get_low_stock(g.context)
        return jsonify({"items": [r.to_dict() for r in rows]}), 200
    except Exception:
        current_app.logger.exception("Failed to load low stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:product_id>")
@require_context
def quantity_route(product_id: int):
    try:
        quantity = stock_service.get_quantity(g.context, product_id, request.args.get("branch_id", type=int))
        return jsonify({"product_id": product_id, "quantity": quantity}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load stock quantity")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:product_id>/history")
@require_context
def history_route(product_id: int):
    try:
        result = stock_service.get_history(
            g.context,
            product_id,
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 50, type=int),
        )
        return jsonify(result), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load stock history")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:product_id>/adjust")
@require_context
def adjust_route(product_id: int):
    """
    Manual stock correction.

    Request body:
    {
        "delta": -2,
        "reason": "Breakage"
    }
    """
    try:
        data = request.get_json() or {}
        movement = stock_service.adjust(g.context, product_id, data.get("delta"), data.get("reason"))
        return jsonify({"movement": movement.to_dict() if movement else None}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:product_id>/receive")
@require_context
def receive_route(product_id: int):
    try:
        data = request.get_json() or {}
        movement = stock_service.increment(
            g.context,
            product_id,
            data.get("quantity"),
            reference_type="RECEIVE",
            reason=data.get("reason"),
        )
        return jsonify({"movement": movement.to_dict() if movement else None}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.put("/<int:product_id>/reorder-level")
@require_context
def reorder_level_route(product_id: int):
    try:
        data = request.get_json() or {}
        inventory = stock_service.set_reorder_level(g.context, product_id, int(data.get("reorder_level", 0)))
        return jsonify({"inventory": inventory.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except (TypeError, ValueError):
        return jsonify({"error": "reorder_level must be an integer"}), 400
    except Exception:
        current_app.logger.exception("Failed to set reorder level")
        return jsonify({"error": "Internal server error"}), 500
