# Overview: Flask API routes for the order lifecycle; parses input and returns JSON responses.

"""
Order API Routes

DESIGN:
- DRAFT orders are built with create + add/remove item
- complete posts stock, cash and customer changes atomically
- refund returns the new RETURN order, not the original

ERRORS: service failures come back as {"error", "code", "details"} with the
error's HTTP status. Nothing raises across this boundary.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PosError
from ..services import order_service
from ..decorators import require_context
from ..time_utils import parse_iso_datetime


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_context
def create_order_route():
    """
    Create a DRAFT sale.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2}],
        "customer_id": 5,                        (optional)
        "discount_type": "percentage",           (optional, or "fixed")
        "discount_value": 1000,                  (optional, bps or cents)
        "service_charge_bps": 1200,              (optional)
        "notes": "Table 4"                       (optional)
    }
    """
    try:
        data = request.get_json() or {}
        order = order_service.create_order(
            g.context,
            data.get("items") or [],
            customer_id=data.get("customer_id"),
            discount_type=data.get("discount_type"),
            discount_value=data.get("discount_value"),
            service_charge_bps=data.get("service_charge_bps") or 0,
            notes=data.get("notes"),
        )
        return jsonify({"order": order.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_context
def list_orders_route():
    try:
        result = order_service.list_orders(
            g.context,
            status=request.args.get("status"),
            order_type=request.args.get("order_type"),
            from_date=parse_iso_datetime(request.args.get("from")),
            to_date=parse_iso_datetime(request.args.get("to")),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 20, type=int),
        )
        return jsonify(result), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_context
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(g.context, order_id)
        return jsonify({"order": order.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/customer/<int:customer_id>")
@require_context
def customer_orders_route(customer_id: int):
    try:
        result = order_service.get_customer_orders(
            g.context,
            customer_id,
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 20, type=int),
        )
        return jsonify(result), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load customer orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/items")
@require_context
def add_item_route(order_id: int):
    try:
        data = request.get_json() or {}
        order = order_service.add_item(
            g.context,
            order_id,
            data.get("product_id"),
            data.get("quantity"),
            discount_type=data.get("discount_type"),
            discount_value=data.get("discount_value"),
        )
        return jsonify({"order": order.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to add order item")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>/items/<int:item_id>")
@require_context
def remove_item_route(order_id: int, item_id: int):
    try:
        order = order_service.remove_item(g.context, order_id, item_id)
        return jsonify({"order": order.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to remove order item")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/hold")
@require_context
def hold_order_route(order_id: int):
    try:
        order = order_service.hold_order(g.context, order_id)
        return jsonify({"order": order.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to hold order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/complete")
@require_context
def complete_order_route(order_id: int):
    """
    Take payment and complete the order.

    Request body:
    {
        "payments": [
            {"method": "CASH", "amount_cents": 25000},
            {"method": "CARD", "amount_cents": 1000, "reference": "AUTH-123"}
        ]
    }

    Returns 422 if payment is short, 400 if it exceeds the overpayment limit.
    """
    try:
        data = request.get_json() or {}
        order = order_service.complete_order(g.context, order_id, data.get("payments") or [])
        return jsonify({"order": order.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to complete order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_context
def cancel_order_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.cancel_order(g.context, order_id, data.get("reason"))
        return jsonify({"order": order.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/refund")
@require_context
def refund_order_route(order_id: int):
    """
    Refund a completed order.

    Request body:
    {
        "reason": "Damaged",                          (required for full refunds)
        "items": [{"item_id": 10, "quantity": 1}]     (optional, omit for full refund)
    }

    Returns the RETURN order (negative amounts).
    """
    try:
        data = request.get_json() or {}
        return_order = order_service.refund_order(
            g.context,
            order_id,
            reason=data.get("reason"),
            items=data.get("items"),
        )
        return jsonify({"order": return_order.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to refund order")
        return jsonify({"error": "Internal server error"}), 500
