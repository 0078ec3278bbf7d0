# Overview: Flask API routes for purchase orders and goods receipts; parses input and returns JSON responses.

"""
Purchase Order Routes

Orders are placed against a supplier, then received in one or more goods
receipts (GRNs). Receipts are the only way purchased stock enters.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import PosError
from ..services import receive_service
from app.time_utils import parse_iso_datetime


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("")
def list_purchases_route():
    """
    List purchase orders.

    Query parameters:
    - status: pending | received | completed | cancelled
    - supplier_id
    - from_date / to_date: ISO-8601 (order date)
    - limit (default 100, max 500), offset
    """
    supplier_id = request.args.get("supplier_id", type=int)
    limit = min(max(request.args.get("limit", 100, type=int), 1), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)

    try:
        from_date = parse_iso_datetime(request.args.get("from_date"))
        to_date = parse_iso_datetime(request.args.get("to_date"))
    except ValueError:
        return jsonify({"error": "Invalid date format"}), 400

    try:
        orders, total = receive_service.list_purchase_orders(
            status=request.args.get("status"),
            supplier_id=supplier_id,
            from_date=from_date,
            to_date=to_date,
            limit=limit,
            offset=offset,
        )
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({
        "items": [o.to_dict() for o in orders],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


@purchases_bp.post("/next-number")
def next_purchase_order_no_route():
    try:
        return jsonify({"purchase_order_no": receive_service.next_purchase_order_no()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@purchases_bp.post("")
def create_purchase_route():
    """
    Place a purchase order.

    Request body:
    {
        "purchase_order_no": "PO-20261018-0001",   // required
        "supplier_id": 1,                          // required
        "items": [{"product_id": 1, "quantity": 10, "cost_price_cents": 250}],
        "order_date": "...",                       // optional, ISO-8601
        "expected_delivery_date": "...",           // optional
        "notes": "..."                             // optional
    }
    """
    data = request.get_json(silent=True) or {}

    supplier_id = data.get("supplier_id")
    if not supplier_id:
        return jsonify({"error": "supplier_id is required"}), 400

    try:
        po = receive_service.create_purchase_order(
            data.get("purchase_order_no"),
            supplier_id,
            data.get("items") or [],
            order_date=data.get("order_date"),
            expected_delivery_date=data.get("expected_delivery_date"),
            notes=data.get("notes"),
        )
        return jsonify(po.to_dict(include_items=True)), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/<int:purchase_order_id>")
def get_purchase_route(purchase_order_id: int):
    try:
        po = receive_service.get_purchase_order(purchase_order_id)
        return jsonify(po.to_dict(include_items=True))
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@purchases_bp.post("/<int:purchase_order_id>/receive")
def receive_goods_route(purchase_order_id: int):
    """
    Record a goods receipt.

    Request body:
    {
        "items": [{"purchase_item_id": 3, "received_quantity": 6}],
        "received_date": "..."     // optional, ISO-8601
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        result = receive_service.receive_goods(
            purchase_order_id,
            data.get("items"),
            data.get("received_date"),
        )
        current_app.logger.info(
            "Received goods against %s status=%s",
            result.purchase_order.purchase_order_no, result.purchase_order.status,
        )
        return jsonify(result.to_dict())
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive goods")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/<int:purchase_order_id>/cancel")
def cancel_purchase_route(purchase_order_id: int):
    data = request.get_json(silent=True) or {}

    try:
        po = receive_service.cancel_purchase_order(purchase_order_id, data.get("reason"))
        return jsonify(po.to_dict())
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel purchase order")
        return jsonify({"error": "Internal server error"}), 500
