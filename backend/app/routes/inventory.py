# backend/app/routes/inventory.py
"""
Inventory routes.

Stock only changes through the stock ledger. The one write exposed here is a
manual adjustment; sales, receipts and returns move stock through their own
workflows.

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
"""
from flask import Blueprint, request, current_app

from ..errors import PosError
from ..services import inventory_service
from ..validation import optional_int, require_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/<int:product_id>/adjust")
def adjust_inventory_route(product_id: int):
    """
    Manual stock adjustment.

    Request body:
    {
        "quantity_delta": -2,        // required, non-zero
        "reason": "damaged",         // optional
        "occurred_at": "..."         // optional, ISO-8601
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        delta = require_int(payload, "quantity_delta")
        result = inventory_service.adjust_stock(
            product_id,
            delta,
            payload.get("reason"),
            occurred_at=payload.get("occurred_at"),
        )
        return result.to_dict(), 201
    except PosError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return {"error": "Internal server error"}, 500


@inventory_bp.get("/<int:product_id>/movements")
def stock_movements_route(product_id: int):
    try:
        limit = optional_int(request.args, "limit", 200, minimum=1)
        movements = inventory_service.list_stock_movements(product_id, limit=min(limit, 1000))
        return {"product_id": product_id, "movements": [m.to_dict() for m in movements]}
    except PosError as e:
        return e.to_dict(), e.status_code


@inventory_bp.get("/<int:product_id>/verify")
def verify_stock_route(product_id: int):
    try:
        return inventory_service.verify_stock_ledger(product_id)
    except PosError as e:
        return e.to_dict(), e.status_code


@inventory_bp.get("/low-stock")
def low_stock_route():
    products = inventory_service.get_low_stock_products()
    return {"items": [p.to_dict() for p in products], "count": len(products)}
