# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

"""
Return Processing API Routes

DESIGN:
- A return is posted in one call against the original bill number
- The response is the new return bill (status refunded, negative amounts)
- Returnable quantities per line are available before posting
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import PosError
from ..services import return_service


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
def create_return_route():
    """
    Return items from a completed bill.

    Request body:
    {
        "original_bill_number": "INV-20261018-0007",   // required
        "items": [{"bill_item_id": 12, "quantity": 2}],  // required
        "refund_method": "cash",                        // cash | credit
        "return_bill_number": "RET-20261018-0001",      // optional
        "notes": "damaged"                              // optional
    }
    """
    data = request.get_json(silent=True) or {}

    original_bill_number = data.get("original_bill_number")
    if not original_bill_number:
        return jsonify({"error": "original_bill_number is required"}), 400

    try:
        bill = return_service.process_return(
            original_bill_number,
            data.get("items"),
            data.get("refund_method"),
            data.get("return_bill_number"),
            notes=data.get("notes"),
        )
        current_app.logger.info(
            "Processed return %s for %s refund=%s",
            bill.bill_number, original_bill_number, -bill.total_cents,
        )
        return jsonify(bill.to_dict(include_items=True)), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/<string:bill_number>/returnable")
def returnable_items_route(bill_number: str):
    try:
        items = return_service.get_returnable_items(bill_number)
        returns = return_service.list_bill_returns(bill_number)
        return jsonify({
            "bill_number": bill_number,
            "items": items,
            "returns": [r.to_dict() for r in returns],
        })
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
