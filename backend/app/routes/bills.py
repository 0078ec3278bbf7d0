# Overview: Flask API routes for bills (held carts, settlement, lookups); parses input and returns JSON responses.

"""
Bill Routes

Cart in, committed bill out. All pricing, payment validation and ledger
writes happen in settlement_service; these handlers only translate JSON.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import PosError, ValidationError
from ..models.sales import BILL_STATUS_HELD
from ..services import settlement_service
from ..services.pricing_service import calculate_totals, cart_to_dict, normalize_cart
from app.time_utils import parse_iso_datetime


bills_bp = Blueprint("bills", __name__, url_prefix="/api/bills")


def _tax_rate_for(payload: dict):
    """Apply the configured default tax rate only when the cart carries no tax."""
    rate = current_app.config.get("DEFAULT_TAX_RATE_BPS", 0)
    if rate and payload.get("tax_cents") is None:
        return rate
    return None


@bills_bp.post("/hold")
def hold_bill_route():
    """
    Park the current cart.

    Request body:
    {
        "bill_number": "INV-20261018-0007",
        "cart": {...},
        "held_bill_id": 4        // optional, replaces a resumed held bill
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        cart = normalize_cart(data.get("cart"))
        bill = settlement_service.hold_bill(
            data.get("bill_number"),
            cart,
            held_bill_id=settlement_service.coerce_bill_id(data.get("held_bill_id")),
        )
        return jsonify(bill.to_dict(include_items=True)), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to hold bill")
        return jsonify({"error": "Internal server error"}), 500


@bills_bp.post("/next-number")
def next_bill_number_route():
    """Allocate a bill number for a new cart."""
    try:
        return jsonify({"bill_number": settlement_service.next_bill_number()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@bills_bp.get("/held")
def list_held_route():
    bills = settlement_service.list_held_bills()
    return jsonify({"items": [b.to_dict() for b in bills], "count": len(bills)})


@bills_bp.get("/held/<int:bill_id>")
def resume_held_route(bill_id: int):
    """Reload a held bill as a cart (prices as they were when held)."""
    try:
        bill, cart = settlement_service.resume_held_bill(bill_id)
        return jsonify({
            "bill": bill.to_dict(),
            "cart": cart_to_dict(cart),
            "totals": calculate_totals(cart).to_dict(),
        })
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@bills_bp.delete("/held/<int:bill_id>")
def delete_held_route(bill_id: int):
    try:
        settlement_service.delete_held_bill(bill_id)
        return jsonify({"deleted": True, "bill_id": bill_id})
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete held bill")
        return jsonify({"error": "Internal server error"}), 500


@bills_bp.post("/settle")
def settle_bill_route():
    """
    Settle a cart.

    Request body:
    {
        "bill_number": "INV-20261018-0007",
        "cart": {
            "items": [{"product_id": 1, "quantity": 3, "unit_price_cents": 10000, "discount_cents": 3000}],
            "customer_id": 5,
            "order_discount_type": "percentage",
            "order_discount_value": 10
        },
        "payment": {"method": "cash", "paid_amount_cents": 30000},
        "held_bill_id": 4        // optional
    }

    Returns:
        201 with the committed bill and its items
    """
    data = request.get_json(silent=True) or {}

    try:
        cart_payload = data.get("cart")
        cart = normalize_cart(cart_payload)
        payment = settlement_service.parse_payment_instruction(data.get("payment"))
        bill = settlement_service.settle_bill(
            data.get("bill_number"),
            cart,
            payment,
            held_bill_id=settlement_service.coerce_bill_id(data.get("held_bill_id")),
            tax_rate_bps=_tax_rate_for(cart_payload),
        )
        current_app.logger.info(
            "Settled bill %s total=%s method=%s", bill.bill_number, bill.total_cents, bill.payment_method
        )
        return jsonify(bill.to_dict(include_items=True)), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to settle bill")
        return jsonify({"error": "Internal server error"}), 500


@bills_bp.get("")
def list_bills_route():
    """
    List bills.

    Query parameters:
    - status: held | completed | refunded
    - customer_id
    - from_date / to_date: ISO-8601
    - limit (default 100, max 500), offset
    """
    status = request.args.get("status")
    customer_id = request.args.get("customer_id", type=int)
    limit = request.args.get("limit", 100, type=int)
    offset = request.args.get("offset", 0, type=int)

    try:
        from_date = parse_iso_datetime(request.args.get("from_date"))
        to_date = parse_iso_datetime(request.args.get("to_date"))
    except ValueError:
        return jsonify({"error": "Invalid date format"}), 400

    # Clamp limit
    limit = min(max(limit, 1), 500)
    offset = max(offset, 0)

    bills, total = settlement_service.list_bills(
        status=status,
        customer_id=customer_id,
        from_date=from_date,
        to_date=to_date,
        limit=limit,
        offset=offset,
    )

    return jsonify({
        "items": [b.to_dict() for b in bills],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


@bills_bp.get("/<string:bill_number>")
def get_bill_route(bill_number: str):
    try:
        bill = settlement_service.get_bill_by_number(bill_number)
        return jsonify(bill.to_dict(include_items=True))
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@bills_bp.get("/<string:bill_number>/change")
def bill_change_route(bill_number: str):
    """Change due on a settled bill, rounded and broken into notes and coins."""
    try:
        bill = settlement_service.get_bill_by_number(bill_number)
        if bill.status == BILL_STATUS_HELD:
            raise ValidationError("Held bills have no change due")
        data = settlement_service.describe_change(
            bill,
            denominations=current_app.config["CURRENCY_DENOMINATIONS_CENTS"],
            rounding_step_cents=current_app.config.get("CHANGE_ROUNDING_CENTS", 1),
        )
        return jsonify(data)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
