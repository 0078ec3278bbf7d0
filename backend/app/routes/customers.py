# Overview: Flask API routes for customer credit accounts; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import PosError
from ..services import credit_service
from ..validation import require_amount_cents


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    try:
        customer = credit_service.get_customer(customer_id)
        return jsonify(customer.to_dict())
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@customers_bp.post("/<int:customer_id>/credit-payments")
def record_credit_payment_route(customer_id: int):
    """
    Customer pays down their credit balance.

    Request body:
    {
        "amount_cents": 5000,         // required, > 0
        "payment_method": "cash",     // cash | card
        "notes": "..."                // optional
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        amount = require_amount_cents(data, "amount_cents")
        result = credit_service.record_credit_payment(
            customer_id,
            amount,
            data.get("payment_method") or "cash",
            data.get("notes"),
        )
        current_app.logger.info(
            "Credit payment customer=%s amount=%s balance=%s",
            customer_id, amount, result.new_balance,
        )
        return jsonify(result.to_dict()), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record credit payment")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/credit-entries")
def credit_entries_route(customer_id: int):
    limit = min(max(request.args.get("limit", 200, type=int), 1), 1000)
    try:
        entries = credit_service.list_credit_entries(customer_id, limit=limit)
        return jsonify({
            "customer_id": customer_id,
            "entries": [e.to_dict() for e in entries],
        })
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@customers_bp.get("/<int:customer_id>/credit/verify")
def verify_credit_route(customer_id: int):
    try:
        return jsonify(credit_service.verify_credit_ledger(customer_id))
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
