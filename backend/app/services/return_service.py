"""
Return Processing Service

WHY: Customers bring goods back. A return never edits the sale it reverses;
it is written as a new bill (status refunded) that points at the original
and carries negative quantities and amounts, so the sales history stays
append-only.

DESIGN PRINCIPLES:
- Only completed sale bills are returnable (not held bills, not returns)
- Quantities are clamped to what is still returnable per line
- Refunds use the price the customer actually paid: the line subtotal after
  line discounts, spread over the line quantity
- Stock comes back through `return_in` movements
- Credit refunds reduce the customer's outstanding balance through the
  credit ledger; cash refunds are recorded on the return bill only
- Everything above commits together or not at all
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import (
    BillNotFoundError,
    DuplicateReferenceError,
    EmptyReturnError,
    InvalidStateTransitionError,
    NoCreditAccountError,
    ValidationError,
)
from ..models import Bill, BillItem
from ..models.customers import CREDIT_PAYMENT
from ..models.inventory import MOVEMENT_RETURN_IN
from ..models.sales import (
    BILL_STATUS_COMPLETED,
    BILL_STATUS_REFUNDED,
    PAYMENT_CASH,
    PAYMENT_CREDIT,
)
from ..validation import coerce_int, require_int
from app.time_utils import utcnow
from .concurrency import run_with_retry
from .credit_service import apply_credit_entry
from .document_service import next_document_number
from .inventory_service import apply_stock_movement
from .pricing_service import round_half_up_div


REFUND_METHODS = (PAYMENT_CASH, PAYMENT_CREDIT)


def _get_bill_by_number(bill_number: str) -> Bill:
    bill = db.session.query(Bill).filter_by(bill_number=bill_number).first()
    if bill is None:
        raise BillNotFoundError(f"Bill {bill_number} not found", details={"bill_number": bill_number})
    return bill


def _returned_quantities(item_ids) -> dict[int, int]:
    """Units already returned per original bill item (return lines are negative)."""
    if not item_ids:
        return {}
    rows = (
        db.session.query(BillItem.original_bill_item_id, func.coalesce(func.sum(BillItem.quantity), 0))
        .filter(BillItem.original_bill_item_id.in_(list(item_ids)))
        .group_by(BillItem.original_bill_item_id)
        .all()
    )
    return {item_id: -int(total) for item_id, total in rows}


def refund_for(item: BillItem, already_returned: int, quantity: int) -> int:
    """
    Refund for returning `quantity` more units of a sold line.

    Computed cumulatively so that returning a line in several parts refunds
    exactly its subtotal once everything is back.
    """
    if item.quantity <= 0 or quantity <= 0:
        return 0
    before = round_half_up_div(item.subtotal_cents * already_returned, item.quantity)
    after = round_half_up_div(item.subtotal_cents * (already_returned + quantity), item.quantity)
    return after - before


def _merge_return_lines(return_lines: list[dict]) -> dict[int, int]:
    requested: dict[int, int] = {}
    for raw in return_lines:
        if not isinstance(raw, dict):
            raise ValidationError("return line must be an object")
        item_id = require_int(raw, "bill_item_id", minimum=1)
        quantity = coerce_int(raw.get("quantity", 0), "quantity")
        requested[item_id] = requested.get(item_id, 0) + quantity
    return requested


def _ensure_returnable(original: Bill) -> None:
    if original.status != BILL_STATUS_COMPLETED or original.original_bill_id is not None:
        raise InvalidStateTransitionError(
            f"Bill {original.bill_number} is not a completed sale and cannot be returned",
            details={"bill_number": original.bill_number, "status": original.status},
        )


# =============================================================================
# RETURN PROCESSING
# =============================================================================

def process_return(
    original_bill_number: str,
    return_lines: list[dict],
    refund_method: str,
    return_bill_number: str | None = None,
    *,
    notes: str | None = None,
) -> Bill:
    """
    Return items from a completed sale.

    Args:
        original_bill_number: The sale being returned against
        return_lines: [{"bill_item_id": 12, "quantity": 2}, ...]
        refund_method: "cash" or "credit"
        return_bill_number: Number for the return bill; allocated when omitted

    Returns:
        The committed return bill (status refunded)

    Raises:
        BillNotFoundError: unknown original bill
        InvalidStateTransitionError: original is held or is itself a return
        ValidationError: bad refund method, lines not on the original bill
        EmptyReturnError: nothing left to return, or the refund is zero
        NoCreditAccountError: credit refund on a bill without a customer
        OverpaymentError: credit refund larger than the outstanding balance
        DuplicateReferenceError: return_bill_number already used
    """
    if refund_method not in REFUND_METHODS:
        raise ValidationError(f"Invalid refund_method. Must be one of: {', '.join(REFUND_METHODS)}")
    if not isinstance(return_lines, list):
        raise ValidationError("return lines must be a list")
    requested = _merge_return_lines(return_lines)

    # Pre-flight so a rejected return does not burn a document number
    original = _get_bill_by_number(original_bill_number)
    _ensure_returnable(original)

    if not return_bill_number:
        return_bill_number = next_document_number(
            document_type="RETURN",
            prefix=current_app.config.get("RETURN_NUMBER_PREFIX", "RET"),
        )

    def _op():
        original = _get_bill_by_number(original_bill_number)
        _ensure_returnable(original)

        items_by_id = {item.id: item for item in original.items}
        unknown = sorted(set(requested) - set(items_by_id))
        if unknown:
            raise ValidationError(
                "Return lines do not belong to this bill",
                details={"bill_item_ids": unknown},
            )

        already = _returned_quantities(items_by_id.keys())

        plan = []
        for item in original.items:
            if item.id not in requested:
                continue
            previously = already.get(item.id, 0)
            quantity = min(max(requested[item.id], 0), item.quantity - previously)
            if quantity <= 0:
                continue
            plan.append((item, quantity, refund_for(item, previously, quantity)))

        refund_total = sum(refund for _, _, refund in plan)
        if not plan or refund_total <= 0:
            raise EmptyReturnError(
                "Nothing to return",
                details={"bill_number": original.bill_number},
            )

        if refund_method == PAYMENT_CREDIT and original.customer_id is None:
            raise NoCreditAccountError(
                "Bill has no customer; refund to credit is not possible",
                details={"bill_number": original.bill_number},
            )

        if db.session.query(Bill.id).filter_by(bill_number=return_bill_number).first():
            raise DuplicateReferenceError(
                f"Bill number {return_bill_number} already exists",
                details={"bill_number": return_bill_number},
            )

        gross_total = sum(item.unit_price_cents * quantity for item, quantity, _ in plan)
        now = utcnow()

        return_bill = Bill(
            bill_number=return_bill_number,
            customer_id=original.customer_id,
            subtotal_cents=-gross_total,
            item_discount_cents=-(gross_total - refund_total),
            order_discount_cents=0,
            tax_cents=0,
            total_cents=-refund_total,
            payment_method=refund_method,
            paid_amount_cents=-refund_total if refund_method == PAYMENT_CASH else 0,
            change_amount_cents=0,
            credit_amount_cents=-refund_total if refund_method == PAYMENT_CREDIT else 0,
            status=BILL_STATUS_REFUNDED,
            original_bill_id=original.id,
            notes=(notes or f"Return for {original.bill_number}")[:255],
            created_at=now,
            completed_at=now,
        )
        db.session.add(return_bill)
        db.session.flush()

        for item, quantity, refund in plan:
            gross = item.unit_price_cents * quantity
            db.session.add(BillItem(
                bill_id=return_bill.id,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=-quantity,
                unit_price_cents=item.unit_price_cents,
                discount_cents=-(gross - refund),
                subtotal_cents=-refund,
                original_bill_item_id=item.id,
            ))
        db.session.flush()

        for item, quantity, _ in plan:
            apply_stock_movement(
                item.product_id,
                MOVEMENT_RETURN_IN,
                quantity,
                "return",
                return_bill.id,
                note=f"Return {return_bill_number} of {original.bill_number}",
                commit=False,
            )

        if refund_method == PAYMENT_CREDIT:
            apply_credit_entry(
                original.customer_id,
                CREDIT_PAYMENT,
                refund_total,
                "return",
                return_bill.id,
                payment_method="refund",
                note=f"Return {return_bill_number}",
                commit=False,
            )

        db.session.commit()
        return return_bill

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_returnable_items(bill_number: str) -> list[dict]:
    """Per line of a sale: sold, already returned, still returnable."""
    original = _get_bill_by_number(bill_number)
    _ensure_returnable(original)

    already = _returned_quantities([item.id for item in original.items])
    result = []
    for item in original.items:
        returned = already.get(item.id, 0)
        result.append({
            "bill_item_id": item.id,
            "product_id": item.product_id,
            "product_name": item.product_name,
            "quantity": item.quantity,
            "returned_quantity": returned,
            "returnable_quantity": item.quantity - returned,
            "unit_price_cents": item.unit_price_cents,
            "subtotal_cents": item.subtotal_cents,
        })
    return result


def list_bill_returns(bill_number: str) -> list[Bill]:
    original = _get_bill_by_number(bill_number)
    return (
        db.session.query(Bill)
        .filter(Bill.original_bill_id == original.id, Bill.status == BILL_STATUS_REFUNDED)
        .order_by(Bill.id.asc())
        .all()
    )
