# Overview: Purchase orders and goods receipts (GRN); the only way purchased stock enters.

"""
Purchase Receiving Service

WHY: Stock bought from suppliers enters the stock ledger only through a goods
receipt against a purchase order, so every purchased unit traces back to an
order line.

LIFECYCLE (never regresses):
1. pending: order placed, nothing received
2. received: partially received (one or more GRNs)
3. completed: every line fully received
4. cancelled: abandoned before any goods arrived

DESIGN:
- Received quantities are clamped to what is still outstanding per line, so
  over-delivery never inflates stock.
- A receipt writes one `purchase` stock movement per non-zero line and the
  updated received quantities in a single transaction.
- The order row is locked for the duration of the receipt.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..errors import (
    DuplicateReferenceError,
    EmptyReceiptError,
    InvalidStateTransitionError,
    PurchaseOrderNotFoundError,
    SupplierNotFoundError,
    ValidationError,
)
from ..models import PurchaseItem, PurchaseOrder, Supplier
from ..models.inventory import MOVEMENT_PURCHASE
from ..models.purchases import (
    PO_STATUS_CANCELLED,
    PO_STATUS_COMPLETED,
    PO_STATUS_PENDING,
    PO_STATUS_RECEIVED,
    PO_STATUSES,
)
from ..validation import coerce_int, require_int
from app.time_utils import utcnow, to_datetime
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .inventory_service import apply_stock_movement, get_product


# Allowed status changes. Anything not listed is rejected.
ALLOWED_TRANSITIONS = {
    PO_STATUS_PENDING: {PO_STATUS_RECEIVED, PO_STATUS_COMPLETED, PO_STATUS_CANCELLED},
    PO_STATUS_RECEIVED: {PO_STATUS_RECEIVED, PO_STATUS_COMPLETED},
    PO_STATUS_COMPLETED: set(),
    PO_STATUS_CANCELLED: set(),
}

RECEIVABLE_STATUSES = {PO_STATUS_PENDING, PO_STATUS_RECEIVED}


@dataclass(frozen=True)
class ReceivedLine:
    purchase_item_id: int
    product_id: int
    quantity: int
    new_stock: int

    def to_dict(self) -> dict:
        return {
            "purchase_item_id": self.purchase_item_id,
            "product_id": self.product_id,
            "received_quantity": self.quantity,
            "new_stock": self.new_stock,
        }


@dataclass(frozen=True)
class ReceiptResult:
    purchase_order: PurchaseOrder
    lines: tuple[ReceivedLine, ...]

    def to_dict(self) -> dict:
        return {
            "purchase_order": self.purchase_order.to_dict(include_items=True),
            "received": [line.to_dict() for line in self.lines],
        }


def _parse_date(value, field: str) -> datetime | None:
    try:
        return to_datetime(value)
    except ValueError:
        raise ValidationError(f"Invalid {field} format")


def _transition(po: PurchaseOrder, new_status: str) -> None:
    allowed = ALLOWED_TRANSITIONS.get(po.status, set())
    if new_status not in allowed:
        raise InvalidStateTransitionError(
            f"Cannot move purchase order {po.purchase_order_no} from {po.status} to {new_status}",
            details={
                "purchase_order_id": po.id,
                "from_status": po.status,
                "to_status": new_status,
            },
        )
    po.status = new_status


# =============================================================================
# SUPPLIERS
# =============================================================================

def create_supplier(name: str, *, contact_person: str | None = None, phone: str | None = None) -> Supplier:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Supplier name is required")

    supplier = Supplier(name=name, contact_person=contact_person, phone=phone, is_active=True)
    db.session.add(supplier)
    db.session.commit()
    return supplier


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if not supplier:
        raise SupplierNotFoundError(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})
    return supplier


# =============================================================================
# PURCHASE ORDERS
# =============================================================================

def create_purchase_order(
    purchase_order_no: str,
    supplier_id: int,
    lines: list[dict],
    *,
    order_date: datetime | str | None = None,
    expected_delivery_date: datetime | str | None = None,
    notes: str | None = None,
) -> PurchaseOrder:
    """
    Place a purchase order.

    Args:
        purchase_order_no: Caller-chosen order number (unique)
        supplier_id: Supplier the goods come from
        lines: [{"product_id": 1, "quantity": 10, "cost_price_cents": 250}, ...]

    Raises:
        ValidationError: no lines, bad quantities or costs
        SupplierNotFoundError, ProductNotFoundError
        DuplicateReferenceError: purchase_order_no already used
    """
    purchase_order_no = (purchase_order_no or "").strip()
    if not purchase_order_no:
        raise ValidationError("purchase_order_no is required")
    if not lines:
        raise ValidationError("Purchase order needs at least one line")

    parsed = []
    for raw in lines:
        if not isinstance(raw, dict):
            raise ValidationError("purchase order line must be an object")
        parsed.append((
            require_int(raw, "product_id", minimum=1),
            require_int(raw, "quantity", minimum=1),
            require_int(raw, "cost_price_cents", minimum=0),
        ))

    order_dt = _parse_date(order_date, "order_date") or utcnow()
    expected_dt = _parse_date(expected_delivery_date, "expected_delivery_date")

    def _op():
        get_supplier(supplier_id)

        if db.session.query(PurchaseOrder.id).filter_by(purchase_order_no=purchase_order_no).first():
            raise DuplicateReferenceError(
                f"Purchase order {purchase_order_no} already exists",
                details={"purchase_order_no": purchase_order_no},
            )

        po = PurchaseOrder(
            supplier_id=supplier_id,
            purchase_order_no=purchase_order_no,
            order_date=order_dt,
            expected_delivery_date=expected_dt,
            status=PO_STATUS_PENDING,
            notes=notes,
        )
        db.session.add(po)
        db.session.flush()

        total = 0
        for product_id, quantity, cost in parsed:
            get_product(product_id)
            subtotal = quantity * cost
            total += subtotal
            db.session.add(PurchaseItem(
                purchase_order_id=po.id,
                product_id=product_id,
                quantity=quantity,
                cost_price_cents=cost,
                subtotal_cents=subtotal,
                received_quantity=0,
            ))

        po.total_amount_cents = total
        db.session.commit()
        return po

    return run_with_retry(_op)


def next_purchase_order_no() -> str:
    return next_document_number(
        document_type="PURCHASE_ORDER",
        prefix=current_app.config.get("PURCHASE_ORDER_PREFIX", "PO"),
    )


def get_purchase_order(purchase_order_id: int) -> PurchaseOrder:
    po = db.session.query(PurchaseOrder).filter_by(id=purchase_order_id).first()
    if not po:
        raise PurchaseOrderNotFoundError(
            f"Purchase order {purchase_order_id} not found",
            details={"purchase_order_id": purchase_order_id},
        )
    return po


def list_purchase_orders(
    *,
    status: str | None = None,
    supplier_id: int | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[PurchaseOrder], int]:
    """
    List purchase orders, newest first.

    Returns:
        Tuple of (list of orders, total count)
    """
    if status and status not in PO_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(PO_STATUSES)}")

    query = db.session.query(PurchaseOrder)

    if status:
        query = query.filter(PurchaseOrder.status == status)
    if supplier_id:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    if from_date:
        query = query.filter(PurchaseOrder.order_date >= from_date)
    if to_date:
        query = query.filter(PurchaseOrder.order_date <= to_date)

    total = query.count()

    query = query.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.id.desc())
    query = query.offset(offset).limit(limit)

    return query.all(), total


def cancel_purchase_order(purchase_order_id: int, reason: str | None = None) -> PurchaseOrder:
    """
    Cancel a purchase order.

    Only pending orders can be cancelled; once goods have arrived the stock is
    real and has to be sent back with a return_out movement instead.

    Raises:
        PurchaseOrderNotFoundError
        InvalidStateTransitionError: order is received, completed or cancelled
    """
    def _op():
        po = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=purchase_order_id)).first()
        if not po:
            raise PurchaseOrderNotFoundError(
                f"Purchase order {purchase_order_id} not found",
                details={"purchase_order_id": purchase_order_id},
            )

        _transition(po, PO_STATUS_CANCELLED)
        po.cancelled_at = utcnow()
        po.cancellation_reason = (reason or "").strip()[:255] or None

        db.session.commit()
        return po

    return run_with_retry(_op)


# =============================================================================
# GOODS RECEIPT
# =============================================================================

def _merge_received_lines(received_lines: list[dict]) -> dict[int, int]:
    requested: dict[int, int] = {}
    for raw in received_lines:
        if not isinstance(raw, dict):
            raise ValidationError("received line must be an object")
        item_id = require_int(raw, "purchase_item_id", minimum=1)
        quantity = coerce_int(raw.get("received_quantity", 0), "received_quantity")
        requested[item_id] = requested.get(item_id, 0) + quantity
    return requested


def receive_goods(
    purchase_order_id: int,
    received_lines: list[dict],
    received_date: datetime | str | None = None,
) -> ReceiptResult:
    """
    Record a goods receipt (GRN) against a purchase order.

    Each requested quantity is clamped to [0, ordered - already received].
    Status afterwards is completed when every line is fully received,
    otherwise received.

    Args:
        received_lines: [{"purchase_item_id": 3, "received_quantity": 6}, ...]

    Raises:
        PurchaseOrderNotFoundError
        InvalidStateTransitionError: order is completed or cancelled
        ValidationError: a line does not belong to the order
        EmptyReceiptError: nothing left to receive after clamping
    """
    if not isinstance(received_lines, list):
        raise ValidationError("received lines must be a list")
    requested = _merge_received_lines(received_lines)
    received_dt = _parse_date(received_date, "received_date") or utcnow()
    if received_dt > utcnow() + timedelta(minutes=2):
        raise ValidationError("received_date cannot be in the future")

    def _op():
        po = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=purchase_order_id)).first()
        if not po:
            raise PurchaseOrderNotFoundError(
                f"Purchase order {purchase_order_id} not found",
                details={"purchase_order_id": purchase_order_id},
            )
        if po.status not in RECEIVABLE_STATUSES:
            raise InvalidStateTransitionError(
                f"Cannot receive goods against a {po.status} purchase order",
                details={"purchase_order_id": po.id, "from_status": po.status},
            )

        items_by_id = {item.id: item for item in po.items}
        unknown = sorted(set(requested) - set(items_by_id))
        if unknown:
            raise ValidationError(
                "Received lines do not belong to this purchase order",
                details={"purchase_item_ids": unknown},
            )

        to_receive = []
        for item in po.items:
            if item.id not in requested:
                continue
            quantity = min(max(requested[item.id], 0), item.outstanding_quantity)
            if quantity > 0:
                to_receive.append((item, quantity))

        if not to_receive:
            raise EmptyReceiptError(
                "Nothing to receive",
                details={"purchase_order_id": po.id},
            )

        received = []
        for item, quantity in to_receive:
            res = apply_stock_movement(
                item.product_id,
                MOVEMENT_PURCHASE,
                quantity,
                "purchase",
                po.id,
                note=f"GRN {po.purchase_order_no}",
                occurred_at=received_dt,
                commit=False,
            )
            item.received_quantity = (item.received_quantity or 0) + quantity
            received.append(ReceivedLine(
                purchase_item_id=item.id,
                product_id=item.product_id,
                quantity=quantity,
                new_stock=res.new_stock,
            ))

        if all(item.outstanding_quantity == 0 for item in po.items):
            _transition(po, PO_STATUS_COMPLETED)
        else:
            _transition(po, PO_STATUS_RECEIVED)
        po.received_date = received_dt

        db.session.commit()
        return ReceiptResult(purchase_order=po, lines=tuple(received))

    return run_with_retry(_op)
