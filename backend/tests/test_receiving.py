"""
Purchase order and goods receipt tests.
"""

import pytest

from app.errors import (
    DuplicateReferenceError,
    EmptyReceiptError,
    InvalidStateTransitionError,
    PurchaseOrderNotFoundError,
    SupplierNotFoundError,
    ValidationError,
)
from app.models import Product, StockMovement
from app.services import receive_service


@pytest.fixture
def order(db_session, supplier, make_product):
    product = make_product(stock=0, price_cents=500)
    po = receive_service.create_purchase_order(
        "PO-1",
        supplier.id,
        [{"product_id": product.id, "quantity": 10, "cost_price_cents": 250}],
    )
    return po, product


def test_create_purchase_order(order):
    po, product = order

    assert po.status == "pending"
    assert po.total_amount_cents == 2500
    assert len(po.items) == 1
    assert po.items[0].received_quantity == 0


def test_partial_then_full_receipt(db_session, order):
    po, product = order
    item_id = po.items[0].id

    first = receive_service.receive_goods(po.id, [{"purchase_item_id": item_id, "received_quantity": 6}])
    assert first.purchase_order.status == "received"
    assert first.lines[0].new_stock == 6

    second = receive_service.receive_goods(po.id, [{"purchase_item_id": item_id, "received_quantity": 4}])
    assert second.purchase_order.status == "completed"
    assert second.purchase_order.received_date is not None

    assert db_session.get(Product, product.id).stock == 10
    movements = db_session.query(StockMovement).order_by(StockMovement.id).all()
    assert [m.quantity for m in movements] == [6, 4]
    assert all(m.kind == "purchase" and m.reference_type == "purchase" and m.reference_id == po.id
               for m in movements)


def test_over_receipt_is_clamped(db_session, order):
    po, product = order

    result = receive_service.receive_goods(po.id, [{"purchase_item_id": po.items[0].id, "received_quantity": 25}])

    assert result.lines[0].quantity == 10
    assert result.purchase_order.status == "completed"
    assert db_session.get(Product, product.id).stock == 10


def test_all_zero_receipt_is_rejected(db_session, order):
    po, _ = order

    with pytest.raises(EmptyReceiptError):
        receive_service.receive_goods(po.id, [{"purchase_item_id": po.items[0].id, "received_quantity": 0}])

    assert receive_service.get_purchase_order(po.id).status == "pending"


def test_receiving_against_completed_order(db_session, order):
    po, _ = order
    item_id = po.items[0].id
    receive_service.receive_goods(po.id, [{"purchase_item_id": item_id, "received_quantity": 10}])

    with pytest.raises(InvalidStateTransitionError):
        receive_service.receive_goods(po.id, [{"purchase_item_id": item_id, "received_quantity": 1}])


def test_foreign_line_is_rejected(db_session, order):
    po, _ = order

    with pytest.raises(ValidationError):
        receive_service.receive_goods(po.id, [{"purchase_item_id": 9999, "received_quantity": 1}])


def test_multi_line_order_stays_received_until_every_line_done(db_session, supplier, make_product):
    a = make_product(stock=0)
    b = make_product(stock=0)
    po = receive_service.create_purchase_order(
        "PO-2",
        supplier.id,
        [
            {"product_id": a.id, "quantity": 5, "cost_price_cents": 100},
            {"product_id": b.id, "quantity": 3, "cost_price_cents": 100},
        ],
    )
    item_a, item_b = po.items

    result = receive_service.receive_goods(po.id, [{"purchase_item_id": item_a.id, "received_quantity": 5}])
    assert result.purchase_order.status == "received"

    result = receive_service.receive_goods(po.id, [{"purchase_item_id": item_b.id, "received_quantity": 3}])
    assert result.purchase_order.status == "completed"


def test_cancel_pending_order(db_session, order):
    po, _ = order

    cancelled = receive_service.cancel_purchase_order(po.id, "supplier out of stock")

    assert cancelled.status == "cancelled"
    assert cancelled.cancellation_reason == "supplier out of stock"
    with pytest.raises(InvalidStateTransitionError):
        receive_service.receive_goods(po.id, [{"purchase_item_id": po.items[0].id, "received_quantity": 1}])


def test_cannot_cancel_after_receipt(db_session, order):
    po, _ = order
    receive_service.receive_goods(po.id, [{"purchase_item_id": po.items[0].id, "received_quantity": 2}])

    with pytest.raises(InvalidStateTransitionError) as exc:
        receive_service.cancel_purchase_order(po.id)

    assert exc.value.details["from_status"] == "received"


def test_duplicate_order_number(db_session, order, supplier):
    _, product = order

    with pytest.raises(DuplicateReferenceError):
        receive_service.create_purchase_order(
            "PO-1", supplier.id, [{"product_id": product.id, "quantity": 1, "cost_price_cents": 1}]
        )


def test_unknown_supplier_and_order(db_session, make_product):
    product = make_product()

    with pytest.raises(SupplierNotFoundError):
        receive_service.create_purchase_order(
            "PO-9", 999, [{"product_id": product.id, "quantity": 1, "cost_price_cents": 1}]
        )
    with pytest.raises(PurchaseOrderNotFoundError):
        receive_service.receive_goods(999, [{"purchase_item_id": 1, "received_quantity": 1}])


def test_list_purchase_orders(db_session, order):
    orders, total = receive_service.list_purchase_orders(status="pending")

    assert total == 1
    assert orders[0].purchase_order_no == "PO-1"
    with pytest.raises(ValidationError):
        receive_service.list_purchase_orders(status="shipped")


def test_create_supplier_requires_name(db_session):
    supplier = receive_service.create_supplier("  Ceylon Traders ", phone="0112000000")

    assert supplier.name == "Ceylon Traders"
    assert receive_service.get_supplier(supplier.id).phone == "0112000000"
    with pytest.raises(ValidationError):
        receive_service.create_supplier("   ")
