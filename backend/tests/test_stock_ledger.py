"""
Stock ledger tests.

Covers the running count against the movement chain, sign rules, the
non-negative floor and the audit report.
"""

import pytest

from app.errors import InsufficientStockError, ProductNotFoundError, ValidationError
from app.models import StockMovement
from app.services import inventory_service


def test_movement_updates_stock_and_records_chain(db_session, make_product):
    product = make_product(stock=10)

    res = inventory_service.apply_stock_movement(product.id, "sale", -3, "bill", 1)

    assert res.previous_stock == 10
    assert res.new_stock == 7
    assert res.movement.quantity == -3
    assert res.movement.reference_type == "bill"
    assert db_session.get(type(product), product.id).stock == 7


def test_stock_equals_opening_plus_sum_of_movements(db_session, make_product):
    product = make_product(stock=5)
    deltas = [("purchase", 10), ("sale", -4), ("adjustment", -2), ("return_in", 1), ("return_out", -3)]

    for kind, qty in deltas:
        inventory_service.apply_stock_movement(product.id, kind, qty)

    assert inventory_service.current_stock(product.id) == 5 + sum(q for _, q in deltas)
    report = inventory_service.verify_stock_ledger(product.id)
    assert report["consistent"] is True
    assert report["opening_stock"] == 5
    assert report["movement_count"] == 5


def test_sale_beyond_stock_is_rejected_and_nothing_written(db_session, make_product):
    product = make_product(stock=2)

    with pytest.raises(InsufficientStockError) as exc:
        inventory_service.apply_stock_movement(product.id, "sale", -3, "bill", 1)

    assert exc.value.details == {"product_id": product.id, "requested": 3, "on_hand": 2}
    assert inventory_service.current_stock(product.id) == 2
    assert db_session.query(StockMovement).count() == 0


def test_adjustment_cannot_take_stock_negative(db_session, make_product):
    product = make_product(stock=1)

    with pytest.raises(InsufficientStockError):
        inventory_service.adjust_stock(product.id, -2, "count correction")

    assert inventory_service.current_stock(product.id) == 1


def test_sale_to_exactly_zero_is_allowed(db_session, make_product):
    product = make_product(stock=3)

    res = inventory_service.apply_stock_movement(product.id, "sale", -3)

    assert res.new_stock == 0


@pytest.mark.parametrize(
    "kind,qty",
    [("sale", 2), ("return_out", 1), ("purchase", -1), ("return_in", -5), ("adjustment", 0), ("gift", 1)],
)
def test_sign_rules(db_session, make_product, kind, qty):
    product = make_product(stock=10)

    with pytest.raises(ValidationError):
        inventory_service.apply_stock_movement(product.id, kind, qty)


def test_inactive_product_cannot_be_sold(db_session, make_product):
    product = make_product(stock=10, is_active=False)

    with pytest.raises(ValidationError):
        inventory_service.apply_stock_movement(product.id, "sale", -1)

    # Other movements still work
    res = inventory_service.adjust_stock(product.id, -1, "damaged")
    assert res.new_stock == 9


def test_unknown_product(db_session):
    with pytest.raises(ProductNotFoundError):
        inventory_service.apply_stock_movement(999, "purchase", 1)


def test_list_movements_newest_first(db_session, make_product):
    product = make_product(stock=0)
    inventory_service.apply_stock_movement(product.id, "purchase", 5)
    inventory_service.apply_stock_movement(product.id, "sale", -2)

    movements = inventory_service.list_stock_movements(product.id)

    assert [m.kind for m in movements] == ["sale", "purchase"]
    assert movements[0].previous_stock == movements[1].new_stock


def test_low_stock_products(db_session, make_product):
    low = make_product(stock=2, reorder_level=5)
    make_product(stock=50, reorder_level=5)
    make_product(stock=0, reorder_level=5, is_active=False)

    result = inventory_service.get_low_stock_products()

    assert [p.id for p in result] == [low.id]


def test_verify_detects_drift(db_session, make_product):
    product = make_product(stock=10)
    inventory_service.apply_stock_movement(product.id, "sale", -1)

    # Bypass the ledger
    product = db_session.get(type(product), product.id)
    product.stock = 20
    db_session.commit()

    report = inventory_service.verify_stock_ledger(product.id)

    assert report["consistent"] is False
    assert [p["problem"] for p in report["problems"]] == ["drift"]


def test_return_to_supplier_writes_return_out(db_session, make_product):
    product = make_product(stock=10)

    res = inventory_service.return_to_supplier(product.id, 4, reason="damaged in transit")

    assert res.movement.kind == "return_out"
    assert res.movement.quantity == -4
    assert res.new_stock == 6
