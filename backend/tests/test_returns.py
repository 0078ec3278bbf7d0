"""
Return processing tests.
"""

import pytest

from app.errors import (
    BillNotFoundError,
    DuplicateReferenceError,
    EmptyReturnError,
    InvalidStateTransitionError,
    NoCreditAccountError,
    OverpaymentError,
    ValidationError,
)
from app.models import Bill, Customer, Product, StockMovement
from app.services import credit_service, inventory_service, return_service, settlement_service
from app.services.settlement_service import CashPayment, CreditPayment


def _sell(cart, number="INV-1", payment=None):
    total = sum(line.unit_price_cents * line.quantity - line.discount_cents for line in cart.lines)
    return settlement_service.settle_bill(number, cart, payment or CashPayment(paid_cents=total))


def test_return_two_of_three(db_session, make_product, cart_of):
    product = make_product(stock=10, price_cents=10000)
    sale = _sell(cart_of((product, 3)))
    item_id = sale.items[0].id

    ret = return_service.process_return("INV-1", [{"bill_item_id": item_id, "quantity": 2}], "cash", "RET-1")

    assert ret.status == "refunded"
    assert ret.original_bill_id == sale.id
    assert ret.total_cents == -20000
    assert ret.paid_amount_cents == -20000
    assert ret.items[0].quantity == -2
    assert ret.items[0].original_bill_item_id == item_id
    assert db_session.get(Product, product.id).stock == 9

    movement = db_session.query(StockMovement).order_by(StockMovement.id.desc()).first()
    assert movement.kind == "return_in"
    assert (movement.reference_type, movement.reference_id) == ("return", ret.id)

    # Original bill is untouched
    original = db_session.get(Bill, sale.id)
    assert original.status == "completed"
    assert original.total_cents == 30000


def test_refund_uses_discounted_price(db_session, make_product, cart_of):
    product = make_product(stock=10, price_cents=1000)
    sale = _sell(cart_of((product, 3, 500)))

    ret = return_service.process_return(
        "INV-1", [{"bill_item_id": sale.items[0].id, "quantity": 1}], "cash", "RET-1"
    )

    assert ret.total_cents == -833
    assert ret.subtotal_cents == -1000
    assert ret.item_discount_cents == -167


def test_partial_returns_add_up_to_line_subtotal(db_session, make_product, cart_of):
    product = make_product(stock=10, price_cents=1000)
    sale = _sell(cart_of((product, 3, 500)))
    item_id = sale.items[0].id

    refunds = []
    for n in range(3):
        ret = return_service.process_return("INV-1", [{"bill_item_id": item_id, "quantity": 1}], "cash", f"RET-{n}")
        refunds.append(-ret.total_cents)

    assert sum(refunds) == 2500


def test_full_credit_round_trip_restores_stock_and_balance(db_session, make_product, make_customer, cart_of):
    a = make_product(stock=10, price_cents=1500)
    b = make_product(stock=4, price_cents=700)
    customer = make_customer(credit_limit_cents=100000)
    credit_service.apply_credit_entry(customer.id, "charge", 1000)

    sale = settlement_service.settle_bill(
        "INV-1", cart_of((a, 2), (b, 3, 100), customer_id=customer.id), CreditPayment()
    )
    assert db_session.get(Customer, customer.id).current_credit_cents == 1000 + 5000

    lines = [{"bill_item_id": item.id, "quantity": item.quantity} for item in sale.items]
    ret = return_service.process_return("INV-1", lines, "credit", "RET-1")

    assert ret.credit_amount_cents == -5000
    assert db_session.get(Product, a.id).stock == 10
    assert db_session.get(Product, b.id).stock == 4
    assert db_session.get(Customer, customer.id).current_credit_cents == 1000
    assert credit_service.verify_credit_ledger(customer.id)["consistent"] is True
    assert inventory_service.verify_stock_ledger(a.id)["consistent"] is True


def test_return_quantity_clamped_to_remaining(db_session, make_product, cart_of):
    product = make_product(stock=10, price_cents=1000)
    sale = _sell(cart_of((product, 3)))
    item_id = sale.items[0].id
    return_service.process_return("INV-1", [{"bill_item_id": item_id, "quantity": 2}], "cash", "RET-1")

    ret = return_service.process_return("INV-1", [{"bill_item_id": item_id, "quantity": 5}], "cash", "RET-2")

    assert ret.items[0].quantity == -1
    assert db_session.get(Product, product.id).stock == 10
    with pytest.raises(EmptyReturnError):
        return_service.process_return("INV-1", [{"bill_item_id": item_id, "quantity": 1}], "cash", "RET-3")


def test_zero_quantity_return_is_empty(db_session, make_product, cart_of):
    product = make_product(stock=10, price_cents=1000)
    sale = _sell(cart_of((product, 1)))

    with pytest.raises(EmptyReturnError):
        return_service.process_return("INV-1", [{"bill_item_id": sale.items[0].id, "quantity": 0}], "cash", "RET-1")

    assert db_session.query(Bill).count() == 1


def test_credit_refund_needs_customer(db_session, make_product, cart_of):
    product = make_product(stock=10, price_cents=1000)
    sale = _sell(cart_of((product, 1)))

    with pytest.raises(NoCreditAccountError):
        return_service.process_return("INV-1", [{"bill_item_id": sale.items[0].id, "quantity": 1}], "credit", "RET-1")

    assert db_session.get(Product, product.id).stock == 9


def test_cannot_return_a_return_or_held_bill(db_session, make_product, cart_of):
    product = make_product(stock=10, price_cents=1000)
    sale = _sell(cart_of((product, 2)))
    ret = return_service.process_return("INV-1", [{"bill_item_id": sale.items[0].id, "quantity": 1}], "cash", "RET-1")
    settlement_service.hold_bill("INV-2", cart_of((product, 1)))

    with pytest.raises(InvalidStateTransitionError):
        return_service.process_return("RET-1", [{"bill_item_id": ret.items[0].id, "quantity": 1}], "cash", "RET-2")
    with pytest.raises(InvalidStateTransitionError):
        return_service.process_return("INV-2", [], "cash", "RET-3")


def test_unknown_bill_and_bad_input(db_session, make_product, cart_of):
    product = make_product(stock=10, price_cents=1000)
    _sell(cart_of((product, 1)))

    with pytest.raises(BillNotFoundError):
        return_service.process_return("INV-404", [], "cash", "RET-1")
    with pytest.raises(ValidationError):
        return_service.process_return("INV-1", [{"bill_item_id": 9999, "quantity": 1}], "cash", "RET-1")
    with pytest.raises(ValidationError):
        return_service.process_return("INV-1", [], "voucher", "RET-1")


def test_generated_return_number(db_session, make_product, cart_of):
    product = make_product(stock=10, price_cents=1000)
    sale = _sell(cart_of((product, 1)))

    ret = return_service.process_return("INV-1", [{"bill_item_id": sale.items[0].id, "quantity": 1}], "cash")

    assert ret.bill_number.startswith("RET-")
    assert ret.bill_number.endswith("-0001")


def test_returnable_items_and_history(db_session, make_product, cart_of):
    product = make_product(stock=10, price_cents=1000)
    sale = _sell(cart_of((product, 3)))
    return_service.process_return("INV-1", [{"bill_item_id": sale.items[0].id, "quantity": 1}], "cash", "RET-1")

    items = return_service.get_returnable_items("INV-1")
    returns = return_service.list_bill_returns("INV-1")

    assert items[0]["returned_quantity"] == 1
    assert items[0]["returnable_quantity"] == 2
    assert [r.bill_number for r in returns] == ["RET-1"]


def test_return_number_already_taken(db_session, make_product, cart_of):
    product = make_product(stock=10, price_cents=1000)
    sale = _sell(cart_of((product, 3)))
    item_id = sale.items[0].id
    return_service.process_return("INV-1", [{"bill_item_id": item_id, "quantity": 1}], "cash", "RET-1")

    with pytest.raises(DuplicateReferenceError):
        return_service.process_return("INV-1", [{"bill_item_id": item_id, "quantity": 1}], "cash", "RET-1")
    with pytest.raises(DuplicateReferenceError):
        return_service.process_return("INV-1", [{"bill_item_id": item_id, "quantity": 1}], "cash", "INV-1")

    assert db_session.query(Bill).count() == 2
    assert db_session.get(Product, product.id).stock == 8


def test_credit_refund_beyond_outstanding_balance_rolls_back(db_session, make_product, make_customer, cart_of):
    product = make_product(stock=10, price_cents=10000)
    customer = make_customer(credit_limit_cents=100000)
    sale = settlement_service.settle_bill(
        "INV-1", cart_of((product, 2), customer_id=customer.id), CreditPayment()
    )
    credit_service.record_credit_payment(customer.id, 20000, "cash")

    with pytest.raises(OverpaymentError):
        return_service.process_return(
            "INV-1", [{"bill_item_id": sale.items[0].id, "quantity": 2}], "credit", "RET-1"
        )

    assert db_session.query(Bill).count() == 1
    assert db_session.get(Product, product.id).stock == 8
    assert db_session.query(StockMovement).filter_by(kind="return_in").count() == 0
    assert db_session.get(Customer, customer.id).current_credit_cents == 0
