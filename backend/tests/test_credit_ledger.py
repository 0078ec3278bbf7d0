"""
Credit ledger tests.
"""

import pytest

from app.errors import (
    CreditLimitExceededError,
    CustomerNotFoundError,
    OverpaymentError,
    ValidationError,
)
from app.models import CreditEntry, Customer
from app.services import credit_service


def test_charge_and_payment_move_balance(db_session, make_customer):
    customer = make_customer(credit_limit_cents=50000)

    charge = credit_service.apply_credit_entry(customer.id, "charge", 20000, "bill", 7)
    payment = credit_service.record_credit_payment(customer.id, 5000, "cash")

    assert (charge.previous_balance, charge.new_balance) == (0, 20000)
    assert (payment.previous_balance, payment.new_balance) == (20000, 15000)
    assert payment.entry.payment_method == "cash"
    assert db_session.get(Customer, customer.id).current_credit_cents == 15000


def test_charge_over_limit_is_rejected(db_session, make_customer):
    customer = make_customer(credit_limit_cents=40000)
    credit_service.apply_credit_entry(customer.id, "charge", 20000)

    with pytest.raises(CreditLimitExceededError) as exc:
        credit_service.apply_credit_entry(customer.id, "charge", 24300)

    assert exc.value.details["available_cents"] == 20000
    assert db_session.get(Customer, customer.id).current_credit_cents == 20000
    assert db_session.query(CreditEntry).count() == 1


def test_charge_up_to_limit_is_allowed(db_session, make_customer):
    customer = make_customer(credit_limit_cents=10000)

    res = credit_service.apply_credit_entry(customer.id, "charge", 10000)

    assert res.new_balance == 10000
    assert credit_service.available_credit(customer.id) == 0


def test_overpayment_is_rejected(db_session, make_customer):
    customer = make_customer()
    credit_service.apply_credit_entry(customer.id, "charge", 3000)

    with pytest.raises(OverpaymentError):
        credit_service.record_credit_payment(customer.id, 3001)

    assert db_session.get(Customer, customer.id).current_credit_cents == 3000


@pytest.mark.parametrize("amount", [0, -100])
def test_amount_must_be_positive(db_session, make_customer, amount):
    customer = make_customer()

    with pytest.raises(ValidationError):
        credit_service.apply_credit_entry(customer.id, "charge", amount)


def test_bad_payment_method(db_session, make_customer):
    customer = make_customer()

    with pytest.raises(ValidationError):
        credit_service.record_credit_payment(customer.id, 100, "cheque")


def test_unknown_customer(db_session):
    with pytest.raises(CustomerNotFoundError):
        credit_service.apply_credit_entry(404, "charge", 100)


def test_balance_equals_charges_minus_payments(db_session, make_customer):
    customer = make_customer(credit_limit_cents=100000)
    for kind, amount in [("charge", 30000), ("payment", 10000), ("charge", 5000), ("payment", 25000)]:
        credit_service.apply_credit_entry(customer.id, kind, amount)

    report = credit_service.verify_credit_ledger(customer.id)

    assert report["consistent"] is True
    assert report["total_charges_cents"] == 35000
    assert report["total_payments_cents"] == 35000
    assert report["current_credit_cents"] == 0


def test_list_entries_newest_first(db_session, make_customer):
    customer = make_customer()
    credit_service.apply_credit_entry(customer.id, "charge", 1000)
    credit_service.apply_credit_entry(customer.id, "payment", 400)

    entries = credit_service.list_credit_entries(customer.id)

    assert [e.kind for e in entries] == ["payment", "charge"]
    assert entries[0].previous_balance_cents == entries[1].new_balance_cents
