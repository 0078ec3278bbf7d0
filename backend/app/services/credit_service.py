# Overview: Credit ledger; atomic customer balance mutations with limit enforcement.

"""
Customer Credit Ledger

WHY: Customers may buy on account up to a credit limit and settle later.
The outstanding balance is denormalized onto Customer.current_credit_cents
for fast limit checks, and every change is recorded as a CreditEntry.

INVARIANTS:
- current_credit_cents == SUM(charge amounts) - SUM(payment amounts)
- 0 <= current_credit_cents <= credit_limit_cents
- An entry and its balance change commit together or not at all.

DESIGN:
- The limit/overpayment check is part of the UPDATE's WHERE clause, so the
  read used for the check and the write are the same statement.
- Composite workflows (settlement, returns) pass commit=False and own the
  transaction.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, update

from ..extensions import db
from ..errors import (
    CreditLimitExceededError,
    CustomerNotFoundError,
    OverpaymentError,
    ValidationError,
)
from ..models import Customer, CreditEntry
from ..models.customers import CREDIT_CHARGE, CREDIT_ENTRY_KINDS, CREDIT_PAYMENT
from ..validation import coerce_int
from app.time_utils import utcnow
from .concurrency import run_with_retry


# How a standalone credit payment was tendered
CREDIT_PAYMENT_METHODS = {"cash", "card"}


@dataclass(frozen=True)
class CreditEntryResult:
    previous_balance: int
    new_balance: int
    entry: CreditEntry

    def to_dict(self) -> dict:
        return {
            "previous_balance_cents": self.previous_balance,
            "new_balance_cents": self.new_balance,
            "entry": self.entry.to_dict(),
        }


def get_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if customer is None:
        raise CustomerNotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def available_credit(customer: Customer | int) -> int:
    """Headroom left under the customer's credit limit, in cents."""
    if not isinstance(customer, Customer):
        customer = get_customer(customer)
    return max(0, customer.credit_limit_cents - customer.current_credit_cents)


def _balance_row(customer_id: int):
    row = (
        db.session.query(Customer.current_credit_cents, Customer.credit_limit_cents)
        .filter(Customer.id == customer_id)
        .first()
    )
    if row is None:
        raise CustomerNotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return int(row[0]), int(row[1])


def _apply_credit_entry_inner(
    *,
    customer_id: int,
    kind: str,
    amount_cents: int,
    reference_type: str | None,
    reference_id: int | None,
    payment_method: str | None,
    note: str | None,
) -> CreditEntryResult:
    """Core credit logic without retry or commit."""
    get_customer(customer_id)

    if kind == CREDIT_CHARGE:
        stmt = (
            update(Customer)
            .where(
                Customer.id == customer_id,
                Customer.current_credit_cents + amount_cents <= Customer.credit_limit_cents,
            )
            .values(current_credit_cents=Customer.current_credit_cents + amount_cents)
            .execution_options(synchronize_session="fetch")
        )
    else:
        stmt = (
            update(Customer)
            .where(
                Customer.id == customer_id,
                Customer.current_credit_cents >= amount_cents,
            )
            .values(current_credit_cents=Customer.current_credit_cents - amount_cents)
            .execution_options(synchronize_session="fetch")
        )

    result = db.session.execute(stmt)
    if not result.rowcount:
        balance, limit = _balance_row(customer_id)
        if kind == CREDIT_CHARGE:
            raise CreditLimitExceededError(
                f"Credit limit exceeded: available {max(0, limit - balance)}, requested {amount_cents}",
                details={
                    "customer_id": customer_id,
                    "credit_limit_cents": limit,
                    "current_credit_cents": balance,
                    "requested_cents": amount_cents,
                    "available_cents": max(0, limit - balance),
                },
            )
        raise OverpaymentError(
            f"Payment of {amount_cents} exceeds outstanding balance {balance}",
            details={
                "customer_id": customer_id,
                "current_credit_cents": balance,
                "requested_cents": amount_cents,
            },
        )

    new_balance, _ = _balance_row(customer_id)
    delta = amount_cents if kind == CREDIT_CHARGE else -amount_cents
    previous_balance = new_balance - delta

    entry = CreditEntry(
        customer_id=customer_id,
        kind=kind,
        amount_cents=amount_cents,
        previous_balance_cents=previous_balance,
        new_balance_cents=new_balance,
        payment_method=payment_method,
        reference_type=reference_type,
        reference_id=reference_id,
        note=note,
        occurred_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()

    return CreditEntryResult(previous_balance=previous_balance, new_balance=new_balance, entry=entry)


def apply_credit_entry(
    customer_id: int,
    kind: str,
    amount_cents: int,
    reference_type: str | None = None,
    reference_id: int | None = None,
    *,
    payment_method: str | None = None,
    note: str | None = None,
    commit: bool = True,
) -> CreditEntryResult:
    """
    Charge or credit a customer's account.

    Raises:
        ValidationError: unknown kind or non-positive amount
        CustomerNotFoundError: unknown customer
        CreditLimitExceededError: charge would exceed credit_limit_cents
        OverpaymentError: payment larger than the outstanding balance
    """
    if kind not in CREDIT_ENTRY_KINDS:
        raise ValidationError(f"Invalid credit entry kind. Must be one of: {', '.join(CREDIT_ENTRY_KINDS)}")
    amount_cents = coerce_int(amount_cents, "amount_cents")
    if amount_cents <= 0:
        raise ValidationError("amount_cents must be positive")

    kwargs = dict(
        customer_id=customer_id,
        kind=kind,
        amount_cents=amount_cents,
        reference_type=reference_type,
        reference_id=reference_id,
        payment_method=payment_method,
        note=note,
    )

    if not commit:
        return _apply_credit_entry_inner(**kwargs)

    def _op():
        res = _apply_credit_entry_inner(**kwargs)
        db.session.commit()
        return res

    return run_with_retry(_op)


def record_credit_payment(
    customer_id: int,
    amount_cents: int,
    payment_method: str = "cash",
    notes: str | None = None,
) -> CreditEntryResult:
    """Customer pays down their outstanding balance at the counter."""
    if payment_method not in CREDIT_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment_method. Must be one of: {', '.join(sorted(CREDIT_PAYMENT_METHODS))}"
        )
    return apply_credit_entry(
        customer_id,
        CREDIT_PAYMENT,
        amount_cents,
        "credit_payment",
        None,
        payment_method=payment_method,
        note=notes,
    )


def list_credit_entries(customer_id: int, *, limit: int = 200) -> list[CreditEntry]:
    get_customer(customer_id)
    return (
        db.session.query(CreditEntry)
        .filter_by(customer_id=customer_id)
        .order_by(CreditEntry.id.desc())
        .limit(limit)
        .all()
    )


def verify_credit_ledger(customer_id: int) -> dict:
    """
    Compare the stored balance with the sum of the customer's entries.
    """
    balance, limit = _balance_row(customer_id)

    charges = (
        db.session.query(func.coalesce(func.sum(CreditEntry.amount_cents), 0))
        .filter(CreditEntry.customer_id == customer_id, CreditEntry.kind == CREDIT_CHARGE)
        .scalar()
    )
    payments = (
        db.session.query(func.coalesce(func.sum(CreditEntry.amount_cents), 0))
        .filter(CreditEntry.customer_id == customer_id, CreditEntry.kind == CREDIT_PAYMENT)
        .scalar()
    )
    ledger_balance = int(charges or 0) - int(payments or 0)

    problems = []
    if ledger_balance != balance:
        problems.append({"problem": "drift", "ledger_balance_cents": ledger_balance, "current_credit_cents": balance})
    if balance > limit:
        problems.append({"problem": "over_limit", "current_credit_cents": balance, "credit_limit_cents": limit})
    if balance < 0:
        problems.append({"problem": "negative", "current_credit_cents": balance})

    return {
        "customer_id": customer_id,
        "current_credit_cents": balance,
        "credit_limit_cents": limit,
        "total_charges_cents": int(charges or 0),
        "total_payments_cents": int(payments or 0),
        "ledger_balance_cents": ledger_balance,
        "consistent": not problems,
        "problems": problems,
    }
