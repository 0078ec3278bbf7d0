"""
Bill Settlement Service

WHY: Turns a cart plus a payment instruction into a committed sale. This is
the only place where a bill, its stock movements and its credit charge are
written, and they are written together.

LIFECYCLE:
    draft (in-memory cart) -> held       hold_bill()
    draft / held           -> completed  settle_bill()
    completed              -> refunded   via a new return bill (return_service)

IMMUTABLE: Completed bills are never edited. Corrections are returns.

DESIGN:
- Payment instructions are a closed set of frozen dataclasses; each kind is
  validated by its own branch before any write happens.
- Settlement is one transaction: bill + items + split legs, one `sale`
  stock movement per line, an optional credit charge, loyalty points.
  Any failure rolls all of it back.
- Re-settling a bill number that is already completed with the same content
  returns the stored bill and touches no ledger (safe client retries).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..errors import (
    BillNotFoundError,
    DuplicateReferenceError,
    InsufficientPaymentError,
    NoCustomerSelectedError,
    ValidationError,
)
from ..models import Bill, BillItem, BillPayment, Customer
from ..models.customers import CREDIT_CHARGE
from ..models.inventory import MOVEMENT_SALE
from ..models.sales import (
    BILL_STATUS_COMPLETED,
    BILL_STATUS_HELD,
    PAYMENT_CARD,
    PAYMENT_CASH,
    PAYMENT_CREDIT,
    PAYMENT_SPLIT,
)
from ..validation import coerce_int, require_amount_cents, require_list
from app.time_utils import utcnow
from .concurrency import run_with_retry
from .credit_service import apply_credit_entry, get_customer
from .document_service import next_document_number
from .inventory_service import apply_stock_movement, get_product
from .pricing_service import (
    Cart,
    CartLine,
    CartTotals,
    calculate_totals,
    describe_change as _describe_change,
    line_discount,
    line_subtotal,
)


SPLIT_LEG_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_CREDIT)


# =============================================================================
# PAYMENT INSTRUCTIONS
# =============================================================================

@dataclass(frozen=True)
class CashPayment:
    paid_cents: int


@dataclass(frozen=True)
class CardPayment:
    # None means the card is charged exactly the bill total
    paid_cents: int | None = None
    reference: str | None = None


@dataclass(frozen=True)
class CreditPayment:
    pass


@dataclass(frozen=True)
class PaymentLeg:
    method: str
    amount_cents: int


@dataclass(frozen=True)
class SplitPayment:
    legs: tuple[PaymentLeg, ...]


PaymentInstruction = Union[CashPayment, CardPayment, CreditPayment, SplitPayment]


@dataclass(frozen=True)
class PaymentDecision:
    method: str
    paid_cents: int
    change_cents: int
    credit_cents: int
    legs: tuple[PaymentLeg, ...] = ()


def parse_payment_instruction(payload: dict) -> PaymentInstruction:
    """
    Build a payment instruction from JSON.

    {"method": "cash", "paid_amount_cents": 30000}
    {"method": "card", "paid_amount_cents": 24300, "reference": "AUTH123"}
    {"method": "credit"}
    {"method": "split", "splits": [{"method": "cash", "amount_cents": 10000}, ...]}
    """
    if not isinstance(payload, dict):
        raise ValidationError("payment must be an object")

    method = payload.get("method")
    if method == PAYMENT_CASH:
        return CashPayment(paid_cents=require_amount_cents(payload, "paid_amount_cents"))
    if method == PAYMENT_CARD:
        reference = payload.get("reference")
        return CardPayment(
            paid_cents=(
                require_amount_cents(payload, "paid_amount_cents")
                if payload.get("paid_amount_cents") is not None else None
            ),
            reference=str(reference) if reference else None,
        )
    if method == PAYMENT_CREDIT:
        return CreditPayment()
    if method == PAYMENT_SPLIT:
        legs = []
        for raw in require_list(payload, "splits"):
            if not isinstance(raw, dict):
                raise ValidationError("split leg must be an object")
            leg_method = raw.get("method")
            if leg_method not in SPLIT_LEG_METHODS:
                raise ValidationError(
                    f"Invalid split method. Must be one of: {', '.join(SPLIT_LEG_METHODS)}"
                )
            legs.append(PaymentLeg(method=leg_method, amount_cents=require_amount_cents(raw, "amount_cents")))
        return SplitPayment(legs=tuple(legs))

    raise ValidationError(
        f"Invalid payment method. Must be one of: {', '.join((PAYMENT_CASH, PAYMENT_CARD, PAYMENT_CREDIT, PAYMENT_SPLIT))}"
    )


def decide_payment(payment: PaymentInstruction, total_cents: int, customer_id: int | None) -> PaymentDecision:
    """
    Validate a payment instruction against a bill total.

    Pure: no ledger is touched here. The credit part of the decision is
    charged later, inside the settlement transaction.

    Raises:
        InsufficientPaymentError: tendered amount below total
        NoCustomerSelectedError: credit (or a credit leg) without a customer
        ValidationError: malformed split
    """
    if isinstance(payment, CashPayment):
        if payment.paid_cents < total_cents:
            raise InsufficientPaymentError(
                "Paid amount is less than bill total",
                details={"total_cents": total_cents, "paid_cents": payment.paid_cents,
                         "shortfall_cents": total_cents - payment.paid_cents},
            )
        return PaymentDecision(
            method=PAYMENT_CASH,
            paid_cents=payment.paid_cents,
            change_cents=payment.paid_cents - total_cents,
            credit_cents=0,
        )

    if isinstance(payment, CardPayment):
        paid = total_cents if payment.paid_cents is None else payment.paid_cents
        if paid < total_cents:
            raise InsufficientPaymentError(
                "Paid amount is less than bill total",
                details={"total_cents": total_cents, "paid_cents": paid,
                         "shortfall_cents": total_cents - paid},
            )
        return PaymentDecision(
            method=PAYMENT_CARD,
            paid_cents=paid,
            change_cents=paid - total_cents,
            credit_cents=0,
        )

    if isinstance(payment, CreditPayment):
        if customer_id is None:
            raise NoCustomerSelectedError("Select a customer for credit payment")
        return PaymentDecision(
            method=PAYMENT_CREDIT,
            paid_cents=0,
            change_cents=0,
            credit_cents=total_cents,
        )

    if isinstance(payment, SplitPayment):
        legs = tuple(leg for leg in payment.legs if leg.amount_cents > 0)
        if not legs:
            raise ValidationError("Split payment needs at least one non-zero leg")

        tendered = sum(leg.amount_cents for leg in legs)
        if tendered < total_cents:
            raise InsufficientPaymentError(
                "Split payments total is less than bill total",
                details={"total_cents": total_cents, "paid_cents": tendered,
                         "shortfall_cents": total_cents - tendered},
            )

        credit = sum(leg.amount_cents for leg in legs if leg.method == PAYMENT_CREDIT)
        non_cash = sum(leg.amount_cents for leg in legs if leg.method != PAYMENT_CASH)
        if credit and customer_id is None:
            raise NoCustomerSelectedError("Select a customer for the credit part of a split payment")
        if non_cash > total_cents:
            raise ValidationError(
                "Card and credit legs cannot exceed the bill total",
                details={"total_cents": total_cents, "non_cash_cents": non_cash},
            )

        return PaymentDecision(
            method=PAYMENT_SPLIT,
            paid_cents=tendered - credit,
            change_cents=tendered - total_cents,
            credit_cents=credit,
            legs=legs,
        )

    raise ValidationError(f"Unsupported payment instruction: {type(payment).__name__}")


# =============================================================================
# INTERNAL HELPERS
# =============================================================================

def _config(key: str, default):
    return current_app.config.get(key, default)


def next_bill_number() -> str:
    """Allocate a fresh bill number for a new cart (INV-YYYYMMDD-NNNN)."""
    return next_document_number(document_type="BILL", prefix=_config("BILL_NUMBER_PREFIX", "INV"))


def _find_bill(bill_number: str) -> Bill | None:
    return db.session.query(Bill).filter_by(bill_number=bill_number).first()


def _get_held_bill(bill_id: int) -> Bill:
    bill = db.session.query(Bill).filter_by(id=bill_id, status=BILL_STATUS_HELD).first()
    if bill is None:
        raise BillNotFoundError(f"Held bill {bill_id} not found", details={"bill_id": bill_id})
    return bill


def _snapshot_names(cart: Cart) -> list[str]:
    names = []
    for line in cart.lines:
        product = get_product(line.product_id)
        names.append(line.product_name or product.name)
    return names


def _write_bill(
    *,
    bill_number: str,
    cart: Cart,
    totals: CartTotals,
    status: str,
    decision: PaymentDecision | None,
) -> Bill:
    names = _snapshot_names(cart)

    bill = Bill(
        bill_number=bill_number,
        customer_id=cart.customer_id,
        subtotal_cents=totals.subtotal_cents,
        item_discount_cents=totals.item_discount_cents,
        order_discount_cents=totals.order_discount_cents,
        order_discount_type=cart.order_discount_type,
        order_discount_value=cart.order_discount_value,
        tax_cents=totals.tax_cents,
        total_cents=totals.total_cents,
        payment_method=decision.method if decision else PAYMENT_CASH,
        paid_amount_cents=decision.paid_cents if decision else 0,
        change_amount_cents=decision.change_cents if decision else 0,
        credit_amount_cents=decision.credit_cents if decision else 0,
        status=status,
        notes=cart.notes,
        created_at=utcnow(),
    )
    db.session.add(bill)
    db.session.flush()

    for line, name in zip(cart.lines, names):
        db.session.add(BillItem(
            bill_id=bill.id,
            product_id=line.product_id,
            product_name=name,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            discount_cents=line_discount(line),
            subtotal_cents=line_subtotal(line),
        ))

    if decision and decision.legs:
        for leg in decision.legs:
            db.session.add(BillPayment(bill_id=bill.id, method=leg.method, amount_cents=leg.amount_cents))

    db.session.flush()
    return bill


def _same_sale(bill: Bill, cart: Cart, totals: CartTotals, decision: PaymentDecision) -> bool:
    stored = sorted((i.product_id, i.quantity, i.unit_price_cents) for i in bill.items)
    incoming = sorted((l.product_id, l.quantity, l.unit_price_cents) for l in cart.lines)
    return (
        bill.total_cents == totals.total_cents
        and bill.customer_id == cart.customer_id
        and bill.payment_method == decision.method
        and stored == incoming
    )


def _award_loyalty_points(customer_id: int, total_cents: int, spend_per_point_cents: int) -> int:
    if spend_per_point_cents <= 0 or total_cents <= 0:
        return 0
    points = total_cents // spend_per_point_cents
    if points:
        db.session.execute(
            update(Customer)
            .where(Customer.id == customer_id)
            .values(loyalty_points=Customer.loyalty_points + points)
            .execution_options(synchronize_session="fetch")
        )
    return points


# =============================================================================
# HELD BILLS
# =============================================================================

def hold_bill(bill_number: str, cart: Cart, *, held_bill_id: int | None = None) -> Bill:
    """
    Park a cart as a held bill.

    Stock and credit are not touched. Passing held_bill_id re-holds a
    resumed bill: the old held bill is replaced in the same transaction.

    Raises:
        DuplicateReferenceError: bill_number already used
        BillNotFoundError: held_bill_id is not a held bill
    """
    if not bill_number:
        raise ValidationError("bill_number required")
    totals = calculate_totals(cart)

    def _op():
        if held_bill_id is not None:
            db.session.delete(_get_held_bill(held_bill_id))
            db.session.flush()

        if _find_bill(bill_number) is not None:
            raise DuplicateReferenceError(
                f"Bill number {bill_number} already exists",
                details={"bill_number": bill_number},
            )
        if cart.customer_id is not None:
            get_customer(cart.customer_id)

        bill = _write_bill(
            bill_number=bill_number,
            cart=cart,
            totals=totals,
            status=BILL_STATUS_HELD,
            decision=None,
        )
        db.session.commit()
        return bill

    return run_with_retry(_op)


def list_held_bills() -> list[Bill]:
    return (
        db.session.query(Bill)
        .filter_by(status=BILL_STATUS_HELD)
        .order_by(Bill.created_at.desc(), Bill.id.desc())
        .all()
    )


def resume_held_bill(bill_id: int) -> tuple[Bill, Cart]:
    """
    Reload a held bill into a cart with its original prices.

    The held bill stays in place until it is settled, re-held or deleted.
    """
    bill = _get_held_bill(bill_id)
    cart = Cart(
        lines=tuple(
            CartLine(
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price_cents=item.unit_price_cents,
                discount_cents=item.discount_cents,
                product_name=item.product_name,
            )
            for item in bill.items
        ),
        customer_id=bill.customer_id,
        order_discount_type=bill.order_discount_type,
        order_discount_value=bill.order_discount_value,
        tax_cents=bill.tax_cents,
        notes=bill.notes,
    )
    return bill, cart


def delete_held_bill(bill_id: int) -> None:
    def _op():
        db.session.delete(_get_held_bill(bill_id))
        db.session.commit()

    run_with_retry(_op)


# =============================================================================
# SETTLEMENT
# =============================================================================

def settle_bill(
    bill_number: str,
    cart: Cart,
    payment: PaymentInstruction,
    *,
    held_bill_id: int | None = None,
    tax_rate_bps: int | None = None,
    loyalty_spend_per_point_cents: int | None = None,
) -> Bill:
    """
    Commit a sale.

    Steps (one transaction):
    1. Validate payment; a credit part is charged through the credit ledger
    2. One `sale` stock movement per line
    3. Persist the completed bill, its items and split legs
    4. Return the committed bill

    Raises:
        InsufficientPaymentError, NoCustomerSelectedError, ValidationError
        CreditLimitExceededError: credit part over the customer's limit
        InsufficientStockError: any line short on stock
        DuplicateReferenceError: bill_number used by a different bill
        ProductNotFoundError, CustomerNotFoundError, BillNotFoundError
    """
    if not bill_number:
        raise ValidationError("bill_number required")
    if not cart.lines:
        raise ValidationError("cart has no items")

    totals = calculate_totals(cart, tax_rate_bps=tax_rate_bps)
    decision = decide_payment(payment, totals.total_cents, cart.customer_id)
    if loyalty_spend_per_point_cents is None:
        loyalty_spend_per_point_cents = _config("LOYALTY_SPEND_PER_POINT_CENTS", 0)

    def _op():
        existing = _find_bill(bill_number)
        if existing is not None:
            if existing.status == BILL_STATUS_COMPLETED and _same_sale(existing, cart, totals, decision):
                return existing
            if not (existing.status == BILL_STATUS_HELD and existing.id == held_bill_id):
                raise DuplicateReferenceError(
                    f"Bill number {bill_number} already exists",
                    details={"bill_number": bill_number, "status": existing.status},
                )

        if held_bill_id is not None:
            db.session.delete(_get_held_bill(held_bill_id))
            db.session.flush()

        if cart.customer_id is not None:
            get_customer(cart.customer_id)

        bill = _write_bill(
            bill_number=bill_number,
            cart=cart,
            totals=totals,
            status=BILL_STATUS_COMPLETED,
            decision=decision,
        )
        bill.completed_at = utcnow()

        if decision.credit_cents > 0:
            apply_credit_entry(
                cart.customer_id,
                CREDIT_CHARGE,
                decision.credit_cents,
                "bill",
                bill.id,
                note=f"Bill {bill_number}",
                commit=False,
            )

        for line in cart.lines:
            apply_stock_movement(
                line.product_id,
                MOVEMENT_SALE,
                -line.quantity,
                "bill",
                bill.id,
                note=f"Bill {bill_number}",
                commit=False,
            )

        if cart.customer_id is not None:
            _award_loyalty_points(cart.customer_id, totals.total_cents, loyalty_spend_per_point_cents)

        db.session.commit()
        return bill

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_bill_by_number(bill_number: str) -> Bill:
    bill = _find_bill(bill_number)
    if bill is None:
        raise BillNotFoundError(f"Bill {bill_number} not found", details={"bill_number": bill_number})
    return bill


def list_bills(
    *,
    status: str | None = None,
    customer_id: int | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Bill], int]:
    """
    List bills, newest first.

    Returns:
        Tuple of (list of bills, total count)
    """
    query = db.session.query(Bill)

    if status:
        query = query.filter(Bill.status == status)
    if customer_id:
        query = query.filter(Bill.customer_id == customer_id)
    if from_date:
        query = query.filter(Bill.created_at >= from_date)
    if to_date:
        query = query.filter(Bill.created_at <= to_date)

    total = query.count()

    query = query.order_by(Bill.created_at.desc(), Bill.id.desc())
    query = query.offset(offset).limit(limit)

    return query.all(), total


def describe_change(bill: Bill, *, denominations, rounding_step_cents: int = 1) -> dict:
    """Change due and note breakdown for the receipt renderer."""
    data = _describe_change(
        bill.change_amount_cents,
        denominations=denominations,
        rounding_step_cents=rounding_step_cents,
    )
    data["bill_number"] = bill.bill_number
    return data


def coerce_bill_id(value) -> int | None:
    if value is None:
        return None
    return coerce_int(value, "held_bill_id")
