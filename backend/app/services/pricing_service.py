# Overview: Pure cart arithmetic; line and order discounts, tax, totals, change breakdown.

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from ..errors import ValidationError
from ..models.sales import DISCOUNT_AMOUNT, DISCOUNT_PERCENTAGE
from ..validation import coerce_decimal, coerce_int, optional_int, require_amount_cents, require_int, require_list
"""
Cart pricing rules (authoritative)

All money is integer cents; percentages are basis points (1% = 100 bps).
Nothing here touches the database.

- gross(line)       = unit_price * quantity
- line discount     clamped to [0, gross(line)]
- line subtotal     = gross(line) - line discount
- cart subtotal     = SUM gross(line)                (pre-discount)
- order discount    percentage: (subtotal - line discounts) * bps / 10000, half-up
                    amount:     min(amount, subtotal - line discounts)
- total             = max(0, subtotal - line discounts - order discount + tax)
"""


BPS_DENOMINATOR = 10_000
DISCOUNT_TYPES = (DISCOUNT_AMOUNT, DISCOUNT_PERCENTAGE)


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    unit_price_cents: int
    discount_cents: int = 0
    product_name: str | None = None


@dataclass(frozen=True)
class Cart:
    lines: tuple[CartLine, ...]
    customer_id: int | None = None
    # cents for "amount", basis points for "percentage"
    order_discount_type: str = DISCOUNT_AMOUNT
    order_discount_value: int = 0
    tax_cents: int = 0
    notes: str | None = None


@dataclass(frozen=True)
class CartTotals:
    subtotal_cents: int
    item_discount_cents: int
    order_discount_cents: int
    tax_cents: int
    total_cents: int
    line_subtotals: tuple[int, ...] = field(default=())

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "item_discount_cents": self.item_discount_cents,
            "order_discount_cents": self.order_discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
        }


def round_half_up_div(numerator: int, denominator: int) -> int:
    """Integer division rounded half away from zero."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    sign = -1 if numerator < 0 else 1
    return sign * ((2 * abs(numerator) + denominator) // (2 * denominator))


def percent_to_bps(percent) -> int:
    """12.5 -> 1250"""
    value = coerce_decimal(percent, "percent")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# =============================================================================
# LINE ARITHMETIC
# =============================================================================

def line_gross(line: CartLine) -> int:
    return line.unit_price_cents * line.quantity


def line_discount(line: CartLine) -> int:
    return min(max(line.discount_cents, 0), max(line_gross(line), 0))


def line_subtotal(line: CartLine) -> int:
    return line_gross(line) - line_discount(line)


# =============================================================================
# CART ARITHMETIC
# =============================================================================

def cart_subtotal(lines) -> int:
    return sum(line_gross(line) for line in lines)


def item_discount_total(lines) -> int:
    return sum(line_discount(line) for line in lines)


def order_discount_amount(base_cents: int, discount_type: str, value: int) -> int:
    """
    Order-level discount against the line-discounted subtotal.

    Percentages above 100% are capped; amounts never exceed the base.
    """
    base_cents = max(base_cents, 0)
    if discount_type == DISCOUNT_PERCENTAGE:
        bps = min(max(value, 0), BPS_DENOMINATOR)
        return round_half_up_div(base_cents * bps, BPS_DENOMINATOR)
    if discount_type == DISCOUNT_AMOUNT:
        return min(max(value, 0), base_cents)
    raise ValidationError(f"Invalid discount type. Must be one of: {', '.join(DISCOUNT_TYPES)}")


def calculate_tax(taxable_cents: int, rate_bps: int) -> int:
    if rate_bps <= 0 or taxable_cents <= 0:
        return 0
    return round_half_up_div(taxable_cents * rate_bps, BPS_DENOMINATOR)


def calculate_totals(cart: Cart, *, tax_rate_bps: int | None = None) -> CartTotals:
    """
    Compute bill header amounts for a cart.

    Tax is taken from the cart unless a rate is given, in which case it is
    computed on the amount left after all discounts.
    """
    subtotal = cart_subtotal(cart.lines)
    item_discounts = item_discount_total(cart.lines)
    order_discount = order_discount_amount(
        subtotal - item_discounts,
        cart.order_discount_type,
        cart.order_discount_value,
    )
    if tax_rate_bps is not None:
        tax = calculate_tax(subtotal - item_discounts - order_discount, tax_rate_bps)
    else:
        tax = max(cart.tax_cents, 0)
    total = max(0, subtotal - item_discounts - order_discount + tax)

    return CartTotals(
        subtotal_cents=subtotal,
        item_discount_cents=item_discounts,
        order_discount_cents=order_discount,
        tax_cents=tax,
        total_cents=total,
        line_subtotals=tuple(line_subtotal(line) for line in cart.lines),
    )


# =============================================================================
# CHANGE (presentation only, never persisted)
# =============================================================================

def round_change(amount_cents: int, step_cents: int) -> int:
    """Round change due to the nearest step (half-up)."""
    if step_cents <= 1 or amount_cents <= 0:
        return max(amount_cents, 0)
    return round_half_up_div(amount_cents, step_cents) * step_cents


def denomination_breakdown(amount_cents: int, denominations) -> list[tuple[int, int]]:
    """
    Greedy largest-first split of an amount into notes and coins.

    Returns [(denomination_cents, count), ...] for denominations used.
    Anything smaller than the smallest denomination is left out.
    """
    remaining = max(amount_cents, 0)
    result = []
    for denom in sorted(set(denominations), reverse=True):
        if denom <= 0:
            continue
        count, remaining = divmod(remaining, denom)
        if count:
            result.append((denom, count))
    return result


def describe_change(change_cents: int, *, denominations, rounding_step_cents: int = 1) -> dict:
    rounded = round_change(change_cents, rounding_step_cents)
    breakdown = denomination_breakdown(rounded, denominations)
    given = sum(denom * count for denom, count in breakdown)
    return {
        "change_cents": change_cents,
        "rounded_change_cents": rounded,
        "breakdown": [{"denomination_cents": d, "count": c} for d, c in breakdown],
        "remainder_cents": rounded - given,
    }


# =============================================================================
# INPUT NORMALIZATION
# =============================================================================

def normalize_line(payload: dict) -> CartLine:
    if not isinstance(payload, dict):
        raise ValidationError("cart line must be an object")
    product_id = require_int(payload, "product_id", minimum=1)
    quantity = require_int(payload, "quantity", minimum=1)
    unit_price = require_amount_cents(payload, "unit_price_cents")
    discount = optional_int(payload, "discount_cents", 0)
    name = payload.get("product_name")

    line = CartLine(
        product_id=product_id,
        quantity=quantity,
        unit_price_cents=unit_price,
        discount_cents=discount,
        product_name=str(name).strip() if name else None,
    )
    # Persist the clamped value so the stored line satisfies 0 <= discount <= gross
    return CartLine(
        product_id=line.product_id,
        quantity=line.quantity,
        unit_price_cents=line.unit_price_cents,
        discount_cents=line_discount(line),
        product_name=line.product_name,
    )


def normalize_cart(payload: dict) -> Cart:
    """
    Build a Cart from JSON.

    {
        "items": [{"product_id": 1, "quantity": 3, "unit_price_cents": 10000, "discount_cents": 3000}],
        "customer_id": 5,                       (optional)
        "order_discount_type": "percentage",    (amount | percentage)
        "order_discount_value": 10,             (cents for amount, percent for percentage)
        "tax_cents": 0,                         (optional)
        "notes": "..."                          (optional)
    }
    """
    if not isinstance(payload, dict):
        raise ValidationError("cart must be an object")

    raw_lines = require_list(payload, "items")
    if not raw_lines:
        raise ValidationError("cart has no items")
    lines = tuple(normalize_line(item) for item in raw_lines)

    discount_type = payload.get("order_discount_type") or DISCOUNT_AMOUNT
    if discount_type not in DISCOUNT_TYPES:
        raise ValidationError(f"Invalid order_discount_type. Must be one of: {', '.join(DISCOUNT_TYPES)}")

    raw_value = payload.get("order_discount_value")
    if raw_value is None:
        discount_value = 0
    elif discount_type == DISCOUNT_PERCENTAGE:
        discount_value = percent_to_bps(raw_value)
    else:
        discount_value = coerce_int(raw_value, "order_discount_value")
    if discount_value < 0:
        raise ValidationError("order_discount_value cannot be negative")

    customer_id = optional_int(payload, "customer_id", minimum=1)
    tax_cents = optional_int(payload, "tax_cents", 0, minimum=0)
    notes = payload.get("notes")

    return Cart(
        lines=lines,
        customer_id=customer_id,
        order_discount_type=discount_type,
        order_discount_value=discount_value,
        tax_cents=tax_cents,
        notes=str(notes).strip()[:255] if notes else None,
    )


def cart_to_dict(cart: Cart) -> dict:
    value = cart.order_discount_value
    if cart.order_discount_type == DISCOUNT_PERCENTAGE:
        value = float(Decimal(value) / 100)
    return {
        "items": [
            {
                "product_id": line.product_id,
                "product_name": line.product_name,
                "quantity": line.quantity,
                "unit_price_cents": line.unit_price_cents,
                "discount_cents": line.discount_cents,
                "subtotal_cents": line_subtotal(line),
            }
            for line in cart.lines
        ],
        "customer_id": cart.customer_id,
        "order_discount_type": cart.order_discount_type,
        "order_discount_value": value,
        "tax_cents": cart.tax_cents,
        "notes": cart.notes,
    }
