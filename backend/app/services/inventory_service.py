# Overview: Stock ledger; atomic, audited stock mutations per product.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import update

from ..extensions import db
from ..errors import (
    InsufficientStockError,
    ProductNotFoundError,
    ValidationError,
)
from ..models import Product, StockMovement
from ..models.inventory import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_KINDS,
    MOVEMENT_PURCHASE,
    MOVEMENT_RETURN_IN,
    MOVEMENT_RETURN_OUT,
    MOVEMENT_SALE,
)
from ..validation import coerce_int
from app.time_utils import utcnow, to_datetime
from .concurrency import run_with_retry
"""
Stock Ledger Invariants (authoritative)

- Product.stock is a running count; StockMovement is its append-only audit log.
- Every change to Product.stock writes exactly one StockMovement in the same
  DB transaction; neither is ever visible without the other.
- new_stock = previous_stock + quantity for every movement, and the latest
  movement's new_stock equals Product.stock.
- Stock never goes negative. The check and the write are one conditional
  UPDATE, so two sales racing for the last unit serialize on the row.

Sign rules:
- sale, return_out: quantity < 0
- purchase, return_in: quantity > 0
- adjustment: any non-zero quantity
"""


NEGATIVE_KINDS = {MOVEMENT_SALE, MOVEMENT_RETURN_OUT}
POSITIVE_KINDS = {MOVEMENT_PURCHASE, MOVEMENT_RETURN_IN}


@dataclass(frozen=True)
class StockMovementResult:
    previous_stock: int
    new_stock: int
    movement: StockMovement

    def to_dict(self) -> dict:
        return {
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "movement": self.movement.to_dict(),
        }


def _parse_occurred_at(value) -> datetime:
    if value is None:
        return utcnow()
    try:
        dt = to_datetime(value)
    except ValueError:
        raise ValidationError("invalid occurred_at")
    if dt is None:
        raise ValidationError("invalid occurred_at")
    return dt


def _validate_movement(kind: str, quantity) -> int:
    if kind not in MOVEMENT_KINDS:
        raise ValidationError(
            f"Invalid movement kind. Must be one of: {', '.join(MOVEMENT_KINDS)}"
        )
    quantity = coerce_int(quantity, "quantity")
    if quantity == 0:
        raise ValidationError("quantity must be non-zero")
    if kind in NEGATIVE_KINDS and quantity > 0:
        raise ValidationError(f"{kind} movements must have a negative quantity")
    if kind in POSITIVE_KINDS and quantity < 0:
        raise ValidationError(f"{kind} movements must have a positive quantity")
    return quantity


def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise ProductNotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def current_stock(product_id: int) -> int:
    """Read Product.stock straight from the database, bypassing the identity map."""
    value = db.session.query(Product.stock).filter(Product.id == product_id).scalar()
    if value is None:
        raise ProductNotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return int(value)


def _apply_stock_movement_inner(
    *,
    product_id: int,
    kind: str,
    quantity: int,
    reference_type: str | None,
    reference_id: int | None,
    note: str | None,
    occurred_dt: datetime,
) -> StockMovementResult:
    """Core movement logic without retry or commit.

    Called by the public apply_stock_movement() and by the settlement,
    receiving and return workflows inside their own transactions.
    """
    product = get_product(product_id)
    if kind == MOVEMENT_SALE and not product.is_active:
        raise ValidationError(f"Product {product.sku} is inactive", details={"product_id": product_id})

    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.stock + quantity >= 0)
        .values(stock=Product.stock + quantity)
        .execution_options(synchronize_session="fetch")
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        on_hand = current_stock(product_id)
        raise InsufficientStockError(
            f"Insufficient stock for {product.sku}: requested {abs(quantity)}, on hand {on_hand}",
            details={
                "product_id": product_id,
                "requested": abs(quantity),
                "on_hand": on_hand,
            },
        )

    new_stock = current_stock(product_id)
    previous_stock = new_stock - quantity

    movement = StockMovement(
        product_id=product_id,
        kind=kind,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        reference_type=reference_type,
        reference_id=reference_id,
        note=note,
        occurred_at=occurred_dt,
    )
    db.session.add(movement)
    db.session.flush()

    return StockMovementResult(previous_stock=previous_stock, new_stock=new_stock, movement=movement)


def apply_stock_movement(
    product_id: int,
    kind: str,
    quantity: int,
    reference_type: str | None = None,
    reference_id: int | None = None,
    *,
    note: str | None = None,
    occurred_at=None,
    commit: bool = True,
) -> StockMovementResult:
    """
    Apply one stock movement and record it in the ledger.

    With commit=False the movement joins the caller's open transaction and
    the caller owns commit/rollback.

    Raises:
        ValidationError: bad kind, zero quantity, wrong sign, inactive product on sale
        ProductNotFoundError: unknown product
        InsufficientStockError: the movement would make stock negative
    """
    quantity = _validate_movement(kind, quantity)
    occurred_dt = _parse_occurred_at(occurred_at)

    if not commit:
        return _apply_stock_movement_inner(
            product_id=product_id,
            kind=kind,
            quantity=quantity,
            reference_type=reference_type,
            reference_id=reference_id,
            note=note,
            occurred_dt=occurred_dt,
        )

    def _op():
        res = _apply_stock_movement_inner(
            product_id=product_id,
            kind=kind,
            quantity=quantity,
            reference_type=reference_type,
            reference_id=reference_id,
            note=note,
            occurred_dt=occurred_dt,
        )
        db.session.commit()
        return res

    return run_with_retry(_op)


def adjust_stock(
    product_id: int,
    quantity_delta: int,
    reason: str | None = None,
    *,
    occurred_at=None,
) -> StockMovementResult:
    """
    Manual stock correction (count differences, damage, found goods).

    Adjustments can go either way but, like every movement, may not take
    stock below zero.
    """
    return apply_stock_movement(
        product_id,
        MOVEMENT_ADJUSTMENT,
        quantity_delta,
        "adjustment",
        None,
        note=reason,
        occurred_at=occurred_at,
    )


def return_to_supplier(
    product_id: int,
    quantity: int,
    *,
    purchase_order_id: int | None = None,
    reason: str | None = None,
) -> StockMovementResult:
    """Send goods back to a supplier (return_out movement)."""
    quantity = coerce_int(quantity, "quantity")
    if quantity <= 0:
        raise ValidationError("quantity must be positive")
    return apply_stock_movement(
        product_id,
        MOVEMENT_RETURN_OUT,
        -quantity,
        "purchase" if purchase_order_id else "supplier_return",
        purchase_order_id,
        note=reason,
    )


def list_stock_movements(product_id: int, *, limit: int = 200) -> list[StockMovement]:
    get_product(product_id)
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def get_low_stock_products() -> list[Product]:
    """Active products at or below their reorder level."""
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock <= Product.reorder_level)
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )


def verify_stock_ledger(product_id: int) -> dict:
    """
    Audit the movement chain of one product against its running count.

    Returns a report; `consistent` is False when any link of the chain is
    broken or the last movement disagrees with Product.stock.
    """
    stock = current_stock(product_id)
    movements = (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )

    problems = []
    expected_previous = None
    for mv in movements:
        if mv.new_stock != mv.previous_stock + mv.quantity:
            problems.append({
                "movement_id": mv.id,
                "problem": "arithmetic",
                "expected_new_stock": mv.previous_stock + mv.quantity,
                "actual_new_stock": mv.new_stock,
            })
        if expected_previous is not None and mv.previous_stock != expected_previous:
            problems.append({
                "movement_id": mv.id,
                "problem": "chain",
                "expected_previous_stock": expected_previous,
                "actual_previous_stock": mv.previous_stock,
            })
        if mv.new_stock < 0:
            problems.append({"movement_id": mv.id, "problem": "negative", "new_stock": mv.new_stock})
        expected_previous = mv.new_stock

    if movements and movements[-1].new_stock != stock:
        problems.append({
            "movement_id": movements[-1].id,
            "problem": "drift",
            "ledger_stock": movements[-1].new_stock,
            "product_stock": stock,
        })

    opening = movements[0].previous_stock if movements else stock
    return {
        "product_id": product_id,
        "stock": stock,
        "opening_stock": opening,
        "movement_total": sum(mv.quantity for mv in movements),
        "movement_count": len(movements),
        "consistent": not problems,
        "problems": problems,
    }
