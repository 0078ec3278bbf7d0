from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


BILL_STATUS_HELD = "held"
BILL_STATUS_COMPLETED = "completed"
BILL_STATUS_REFUNDED = "refunded"

BILL_STATUSES = (BILL_STATUS_HELD, BILL_STATUS_COMPLETED, BILL_STATUS_REFUNDED)

PAYMENT_CASH = "cash"
PAYMENT_CARD = "card"
PAYMENT_CREDIT = "credit"
PAYMENT_SPLIT = "split"

PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_CREDIT, PAYMENT_SPLIT)

DISCOUNT_AMOUNT = "amount"
DISCOUNT_PERCENTAGE = "percentage"


class Bill(db.Model):
    """
    Bill document (sale, held cart, or return).

    LIFECYCLE:
    - held: cart parked without touching stock or credit; may be overwritten
      or deleted until it is settled.
    - completed: committed sale. Immutable.
    - refunded: a return bill. It references the sale it reverses through
      original_bill_id and carries negative quantities and amounts. The
      original bill is never modified.

    AMOUNTS (cents):
    total = subtotal - item_discount - order_discount + tax
    """
    __tablename__ = "bills"
    __table_args__ = (
        db.Index("ix_bills_status_created", "status", "created_at"),
        db.Index("ix_bills_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Opaque caller-generated number (e.g., "INV-20261018-0001")
    bill_number = db.Column(db.String(64), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    item_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    order_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    # As entered: cents for "amount", basis points for "percentage"
    order_discount_type = db.Column(db.String(16), nullable=False, default=DISCOUNT_AMOUNT)
    order_discount_value = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False, default=PAYMENT_CASH)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    change_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=BILL_STATUS_COMPLETED, index=True)

    # Return bills point at the sale they reverse
    original_bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=True, index=True)

    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    customer = db.relationship("Customer", backref=db.backref("bills", lazy=True))
    original_bill = db.relationship("Bill", remote_side=[id], backref=db.backref("return_bills", lazy=True))
    items = db.relationship(
        "BillItem",
        backref="bill",
        lazy=True,
        order_by="BillItem.id",
        cascade="all, delete-orphan",
    )
    split_payments = db.relationship(
        "BillPayment",
        backref="bill",
        lazy=True,
        order_by="BillPayment.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Bill id={self.id} number={self.bill_number!r} status={self.status} total={self.total_cents}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "bill_number": self.bill_number,
            "customer_id": self.customer_id,
            "subtotal_cents": self.subtotal_cents,
            "item_discount_cents": self.item_discount_cents,
            "order_discount_cents": self.order_discount_cents,
            "order_discount_type": self.order_discount_type,
            "order_discount_value": self.order_discount_value,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "paid_amount_cents": self.paid_amount_cents,
            "change_amount_cents": self.change_amount_cents,
            "credit_amount_cents": self.credit_amount_cents,
            "split_payments": [p.to_dict() for p in self.split_payments] or None,
            "status": self.status,
            "original_bill_id": self.original_bill_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class BillItem(db.Model):
    """
    Line item on a bill.

    Product name and unit price are snapshots taken when the bill was
    written. subtotal = unit_price * quantity - discount.
    """
    __tablename__ = "bill_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    # Set on return lines
    original_bill_item_id = db.Column(db.Integer, db.ForeignKey("bill_items.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_id": self.bill_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "subtotal_cents": self.subtotal_cents,
            "original_bill_item_id": self.original_bill_item_id,
            "created_at": to_utc_z(self.created_at),
        }


class BillPayment(db.Model):
    """One leg of a split payment."""
    __tablename__ = "bill_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents >= 0", name="ck_bill_payments_amount_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)
    method = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {"method": self.method, "amount_cents": self.amount_cents}
