from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


CREDIT_CHARGE = "charge"
CREDIT_PAYMENT = "payment"

CREDIT_ENTRY_KINDS = (CREDIT_CHARGE, CREDIT_PAYMENT)


class Customer(db.Model):
    """
    Customer master data with an on-account credit balance.

    CREDIT: `current_credit_cents` is the outstanding balance. It is derived
    state: it always equals SUM(charges) - SUM(payments) over the customer's
    CreditEntry rows and is only written by credit_service.apply_credit_entry.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.CheckConstraint("credit_limit_cents >= 0", name="ck_customers_limit_non_negative"),
        db.CheckConstraint("current_credit_cents >= 0", name="ck_customers_credit_non_negative"),
        db.CheckConstraint("current_credit_cents <= credit_limit_cents", name="ck_customers_credit_within_limit"),
        db.Index("ix_customers_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True, unique=True)
    email = db.Column(db.String(255), nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    current_credit_cents = db.Column(db.Integer, nullable=False, default=0)

    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    member_level = db.Column(db.String(16), nullable=False, default="bronze")  # bronze, silver, gold

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def available_credit_cents(self) -> int:
        return max(0, self.credit_limit_cents - self.current_credit_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "credit_limit_cents": self.credit_limit_cents,
            "current_credit_cents": self.current_credit_cents,
            "available_credit_cents": self.available_credit_cents,
            "loyalty_points": self.loyalty_points,
            "member_level": self.member_level,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CreditEntry(db.Model):
    """
    Append-only ledger of customer credit events.

    ENTRY KINDS:
    - charge: sale (or split leg) put on account, raises the balance
    - payment: customer settles, or a return is refunded to account

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "credit_entries"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_credit_entries_amount_positive"),
        db.Index("ix_credit_entries_customer_seq", "customer_id", "id"),
        db.Index("ix_credit_entries_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)

    previous_balance_cents = db.Column(db.Integer, nullable=False)
    new_balance_cents = db.Column(db.Integer, nullable=False)

    # How a payment was tendered (cash, card, refund); null for charges
    payment_method = db.Column(db.String(16), nullable=True)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship("Customer", backref=db.backref("credit_entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "kind": self.kind,
            "amount_cents": self.amount_cents,
            "previous_balance_cents": self.previous_balance_cents,
            "new_balance_cents": self.new_balance_cents,
            "payment_method": self.payment_method,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
