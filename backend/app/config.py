# backend/app/config.py
from __future__ import annotations
import os


def _int_list(value: str | None, default: list[int]) -> list[int]:
    if not value:
        return default
    return [int(part) for part in value.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/pos_ledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pos_ledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Currency note/coin table in cents, largest first (Rs. 5000 .. Rs. 1)
    CURRENCY_DENOMINATIONS_CENTS = _int_list(
        os.environ.get("CURRENCY_DENOMINATIONS_CENTS"),
        [500000, 200000, 100000, 50000, 10000, 5000, 2000, 1000, 500, 200, 100],
    )
    # Change handed back is rounded to this step (presentation only)
    CHANGE_ROUNDING_CENTS = int(os.environ.get("CHANGE_ROUNDING_CENTS", "100"))

    # One loyalty point per Rs. 100 spent
    LOYALTY_SPEND_PER_POINT_CENTS = int(os.environ.get("LOYALTY_SPEND_PER_POINT_CENTS", "10000"))

    DEFAULT_TAX_RATE_BPS = int(os.environ.get("DEFAULT_TAX_RATE_BPS", "0"))

    BILL_NUMBER_PREFIX = os.environ.get("BILL_NUMBER_PREFIX", "INV")
    RETURN_NUMBER_PREFIX = os.environ.get("RETURN_NUMBER_PREFIX", "RET")
    PURCHASE_ORDER_PREFIX = os.environ.get("PURCHASE_ORDER_PREFIX", "PO")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    CHANGE_ROUNDING_CENTS = 100
    LOYALTY_SPEND_PER_POINT_CENTS = 10000
