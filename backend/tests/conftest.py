"""
Pytest fixtures for the POS ledger backend tests.

Provides the application on an in-memory database, a per-test clean
database, a test client and small factories for master data.
"""

import pytest
from app import create_app
from app.config import TestConfig
from app.extensions import db
from app.models import Product, Customer, Supplier
from app.services.pricing_service import Cart, CartLine


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: product with a given opening stock."""
    counter = {"n": 0}

    def _make(stock=10, price_cents=10000, name=None, is_active=True, reorder_level=5):
        counter["n"] += 1
        product = Product(
            sku=f"SKU-{counter['n']:03d}",
            name=name or f"Product {counter['n']}",
            cost_price_cents=price_cents // 2,
            selling_price_cents=price_cents,
            stock=stock,
            reorder_level=reorder_level,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_customer(db_session):
    """Factory: customer with a credit limit and a zero balance."""
    counter = {"n": 0}

    def _make(credit_limit_cents=100000, name=None):
        counter["n"] += 1
        customer = Customer(
            name=name or f"Customer {counter['n']}",
            phone=f"07700000{counter['n']:02d}",
            credit_limit_cents=credit_limit_cents,
            current_credit_cents=0,
        )
        db_session.add(customer)
        db_session.commit()
        return customer

    return _make


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Lanka Wholesale", contact_person="Sunil")
    db_session.add(supplier)
    db_session.commit()
    return supplier


def _cart_of(*lines, customer_id=None, order_discount_type="amount", order_discount_value=0, tax_cents=0):
    cart_lines = []
    for line in lines:
        product, quantity = line[0], line[1]
        discount = line[2] if len(line) > 2 else 0
        cart_lines.append(CartLine(
            product_id=product.id,
            quantity=quantity,
            unit_price_cents=product.selling_price_cents,
            discount_cents=discount,
        ))
    return Cart(
        lines=tuple(cart_lines),
        customer_id=customer_id,
        order_discount_type=order_discount_type,
        order_discount_value=order_discount_value,
        tax_cents=tax_cents,
    )


@pytest.fixture
def cart_of():
    """Build a Cart from (product, quantity[, discount_cents]) tuples."""
    return _cart_of
