from app.models import Customer, Product, StockMovement, Supplier
from app.services import inventory_service


def test_seed_demo_then_verify(app, db_session):
    runner = app.test_cli_runner()

    seeded = runner.invoke(args=["system", "seed-demo"])
    assert seeded.exit_code == 0
    assert db_session.query(Product).count() == 5
    assert db_session.query(StockMovement).count() == 5
    assert db_session.query(Customer).filter_by(phone="0771234567").count() == 1
    assert db_session.query(Supplier).filter_by(name="Lanka Wholesale").count() == 1

    # Running it twice is harmless
    assert runner.invoke(args=["system", "seed-demo"]).exit_code == 0
    assert db_session.query(Product).count() == 5

    verified = runner.invoke(args=["ledger", "verify"])
    assert verified.exit_code == 0
    assert "All ledgers consistent" in verified.output

    low = runner.invoke(args=["ledger", "low-stock"])
    assert "SUGAR-1KG" in low.output


def test_verify_fails_on_drift(app, db_session, make_product):
    product = make_product(stock=5)
    inventory_service.adjust_stock(product.id, 2, "count")
    product.stock = 99
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["ledger", "verify"])

    assert result.exit_code == 1
    assert f"FAIL product {product.id}" in result.output
