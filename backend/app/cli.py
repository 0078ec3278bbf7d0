# Overview: Flask CLI command groups for bootstrap and ledger audits.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Add demo products (with opening stock), a credit customer and a supplier.
#
# Ledger audits:
# - python -m flask ledger verify
#   Check every product's stock movements and every customer's credit entries
#   against the running balances. Exits 1 if anything has drifted.
# - python -m flask ledger low-stock
#   List active products at or below their reorder level.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, Customer, Supplier
from .services import credit_service, inventory_service, receive_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    click.echo("BUILD  Creating tables...")
    db.create_all()
    click.echo("PASS Database ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' for sample data.")


DEMO_PRODUCTS = [
    # sku, barcode, name, cost, price, opening stock, reorder level
    ("RICE-5KG", "4790001000011", "Rice 5kg", 120000, 145000, 40, 10),
    ("DHAL-1KG", "4790001000028", "Red Dhal 1kg", 32000, 39000, 60, 15),
    ("TEA-400G", "4790001000035", "Tea 400g", 68000, 82000, 25, 8),
    ("SUGAR-1KG", "4790001000042", "Sugar 1kg", 24000, 29500, 8, 10),
    ("SOAP-100G", "4790001000059", "Soap 100g", 9000, 12000, 100, 20),
]


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Insert demo data. Skips anything that already exists."""
    click.echo("START Seeding demo data...")

    created = 0
    for sku, barcode, name, cost, price, opening, reorder in DEMO_PRODUCTS:
        if db.session.query(Product).filter_by(sku=sku).first():
            click.echo(f"SKIP Product {sku} already exists")
            continue
        product = Product(
            sku=sku,
            barcode=barcode,
            name=name,
            cost_price_cents=cost,
            selling_price_cents=price,
            stock=0,
            reorder_level=reorder,
            is_active=True,
        )
        db.session.add(product)
        db.session.commit()
        # Opening stock goes through the ledger like every other change
        inventory_service.adjust_stock(product.id, opening, "Opening stock")
        created += 1
    click.echo(f"PASS Created {created} products")

    if not db.session.query(Customer).filter_by(phone="0771234567").first():
        db.session.add(Customer(
            name="Nimal Perera",
            phone="0771234567",
            credit_limit_cents=5000000,
            current_credit_cents=0,
        ))
        db.session.commit()
        click.echo("PASS Created credit customer Nimal Perera (limit Rs. 50,000)")

    if not db.session.query(Supplier).filter_by(name="Lanka Wholesale").first():
        receive_service.create_supplier("Lanka Wholesale", contact_person="Sunil", phone="0112345678")
        click.echo("PASS Created supplier Lanka Wholesale")

    click.echo("DONE Demo data ready.")


@click.group('ledger')
def ledger_group():
    """Stock and credit ledger audits."""


@ledger_group.command('verify')
@with_appcontext
def verify_ledgers():
    """Audit every stock and credit ledger; exit 1 on any inconsistency."""
    failures = 0

    product_ids = [pid for (pid,) in db.session.query(Product.id).order_by(Product.id).all()]
    for product_id in product_ids:
        report = inventory_service.verify_stock_ledger(product_id)
        if not report["consistent"]:
            failures += 1
            click.echo(f"FAIL product {product_id}: {report['problems']}")
    click.echo(f"PASS Checked {len(product_ids)} stock ledgers")

    customer_ids = [cid for (cid,) in db.session.query(Customer.id).order_by(Customer.id).all()]
    for customer_id in customer_ids:
        report = credit_service.verify_credit_ledger(customer_id)
        if not report["consistent"]:
            failures += 1
            click.echo(f"FAIL customer {customer_id}: {report['problems']}")
    click.echo(f"PASS Checked {len(customer_ids)} credit ledgers")

    if failures:
        click.echo(f"FAIL {failures} ledger(s) inconsistent")
        raise SystemExit(1)
    click.echo("DONE All ledgers consistent.")


@ledger_group.command('low-stock')
@with_appcontext
def low_stock():
    """List products at or below their reorder level."""
    products = inventory_service.get_low_stock_products()
    if not products:
        click.echo("PASS No products below reorder level.")
        return
    for p in products:
        click.echo(f"{p.sku:<12} {p.name:<30} stock={p.stock:<6} reorder={p.reorder_level}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
