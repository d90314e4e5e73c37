# Overview: Flask CLI command groups for bootstrap and hold inspection.

# backend/posengine/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "posengine:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables and seed store settings / credit terms from config.
# - python -m flask system seed-demo
#   Idempotent demo data: a cashier, a handful of products and two members.
#
# Holds:
# - python -m flask holds urgent [--window 5] [--limit 3]
#   Print ACTIVE holds about to expire, soonest first.

from decimal import Decimal

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, User, Customer
from .models.customers import CUSTOMER_TYPE_MEMBER
from .services import hold_service
from .services.settings_service import ensure_store_settings, seed_store_settings


DEMO_PRODUCTS = [
    # sku, name, category, unit, price_cents, cost_cents, stock, min_stock, allow_decimal
    ("BEV-001", "Cold Brew Coffee", "Beverages", "bottle", 450, 180, "40", "10", False),
    ("BAK-001", "Sourdough Loaf", "Bakery", "loaf", 650, 220, "15", "5", False),
    ("PRO-001", "Bananas", "Produce", "kg", 199, 90, "25.500", "5", True),
    ("DEL-001", "Sliced Ham", "Deli", "kg", 1899, 1100, "6.250", "2", True),
    ("HOU-001", "Dish Soap", "Household", "each", 399, 150, "3", "5", False),
]

DEMO_MEMBERS = [
    ("Avery Chen", "555-0101", "avery@example.com"),
    ("Jordan Diaz", "555-0102", "jordan@example.com"),
]


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create tables and seed store settings from config."""
    db.create_all()
    settings = seed_store_settings()
    click.echo(f"PASS Tables created; tax {settings.tax_name} {settings.tax_rate}% {settings.tax_type}")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Insert demo cashier, products and members (skips rows that exist)."""
    db.create_all()
    ensure_store_settings()

    if not db.session.query(User).filter_by(username="cashier").first():
        db.session.add(User(username="cashier", name="Front Counter", role="CASHIER"))
        click.echo("PASS Created user: cashier")

    for sku, name, category, unit, price, cost, stock, min_stock, allow_decimal in DEMO_PRODUCTS:
        if db.session.query(Product).filter_by(sku=sku).first():
            click.echo(f"WARN  Product '{sku}' already exists, skipping...")
            continue
        db.session.add(Product(
            sku=sku,
            name=name,
            category=category,
            unit=unit,
            price_cents=price,
            cost_cents=cost,
            stock=Decimal(stock),
            reserved_quantity=Decimal("0"),
            min_stock_level=Decimal(min_stock),
            allow_decimal=allow_decimal,
        ))
        click.echo(f"PASS Created product: {sku} {name}")

    for name, phone, email in DEMO_MEMBERS:
        if db.session.query(Customer).filter_by(email=email).first():
            continue
        db.session.add(Customer(
            name=name,
            phone=phone,
            email=email,
            customer_type=CUSTOMER_TYPE_MEMBER,
        ))
        click.echo(f"PASS Created member: {name}")

    db.session.commit()
    click.echo("DONE Demo data ready")


@click.group('holds')
def holds_group():
    """Held transaction inspection."""


@holds_group.command('urgent')
@click.option('--window', type=int, default=None, help='Urgency window in minutes')
@click.option('--limit', type=int, default=None, help='How many holds to list individually')
@with_appcontext
def urgent_holds(window, limit):
    """List ACTIVE holds close to expiry."""
    summary = hold_service.urgent_holds(window_minutes=window, display_limit=limit)
    if not summary.total:
        click.echo("No urgent holds.")
        return

    click.echo(f"{'Hold':<12} {'Customer':<30} {'Remaining'}")
    for item in summary.display:
        minutes, seconds = divmod(item["seconds_remaining"], 60)
        click.echo(f"{item['document_number']:<12} {item['customer_name']:<30} {minutes}m {seconds:02d}s")
    if summary.overflow_count:
        click.echo(f"... and {summary.overflow_count} more")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(holds_group)
