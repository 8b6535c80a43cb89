# Overview: Flask CLI command groups for bootstrap, inventory, settlements and payouts.

# backend/lilium/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (if missing) and seed the order number sequence.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Load two vendors, products in both zones, a shop owner and one admin per role.
#
# Inventory:
# - python -m flask inventory adjust --product-id 1 --delta -3 --note "damaged"
#   Manual stock correction (recorded as ADJUSTMENT).
# - python -m flask inventory history --product-id 1 --limit 20
#   Show recent stock changes for a product.
# - python -m flask inventory low-stock [--threshold 10] [--company-id 1]
#   List products at or below the threshold.
#
# Settlements:
# - python -m flask settlements balance --company-id 1
#   Show the vendor's available payout balance.
# - python -m flask settlements report --company-id 1 --start 2026-01-01 --end 2026-01-31
#   Commission report for orders delivered in the window.
#
# Payouts:
# - python -m flask payouts list [--company-id 1] [--status PENDING]
#   List payout requests.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import EngineError
from .extensions import db
from .models import PAYOUT_REQUEST_STATUSES, Address, Category, Company, DocumentSequence, Product, User
from .services.bootstrap import get_engine
from .validation import PayoutFilters, parse_choice, parse_datetime


def ensure_order_sequence() -> bool:
    """Seed the ORDER document sequence row. Returns True when it was created."""
    if db.session.query(DocumentSequence).filter_by(document_type="ORDER").first():
        return False
    db.session.add(DocumentSequence(document_type="ORDER", next_number=1))
    db.session.commit()
    return True


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables and seed sequences. Safe to run repeatedly."""
    click.echo("BUILD  Creating tables...")
    db.create_all()
    if ensure_order_sequence():
        click.echo("PASS Seeded ORDER sequence")
    else:
        click.echo("PASS ORDER sequence already present")


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
    ensure_order_sequence()

    click.echo("PASS Database reset complete")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Load a small demo catalog.

    Skipped when any company already exists. Creates:
    - Companies: Karkh Foods (KARKH), Rusafa Supplies (RUSAFA)
    - Products for each company, zone-tagged
    - Users: one per role plus a shop owner with a KARKH address
    """
    ensure_order_sequence()

    if db.session.query(Company).first():
        click.echo("WARN Demo data already present, skipping")
        return

    category = Category(name="Groceries")
    karkh = Company(name="Karkh Foods", zones=["KARKH"], commission_rate_bps=1000)
    rusafa = Company(name="Rusafa Supplies", zones=["RUSAFA"])
    db.session.add_all([category, karkh, rusafa])
    db.session.flush()

    db.session.add_all([
        Product(sku="KF-RICE-10", name="Rice 10kg", company_id=karkh.id, category_id=category.id,
                price=10000, stock=200, min_order_qty=1, zones=["KARKH", "RUSAFA"]),
        Product(sku="KF-OIL-5", name="Cooking Oil 5L", company_id=karkh.id, category_id=category.id,
                price=7500, stock=120, min_order_qty=2, zones=["KARKH"]),
        Product(sku="RS-SUGAR-50", name="Sugar 50kg", company_id=rusafa.id, category_id=category.id,
                price=45000, stock=40, min_order_qty=1, zones=["RUSAFA", "KARKH"]),
        Product(sku="RS-TEA-BOX", name="Tea (box of 24)", company_id=rusafa.id, category_id=category.id,
                price=12000, stock=8, min_order_qty=5, zones=["RUSAFA"]),
    ])

    shop = User(name="Demo Shop", email="shop@lilium.local", business_name="Demo Market", role="SHOP_OWNER")
    db.session.add_all([
        shop,
        User(name="Super Admin", email="super@lilium.local", role="SUPER_ADMIN"),
        User(name="Karkh Admin", email="karkh@lilium.local", role="LOCATION_ADMIN", zones=["KARKH"]),
        User(name="Karkh Foods Admin", email="vendor@lilium.local", role="COMPANY_ADMIN", company_id=karkh.id),
    ])
    db.session.flush()
    db.session.add(Address(user_id=shop.id, label="Main shop", street="14 Ramadan St", zone="KARKH", is_default=True))
    db.session.commit()

    click.echo(f"PASS Seeded companies {karkh.id}, {rusafa.id} and shop owner {shop.id}")


@click.group('inventory')
def inventory_group():
    """Stock inspection and manual corrections."""


@inventory_group.command('adjust')
@click.option('--product-id', type=int, required=True)
@click.option('--delta', type=int, required=True, help='Positive to add, negative to remove')
@click.option('--note', default=None)
@with_appcontext
def adjust_stock(product_id, delta, note):
    """Apply a manual stock correction."""
    try:
        record = get_engine().stock.adjust(product_id, delta, note)
    except EngineError as e:
        raise click.ClickException(e.message)
    click.echo(
        f"PASS Product {record.product_id}: {record.previous_quantity} -> {record.new_quantity} ({record.delta:+d})"
    )


@inventory_group.command('history')
@click.option('--product-id', type=int, required=True)
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def stock_history(product_id, limit):
    """Show recent stock changes for a product."""
    records = get_engine().stock.history(product_id=product_id, limit=limit)
    if not records:
        click.echo("No stock changes found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<6} {'Reason':<14} {'Delta':>7} {'Before':>8} {'After':>8} {'Order':<8} {'When'}")
    click.echo("="*90)
    for r in records:
        order = str(r.order_id) if r.order_id else "-"
        click.echo(
            f"{r.id:<6} {r.reason:<14} {r.delta:>7} {r.previous_quantity:>8} {r.new_quantity:>8} {order:<8} {r.created_at:%Y-%m-%d %H:%M}"
        )
    click.echo("="*90 + "\n")


@inventory_group.command('low-stock')
@click.option('--threshold', type=int, default=None)
@click.option('--company-id', type=int, default=None)
@with_appcontext
def low_stock(threshold, company_id):
    """List products at or below the low-stock threshold."""
    report = get_engine().stock.low_stock(threshold=threshold, company_id=company_id)
    click.echo(f"Threshold: {report['threshold']}")
    for label, key in (("OUT OF STOCK", "out_of_stock"), ("LOW STOCK", "low_stock")):
        click.echo(f"\n{label} ({len(report[key])})")
        for p in report[key]:
            click.echo(f"  {p['id']:<6} {p['sku']:<16} {p['name']:<30} stock={p['stock']}")


@click.group('settlements')
def settlements_group():
    """Vendor balances and commission reports."""


@settlements_group.command('balance')
@click.option('--company-id', type=int, required=True)
@with_appcontext
def balance(company_id):
    try:
        amount = get_engine().settlements.available_balance(company_id)
    except EngineError as e:
        raise click.ClickException(e.message)
    click.echo(f"Company {company_id} available balance: {amount}")


@settlements_group.command('report')
@click.option('--company-id', type=int, required=True)
@click.option('--start', required=True, help='ISO date or datetime')
@click.option('--end', required=True, help='ISO date or datetime (dates cover the whole day)')
@with_appcontext
def settlement_report(company_id, start, end):
    """Commission report for orders delivered in the window."""
    try:
        report = get_engine().settlements.generate_report(
            company_id,
            parse_datetime(start, "start"),
            parse_datetime(end, "end", end_of_day=True),
        )
    except EngineError as e:
        raise click.ClickException(e.message)

    click.echo(f"\n{report['company_name']} ({report['start']} .. {report['end']}) rate={report['commission_rate_bps']}bps")
    click.echo("="*80)
    click.echo(f"{'Order':<14} {'Revenue':>12} {'Commission':>12} {'Payout':>12} {'Status':<8}")
    click.echo("="*80)
    for row in report["orders"]:
        click.echo(
            f"{row['order_number']:<14} {row['revenue']:>12} {row['commission']:>12} {row['payout']:>12} {row['payout_status']:<8}"
        )
    totals = report["totals"]
    click.echo("="*80)
    click.echo(
        f"{'TOTAL':<14} {totals['revenue']:>12} {totals['commission']:>12} {totals['payout']:>12} unpaid={totals['unpaid_payout']}"
    )


@click.group('payouts')
def payouts_group():
    """Payout inspection."""


@payouts_group.command('list')
@click.option('--company-id', type=int, default=None)
@click.option('--status', default=None)
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_payouts(company_id, status, limit):
    try:
        status = parse_choice(status, "status", PAYOUT_REQUEST_STATUSES, required=False)
        payouts, pagination = get_engine().payouts.list_payouts(
            PayoutFilters(limit=limit, company_id=company_id, status=status)
        )
    except EngineError as e:
        raise click.ClickException(e.message)

    if not payouts:
        click.echo("No payouts found.")
        return

    click.echo(f"{'ID':<6} {'Company':<8} {'Amount':>12} {'Method':<14} {'Status':<11} {'Orders'}")
    for p in payouts:
        click.echo(f"{p.id:<6} {p.company_id:<8} {p.amount:>12} {p.method:<14} {p.status:<11} {len(p.order_ids)}")
    current_app.logger.debug("Listed %s of %s payouts", len(payouts), pagination["total"])


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(settlements_group)
    app.cli.add_command(payouts_group)
