# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/poscore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (development; use `flask db upgrade` elsewhere).
# - python -m flask system seed-demo
#   Create a demo business with Taxable / Non-Taxable / Alcohol departments,
#   a few products, an owner and a cashier. Idempotent.
#
# Shift inspection:
# - python -m flask shifts list [--open] [--limit 20]
#   List recent shifts with expected cash and variance.
#
# Transaction inspection:
# - python -m flask transactions list --business-id 1 [--status pending] [--limit 20]
#   List recent transactions for a business.

import click
from decimal import Decimal
from flask.cli import with_appcontext

from .extensions import db
from .models import Business, Cashier, Department, Product, Shift, Transaction
from .models.business import ROLE_CASHIER, ROLE_OWNER
from .models.transactions import STATUS_COMPLETED, STATUS_FAILED, STATUS_PENDING
from .money import format_cents
from .time_utils import to_utc_z


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('seed-demo')
@click.option('--name', default='Demo Market', help='Business name')
@click.option('--tax-rate', default='0.08', help='Flat tax rate, e.g. 0.08')
@with_appcontext
def seed_demo(name, tax_rate):
    """
    Seed a demo business for local development.

    Creates:
    - Business with the given tax rate (UTC timezone, card payments off)
    - Departments: Taxable, Non-Taxable, Alcohol (21+, no sales 2 AM - 6 AM)
    - A handful of products with UPCs
    - Cashiers: Owner (owner) and Casey (cashier)
    """
    business = db.session.query(Business).filter_by(name=name).first()
    if business:
        click.echo(f"PASS Using existing business: {business.name} (ID: {business.id})")
        return

    business = Business(name=name, tax_rate=Decimal(tax_rate), timezone="UTC")
    db.session.add(business)
    db.session.flush()

    taxable = Department(business_id=business.id, name="Taxable", taxable=True, system=True)
    non_taxable = Department(business_id=business.id, name="Non-Taxable", taxable=False, system=True)
    alcohol = Department(
        business_id=business.id,
        name="Alcohol",
        taxable=True,
        age_restriction=21,
        time_restriction_start=2,
        time_restriction_end=6,
    )
    db.session.add_all([taxable, non_taxable, alcohol])
    db.session.flush()

    products = [
        Product(business_id=business.id, department_id=taxable.id, name="Phone Charger", upc="000000000017", price_cents=1299),
        Product(business_id=business.id, department_id=non_taxable.id, name="Bread", upc="000000000024", price_cents=349),
        Product(business_id=business.id, department_id=non_taxable.id, name="Milk 1 gal", upc="000000000031", price_cents=429),
        Product(business_id=business.id, department_id=alcohol.id, name="Lager 6-pack", upc="000000000048", price_cents=999),
    ]
    db.session.add_all(products)

    owner = Cashier(business_id=business.id, name="Owner", role=ROLE_OWNER)
    cashier = Cashier(business_id=business.id, name="Casey", role=ROLE_CASHIER)
    db.session.add_all([owner, cashier])
    db.session.commit()

    click.echo(f"PASS Created business: {business.name} (ID: {business.id})")
    click.echo(f"PASS Created {len(products)} products in 3 departments")
    click.echo(f"PASS Cashiers: {owner.name} (ID: {owner.id}, owner), {cashier.name} (ID: {cashier.id}, cashier)")
    click.echo(f"\nUse headers X-Business-Id: {business.id} and X-Cashier-Id: {owner.id}")


@click.group('shifts')
def shifts_group():
    """Shift inspection commands."""


@shifts_group.command('list')
@click.option('--open', 'open_only', is_flag=True, help='Only open shifts')
@click.option('--limit', type=int, default=20, help='Max shifts to show')
@with_appcontext
def list_shifts(open_only, limit):
    """
    List recent shifts.

    Example:
        flask shifts list
        flask shifts list --open
    """
    query = db.session.query(Shift)
    if open_only:
        query = query.filter(Shift.ended_at.is_(None))

    shifts = query.order_by(Shift.started_at.desc()).limit(limit).all()

    if not shifts:
        click.echo("No shifts found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Business':<9} {'Cashier':<8} {'Status':<8} {'Started':<22} {'Expected':<12} {'Variance'}")
    click.echo("="*100)

    for shift in shifts:
        expected = format_cents(shift.expected_cash) if shift.expected_cash is not None else "-"
        variance = format_cents(shift.cash_difference) if shift.cash_difference is not None else "-"
        status = "OPEN" if shift.is_open else "CLOSED"
        click.echo(
            f"{shift.id:<5} {shift.business_id:<9} {shift.cashier_id:<8} {status:<8} "
            f"{to_utc_z(shift.started_at):<22} {expected:<12} {variance}"
        )

    click.echo("="*100 + "\n")


@click.group('transactions')
def transactions_group():
    """Transaction inspection commands."""


@transactions_group.command('list')
@click.option('--business-id', type=int, required=True, help='Business ID')
@click.option('--status', type=click.Choice([STATUS_PENDING, STATUS_COMPLETED, STATUS_FAILED]), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max transactions to show')
@with_appcontext
def list_transactions(business_id, status, limit):
    """
    List recent transactions for a business.

    Example:
        flask transactions list --business-id 1
        flask transactions list --business-id 1 --status pending
    """
    query = db.session.query(Transaction).filter_by(business_id=business_id)
    if status:
        query = query.filter_by(status=status)

    transactions = query.order_by(Transaction.created_at.desc()).limit(limit).all()

    if not transactions:
        click.echo("No transactions found.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<38} {'Type':<8} {'Method':<7} {'Status':<10} {'Total':<12} {'Created':<22} {'Flags'}")
    click.echo("="*110)

    for txn in transactions:
        flags = []
        if txn.refunded:
            flags.append("REFUNDED")
        if txn.voided:
            flags.append("VOIDED")
        click.echo(
            f"{txn.id:<38} {txn.type:<8} {txn.payment_method or '-':<7} {txn.status:<10} "
            f"{format_cents(txn.total_amount):<12} {to_utc_z(txn.created_at):<22} {','.join(flags)}"
        )

    click.echo("="*110 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(shifts_group)
    app.cli.add_command(transactions_group)
