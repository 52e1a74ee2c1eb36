# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockbook/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent: creates any missing tables and invoice counters.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Business (tenant) management:
# - python -m flask business list
#   List all businesses.
# - python -m flask business create --email owner@shop.test --name "Corner Pharmacy" [--address "..."] [--tax-rate-bps 2000]
#   Register a business for an identity-provider email.
#
# Stock inspection:
# - python -m flask stock summary --email owner@shop.test [--threshold 20]
#   Print in/low/out of stock counts and the critical products.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Business
from .services import analytics_service
from .services.document_service import ensure_sequence
from .services.tenant_service import (
    INVOICE_DOCUMENT_TYPE,
    TenantAccessError,
    create_business,
    get_business_by_email,
)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def system_init():
    """Create missing tables and make sure every business has an invoice counter."""
    db.create_all()
    click.echo("PASS Schema ready")

    businesses = db.session.query(Business).order_by(Business.id.asc()).all()
    for business in businesses:
        ensure_sequence(business.id, INVOICE_DOCUMENT_TYPE)
    db.session.commit()
    click.echo(f"PASS Invoice counters checked for {len(businesses)} business(es)")


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

    click.echo("PASS Database reset complete")


@click.group('business')
def business_group():
    """Business (tenant) management."""


@business_group.command('list')
@with_appcontext
def list_businesses():
    businesses = db.session.query(Business).order_by(Business.id.asc()).all()
    if not businesses:
        click.echo("No businesses registered.")
        return
    for b in businesses:
        click.echo(f"{b.id:>4}  {b.email:<32}  {b.name}  (tax {b.default_tax_rate_bps} bps)")


@business_group.command('create')
@click.option('--email', required=True, help='Identity-provider email of the owner')
@click.option('--name', required=True, help='Business name printed on invoices')
@click.option('--address', default=None)
@click.option('--tax-rate-bps', type=int, default=None, help='Default tax rate in basis points (2000 = 20%)')
@with_appcontext
def create_business_command(email, name, address, tax_rate_bps):
    if get_business_by_email(email) is not None:
        raise click.ClickException(f"A business already exists for {email}")
    try:
        business = create_business(
            email=email, name=name, address=address, default_tax_rate_bps=tax_rate_bps
        )
    except TenantAccessError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created business id={business.id} email={business.email}")


@click.group('stock')
def stock_group():
    """Stock inspection."""


@stock_group.command('summary')
@click.option('--email', required=True, help='Business email')
@click.option('--threshold', type=int, default=None)
@with_appcontext
def stock_summary_command(email, threshold):
    business = get_business_by_email(email)
    if business is None:
        raise click.ClickException(f"No business registered for {email}")

    summary = analytics_service.stock_summary(business_id=business.id, threshold=threshold)
    click.echo(
        f"Products: {summary['total']}  in stock: {summary['in_stock']}  "
        f"low (<= {summary['threshold']}): {summary['low_stock']}  out: {summary['out_of_stock']}"
    )
    for p in summary["critical"]:
        click.echo(f"  {p['id']:>4}  {p['name']:<32}  {p['quantity']} {p['unit']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(business_group)
    app.cli.add_command(stock_group)
