# Overview: Flask CLI command groups for store bootstrap and memo inspection.

# backend/doctrail/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stores:
# - python -m flask stores list
#   List all stores.
# - python -m flask stores create --name "Main Store" --code "MAIN" --tax-rate-bps 800
#   Create a new store (tenant).
#
# Memos:
# - python -m flask memos overdue --store-id 1
#   List memos still with the vendor past their tenure.

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import IntegrityError

from .extensions import db
from .models import Store
from .services import document_service
from .time_utils import to_utc_z


@click.group('system')
def system_group():
    """System maintenance commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm dropping all data')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('stores')
def stores_group():
    """Store (tenant) management commands."""


@stores_group.command('list')
@with_appcontext
def list_stores():
    """
    List all stores.

    Example:
        flask stores list
    """
    stores = db.session.query(Store).order_by(Store.id).all()
    if not stores:
        click.echo("No stores found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Code':<12} {'Name':<30} {'Tax (bps)':<10} {'TZ'}")
    click.echo("="*70)
    for store in stores:
        click.echo(
            f"{store.id:<5} {(store.code or '-'):<12} {store.name[:30]:<30} "
            f"{store.tax_rate_bps:<10} {store.timezone}"
        )
    click.echo("="*70 + "\n")


@stores_group.command('create')
@click.option('--name', required=True, help='Store name')
@click.option('--code', default=None, help='Unique store code')
@click.option('--tax-rate-bps', type=int, default=0, help='Default tax rate in basis points (800 = 8%)')
@click.option('--timezone', 'tz', default='UTC', help='Store timezone')
@with_appcontext
def create_store(name, code, tax_rate_bps, tz):
    """
    Create a new store.

    Example:
        flask stores create --name "Main Store" --code MAIN --tax-rate-bps 800
    """
    if tax_rate_bps < 0 or tax_rate_bps > 10_000:
        click.echo("FAIL tax-rate-bps must be between 0 and 10000")
        raise SystemExit(1)

    store = Store(name=name, code=code, tax_rate_bps=tax_rate_bps, timezone=tz)
    db.session.add(store)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        click.echo(f"FAIL Store code '{code}' already exists")
        raise SystemExit(1)

    click.echo(f"PASS Created store: {store.name} (ID: {store.id}, Code: {store.code or '-'})")


@click.group('memos')
def memos_group():
    """Memo inspection commands."""


@memos_group.command('overdue')
@click.option('--store-id', type=int, required=True, help='Store ID')
@with_appcontext
def overdue_memos(store_id):
    """
    List memos with the vendor past created_at + tenure.

    Example:
        flask memos overdue --store-id 1
    """
    memos = document_service.list_overdue_memos(store_id)
    if not memos:
        click.echo("No overdue memos.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Number':<18} {'Vendor':<25} {'Due':<22} {'Days out':<9} {'Total'}")
    click.echo("="*80)
    for memo in memos:
        vendor = memo.vendor.display_name if memo.vendor else "-"
        click.echo(
            f"{memo.document_number:<18} {vendor[:25]:<25} {to_utc_z(memo.due_date):<22} "
            f"{memo.days_with_counterparty:<9} ${memo.total_cents / 100:,.2f}"
        )
    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(memos_group)
