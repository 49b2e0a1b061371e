# Overview: Flask CLI command groups for bootstrap, catalog seeding, and maintenance.

# backend/barrelpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--store "Cookie Barrel"]
#   Idempotent bootstrap: default store plus admin/manager/cashier users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog add-product --store-id 1 --sku CHOC-01 --name "Choc Chip Cookie" --price-ex-gst 364 --stock 40
#   Create a product priced ex-GST; initial stock is booked on the ledger.
#
# Inventory:
# - python -m flask inventory verify [--store-id 1]
#   Compare every product's stock_quantity with the sum of its ledger rows.
#
# WhatsApp:
# - python -m flask whatsapp sweep-sessions
#   Clear idle and already-placed conversation sessions (cron friendly).
#
# Shifts:
# - python -m flask shifts list [--store-id 1] [--status OPEN] [--limit 20]

import sys

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import PosError
from .extensions import db
from .models import Store, User
from .models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from .services import catalog_service, inventory_service, shift_service
from .services.auth_service import create_user
from .time_utils import to_utc_z


def _money(cents) -> str:
    if cents is None:
        return "-"
    return f"${cents / 100:,.2f}"


# =============================================================================
# SYSTEM
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--store', 'store_name', default='Cookie Barrel', help='Default store name')
@click.option('--gst-rate-bps', type=int, default=None, help='GST rate in basis points (1000 = 10%)')
@click.option('--password', default='Password123', help='Password for the default users')
@with_appcontext
def init_system(store_name, gst_rate_bps, password):
    """
    Initialize the POS: default store and default users.

    Creates:
    - Default store (if none exists)
    - Users: admin, manager, cashier (all on the default store)

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing POS...")

    store = db.session.query(Store).order_by(Store.id).first()
    if not store:
        store = catalog_service.create_store(store_name, gst_rate_bps=gst_rate_bps)
        click.echo(f"PASS Created default store: {store.name} (ID: {store.id}, GST: {store.gst_rate_bps} bps)")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    default_users = [
        ("admin", "admin@barrelpos.local", ROLE_ADMIN),
        ("manager", "manager@barrelpos.local", ROLE_MANAGER),
        ("cashier", "cashier@barrelpos.local", ROLE_CASHIER),
    ]

    for username, email, role in default_users:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(username, email, password, store_id=store.id, role=role)
            click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        except PosError as e:
            db.session.rollback()
            click.echo(f"FAIL Failed to create user '{username}': {e.message}")

    click.echo("\nDONE POS initialized.")
    click.echo(f"Store: {store.name} (ID: {store.id})")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


# =============================================================================
# CATALOG
# =============================================================================

@click.group('catalog')
def catalog_group():
    """Product catalog commands."""


@catalog_group.command('add-product')
@click.option('--store-id', type=int, required=True)
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--price-ex-gst', 'price_ex_gst_cents', type=int, required=True, help='Price before GST, in cents')
@click.option('--cost', 'cost_cents', type=int, default=None, help='Unit cost in cents')
@click.option('--stock', 'initial_stock', type=int, default=0, help='Initial stock on hand')
@click.option('--low-stock', 'low_stock_threshold', type=int, default=0)
@click.option('--untracked', is_flag=True, help='Do not track inventory for this product')
@click.option('--description', default=None)
@with_appcontext
def add_product(store_id, sku, name, price_ex_gst_cents, cost_cents, initial_stock, low_stock_threshold,
                untracked, description):
    """Create a product; GST is derived from the store's rate."""
    try:
        product = catalog_service.create_product(
            store_id=store_id,
            sku=sku,
            name=name,
            price_ex_gst_cents=price_ex_gst_cents,
            cost_cents=cost_cents,
            track_inventory=not untracked,
            initial_stock=initial_stock,
            low_stock_threshold=low_stock_threshold,
            description=description,
        )
    except PosError as e:
        click.echo(f"FAIL {e.code}: {e.message}")
        sys.exit(1)

    click.echo(
        f"PASS Created product {product.sku} (ID: {product.id}): "
        f"{_money(product.price_ex_gst_cents)} + GST {_money(product.gst_amount_cents)} "
        f"= {_money(product.price_inc_gst_cents)}, stock {product.stock_quantity}"
    )


# =============================================================================
# INVENTORY
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Stock ledger inspection."""


@inventory_group.command('verify')
@click.option('--store-id', type=int, default=None)
@with_appcontext
def verify_inventory(store_id):
    """Report products whose stock_quantity differs from their ledger sum."""
    mismatches = inventory_service.find_ledger_mismatches(store_id)
    if not mismatches:
        click.echo("PASS Stock quantities match the inventory ledger.")
        return

    for row in mismatches:
        click.echo(
            f"FAIL product {row['product_id']} ({row['sku']}): "
            f"stock={row['stock_quantity']} ledger={row['ledger_quantity']}"
        )
    click.echo(f"\n{len(mismatches)} product(s) out of balance.")
    sys.exit(1)


# =============================================================================
# WHATSAPP
# =============================================================================

@click.group('whatsapp')
def whatsapp_group():
    """WhatsApp conversation maintenance."""


@whatsapp_group.command('sweep-sessions')
@with_appcontext
def sweep_sessions():
    """Clear expired conversation sessions."""
    removed = current_app.extensions["conversation_service"].sweep_expired_sessions()
    click.echo(f"PASS Removed {removed} expired session(s).")


# =============================================================================
# SHIFTS
# =============================================================================

@click.group('shifts')
def shifts_group():
    """Shift inspection."""


@shifts_group.command('list')
@click.option('--store-id', type=int, default=None)
@click.option('--status', default=None, help='OPEN, CLOSED, SUSPENDED or RECONCILED')
@click.option('--limit', type=int, default=20)
@with_appcontext
def list_shifts(store_id, status, limit):
    """List recent shifts, newest first."""
    rows = shift_service.list_shifts(store_id=store_id, status=status, limit=limit)
    if not rows:
        click.echo("No shifts found.")
        return

    click.echo(f"{'Number':<12} {'Status':<11} {'User':<6} {'Started':<22} {'Sales':>12} {'Diff':>10}")
    click.echo("-" * 78)
    for shift in rows:
        click.echo(
            f"{shift.shift_number:<12} {shift.status:<11} {shift.user_id:<6} "
            f"{to_utc_z(shift.start_time):<22} {_money(shift.total_sales_cents):>12} "
            f"{_money(shift.cash_difference_cents):>10}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(whatsapp_group)
    app.cli.add_command(shifts_group)
