# Overview: Flask CLI command groups for bootstrap, stock, sales and shift inspection.

# backend/bakery_pos/cli.py
# Commands Legend (run from the repository root):
# Prereqs:
# - pip install -e .
# - Use: flask --app bakery_pos <group> <command> [options]
#
# System bootstrap/repair:
# - flask --app bakery_pos system init-db
#   Create all tables (idempotent).
# - flask --app bakery_pos system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - flask --app bakery_pos system seed
#   Create default payment methods (cash flagged) if none exist.
#
# Stock ledger:
# - flask --app bakery_pos stock init 12 40
#   Create the stock record of product 12 with 40 units.
# - flask --app bakery_pos stock adjust 12 -- -3
#   Atomically adjust product 12 by a signed delta.
# - flask --app bakery_pos stock list
# - flask --app bakery_pos stock low --threshold 5
#
# Sales:
# - flask --app bakery_pos sales list [--day 2026-01-31]
# - flask --app bakery_pos sales history --days 7
#
# Shifts:
# - flask --app bakery_pos shifts current 3
# - flask --app bakery_pos shifts list 3 --page 1

from datetime import date

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import PaymentMethod
from .services import payment_method_service, sales_service, shift_service, stock_service
from .validation import PosError


def _fail(exc: PosError):
    raise click.ClickException(exc.message)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema created.")


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

    click.echo("PASS Database reset complete. Run 'flask system seed' to add payment methods.")


@system_group.command('seed')
@with_appcontext
def seed():
    """Create default payment methods (idempotent)."""
    if db.session.query(PaymentMethod).count():
        click.echo("PASS Payment methods already present, nothing to do.")
        return

    defaults = [
        ("Efectivo", True),
        ("Débito", False),
        ("Transferencia", False),
    ]
    for name, is_cash in defaults:
        method = payment_method_service.create_payment_method(name, is_cash=is_cash)
        click.echo(f"PASS Created payment method: {method.name} (ID: {method.id}, cash: {method.is_cash})")


# =============================================================================
# STOCK
# =============================================================================

@click.group('stock')
def stock_group():
    """Stock ledger commands."""


@stock_group.command('init')
@click.argument('product_id', type=int)
@click.argument('quantity', type=int)
@with_appcontext
def stock_init(product_id, quantity):
    """Initialize stock for a product."""
    try:
        record = stock_service.initialize_stock(product_id, quantity)
    except PosError as exc:
        _fail(exc)
    click.echo(f"PASS Product {record.product_id}: {record.quantity} unit(s)")


@stock_group.command('adjust')
@click.argument('product_id', type=int)
@click.argument('delta', type=int)
@with_appcontext
def stock_adjust(product_id, delta):
    """Atomically apply a signed delta to a product's stock."""
    try:
        record = stock_service.adjust_stock(product_id, delta)
    except PosError as exc:
        _fail(exc)
    click.echo(f"PASS Product {record.product_id}: {record.quantity} unit(s)")


@stock_group.command('list')
@with_appcontext
def stock_list():
    """List stock with product details."""
    rows = stock_service.list_stock()
    if not rows:
        click.echo("No stock records.")
        return

    click.echo(f"{'ID':<6} {'Product':<30} {'Price':>10} {'Qty':>6}")
    click.echo("-" * 56)
    for row in rows:
        click.echo(f"{row['product_id']:<6} {row['product_name']:<30} {row['unit_price']:>10} {row['quantity']:>6}")


@stock_group.command('low')
@click.option('--threshold', type=int, default=None, help='Alert at or below this quantity')
@with_appcontext
def stock_low(threshold):
    """List products at or below the low-stock threshold."""
    alerts = stock_service.get_low_stock_alerts(threshold)
    if not alerts:
        click.echo("PASS No low stock.")
        return
    for alert in alerts:
        click.echo(f"WARN {alert['product_name']} (ID {alert['product_id']}): {alert['quantity']} left")


# =============================================================================
# SALES
# =============================================================================

@click.group('sales')
def sales_group():
    """Sale inspection commands."""


@sales_group.command('list')
@click.option('--day', 'day_str', default=None, help='Local business day, YYYY-MM-DD')
@with_appcontext
def sales_list(day_str):
    """List sales, most recent first."""
    if day_str:
        try:
            day = date.fromisoformat(day_str)
        except ValueError:
            raise click.BadParameter("expected YYYY-MM-DD", param_hint="--day")
        sales = sales_service.list_sales_by_date(day)
    else:
        sales = sales_service.list_sales()

    for sale in sales:
        data = sale.to_dict(include_items=False)
        click.echo(f"{data['id']:<6} {data['created_at']:<22} method={data['payment_method_id']:<4} total={data['total']}")
    click.echo(f"{len(sales)} sale(s)")


@sales_group.command('history')
@click.option('--days', type=int, default=7, help='Number of days back')
@with_appcontext
def sales_history(days):
    """Daily sale totals."""
    try:
        history = sales_service.get_sales_history(days)
    except PosError as exc:
        _fail(exc)
    for row in history:
        click.echo(f"{row['date']}  {row['amount']}")


# =============================================================================
# SHIFTS
# =============================================================================

@click.group('shifts')
def shifts_group():
    """Shift inspection commands."""


@shifts_group.command('current')
@click.argument('user_id', type=int)
@with_appcontext
def shifts_current(user_id):
    """Show the user's open shift."""
    shift = shift_service.get_current_shift(user_id)
    if shift is None:
        click.echo(f"User {user_id} has no open shift.")
        return
    data = shift.to_dict()
    click.echo(f"Shift {data['id']} opened {data['start_time']} with {data['start_cash']}")
    for movement in shift_service.list_movements(shift.id):
        m = movement.to_dict()
        click.echo(f"  {m['created_at']} {m['type']:<4} {m['amount']:>10} {m['reason']}")


@shifts_group.command('list')
@click.argument('user_id', type=int)
@click.option('--page', type=int, default=1)
@with_appcontext
def shifts_list(user_id, page):
    """List a user's shifts, most recent first."""
    try:
        shifts = shift_service.list_user_shifts(user_id, page)
    except PosError as exc:
        _fail(exc)
    for shift in shifts:
        data = shift.to_dict()
        click.echo(
            f"{data['id']:<6} {data['status']:<7} {data['start_time']} -> {data['end_time'] or '-':<22} "
            f"expected={data['end_cash_expected'] or '-'} declared={data['end_cash_declared'] or '-'} "
            f"diff={data['difference'] or '-'}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(sales_group)
    app.cli.add_command(shifts_group)
