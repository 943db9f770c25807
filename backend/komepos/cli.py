# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/komepos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--company "Kome Ramen"] [--timezone America/Panama] [--tax-rate 0.07]
#   Idempotent bootstrap: creates the default company, location and admin/manager/cashier users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Shift inspection:
# - python -m flask shifts list [--location-id 1] [--status OPEN] [--limit 20]
#   List recent shifts with variance.
# - python -m flask shifts show 12
#   Print the shift summary and drawer ledger.
#
# Order inspection:
# - python -m flask orders show ORD-001-000042
#   Print an order with its items and refund link.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Company, Location, Shift, User
from .models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from .money import to_decimal
from .services import order_service, shift_service
from .validation import NotFoundError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--company', 'company_name', default='Default Company', help='Company name')
@click.option('--location', 'location_name', default='Main', help='First location name')
@click.option('--timezone', 'tz_name', default=None, help='IANA time zone (defaults to DEFAULT_TIMEZONE)')
@click.option('--tax-rate', default=None, help='Tax rate as a fraction, e.g. 0.07')
@with_appcontext
def init_system(company_name, location_name, tz_name, tax_rate):
    """
    Initialize the order engine: company, first location and default users.

    Creates (only what is missing):
    - Default company with time zone and tax rate
    - One location
    - Users: admin, manager, cashier (assigned to the location)
    """
    from flask import current_app

    click.echo("START Initializing KomePOS...")

    company = db.session.query(Company).first()
    if not company:
        company = Company(
            name=company_name,
            timezone=tz_name or current_app.config["DEFAULT_TIMEZONE"],
            tax_rate=to_decimal(tax_rate or current_app.config["DEFAULT_TAX_RATE"]),
        )
        db.session.add(company)
        db.session.commit()
        click.echo(f"PASS Created company: {company.name} (ID: {company.id}, TZ: {company.timezone})")
    else:
        click.echo(f"PASS Using existing company: {company.name} (ID: {company.id})")

    location = db.session.query(Location).filter_by(company_id=company.id).first()
    if not location:
        location = Location(company_id=company.id, name=location_name)
        db.session.add(location)
        db.session.commit()
        click.echo(f"PASS Created location: {location.name} (ID: {location.id})")
    else:
        click.echo(f"PASS Using existing location: {location.name} (ID: {location.id})")

    for username, role in (("admin", ROLE_ADMIN), ("manager", ROLE_MANAGER), ("cashier", ROLE_CASHIER)):
        user = db.session.query(User).filter_by(company_id=company.id, username=username).first()
        if user:
            click.echo(f"SKIP User {username} already exists (ID: {user.id})")
            continue
        user = User(
            company_id=company.id,
            username=username,
            full_name=username.capitalize(),
            role=role,
            location_id=location.id,
        )
        db.session.add(user)
        db.session.commit()
        click.echo(f"PASS Created user {username} (ID: {user.id}, role: {role})")

    click.echo("DONE System initialized.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset.")


# =============================================================================
# SHIFTS
# =============================================================================

@click.group('shifts')
def shifts_group():
    """Shift inspection commands."""


@shifts_group.command('list')
@click.option('--location-id', type=int, default=None, help='Filter by location')
@click.option('--status', default=None, help='OPEN or CLOSED')
@click.option('--limit', type=int, default=20, help='Max rows')
@with_appcontext
def list_shifts_cli(location_id, status, limit):
    """
    List shifts.

    Example:
        flask shifts list
        flask shifts list --location-id 1
        flask shifts list --status OPEN
    """
    query = db.session.query(Shift)

    if location_id:
        query = query.filter_by(location_id=location_id)

    if status:
        query = query.filter_by(status=status.upper())

    shifts = query.order_by(Shift.started_at.desc(), Shift.id.desc()).limit(limit).all()

    if not shifts:
        click.echo("No shifts found.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<5} {'Location':<10} {'User':<15} {'Status':<8} {'Started':<20} {'Variance':<12} {'Notes'}")
    click.echo("="*110)

    for shift in shifts:
        username = shift.user.username if shift.user else "Unknown"
        variance_str = f"${shift.cash_variance:+.2f}" if shift.cash_variance is not None else "-"
        notes = shift.notes[:30] if shift.notes else "-"

        click.echo(f"{shift.id:<5} {shift.location_id:<10} {username:<15} {shift.status:<8} "
                   f"{str(shift.started_at)[:19]:<20} {variance_str:<12} {notes}")

    click.echo("="*110 + "\n")


@shifts_group.command('show')
@click.argument('shift_id', type=int)
@with_appcontext
def show_shift_cli(shift_id):
    """Print a shift summary and its drawer ledger."""
    try:
        summary = shift_service.get_shift_summary(shift_id)
    except NotFoundError as e:
        raise click.ClickException(str(e))

    shift = summary["shift"]
    click.echo(f"Shift {shift['id']} ({shift['status']}) user={shift['user_name']} location={shift['location_id']}")
    click.echo(f"  Starting cash:  {shift['starting_cash']}")
    click.echo(f"  Expected cash:  {summary['expected_cash']}")
    if shift["ending_cash"] is not None:
        click.echo(f"  Ending cash:    {shift['ending_cash']}")
        click.echo(f"  Variance:       {shift['cash_variance']}")
    click.echo(f"  Orders: {summary['order_count']}  Gross: {summary['gross_sales']}  "
               f"Refunds: {summary['refund_total']}  Net: {summary['net_sales']}")
    for method, amount in summary["sales_by_payment_method"].items():
        click.echo(f"    {method:<10} {amount}")

    click.echo("  Drawer ledger:")
    for entry in shift_service.list_drawer_transactions(shift_id):
        click.echo(f"    {str(entry.created_at)[:19]}  {entry.kind:<10} {entry.amount:>10}  {entry.reason or ''}")


# =============================================================================
# ORDERS
# =============================================================================

@click.group('orders')
def orders_group():
    """Order inspection commands."""


@orders_group.command('show')
@click.argument('order_number')
@with_appcontext
def show_order_cli(order_number):
    """Print an order with its items."""
    try:
        order = order_service.get_order_by_number(order_number)
    except NotFoundError as e:
        raise click.ClickException(str(e))

    click.echo(f"{order.order_number}  {order.order_type}/{order.channel}  "
               f"status={order.status} payment={order.payment_method}:{order.payment_status}")
    if order.refund_of is not None:
        click.echo(f"  Refund of {order.refund_of.order_number} via {order.disbursement_method}")
    elif order.refund is not None:
        click.echo(f"  Refunded by {order.refund.order_number}")

    for item in order.items:
        click.echo(f"  {item.quantity:>3} x {item.product_name:<30} {item.unit_price:>10} {item.line_total:>10}")
        snap = item.item_snapshot
        for option in snap.options:
            click.echo(f"        {option.group_name}: {option.option_name}")
        for addon in snap.addons:
            click.echo(f"        + {addon.name} x{addon.quantity}")

    click.echo(f"  Discount: {order.discount_amount}  Delivery: {order.delivery_fee}")
    click.echo(f"  Subtotal: {order.subtotal}  Tax: {order.tax_amount}  Total: {order.total}")
    if order.notes:
        click.echo(f"  Notes: {order.notes}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(shifts_group)
    app.cli.add_command(orders_group)
