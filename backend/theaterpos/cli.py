# Overview: Flask CLI command groups for theater bootstrap and stock maintenance.

# backend/theaterpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Theater management:
# - python -m flask theaters create --name "PVR Forum" --code "PVR-FORUM"
#   Create a theater and seed its default roles and page access.
# - python -m flask theaters list
#   List all theaters with role/user counts.
# - python -m flask theaters init-roles --theater-id 1
#   Idempotently seed default roles and page access for an existing theater.
# - python -m flask theaters pages [--category stock]
#   List the page catalog roles can grant.
#
# Products:
# - python -m flask products create --theater-id 1 --name "Popcorn Large" --sku POP-L
#
# Stock ledger (cron):
# - python -m flask stock sweep-expired [--as-of 2026-10-19]
#   Daily expiry sweep; as-of defaults to today in STOCK_SWEEP_TIMEZONE.
# - python -m flask stock rollover [--year 2026 --month 11]
#   Open the month's ledgers from the previous closing balances (default: current month).

import sys

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy.exc import IntegrityError

from .extensions import db
from .models import Product, Theater
from .permissions import PAGE_DEFINITIONS, PageCategory, get_pages_by_category
from .services import stock_service
from .services.page_access_service import page_access, seed_page_access
from .services.role_service import create_default_roles, roles
from .services.theater_user_service import theater_users
from .time_utils import local_today
from .validation import NotFoundError, ValidationError


def _bootstrap_theater(theater_id: int) -> tuple[int, int]:
    created_roles = create_default_roles(theater_id)
    pages_added = seed_page_access(theater_id)
    return len(created_roles), pages_added


# =============================================================================
# THEATER MANAGEMENT COMMANDS
# =============================================================================

@click.group('theaters')
def theaters_group():
    """Theater (tenant) management commands."""


@theaters_group.command('create')
@click.option('--name', required=True, help='Theater name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_theater_cli(name, code):
    """Create a theater with default roles and page access."""
    existing = db.session.query(Theater).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Theater with code '{code}' already exists")
        return

    theater = Theater(name=name, code=code, is_active=True)
    db.session.add(theater)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        click.echo(f"FAIL Theater with code '{code}' already exists")
        return

    role_count, page_count = _bootstrap_theater(theater.id)
    click.echo(f"PASS Created theater: {theater.name} (ID: {theater.id}, Code: {theater.code})")
    click.echo(f"     {role_count} default roles, {page_count} pages enabled")


@theaters_group.command('list')
@with_appcontext
def list_theaters():
    """List all theaters."""
    theaters = db.session.query(Theater).order_by(Theater.id).all()

    if not theaters:
        click.echo("No theaters found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Roles':<8} {'Users'}")
    click.echo("="*80)

    for theater in theaters:
        role_doc = roles.get_document(theater.id)
        user_doc = theater_users.get_document(theater.id)
        role_count = role_doc.item_counts()["total"] if role_doc else 0
        user_count = user_doc.item_counts()["total"] if user_doc else 0
        active_str = "Yes" if theater.is_active else "No"

        click.echo(f"{theater.id:<5} {theater.name:<30} {theater.code or '-':<15} {active_str:<8} {role_count:<8} {user_count}")

    click.echo("="*80 + "\n")


@theaters_group.command('init-roles')
@click.option('--theater-id', type=int, required=True, help='Theater ID')
@with_appcontext
def init_roles(theater_id):
    """Seed default roles and page access (idempotent)."""
    try:
        role_count, page_count = _bootstrap_theater(theater_id)
    except NotFoundError as exc:
        click.echo(f"FAIL {exc}")
        sys.exit(1)

    doc = roles.get_document(theater_id)
    names = ", ".join(r["name"] for r in doc.copy_items()) if doc else "-"
    click.echo(f"PASS Added {role_count} roles and {page_count} pages. Roles now: {names}")

    doc = page_access.get_document(theater_id)
    click.echo(f"     Page access entries: {doc.item_counts()['total'] if doc else 0}")


@theaters_group.command('pages')
@click.option('--category', type=click.Choice(sorted(PageCategory.ALL)), help='Filter by page category')
@with_appcontext
def list_pages(category):
    """List the page catalog."""
    pages = get_pages_by_category(category) if category else PAGE_DEFINITIONS

    for key, name, route, cat in pages:
        click.echo(f"{key:<20} {name:<25} {cat:<12} {route}")


# =============================================================================
# PRODUCT COMMANDS
# =============================================================================

@click.group('products')
def products_group():
    """Concession product commands."""


@products_group.command('create')
@click.option('--theater-id', type=int, required=True, help='Theater ID')
@click.option('--name', required=True, help='Product name')
@click.option('--sku', help='SKU (unique within the theater)')
@with_appcontext
def create_product_cli(theater_id, name, sku):
    """Create a product with zero stock."""
    if not db.session.get(Theater, theater_id):
        click.echo(f"FAIL Theater {theater_id} not found")
        sys.exit(1)

    product = Product(theater_id=theater_id, name=name, sku=sku, current_stock=0, is_active=True)
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        click.echo(f"FAIL SKU '{sku}' already exists in theater {theater_id}")
        sys.exit(1)

    click.echo(f"PASS Created product: {product.name} (ID: {product.id})")


# =============================================================================
# STOCK LEDGER COMMANDS
# =============================================================================

@click.group('stock')
def stock_group():
    """Monthly stock ledger maintenance."""


@stock_group.command('sweep-expired')
@click.option('--as-of', 'as_of', type=click.DateTime(formats=['%Y-%m-%d']), help='Expire entries with expire_date on or before this date')
@with_appcontext
def sweep_expired(as_of):
    """Move expired stock out of the running balances."""
    report = stock_service.sweep_expired_stock(as_of.date() if as_of else None)

    click.echo(f"Sweep as of {report.as_of.isoformat()}")
    click.echo(f"  Ledgers scanned:   {report.ledgers_scanned}")
    click.echo(f"  Entries expired:   {report.entries_expired}")
    click.echo(f"  Quantity expired:  {report.quantity_expired}")
    click.echo(f"  Products updated:  {report.products_updated}")

    if report.failures:
        click.echo(f"FAIL {len(report.failures)} product(s) failed:")
        for failure in report.failures:
            click.echo(f"  product {failure['product_id']}: {failure['error']}")
        sys.exit(1)

    click.echo("PASS Sweep complete")


@stock_group.command('rollover')
@click.option('--year', type=int, help='Year to open (default: current)')
@click.option('--month', type=click.IntRange(1, 12), help='Month to open (default: current)')
@with_appcontext
def rollover(year, month):
    """Open a month's ledgers from the previous closing balances."""
    today = local_today(current_app.config["STOCK_SWEEP_TIMEZONE"])
    year = year or today.year
    month = month or today.month

    try:
        created = stock_service.rollover_month(year, month)
    except ValidationError as exc:
        click.echo(f"FAIL {exc}")
        sys.exit(1)

    click.echo(f"PASS Opened {created} ledgers for {year}-{month:02d}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(theaters_group)
    app.cli.add_command(products_group)
    app.cli.add_command(stock_group)
