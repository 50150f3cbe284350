# Overview: Flask CLI command groups for tenant bootstrap, inspection and valuation repair.

# backend/docledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Organization management:
# - python -m flask orgs list
#   List all organizations.
# - python -m flask orgs create --name "Acme Corp" --code "ACME" [--seed]
#   Create a new organization (tenant); --seed installs the standard document types.
# - python -m flask orgs add-warehouse --org-id 1 --code MAIN --name "Main warehouse"
#   Create a warehouse in an organization.
#
# Document types:
# - python -m flask doctypes seed --org-id 1
#   Install the standard document types (existing codes untouched).
# - python -m flask doctypes list --org-id 1
#
# Stock:
# - python -m flask stock show --org-id 1 --product-id 5 [--warehouse-id 2]
#   Print current stock for a product.
#
# Valuation repair:
# - python -m flask valuation rebuild --org-id 1 --year 2024
#   Delete and replay a fiscal year's product statistics from its documents.

import click
from flask.cli import with_appcontext

from .errors import DocLedgerError
from .extensions import db
from .models import Organization, Product, Warehouse
from .services import document_type_service, stock_service, valuation_service


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo(f"{'ID':<6} {'Code':<12} {'Active':<8} Name")
    for org in orgs:
        active_str = "Yes" if org.is_active else "No"
        click.echo(f"{org.id:<6} {org.code or '':<12} {active_str:<8} {org.name}")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--seed/--no-seed', default=True, help='Install the standard document types')
@with_appcontext
def create_org(name, code, seed):
    """Create a new organization (tenant)."""
    if db.session.query(Organization).filter_by(code=code).first():
        raise click.ClickException(f"Organization with code {code!r} already exists")

    org = Organization(name=name, code=code, is_active=True)
    db.session.add(org)
    db.session.commit()
    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")

    if seed:
        created = document_type_service.seed_default_document_types(org.id)
        click.echo(f"PASS Installed {len(created)} document types")


@orgs_group.command('add-warehouse')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--code', required=True, help='Warehouse code (unique within org)')
@click.option('--name', required=True, help='Warehouse name')
@with_appcontext
def add_warehouse(org_id, code, name):
    """Create a warehouse within an organization."""
    if not db.session.get(Organization, org_id):
        raise click.ClickException(f"Organization {org_id} not found")
    if db.session.query(Warehouse).filter_by(org_id=org_id, code=code).first():
        raise click.ClickException(f"Warehouse {code!r} already exists in org {org_id}")

    warehouse = Warehouse(org_id=org_id, code=code, name=name)
    db.session.add(warehouse)
    db.session.commit()
    click.echo(f"PASS Created warehouse: {warehouse.name} (ID: {warehouse.id})")


@click.group('doctypes')
def doctypes_group():
    """Document type policy commands."""


@doctypes_group.command('seed')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@with_appcontext
def seed_doctypes(org_id):
    """Install the standard document types for an organization."""
    if not db.session.get(Organization, org_id):
        raise click.ClickException(f"Organization {org_id} not found")
    created = document_type_service.seed_default_document_types(org_id)
    if not created:
        click.echo("All standard document types already present.")
        return
    for row in created:
        click.echo(f"PASS {row.code:<6} {row.description}")


@doctypes_group.command('list')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@with_appcontext
def list_doctypes(org_id):
    """List document types with their stock/valuation flags."""
    rows = document_type_service.list_document_types(org_id, include_inactive=True)
    if not rows:
        click.echo("No document types found.")
        return
    for row in rows:
        flags = []
        if row.moves_stock:
            flags.append("stock")
        if row.impacts_valuation:
            flags.append("valuation")
        sign = "+" if row.operation_sign > 0 else "-"
        active = "" if row.is_active else " (inactive)"
        click.echo(f"{row.id:<4} {row.code:<6} {sign} {row.numerator_code:<6} {','.join(flags) or '-':<16} {row.description}{active}")


@click.group('stock')
def stock_group():
    """Stock ledger inspection commands."""


@stock_group.command('show')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--warehouse-id', type=int, default=None, help='Limit to one warehouse')
@with_appcontext
def show_stock(org_id, product_id, warehouse_id):
    """Print the current stock of a product."""
    product = db.session.get(Product, product_id)
    if product is None or product.org_id != org_id:
        raise click.ClickException(f"Product {product_id} not found in org {org_id}")

    total = stock_service.current_stock(org_id, product_id, warehouse_id)
    click.echo(f"{product.code}: {total}")
    if warehouse_id is None:
        for wid, qty in sorted(stock_service.stock_by_warehouse(org_id, product_id).items()):
            click.echo(f"  warehouse {wid}: {qty}")


@click.group('valuation')
def valuation_group():
    """Valuation (weighted average cost) repair commands."""


@valuation_group.command('rebuild')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--year', type=int, required=True, help='Fiscal year to rebuild')
@with_appcontext
def rebuild_valuation(org_id, year):
    """Delete and replay a fiscal year's product statistics."""
    if not db.session.get(Organization, org_id):
        raise click.ClickException(f"Organization {org_id} not found")
    try:
        processed = valuation_service.rebuild_year(org_id=org_id, year=year)
    except DocLedgerError as e:
        raise click.ClickException(f"Rebuild failed: {e.message}")
    click.echo(f"PASS Rebuilt {year} for org {org_id}: {processed} documents replayed")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(orgs_group)
    app.cli.add_command(doctypes_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(valuation_group)
