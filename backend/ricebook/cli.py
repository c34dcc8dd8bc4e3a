# Overview: Flask CLI command groups for bootstrap, stock receipt and ledger maintenance.

# backend/ricebook/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent; use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Inventory:
# - python -m flask inventory add-stock "Sona Masoori" --bags 50 --unit-cost 1100
#   Receive a new batch (unit cost defaults to the brand's configured default).
# - python -m flask inventory list
#   List every item with on-hand count, batch count and stock value.
#
# Ledger maintenance:
# - python -m flask ledger audit
#   Recompute balances and batch totals from stored rows; exits 1 on mismatch.
# - python -m flask ledger reverse <transaction_id> --yes
#   Reverse a record: undo its balance and stock effects, then delete it.

import click
from flask.cli import with_appcontext

from .catalog import load_catalog
from .errors import LedgerError
from .extensions import db
from .services import inventory_service, ledger_service, reporting_service, reversal_service
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete.")


@click.group('inventory')
def inventory_group():
    """Stock receipt and inspection."""


@inventory_group.command('add-stock')
@click.argument('brand')
@click.option('--bags', type=int, required=True, help='Bags received')
@click.option('--unit-cost', type=int, default=None, help='Cost per bag (defaults to configured cost)')
@with_appcontext
def add_stock_cli(brand, bags, unit_cost):
    """
    Receive stock as a new batch.

    Example:
        flask inventory add-stock "Basmati" --bags 20 --unit-cost 1500
    """
    catalog = load_catalog()
    try:
        brand = catalog.require_brand(brand)
        if unit_cost is None:
            unit_cost = catalog.default_cost_for(brand)
        change = inventory_service.add_stock(product_id=brand, bags=bags, unit_cost=unit_cost)
    except (ValidationError, LedgerError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Received {change.units} bags of {brand} at {unit_cost} (batch {change.batch_id})")
    click.echo(f"     On hand: {change.count}")


@inventory_group.command('list')
@with_appcontext
def list_inventory_cli():
    """List inventory items with batch summaries."""
    items = inventory_service.list_inventory()
    if not items:
        click.echo("No inventory recorded.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Brand':<25} {'Count':<8} {'Batches':<8} {'Value':<12} {'Oldest batch'}")
    click.echo("="*80)

    for item in items:
        summary = inventory_service.get_inventory_summary(item.id)
        click.echo(
            f"{item.id:<25} {summary['count']:<8} {summary['batch_count']:<8} "
            f"{summary['stock_value']:<12} {summary['oldest_batch_date'] or '-'}"
        )

    click.echo("="*80 + "\n")


@click.group('ledger')
def ledger_group():
    """Ledger inspection and maintenance."""


@ledger_group.command('audit')
@with_appcontext
def audit_cli():
    """
    Check that every balance equals its ledger total and every item count
    equals the sum of its batches.
    """
    report = reporting_service.audit_ledger()

    for issue in report["balance_issues"]:
        click.echo(
            f"FAIL Customer {issue['customer_id']}: balance {issue['balance']} "
            f"!= ledger total {issue['ledger_total']}"
        )
    for issue in report["inventory_issues"]:
        click.echo(
            f"FAIL Item {issue['product_id']}: count {issue['count']} "
            f"!= batch total {issue['batch_total']}"
        )
    for product_id in report["untracked_items"]:
        click.echo(f"WARN Item {product_id} holds stock without batch history")
    for record_id in report["malformed_records"]:
        click.echo(f"WARN Record {record_id} has an unreadable type")

    if not report["ok"]:
        raise SystemExit(1)
    click.echo("PASS Ledger is consistent.")


@ledger_group.command('reverse')
@click.argument('transaction_id')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reverse_cli(transaction_id, yes):
    """Reverse (delete) a ledger record and undo its effects."""
    record = ledger_service.get_transaction(transaction_id)
    if record is None:
        raise click.ClickException(f"Transaction {transaction_id} not found")

    if not yes:
        click.confirm(
            f"WARN Reverse {record.type} of {record.amount} for {record.customer_name or record.customer_id}?",
            abort=True,
        )

    brand = getattr(record.read_details(), "brand", None)
    try:
        result = reversal_service.reverse_transaction(
            transaction_id,
            default_cost=load_catalog().default_cost_for(brand),
        )
    except LedgerError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Reversed {result.type} {result.transaction_id}")
    if result.customer_missing:
        click.echo("WARN Customer no longer exists; balance not changed")
    else:
        click.echo(f"     Balance: {result.balance}")
    if result.restored_units:
        click.echo(f"     Restored {result.restored_units} bags")
    if result.unrestored_brand:
        click.echo(f"WARN Inventory item {result.unrestored_brand} no longer exists; stock not restored")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(ledger_group)
