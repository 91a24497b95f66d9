# Overview: Flask CLI command groups for the Local Store and sale reconciliation.

# backend/retail_ops/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to retail_ops (PowerShell: $env:FLASK_APP="retail_ops").
# - Use: python -m flask <group> <command> [options]
#
# Local Store:
# - python -m flask localstore path
#   Print the resolved Local Store file path.
# - python -m flask localstore init
#   Create the file, tables and indexes (idempotent).
# - python -m flask localstore info
#   Row counts per table.
#
# Sales:
# - python -m flask sales unreconciled [--backend local|remote]
#   List sales whose completion flow never wrote its audit entry.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db, datastore
from .models import AuditEntry, Product, Sale, StockAdjustment, User, Wholesaler
from .services.local_store import EngineUnavailableError, get_local_store
from .services.sales_service import find_unreconciled_sales


@click.group('localstore')
def localstore_group():
    """Local Store (embedded database) commands."""


@localstore_group.command('path')
@with_appcontext
def localstore_path():
    """Print the Local Store file path."""
    click.echo(current_app.config["LOCAL_DB_PATH"])


@localstore_group.command('init')
@with_appcontext
def localstore_init():
    """Open the Local Store, creating schema and indexes if absent."""
    try:
        get_local_store(current_app).open()
    except EngineUnavailableError as e:
        raise click.ClickException(f"Local Store unavailable: {e}")
    click.echo(f"PASS Local Store ready at {current_app.config['LOCAL_DB_PATH']}")


@localstore_group.command('info')
@with_appcontext
def localstore_info():
    """Row counts per table."""
    try:
        get_local_store(current_app).open()
    except EngineUnavailableError as e:
        raise click.ClickException(f"Local Store unavailable: {e}")

    for label, model in (
        ("users", User),
        ("products", Product),
        ("wholesalers", Wholesaler),
        ("sales", Sale),
        ("stock_adjustments", StockAdjustment),
        ("audit_trail", AuditEntry),
    ):
        click.echo(f"{label:<18} {db.session.query(model).count()}")


@click.group('sales')
def sales_group():
    """Sale reconciliation commands."""


@sales_group.command('unreconciled')
@click.option('--backend', type=click.Choice(['local', 'remote']), default='local', show_default=True)
@with_appcontext
def sales_unreconciled(backend):
    """List sales recorded without their completion audit entry."""
    try:
        with datastore.using(backend):
            sales = find_unreconciled_sales()
    except RuntimeError as e:
        raise click.ClickException(str(e))

    if not sales:
        click.echo("PASS No unreconciled sales")
        return
    for sale in sales:
        click.echo(f"WARN {sale['id']}  {sale['created_at']}  total={sale['total']:.2f}  by {sale['user_name']}")
    click.echo(f"{len(sales)} unreconciled sale(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(localstore_group)
    app.cli.add_command(sales_group)
