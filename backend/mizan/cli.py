# Overview: Flask CLI command group for ledger bootstrap and inspection.

# backend/mizan/cli.py
# Commands (run from the backend directory, FLASK_APP=wsgi.py):
# - python -m flask ledger init
#   Idempotent bootstrap: system accounts of the posting policy and a default warehouse.
# - python -m flask ledger post 12 [--allow-negative-stock]
#   Post draft document 12 through the consistency service.
# - python -m flask ledger balance 50
#   Print an account's running balance and its latest transactions.
# - python -m flask db upgrade
#   Apply migrations (Flask-Migrate).

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .ledger import LedgerError, get_ledger_service
from .models import Account
from .services import catalog_service

SYSTEM_ACCOUNTS = (
    ("INVENTORY_ACCOUNT_ID", "INV", "المخزون", "asset"),
    ("SALES_REVENUE_ACCOUNT_ID", "SALES", "المبيعات", "revenue"),
    ("COGS_ACCOUNT_ID", "COGS", "تكلفة البضاعة المباعة", "expense"),
)

DEFAULT_WAREHOUSE_NAME = "المستودع الرئيسي"


@click.group('ledger')
def ledger_group():
    """Ledger bootstrap and inspection commands."""


@ledger_group.command('init')
@with_appcontext
def init_ledger_data():
    """
    Create the posting policy's system accounts and a default warehouse.

    Account ids come from INVENTORY_ACCOUNT_ID, SALES_REVENUE_ACCOUNT_ID and
    COGS_ACCOUNT_ID; existing rows are left untouched.
    """
    click.echo("START Initializing ledger data...")

    for config_key, code, name, account_type in SYSTEM_ACCOUNTS:
        account_id = current_app.config[config_key]
        existing = db.session.get(Account, account_id)
        if existing:
            click.echo(f"PASS Using existing account {existing.id}: {existing.name} ({existing.type})")
            continue
        account = Account(id=account_id, code=code, name=name, type=account_type, current_balance=0)
        db.session.add(account)
        db.session.commit()
        click.echo(f"PASS Created account {account.id}: {name} ({account_type})")

    warehouse = catalog_service.get_default_warehouse()
    if warehouse:
        click.echo(f"PASS Using existing default warehouse: {warehouse.name} (ID: {warehouse.id})")
    else:
        warehouse = catalog_service.create_warehouse(patch={"name": DEFAULT_WAREHOUSE_NAME, "is_default": True})
        click.echo(f"PASS Created default warehouse: {warehouse.name} (ID: {warehouse.id})")

    click.echo("DONE Ledger initialized")


@ledger_group.command('post')
@click.argument('document_id', type=int)
@click.option('--allow-negative-stock', is_flag=True, default=False, help='Allow the sale to drive stock below zero')
@with_appcontext
def post_document(document_id, allow_negative_stock):
    """Post a draft document."""
    try:
        posted = get_ledger_service().post_document(document_id, allow_negative_stock=allow_negative_stock or None)
    except LedgerError as e:
        raise click.ClickException(f"{type(e).__name__}: {e}")

    doc = posted.document
    click.echo(f"PASS Posted {doc.document_number} ({doc.kind.value}) total={doc.total}")
    click.echo(f"     movements={len(posted.movements)} entries={len(posted.transactions)} cogs={posted.cost_of_goods_sold}")


@ledger_group.command('balance')
@click.argument('account_id', type=int)
@click.option('--limit', default=10, show_default=True, help='Number of recent transactions to show')
@with_appcontext
def account_balance(account_id, limit):
    """Show an account's balance and latest transactions."""
    service = get_ledger_service()
    try:
        balance = service.get_account_balance(account_id)
    except LedgerError as e:
        raise click.ClickException(str(e))

    click.echo(f"Account {account_id} balance: {balance}")
    for tx in service.list_transactions(account_id=account_id)[:limit]:
        side = ""
        if tx.is_debit is not None:
            side = " Dr" if tx.is_debit else " Cr"
        click.echo(f"  {tx.date:%Y-%m-%d} {tx.type}{side} {tx.amount} {tx.reference or ''}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
