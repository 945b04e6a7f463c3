# Overview: Flask CLI command groups for tenant bootstrap and day-end inspection.

# backend/posengine/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Declare tenant stores, e.g. TENANT_STORES="acme=sqlite:///acme.sqlite3".
# - Use: python -m flask <group> <command> [options]
#
# Tenant stores:
# - python -m flask tenants list
#   List configured tenant stores.
# - python -m flask tenants provision acme
#   Create any missing tables on the tenant's store (idempotent).
# - python -m flask tenants seed acme [--branch-code MAIN] [--currency USD]
#   Idempotent bootstrap: base currency, Cash method, branch, till,
#   walk-in customer and tenant settings.
#
# Day-end inspection:
# - python -m flask day-ends show acme --branch-id 1 --date 2025-01-31
#   Print the day-end totals and per-method reconciliation for one date.

import click
from flask.cli import with_appcontext

from .errors import EngineError
from .extensions import db
from .models import Branch, Currency, PaymentMethod, Till
from .services import customer_service, day_end_service, settings_service
from .services.tenant_service import list_tenants, provision_tenant_store, tenant_scope
from .time_utils import parse_iso_date


def _cents(value) -> str:
    return f"{(value or 0) / 100:,.2f}"


@click.group('tenants')
def tenants_group():
    """Tenant store commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants_cli():
    """List configured tenant stores."""
    codes = list_tenants()
    if not codes:
        click.echo("No tenant stores configured (set TENANT_STORES).")
        return
    for code in codes:
        click.echo(code)


@tenants_group.command('provision')
@click.argument('code')
@with_appcontext
def provision_tenant_cli(code):
    """Create the schema on a tenant store."""
    try:
        provision_tenant_store(code)
    except EngineError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Provisioned tenant store: {code}")


@tenants_group.command('seed')
@click.argument('code')
@click.option('--branch-code', default='MAIN', help='Code of the first branch')
@click.option('--branch-name', default='Main Branch', help='Name of the first branch')
@click.option('--currency', 'currency_code', default='USD', help='Base currency code')
@with_appcontext
def seed_tenant_cli(code, branch_code, branch_name, currency_code):
    """
    Seed the reference data a tenant needs before taking its first sale.

    Safe to run repeatedly; existing rows are reused.
    """
    try:
        provision_tenant_store(code)
        with tenant_scope(code):
            currency = db.session.query(Currency).filter_by(code=currency_code.upper()).first()
            if currency is None:
                currency = Currency(
                    code=currency_code.upper(),
                    name=currency_code.upper(),
                    exchange_rate=1,
                    is_default=True,
                )
                db.session.add(currency)
                click.echo(f"PASS Created base currency {currency.code}")

            cash = db.session.query(PaymentMethod).filter_by(name="Cash").first()
            if cash is None:
                cash = PaymentMethod(name="Cash")
                db.session.add(cash)
                click.echo("PASS Created payment method Cash")

            branch = db.session.query(Branch).filter_by(code=branch_code).first()
            if branch is None:
                branch = Branch(code=branch_code, name=branch_name)
                db.session.add(branch)
                click.echo(f"PASS Created branch {branch_code}")
            db.session.flush()

            if db.session.query(Till).filter_by(branch_id=branch.id).first() is None:
                db.session.add(Till(branch_id=branch.id, name="Till 1"))
                click.echo("PASS Created till 'Till 1'")

            customer_service.get_or_create_walk_in_customer(branch.id)

            settings = settings_service.get_tenant_settings()
            settings.base_currency_id = settings.base_currency_id or currency.id
            settings.cash_payment_method_id = settings.cash_payment_method_id or cash.id
            db.session.commit()
    except EngineError as e:
        db.session.rollback()
        raise click.ClickException(e.message)

    click.echo(f"PASS Seeded tenant {code}")


@click.group('day-ends')
def day_ends_group():
    """Day-end inspection commands."""


@day_ends_group.command('show')
@click.argument('code')
@click.option('--branch-id', type=int, required=True, help='Branch ID')
@click.option('--date', 'business_date', required=True, help='Business date (YYYY-MM-DD)')
@with_appcontext
def show_day_end_cli(code, branch_id, business_date):
    """
    Show one day-end.

    Example:
        flask day-ends show acme --branch-id 1 --date 2025-01-31
    """
    try:
        parsed = parse_iso_date(business_date)
    except ValueError:
        raise click.BadParameter("expected YYYY-MM-DD", param_hint="--date")

    try:
        with tenant_scope(code):
            day_end = day_end_service.find_day_end(branch_id, parsed)
            if day_end is None:
                click.echo("No day-end found.")
                return
            summary = day_end_service.get_day_end_summary(day_end.id)
    except EngineError as e:
        raise click.ClickException(e.message)

    record = summary["day_end"]
    click.echo("\n" + "=" * 72)
    click.echo(f"Day-end {record['id']}  branch {record['branch_id']}  {record['business_date']}  [{record['status']}]")
    click.echo("=" * 72)
    click.echo(f"Shifts:         {', '.join(str(s) for s in record['shift_ids']) or '-'}")
    click.echo(f"Total sales:    {_cents(record['total_sales_cents'])}")
    click.echo(f"Cash sales:     {_cents(record['total_cash_cents'])}")
    click.echo(f"Shift variance: {_cents(record['total_variance_cents'])}")
    click.echo("-" * 72)
    click.echo(f"{'Method':<8} {'Currency':<9} {'Expected':>14} {'Actual':>14} {'Variance':>14}")
    for row in summary["payment_reconciliation"]:
        click.echo(
            f"{row['payment_method_id']:<8} {row['currency_id']:<9} "
            f"{_cents(row['expected_amount_cents']):>14} {_cents(row['actual_amount_cents']):>14} "
            f"{_cents(row['variance_cents']):>14}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(tenants_group)
    app.cli.add_command(day_ends_group)
