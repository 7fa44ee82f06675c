# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/ledgerdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "ledgerdesk:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use "flask db upgrade" for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Accounts:
# - python -m flask accounts list [--kind customer]
#   List accounts with their cached balances.
# - python -m flask accounts recompute [--account-id 1]
#   Re-fold balances from ledger history (one account or all).
#
# Shifts / treasury:
# - python -m flask shifts current
#   Show the open shift and its expected drawer amount.
# - python -m flask treasury balance --type cash [--shift-id 3]
#   Sum of credits minus debits.

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    from . import models  # noqa: F401

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


# =============================================================================
# ACCOUNTS
# =============================================================================

@click.group('accounts')
def accounts_group():
    """Account inspection and balance repair commands."""


@accounts_group.command('list')
@click.option('--kind', type=click.Choice(['customer', 'supplier']), help='Filter by kind')
@with_appcontext
def list_accounts_cli(kind):
    """
    List accounts with cached balances.

    Example:
        flask accounts list --kind supplier
    """
    from .services import account_service

    accounts = account_service.list_accounts(kind=kind)
    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo(f"{'ID':<6} {'Kind':<10} {'Name':<30} {'Balance':>14}")
    click.echo("-" * 64)
    for account in accounts:
        click.echo(
            f"{account.id:<6} {account.kind:<10} {account.display_name[:30]:<30} "
            f"{account.cached_balance_cents:>14}"
        )


@accounts_group.command('recompute')
@click.option('--account-id', type=int, help='Only this account')
@with_appcontext
def recompute_cli(account_id):
    """
    Re-fold cached balances from ledger history.

    Example:
        flask accounts recompute
        flask accounts recompute --account-id 7
    """
    from .models import Account
    from .services import balance_service

    try:
        if account_id is not None:
            before = db.session.get(Account, account_id)
            old = before.cached_balance_cents if before else None
            balance = balance_service.recompute(account_id)
            click.echo(f"PASS Account {account_id}: {old} -> {balance}")
            return

        olds = {a.id: a.cached_balance_cents for a in db.session.query(Account).all()}
        results = balance_service.recompute_all()
        changed = [aid for aid, balance in results.items() if olds.get(aid) != balance]
        for aid in changed:
            click.echo(f"FIX  Account {aid}: {olds.get(aid)} -> {results[aid]}")
        click.echo(f"PASS Recomputed {len(results)} accounts ({len(changed)} changed)")
    except LedgerError as e:
        raise click.ClickException(str(e))


# =============================================================================
# SHIFTS / TREASURY
# =============================================================================

@click.group('shifts')
def shifts_group():
    """Drawer shift inspection commands."""


@shifts_group.command('current')
@with_appcontext
def current_shift_cli():
    """Show the open shift, if any."""
    from .services import shift_service

    shift = shift_service.get_open_shift()
    if not shift:
        click.echo("No open shift.")
        return

    summary = shift_service.get_shift_summary(shift.id)
    click.echo(f"Shift {shift.id} OPEN since {shift.opened_at} (by {shift.opened_by or '-'})")
    click.echo(f"   Opening:  {shift.opening_cents}")
    click.echo(f"   Expected: {summary['expected_closing_cents']}")
    click.echo(f"   Expenses: {summary['drawer']['expenses_cents']}")


@click.group('treasury')
def treasury_group():
    """Treasury inspection commands."""


@treasury_group.command('balance')
@click.option('--type', 'balance_type', type=click.Choice(['cash', 'bank']), default='cash', help='Treasury type')
@click.option('--shift-id', type=int, help='Scope to one shift')
@with_appcontext
def treasury_balance_cli(balance_type, shift_id):
    """
    Sum of credits minus debits.

    Example:
        flask treasury balance --type bank
    """
    from .services import treasury_service

    balance = treasury_service.balance_as_of(balance_type, shift_id=shift_id)
    scope = f" (shift {shift_id})" if shift_id else ""
    click.echo(f"{balance_type}{scope}: {balance}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(shifts_group)
    app.cli.add_command(treasury_group)
