# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/pointonsale/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Scope hierarchy:
# - python -m flask scopes create-company --name "Acme Retail" --code "ACME"
#   Create a company and its COMPANY root scope.
# - python -m flask scopes add --parent-id 1 --level STATE --name "North"
#   Attach a STATE/DISTRICT/LOCAL scope under an existing scope.
# - python -m flask scopes tree 1
#   Print the scope tree below a scope.
#
# Wallets:
# - python -m flask wallets seed --scope-id 1 --type FUND --amount-cents 100000
#   Book external money into a scope account (ledger ref "Seed").
# - python -m flask wallets show --scope-id 1
#   Show the three wallet balances of a scope.

import click
from flask.cli import with_appcontext

from .errors import CoreError
from .extensions import db
from .models.tenancy import SCOPE_LEVELS
from .models.wallets import WALLET_TYPES
from .services import scope_service, wallet_service
from .services.concurrency import run_with_configured_retry


def _format_cents(amount_cents: int) -> str:
    sign = "-" if amount_cents < 0 else ""
    amount_cents = abs(amount_cents)
    return f"{sign}{amount_cents // 100}.{amount_cents % 100:02d}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask scopes create-company' next.")


@click.group('scopes')
def scopes_group():
    """Company and scope hierarchy commands."""


@scopes_group.command('create-company')
@click.option('--name', required=True, help='Company name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_company_cli(name, code):
    """Create a company together with its COMPANY root scope."""
    try:
        root = scope_service.create_company(name, code)
    except CoreError as e:
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"PASS Created company {name} (Code: {code}) with root scope ID {root.id}")


@scopes_group.command('add')
@click.option('--parent-id', type=int, required=True, help='Parent scope ID')
@click.option('--level', type=click.Choice(SCOPE_LEVELS[1:]), required=True, help='Scope level')
@click.option('--name', required=True, help='Scope name')
@with_appcontext
def add_scope_cli(parent_id, level, name):
    """Attach a new scope under an existing one."""
    try:
        node = scope_service.create_scope(parent_id, level, name)
    except CoreError as e:
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"PASS Created {node.level} scope '{node.name}' (ID: {node.id}) under scope {parent_id}")


@scopes_group.command('tree')
@click.argument('scope_id', type=int)
@with_appcontext
def tree_cli(scope_id):
    """Print the scope tree rooted at SCOPE_ID."""
    try:
        tree = scope_service.get_scope_tree(scope_id)
    except CoreError as e:
        click.echo(f"FAIL {e.message}")
        return

    def _print(node: dict, depth: int) -> None:
        scope = node["scope"]
        marker = "" if scope["is_active"] else " (inactive)"
        click.echo(f"{'  ' * depth}[{scope['id']}] {scope['level']} {scope['name']}{marker}")
        for child in node["children"]:
            _print(child, depth + 1)

    _print(tree, 0)


@click.group('wallets')
def wallets_group():
    """Wallet account inspection and seeding."""


@wallets_group.command('seed')
@click.option('--scope-id', type=int, required=True, help='Scope ID')
@click.option('--type', 'wallet_type', type=click.Choice(WALLET_TYPES), default='FUND', help='Wallet type')
@click.option('--amount-cents', type=int, required=True, help='Amount in cents (positive)')
@with_appcontext
def seed_wallet(scope_id, wallet_type, amount_cents):
    """Book external money into a scope account."""
    try:
        entry = run_with_configured_retry(
            lambda: wallet_service.credit_account(
                scope_id, wallet_type, amount_cents, "Seed", str(scope_id), "Seed via CLI"
            )
        )
    except CoreError as e:
        click.echo(f"FAIL {e.message}")
        return

    account = wallet_service.get_account(entry.to_account_id)
    click.echo(
        f"PASS Seeded {_format_cents(amount_cents)} into {wallet_type} of scope {scope_id} "
        f"(balance {_format_cents(account.balance_cents)}, ledger entry {entry.id})"
    )


@wallets_group.command('show')
@click.option('--scope-id', type=int, required=True, help='Scope ID')
@with_appcontext
def show_wallets(scope_id):
    """Show wallet balances for a scope."""
    try:
        accounts = run_with_configured_retry(lambda: wallet_service.list_accounts(scope_id))
    except CoreError as e:
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"Scope {scope_id} wallets:")
    for account in accounts:
        click.echo(f"  {account.wallet_type:<16} {_format_cents(account.balance_cents):>14}  (account {account.id})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(scopes_group)
    app.cli.add_command(wallets_group)
