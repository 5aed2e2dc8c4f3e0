# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/splitledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Use `flask db upgrade` for migrations.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users (stand-in for the external identity provider):
# - python -m flask users create --email asha@example.com --name "Asha" [--upi-id asha@upi]
# - python -m flask users issue-token --user-id 1 [--ttl-hours 24]
#   Prints a bearer token once; only its hash is stored.
#
# Groups:
# - python -m flask groups create --user-id 1 --name "Flat 4B"
# - python -m flask groups join --user-id 2 --code A1B2C3D4
#
# Balances:
# - python -m flask balances show --user-id 1
#   Recomputed owed/owing totals, overall and per group.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import SettlementError
from .services import balance_service, identity_service, membership_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


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
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', prompt=True, help='Display name')
@click.option('--upi-id', default=None, help='UPI id shown to payers')
@with_appcontext
def create_user_cli(email, name, upi_id):
    """Create a user record."""
    try:
        user = identity_service.create_user(email, name, upi_id)
        click.echo(f"PASS Created user: {user.name} ({user.email}) ID: {user.id}")
    except SettlementError as e:
        click.echo(f"FAIL {e}")


@users_group.command('issue-token')
@click.option('--user-id', type=int, required=True, help='User ID')
@click.option('--ttl-hours', type=int, default=None, help='Token lifetime (default SESSION_TOKEN_TTL_HOURS)')
@with_appcontext
def issue_token_cli(user_id, ttl_hours):
    """Mint a bearer token. The plaintext is printed once and never stored."""
    try:
        record, token = identity_service.issue_token(user_id, ttl_hours)
        click.echo(f"PASS Token for user {user_id} (expires {record.expires_at.isoformat()}Z):")
        click.echo(token)
    except SettlementError as e:
        click.echo(f"FAIL {e}")


# =============================================================================
# GROUPS
# =============================================================================

@click.group('groups')
def groups_group():
    """Group bootstrap commands."""


@groups_group.command('create')
@click.option('--user-id', type=int, required=True, help='Creator (becomes admin)')
@click.option('--name', prompt=True, help='Group name')
@click.option('--description', default=None, help='Optional description')
@with_appcontext
def create_group_cli(user_id, name, description):
    try:
        identity_service.get_user(user_id)
        group = membership_service.create_group(name, user_id, description)
        click.echo(f"PASS Created group: {group.name} (ID: {group.id})")
        click.echo(f"     Invite code: {group.invite_code}")
    except SettlementError as e:
        click.echo(f"FAIL {e}")


@groups_group.command('join')
@click.option('--user-id', type=int, required=True, help='Joining user')
@click.option('--code', 'invite_code', required=True, help='Invite code')
@with_appcontext
def join_group_cli(user_id, invite_code):
    try:
        identity_service.get_user(user_id)
        member = membership_service.join_group(invite_code, user_id)
        click.echo(f"PASS User {user_id} joined group {member.group_id} as {member.role}")
    except SettlementError as e:
        click.echo(f"FAIL {e}")


# =============================================================================
# BALANCES
# =============================================================================

@click.group('balances')
def balances_group():
    """Balance inspection commands."""


def _fmt(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100}.{cents % 100:02d}"


@balances_group.command('show')
@click.option('--user-id', type=int, required=True, help='User ID')
@with_appcontext
def show_balances(user_id):
    """Print what a user is owed and owes, overall and per group."""
    try:
        identity_service.get_user(user_id)
    except SettlementError as e:
        click.echo(f"FAIL {e}")
        return

    totals = balance_service.compute_balances(user_id)
    click.echo(f"User {user_id}")
    click.echo(f"  Owed to you: {_fmt(totals.owed_cents)}")
    click.echo(f"  You owe:     {_fmt(totals.owing_cents)}")
    click.echo(f"  Net:         {_fmt(totals.net_cents)}")

    per_group = balance_service.compute_group_balances(user_id)
    for group_id, b in sorted(per_group.items()):
        click.echo(f"  Group {group_id}: owed {_fmt(b.owed_cents)} / owing {_fmt(b.owing_cents)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(groups_group)
    app.cli.add_command(balances_group)
