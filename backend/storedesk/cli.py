# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/storedesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, seeds default settings, and ensures an admin user (prints its API token).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with roles and active status.
# - python -m flask users create --name "Ama Mensah" --email ama@storedesk.local --role SALES
#   Create a back-office user and print its API token.
# - python -m flask users rotate-token ama@storedesk.local
#   Issue a new API token (the old one stops working).
#
# Business settings:
# - python -m flask settings list
# - python -m flask settings get ECOMMERCE_TAX_RATE
# - python -m flask settings set ECOMMERCE_TAX_RATE 15
#
# Exchange rates:
# - python -m flask rates set USD GHS 15.2
#   Record a manual rate effective now.
# - python -m flask rates convert USD GHS 1000
#   Preview a conversion of 1000 minor units.
#
# Side-effect outbox:
# - python -m flask outbox list --status FAILED --limit 20
# - python -m flask outbox dispatch --limit 100
#   Retry PENDING/FAILED side effects (notifications, sales orders, commissions).

import secrets

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services import crm_service, currency_service, outbox_service, settings_service
from .services.currency_service import CurrencyError
from .services.settings_service import SettingsError


VALID_ROLES = ['ADMIN', 'SALES', 'STAFF']


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize storedesk: schema, default settings, and an admin user.

    Safe to run repeatedly.
    """
    click.echo("START Initializing storedesk...")

    db.create_all()
    click.echo("PASS Tables ready")

    added = settings_service.ensure_defaults_seeded()
    click.echo(f"PASS Seeded {added} default setting(s)")

    admin = crm_service.get_system_user()
    if not admin.api_token:
        admin.api_token = secrets.token_urlsafe(32)
    db.session.commit()
    click.echo(f"PASS Admin user: {admin.email} (ID: {admin.id})")
    click.echo(f"     API token: {admin.api_token}")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--role', type=click.Choice(VALID_ROLES, case_sensitive=False), prompt=True, help='Role')
@with_appcontext
def create_user_cli(name, email, role):
    """Create a back-office user and print its API token."""
    email = email.strip().lower()
    if db.session.query(User).filter_by(email=email).first():
        click.echo(f"FAIL User with email {email} already exists")
        return

    user = User(
        name=name.strip(),
        email=email,
        role=role.upper(),
        api_token=secrets.token_urlsafe(32),
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, Role: {user.role})")
    click.echo(f"     API token: {user.api_token}")


@users_group.command('rotate-token')
@click.argument('email')
@with_appcontext
def rotate_token_cli(email):
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        click.echo(f"FAIL User {email} not found")
        return
    user.api_token = secrets.token_urlsafe(32)
    db.session.commit()
    click.echo(f"PASS New API token for {user.email}: {user.api_token}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with roles and status."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found. Run 'python -m flask system init' first.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<24} {'Email':<32} {'Role':<8} {'Active'}")
    click.echo("="*80)
    for user in users:
        click.echo(f"{user.id:<5} {user.name[:23]:<24} {user.email[:31]:<32} {user.role:<8} "
                   f"{'yes' if user.is_active else 'no'}")
    click.echo("="*80 + "\n")


@click.group('settings')
def settings_group():
    """Business settings (tax rate, checkout policy, commissions)."""


@settings_group.command('list')
@with_appcontext
def list_settings_cli():
    for item in settings_service.list_settings():
        marker = " (default)" if item["is_default"] else ""
        click.echo(f"{item['key']:<40} {item['value']}{marker}")


@settings_group.command('get')
@click.argument('key')
@with_appcontext
def get_setting_cli(key):
    value = settings_service.get_setting(key)
    if value is None:
        click.echo(f"FAIL {key} is not set")
        return
    click.echo(value)


@settings_group.command('set')
@click.argument('key')
@click.argument('value')
@with_appcontext
def set_setting_cli(key, value):
    try:
        settings_service.set_setting(key, value)
        db.session.commit()
    except SettingsError as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS {key} = {value}")


@click.group('rates')
def rates_group():
    """Exchange rate commands."""


@rates_group.command('set')
@click.argument('from_currency')
@click.argument('to_currency')
@click.argument('rate')
@with_appcontext
def set_rate_cli(from_currency, to_currency, rate):
    try:
        row = currency_service.set_exchange_rate(
            from_currency=from_currency, to_currency=to_currency, rate=rate
        )
        db.session.commit()
    except CurrencyError as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS {row.from_currency}->{row.to_currency} = {row.rate} (ID: {row.id})")


@rates_group.command('convert')
@click.argument('from_currency')
@click.argument('to_currency')
@click.argument('amount_cents', type=int)
@with_appcontext
def convert_cli(from_currency, to_currency, amount_cents):
    conversion = currency_service.convert_currency(from_currency, to_currency, amount_cents)
    if conversion is None:
        click.echo(f"FAIL No rate for {from_currency.upper()}->{to_currency.upper()}")
        return
    click.echo(f"{conversion.converted_cents} (rate {conversion.rate}, source {conversion.source})")


@click.group('outbox')
def outbox_group():
    """Side-effect outbox inspection and retry."""


@outbox_group.command('list')
@click.option('--status', type=click.Choice(['PENDING', 'DISPATCHED', 'FAILED']), default=None)
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def list_outbox_cli(status, limit):
    events = outbox_service.list_events(status=status, limit=limit)
    if not events:
        click.echo("No outbox events.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<6} {'Type':<28} {'Status':<11} {'Tries':<6} {'Last error'}")
    click.echo("="*100)
    for event in events:
        error = (event.last_error or "-")[:45]
        click.echo(f"{event.id:<6} {event.event_type:<28} {event.status:<11} {event.attempts:<6} {error}")
    click.echo("="*100 + "\n")


@outbox_group.command('dispatch')
@click.option('--limit', type=int, default=100, show_default=True)
@click.option('--max-attempts', type=int, default=None, help='Defaults to OUTBOX_MAX_ATTEMPTS')
@with_appcontext
def dispatch_outbox_cli(limit, max_attempts):
    result = outbox_service.dispatch_pending(limit=limit, max_attempts=max_attempts)
    current_app.logger.info("Outbox dispatch: %s", result)
    click.echo(f"PASS Dispatched {result['dispatched']}, failed {result['failed']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(settings_group)
    app.cli.add_command(rates_group)
    app.cli.add_command(outbox_group)
