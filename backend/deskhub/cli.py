# Overview: Flask CLI command groups for bootstrap, accounts and booking maintenance.

# backend/deskhub/cli.py
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
# Accounts:
# - python -m flask users create --email admin@deskhub.local --name "Admin" --password "Password123" --role admin
#   Create a user (prompts if options are omitted).
# - python -m flask users list
#
# Bookings:
# - python -m flask bookings complete-elapsed
#   Complete checked-in bookings whose end time has passed.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import DeskhubError
from .models import User
from .models.auth import USER_ROLES
from .services.auth_service import create_user
from .services.booking_service import complete_elapsed_bookings


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

    click.echo("PASS Database reset complete.")


@click.group('users')
def users_group():
    """Account inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(USER_ROLES)), default='staff', show_default=True, help='Role')
@with_appcontext
def create_user_cli(email, name, password, role):
    """Create a user. Only admin and staff accounts can sign in to the staff API."""
    try:
        user = create_user(email=email, name=name, password=password, role=role)
    except DeskhubError as e:
        db.session.rollback()
        raise click.ClickException(f"Failed to create user: {e.message}")

    click.echo(f"PASS Created user: {user.email} with role '{user.role}' (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users.")
        return
    for u in users:
        status = "active" if u.is_active else "inactive"
        click.echo(f"{u.id:>4}  {u.email:<32} {u.role:<9} {status}")


@click.group('bookings')
def bookings_group():
    """Booking maintenance commands."""


@bookings_group.command('complete-elapsed')
@with_appcontext
def complete_elapsed():
    """Mark checked-in bookings whose end time has passed as completed."""
    count = complete_elapsed_bookings()
    click.echo(f"PASS Completed {count} elapsed booking(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(bookings_group)
