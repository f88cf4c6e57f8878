# Overview: Flask CLI command group for bootstrap and inspection.

# backend/stockpilot/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask stockpilot <command> [options]
#
# - python -m flask stockpilot init-db
#   Create all tables (development; production uses flask db upgrade).
# - python -m flask stockpilot reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask stockpilot create-admin --name "Owner" --email owner@shop.local --password "secret1"
#   Create an admin account (prompts if options are omitted).
# - python -m flask stockpilot list-products [--all]
#   List products with stock levels.

import click
from flask.cli import with_appcontext

from .errors import StockPilotError
from .extensions import db
from .permissions import ROLE_ADMIN
from .services.auth_service import create_user, PasswordValidationError
from .services.products_service import list_all_products


@click.group('stockpilot')
def stockpilot_group():
    """StockPilot bootstrap and inspection commands."""


@stockpilot_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    from . import models  # noqa: F401

    db.create_all()
    click.echo("PASS Database tables created.")


@stockpilot_group.command('reset-db')
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

    click.echo("PASS Database reset complete. Run 'python -m flask stockpilot create-admin' next.")


@stockpilot_group.command('create-admin')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_admin(name, email, password):
    """Create an administrator account."""
    try:
        user = create_user(name=name, email=email, password=password, role=ROLE_ADMIN)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e.message}")
        raise SystemExit(1)
    except StockPilotError as e:
        click.echo(f"FAIL Failed to create admin: {e.message}")
        for field_name, messages in (getattr(e, "field_errors", None) or {}).items():
            click.echo(f"     {field_name}: {', '.join(messages)}")
        raise SystemExit(1)

    click.echo(f"PASS Created admin: {user.name} ({user.email})")
    click.echo("SECURITY Password securely hashed with bcrypt")


@stockpilot_group.command('list-products')
@click.option('--all', 'show_all', is_flag=True, help='Include deactivated products')
@with_appcontext
def list_products_cli(show_all):
    """List products with stock levels."""
    products = [p for p in list_all_products() if show_all or p.is_active]
    if not products:
        click.echo("No products found.")
        return

    click.echo(f"{'ID':<6} {'SKU':<14} {'Name':<32} {'Stock':>7} {'Price':>10}  Status")
    click.echo("-" * 84)
    for p in products:
        status = "active" if p.is_active else "inactive"
        if p.is_active and 0 < p.stock < p.low_stock_threshold:
            status = "LOW"
        click.echo(
            f"{p.id:<6} {(p.sku or '-'):<14} {p.name[:32]:<32} {p.stock:>7} {p.price_cents / 100:>10.2f}  {status}"
        )
    click.echo(f"\nTotal: {len(products)} product(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(stockpilot_group)
