# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/bazaar/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the demo admin, seller and customer.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --email shop@bazaar.local --role seller --business-name "Corner Shop"
# - python -m flask users token shop@bazaar.local
#   Issue a bearer token (printed once; only its hash is stored).
#
# Products:
# - python -m flask products create --seller-id 1 --sku TEA-01 --name "Green Tea" --price-fils 2500 --stock 40
#
# Inventory:
# - python -m flask inventory verify [--product-id 3]
#   Replay inventory log chains and compare them with live stock.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import MarketplaceError
from .extensions import db
from .permissions import Role
from .services import account_service, session_service


DEFAULT_USERS = [
    ("admin@bazaar.local", Role.ADMIN, None),
    ("seller@bazaar.local", Role.SELLER, "Demo Shop"),
    ("customer@bazaar.local", Role.CUSTOMER, None),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create tables (if missing) and the demo accounts."""
    click.echo("START Initializing Bazaar...")
    db.create_all()

    for email, role, business_name in DEFAULT_USERS:
        if account_service.get_user_by_email(email) is not None:
            click.echo(f"WARN  User '{email}' already exists, skipping...")
            continue
        user = account_service.create_user(email, role, business_name=business_name)
        click.echo(f"PASS Created {role}: {user.email} (ID: {user.id})")

    click.echo("PASS Initialization complete. Issue tokens with 'python -m flask users token EMAIL'.")


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
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--role', type=click.Choice(list(Role.ALL)), prompt=True, help='Role')
@click.option('--business-name', default=None, help='Seller business name (sellers only)')
@click.option('--first-name', default=None)
@click.option('--last-name', default=None)
@with_appcontext
def create_user_cli(email, role, business_name, first_name, last_name):
    """Create a user; sellers also get a seller profile."""
    try:
        user = account_service.create_user(
            email,
            role,
            first_name=first_name,
            last_name=last_name,
            business_name=business_name,
        )
    except MarketplaceError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created user: {user.email} with role '{role}' (ID: {user.id})")
    if user.seller_profile is not None:
        click.echo(f"     Seller profile ID: {user.seller_profile.id}")


@users_group.command('token')
@click.argument('email')
@with_appcontext
def issue_token_cli(email):
    """Issue a bearer session token for EMAIL."""
    user = account_service.get_user_by_email(email)
    if user is None:
        raise click.ClickException(f"User {email} not found")
    try:
        session, token = session_service.create_session(user.id)
    except ValueError as e:
        raise click.ClickException(str(e))

    click.echo(token)
    click.echo(f"Expires at {session.expires_at.isoformat()}Z", err=True)


@click.group('products')
def products_group():
    """Catalog bootstrap commands."""


@products_group.command('create')
@click.option('--seller-id', type=int, required=True)
@click.option('--sku', default=None)
@click.option('--name', required=True)
@click.option('--price-fils', type=int, required=True, help='Unit price in fils (1/1000)')
@click.option('--stock', type=int, default=0, show_default=True, help='Opening stock (enters as a restock entry)')
@with_appcontext
def create_product_cli(seller_id, sku, name, price_fils, stock):
    catalog = current_app.extensions["bazaar"].catalog
    try:
        product = catalog.create_product(
            seller_id=seller_id,
            sku=sku,
            name=name,
            price_fils=price_fils,
            stock=stock,
        )
    except MarketplaceError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created product {product.id}: {product.name} price={product.to_dict()['price']} stock={product.stock}")


@click.group('inventory')
def inventory_group():
    """Inventory ledger inspection."""


@inventory_group.command('verify')
@click.option('--product-id', type=int, default=None, help='Verify one product (default: all)')
@with_appcontext
def verify_inventory_cli(product_id):
    """
    Replay inventory chains.

    Exits non-zero when any chain is broken, so it can gate a deploy or a
    nightly job.
    """
    services = current_app.extensions["bazaar"]
    product_ids = [product_id] if product_id is not None else services.repository.list_product_ids()

    broken = 0
    for pid in product_ids:
        try:
            report = services.ledger.verify_chain(pid)
        except MarketplaceError as e:
            raise click.ClickException(e.message)

        if report.valid:
            click.echo(f"PASS product {pid}: {report.entry_count} entries, stock {report.current_stock}")
        else:
            broken += 1
            click.echo(f"FAIL product {pid}: stock {report.current_stock}, replayed {report.replayed_quantity}")
            for item in report.breaks:
                click.echo(f"     {item}")

    if broken:
        raise click.ClickException(f"{broken} broken inventory chain(s)")
    click.echo(f"PASS {len(product_ids)} chain(s) verified")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
    app.cli.add_command(inventory_group)
