# Overview: Flask CLI command groups for bootstrap, seeding, and maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog seeding:
# - python -m flask locations create --name "Centro"
# - python -m flask products create --name "Yerba 1kg" --cost-cents 1000 --vat-bps 2100 --margin-bps 3000
#   Without --price-cents the base price is the (unapproved) suggested price.
# - python -m flask products add-tier --product-id <id> --min-qty 10 --price-cents 12000
# - python -m flask products set-cost --product-id <id> --cost-cents 1200
# - python -m flask stock set --product-id <id> --location-id <id> --quantity 50 --min-quantity 5
# - python -m flask clients create --name "Ana" --email ana@example.com
#
# Users:
# - python -m flask users create --username seller1 --password "Password123" --role SELLER --location-id <id>
#
# Operations:
# - python -m flask alerts run
#   Run the expiry and low-rotation checks once.
# - python -m flask sessions list --status OPEN
#   List recent cash sessions.

import click
from flask.cli import with_appcontext

from .errors import PosError
from .extensions import db
from .models import CashSession, CashSessionStatus, Client, EntityStatus, Location, Role
from .services import alert_service, auth_service, pricing_service, stock_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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


@click.group('locations')
def locations_group():
    """Location seeding."""


@locations_group.command('create')
@click.option('--name', required=True)
@with_appcontext
def create_location(name):
    location = Location(name=name.strip(), status=EntityStatus.ACTIVE)
    db.session.add(location)
    db.session.commit()
    click.echo(f"PASS Created location {location.name} (ID: {location.id})")


@locations_group.command('list')
@with_appcontext
def list_locations():
    for location in db.session.query(Location).order_by(Location.name).all():
        click.echo(f"{location.id}  {location.name}  {location.status.value}")


@click.group('users')
def users_group():
    """User bootstrap."""


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice([r.value for r in Role], case_sensitive=False), default=Role.SELLER.value)
@click.option('--location-id', default=None, help='Home location (required for SELLER)')
@with_appcontext
def create_user_command(username, password, role, location_id):
    try:
        user = auth_service.create_user(username, password, Role(role.upper()), location_id)
    except PosError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user {user.username} ({user.role.value}) ID: {user.id}")


@click.group('products')
def products_group():
    """Product and price seeding."""


@products_group.command('create')
@click.option('--name', required=True)
@click.option('--cost-cents', type=int, required=True)
@click.option('--vat-bps', type=int, default=2100, show_default=True)
@click.option('--margin-bps', type=int, default=3000, show_default=True)
@click.option('--price-cents', type=int, default=None, help='Approved base price; omit to use the suggested price')
@click.option('--expires-on', type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
@with_appcontext
def create_product_command(name, cost_cents, vat_bps, margin_bps, price_cents, expires_on):
    try:
        product = pricing_service.create_product(
            name=name,
            cost_cents=cost_cents,
            vat_bps=vat_bps,
            margin_bps=margin_bps,
            price_cents=price_cents,
            expires_on=expires_on.date() if expires_on else None,
        )
    except PosError as e:
        raise click.ClickException(e.message)
    state = "approved" if product.price_approved else "suggested"
    click.echo(f"PASS Created product {product.name} ID: {product.id} price={product.base_price_cents} ({state})")


@products_group.command('add-tier')
@click.option('--product-id', required=True)
@click.option('--min-qty', type=int, required=True)
@click.option('--price-cents', type=int, required=True, help='Total price for the tier quantity')
@with_appcontext
def add_tier_command(product_id, min_qty, price_cents):
    try:
        tier = pricing_service.add_quantity_tier(product_id, min_qty, price_cents)
    except PosError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Tier >= {tier.min_qty} units -> {tier.price_cents} cents")


@products_group.command('set-cost')
@click.option('--product-id', required=True)
@click.option('--cost-cents', type=int, required=True)
@with_appcontext
def set_cost_command(product_id, cost_cents):
    """Update the cost; an unapproved base price follows the new suggestion."""
    try:
        product = pricing_service.update_product_cost(product_id, cost_cents)
    except PosError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Cost={product.cost_cents} price={product.base_price_cents}")


@click.group('stock')
def stock_group():
    """Stock seeding and manual counts."""


@stock_group.command('set')
@click.option('--product-id', required=True)
@click.option('--location-id', required=True)
@click.option('--quantity', type=int, required=True)
@click.option('--min-quantity', type=int, default=None)
@with_appcontext
def set_stock_command(product_id, location_id, quantity, min_quantity):
    try:
        row = stock_service.set_stock(product_id, location_id, quantity, min_quantity)
    except PosError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Stock set: quantity={row.quantity} min={row.min_quantity}")


@click.group('clients')
def clients_group():
    """Client seeding."""


@clients_group.command('create')
@click.option('--name', required=True)
@click.option('--email', default=None)
@with_appcontext
def create_client_command(name, email):
    client = Client(name=name.strip(), email=email, loyalty_points=0, status=EntityStatus.ACTIVE)
    db.session.add(client)
    db.session.commit()
    click.echo(f"PASS Created client {client.name} ID: {client.id}")


@click.group('alerts')
def alerts_group():
    """Alert jobs."""


@alerts_group.command('run')
@with_appcontext
def run_alerts_command():
    results = alert_service.run_alert_checks()
    for name, count in results.items():
        status = "FAIL" if count is None else "PASS"
        click.echo(f"{status} {name}: {count if count is not None else 'error (see log)'}")


@click.group('sessions')
def sessions_group():
    """Cash session inspection."""


@sessions_group.command('list')
@click.option('--status', type=click.Choice([s.value for s in CashSessionStatus], case_sensitive=False), default=None)
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_sessions_command(status, limit):
    query = db.session.query(CashSession)
    if status:
        query = query.filter(CashSession.status == CashSessionStatus(status.upper()))
    sessions = query.order_by(CashSession.opened_at.desc()).limit(limit).all()
    if not sessions:
        click.echo("No cash sessions found.")
        return
    for s in sessions:
        click.echo(
            f"{s.id}  seller={s.seller_id}  location={s.location_id}  {s.status.value}  "
            f"float={s.opening_float_cents}  expected={s.expected_amount_cents}  variance={s.variance_cents}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(clients_group)
    app.cli.add_command(alerts_group)
    app.cli.add_command(sessions_group)
