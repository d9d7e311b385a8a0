# Overview: Flask CLI command groups for bootstrap and settlement maintenance.

# backend/maleta/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use "flask db upgrade" for migration-managed databases).
# - python -m flask system seed-demo
#   Idempotent demo data: admin/operator users, a seller, inventory and a loaded suitcase.
#
# Settlement maintenance:
# - python -m flask settlements show 12
#   Print a settlement with its sold items, cost and net profit.
# - python -m flask settlements cleanup 3
#   Re-run reconciliation cleanup for suitcase 3 after a partially failed settlement.
# - python -m flask settlements release-lock 3 --yes
#   Drop the settlement slot lock of suitcase 3 left behind by a crashed workflow.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import InventoryItem, Seller, Suitcase, User
from .money import format_cents
from .services import cleanup_service, settlement_service, suitcase_item_service
from .services.authorization_service import ROLE_ADMIN, ROLE_OPERATOR
from .services.concurrency import force_release_settlement_lock
from .services.errors import InconsistentCleanup, NotFoundError, PersistenceFailure


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema created.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Load demo data for manual testing.

    Creates (when missing):
    - Users: admin (admin role), operador (operator role)
    - Seller "Maria Demo" with the default commission rate
    - Three inventory items
    - Suitcase DEMO-001 holding one of each item
    """
    click.echo("START Seeding demo data...")

    for username, role in (("admin", ROLE_ADMIN), ("operador", ROLE_OPERATOR)):
        if not db.session.query(User).filter_by(username=username).first():
            db.session.add(User(username=username, email=f"{username}@maleta.local", role=role))
            click.echo(f"PASS Created user {username} ({role})")
    db.session.commit()

    seller = db.session.query(Seller).filter_by(name="Maria Demo").first()
    if not seller:
        seller = Seller(name="Maria Demo", phone="11999990000")
        db.session.add(seller)
        db.session.commit()
        click.echo(f"PASS Created seller {seller.name} (ID: {seller.id})")

    products = []
    for sku, name, price, cost in (
        ("DEMO-BRINCO", "Brinco dourado", 1000, 400),
        ("DEMO-COLAR", "Colar prata", 2000, 900),
        ("DEMO-ANEL", "Anel solitario", 3000, 1200),
    ):
        product = db.session.query(InventoryItem).filter_by(sku=sku).first()
        if not product:
            product = InventoryItem(sku=sku, name=name, price_cents=price, unit_cost_cents=cost, quantity=10)
            db.session.add(product)
            db.session.commit()
            click.echo(f"PASS Created inventory item {sku}")
        products.append(product)

    suitcase = db.session.query(Suitcase).filter_by(code="DEMO-001").first()
    if not suitcase:
        suitcase = Suitcase(code="DEMO-001", seller_id=seller.id, city="Sao Paulo")
        db.session.add(suitcase)
        db.session.commit()
        for product in products:
            suitcase_item_service.add_item_to_suitcase(suitcase.id, product.id, 1)
        click.echo(f"PASS Created suitcase {suitcase.code} (ID: {suitcase.id}) with {len(products)} items")

    click.echo("DONE Demo data ready.")


@click.group('settlements')
def settlements_group():
    """Settlement inspection and repair commands."""


@settlements_group.command('show')
@click.argument('settlement_id', type=int)
@with_appcontext
def show_settlement(settlement_id):
    """Print one settlement with its sold items."""
    try:
        details = settlement_service.get_settlement_details(settlement_id)
    except NotFoundError as e:
        raise click.ClickException(str(e))

    click.echo("\n" + "="*80)
    click.echo(f"Settlement {details['id']}  suitcase={details['suitcase_id']}  "
               f"seller={details['seller_id']}  status={details['status']}")
    click.echo(f"Date: {details['settlement_date']}  Next: {details['next_settlement_date'] or '-'}")
    click.echo("="*80)
    click.echo(f"{'Item':<8} {'SKU':<16} {'Name':<30} {'Price':>10}")
    for record in details["sold_items"]:
        product = record["product"] or {}
        click.echo(f"{record['suitcase_item_id']:<8} {product.get('sku', '-'):<16} "
                   f"{product.get('name', '-'):<30} {record['price']:>10}")
    click.echo("-"*80)
    click.echo(f"Total sales: {details['total_sales']}")
    click.echo(f"Commission ({details['commission_rate_applied']}): {details['commission_amount']}")
    click.echo(f"Cost: {format_cents(details['total_cost_cents'])}  "
               f"Net profit: {format_cents(details['net_profit_cents'])}")
    click.echo("="*80 + "\n")


@settlements_group.command('cleanup')
@click.argument('suitcase_id', type=int)
@click.option('--max-attempts', type=int, default=None, help='Override CLEANUP_MAX_ATTEMPTS')
@with_appcontext
def cleanup_cli(suitcase_id, max_attempts):
    """Re-run reconciliation cleanup for a suitcase."""
    try:
        removed = cleanup_service.cleanup_suitcase(suitcase_id, max_attempts=max_attempts)
    except NotFoundError as e:
        raise click.ClickException(str(e))
    except InconsistentCleanup as e:
        raise click.ClickException(f"{e} (remaining items: {e.remaining_item_ids})")
    except PersistenceFailure as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Removed {removed} item(s) from suitcase {suitcase_id}.")


@settlements_group.command('release-lock')
@click.argument('suitcase_id', type=int)
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def release_lock_cli(suitcase_id, yes):
    """
    Drop the settlement slot lock of a suitcase.

    Only use this when no settlement of the suitcase is actually running.
    """
    if not yes:
        click.confirm(f"WARN Release the settlement lock of suitcase {suitcase_id}?", abort=True)
    if force_release_settlement_lock(suitcase_id):
        click.echo(f"PASS Lock of suitcase {suitcase_id} released.")
    else:
        click.echo(f"No lock held for suitcase {suitcase_id}.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(settlements_group)
