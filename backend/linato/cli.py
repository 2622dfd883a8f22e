# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/linato/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--no-catalog]
#   Idempotent bootstrap: default users, POS settings, tables T1-T5, sample menu.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with roles, PIN status, and active status.
# - python -m flask users create --name "Ana" --email ana@linato.local --password "Password123" --role cashier
#   Create a user (prompts if options are omitted).
# - python -m flask users set-pin admin@linato.local 1234
#   Set the void-authorization PIN for a user.
#
# Inventory:
# - python -m flask inventory verify [--product-id 1]
#   Check that stock movements reproduce current stock for every product.

from decimal import Decimal

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Category, Product, DiningTable
from .services import inventory_service, settings_service
from .services.auth_service import create_user, set_pin, VALID_ROLES
from .validation import POSError


DEFAULT_PASSWORD = "Password123"

DEFAULT_USERS = [
    # name, email, role, pin
    ("Admin", "admin@linato.local", "admin", "1234"),
    ("Cashier", "cashier@linato.local", "cashier", None),
    ("Kitchen", "kitchen@linato.local", "kitchen", None),
]

DEFAULT_TABLES = [("T1", 2), ("T2", 4), ("T3", 4), ("T4", 6), ("T5", 2)]

SAMPLE_MENU = [
    # sku, name, category, price
    ("PA-001", "Spaghetti Bolognese", "Pasta", "280.00"),
    ("PA-002", "Carbonara", "Pasta", "260.00"),
    ("PZ-001", "Margherita Pizza", "Pizza", "350.00"),
    ("PZ-002", "Pepperoni Pizza", "Pizza", "390.00"),
    ("SL-001", "House Salad", "Salads", "180.00"),
    ("BV-001", "Iced Tea", "Beverages", "80.00"),
    ("BV-002", "Latte", "Beverages", "120.00"),
    ("DS-001", "Tiramisu", "Desserts", "160.00"),
]

SAMPLE_STOCK = 50
SAMPLE_REORDER_LEVEL = 10


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--no-catalog', is_flag=True, help='Skip the sample menu')
@with_appcontext
def init_system(no_catalog):
    """
    Initialize Linato: default users, POS settings, tables, sample menu.

    Creates:
    - Users: admin / cashier / kitchen @linato.local, password "Password123"
    - Admin void PIN: 1234
    - POS settings row (tax and service charge defaults from config)
    - Tables T1-T5
    - Sample menu with an opening stock of 50 per item

    SECURITY: Change passwords and the admin PIN immediately in production!
    """
    click.echo("START Initializing Linato...")

    db.create_all()

    click.echo("\nUSERS Creating default users...")
    for name, email, role, pin in DEFAULT_USERS:
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"WARN  User '{email}' already exists, skipping...")
            continue
        try:
            create_user(name=name, email=email, password=DEFAULT_PASSWORD, role=role, pin=pin)
            click.echo(f"PASS Created user: {email} with role '{role}'")
        except POSError as e:
            click.echo(f"FAIL Failed to create user '{email}': {e}")

    setting = settings_service.get_pos_settings()
    click.echo(f"\nPASS POS settings: {setting.value}")

    click.echo("\nTABLES Creating tables...")
    for name, capacity in DEFAULT_TABLES:
        if db.session.query(DiningTable).filter_by(name=name).first():
            continue
        db.session.add(DiningTable(name=name, capacity=capacity))
    db.session.commit()
    click.echo(f"PASS Tables: {', '.join(t.name for t in db.session.query(DiningTable).order_by(DiningTable.name))}")

    if not no_catalog:
        _seed_menu()

    click.echo("\n" + "="*60)
    click.echo("DONE Linato Initialized Successfully!")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo(f"   admin   -> admin@linato.local   / {DEFAULT_PASSWORD}  (PIN 1234)")
    click.echo(f"   cashier -> cashier@linato.local / {DEFAULT_PASSWORD}")
    click.echo(f"   kitchen -> kitchen@linato.local / {DEFAULT_PASSWORD}")
    click.echo("")


def _seed_menu():
    click.echo("\nMENU Creating sample menu...")
    categories = {}
    for sort_order, name in enumerate(dict.fromkeys(row[2] for row in SAMPLE_MENU)):
        category = db.session.query(Category).filter_by(name=name).first()
        if not category:
            category = Category(name=name, sort_order=sort_order)
            db.session.add(category)
            db.session.flush()
        categories[name] = category
    db.session.commit()

    created = 0
    for sku, name, category_name, price in SAMPLE_MENU:
        if db.session.query(Product).filter_by(sku=sku).first():
            continue
        product = Product(sku=sku, name=name, category_id=categories[category_name].id, price=Decimal(price))
        db.session.add(product)
        db.session.commit()
        inventory_service.update_stock(product.id, SAMPLE_STOCK, SAMPLE_REORDER_LEVEL)
        created += 1
    click.echo(f"PASS Created {created} products ({SAMPLE_STOCK} in stock each)")


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


# =============================================================================
# USER COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(VALID_ROLES), prompt=True, help='Role')
@click.option('--pin', default=None, help='4-6 digit void PIN (admins)')
@with_appcontext
def create_user_cli(name, email, password, role, pin):
    """
    Create a new user.

    Password must be at least 8 characters with a letter and a digit.
    """
    try:
        user = create_user(name=name, email=email, password=password, role=role, pin=pin)
        click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{user.role}'")
    except POSError as e:
        click.echo(f"FAIL {e}")


@users_group.command('set-pin')
@click.argument('email')
@click.argument('pin')
@with_appcontext
def set_pin_cli(email, pin):
    """Set the void-authorization PIN for EMAIL."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        return
    try:
        set_pin(user.id, pin)
        click.echo(f"PASS PIN updated for {user.email}")
    except POSError as e:
        click.echo(f"FAIL {e}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with roles and active status."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<20} {'Email':<30} {'Role':<10} {'PIN':<5} {'Active'}")
    click.echo("="*80)

    for user in users:
        pin_str = "Yes" if user.pin_hash else "No"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<20} {user.email:<30} {user.role:<10} {pin_str:<5} {active_str}")

    click.echo("="*80 + "\n")


# =============================================================================
# INVENTORY COMMANDS
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Inventory ledger inspection."""


@inventory_group.command('verify')
@click.option('--product-id', type=int, default=None, help='Check a single product')
@with_appcontext
def verify_inventory(product_id):
    """Check that movement history reproduces current stock."""
    if product_id is not None:
        product_ids = [product_id]
    else:
        product_ids = [row.id for row in db.session.query(Product.id).order_by(Product.id)]

    failures = 0
    for pid in product_ids:
        check = inventory_service.verify_ledger(pid)
        if check.ok:
            continue
        failures += 1
        click.echo(
            f"FAIL product {pid}: stock {check.current_stock} != movements {check.movement_sum}"
            + (f", broken rows {check.broken_rows}" if check.broken_rows else "")
        )

    if failures:
        click.echo(f"\nFAIL {failures} of {len(product_ids)} products inconsistent")
        raise SystemExit(1)
    click.echo(f"PASS {len(product_ids)} products consistent")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
