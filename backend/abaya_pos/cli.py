# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/abaya_pos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: main branch, roles, permissions, default users,
#   default categories and the branch refund policy.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username rina --email rina@abaya.local --password "Password123!" --role cashier --branch-code MAIN
#
# Inventory:
# - python -m flask inventory restock --sku ABY-001 --branch-code MAIN --quantity 10
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --older-than-days 30

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, Category, Product, Role, User, UserRole
from .services import permission_service, refund_service, session_service
from .services.auth_service import (
    PasswordValidationError,
    assign_role,
    create_default_roles,
    create_user,
)
from .services.inventory_service import InventoryError, restock_product


DEFAULT_PASSWORD = "Password123!"

DEFAULT_CATEGORIES = [
    ("Casual Abayas", "Everyday comfortable abayas", "#3B82F6"),
    ("Formal Abayas", "Elegant abayas for special occasions", "#000000"),
    ("Party Wear", "Embellished abayas for parties and celebrations", "#8B5CF6"),
]

DEFAULT_USERS = [
    ("admin", "admin@abaya.local", "Store Admin", "admin", "Owner"),
    ("manager", "manager@abaya.local", "Branch Manager", "manager", "Manager"),
    ("cashier", "cashier@abaya.local", "Counter Cashier", "cashier", "Cashier"),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--branch-name', default='Main Branch', help='Name of the first branch')
@click.option('--branch-code', default='MAIN', help='Code of the first branch')
@with_appcontext
def init_system(branch_name, branch_code):
    """
    Initialize the store: branch, roles, permissions, users, categories, refund policy.

    All default passwords are "Password123!". Change them in production.
    """
    store_name = current_app.config.get("STORE_NAME")
    click.echo(f"START Initializing {store_name}...")

    db.create_all()

    branch = db.session.query(Branch).filter_by(code=branch_code).first()
    if not branch:
        branch = Branch(name=branch_name, code=branch_code, is_active=True)
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id}, Code: {branch.code})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    create_default_roles()
    perm_count = permission_service.initialize_permissions()
    assignment_count = permission_service.assign_default_role_permissions()
    click.echo(f"PASS Created {perm_count} permissions, {assignment_count} role assignments")

    for username, email, name, role_name, position in DEFAULT_USERS:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            user = create_user(
                username=username,
                email=email,
                password=DEFAULT_PASSWORD,
                name=name,
                branch_id=branch.id,
                position=position,
            )
            assign_role(user.id, role_name)
            click.echo(f"PASS Created user: {username} ({email}) with role '{role_name}'")
        except (PasswordValidationError, ValueError) as e:
            click.echo(f"FAIL Failed to create user '{username}': {e}")

    created_categories = 0
    for name, description, color in DEFAULT_CATEGORIES:
        if not db.session.query(Category).filter_by(name=name).first():
            db.session.add(Category(name=name, description=description, color=color))
            created_categories += 1
    db.session.commit()
    click.echo(f"PASS Created {created_categories} categories")

    if refund_service.get_policy(branch.id) is None:
        refund_service.update_policy(branch.id, None)
        click.echo("PASS Created default refund policy")

    click.echo("\nDONE Initialized. Default logins (CHANGE IN PRODUCTION!):")
    for username, email, _, role_name, _ in DEFAULT_USERS:
        click.echo(f"   {username:<8} -> {email:<22} / {DEFAULT_PASSWORD}")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm dropping every table')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset. Run: python -m flask system init")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', default=None, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'manager', 'cashier']), prompt=True, help='Role')
@click.option('--branch-code', default=None, help='Home branch code')
@with_appcontext
def create_user_cli(username, email, name, password, role, branch_code):
    """Create an employee account."""
    branch_id = None
    if branch_code:
        branch = db.session.query(Branch).filter_by(code=branch_code).first()
        if not branch:
            click.echo(f"FAIL Branch '{branch_code}' not found")
            return
        branch_id = branch.id

    try:
        user = create_user(
            username=username,
            email=email,
            password=password,
            name=name,
            branch_id=branch_id,
        )
        assign_role(user.id, role)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        return
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with roles and active status."""
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Username':<15} {'Email':<28} {'Branch':<8} {'Active':<8} {'Roles'}")
    click.echo("=" * 80)
    for user in users:
        roles = (
            db.session.query(Role.name)
            .join(UserRole, UserRole.role_id == Role.id)
            .filter(UserRole.user_id == user.id)
            .all()
        )
        role_str = ", ".join(name for (name,) in roles) or "-"
        branch_str = user.branch.code if user.branch else "-"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<15} {user.email:<28} {branch_str:<8} {active_str:<8} {role_str}")
    click.echo("=" * 80 + "\n")


# =============================================================================
# INVENTORY COMMANDS
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Stock receiving commands."""


@inventory_group.command('restock')
@click.option('--sku', required=True, help='Product SKU')
@click.option('--branch-code', required=True, help='Branch receiving the goods')
@click.option('--quantity', type=int, required=True, help='Units received')
@click.option('--reference', default=None, help='Supplier invoice or delivery note')
@with_appcontext
def restock_cli(sku, branch_code, quantity, reference):
    """Receive stock for a product into a branch."""
    product = db.session.query(Product).filter_by(sku=sku).first()
    if not product:
        click.echo(f"FAIL Product '{sku}' not found")
        return
    branch = db.session.query(Branch).filter_by(code=branch_code).first()
    if not branch:
        click.echo(f"FAIL Branch '{branch_code}' not found")
        return

    try:
        movement = restock_product(
            product_id=product.id,
            branch_id=branch.id,
            quantity=quantity,
            reference=reference,
        )
    except InventoryError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS {product.name}: {movement.previous_stock} -> {movement.new_stock} units")


# =============================================================================
# MAINTENANCE COMMANDS
# =============================================================================

@click.group('maintenance')
def maintenance_group():
    """Housekeeping commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--older-than-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions(older_than_days):
    """Delete expired or revoked sessions."""
    deleted = session_service.cleanup_expired_sessions(older_than_days=older_than_days)
    click.echo(f"PASS Deleted {deleted} sessions")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(maintenance_group)
