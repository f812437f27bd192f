# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/storeline/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--business "Business Name"] [--code MAIN]
#   Idempotent bootstrap: tables, permissions, default business, location, roles and admin user.
# - python -m flask system init-permissions
#   Create missing permissions and re-apply default role grants for every business.
#
# Users:
# - python -m flask users list [--business-id 1]
# - python -m flask users create --business-id 1 --username admin --email admin@storeline.local --password "Password123!" --role "Super Admin"
# - python -m flask users deactivate --user-id 5
#   Deactivate a user and revoke all of their sessions.
#
# Permissions:
# - python -m flask perms list [--category SALES]
# - python -m flask perms grant --business-id 1 "Cashier" sell.void
#
# Inventory:
# - python -m flask inventory check-consistency --business-id 1 [--location-id 2]
#   Compare cached balances against both ledgers and report duplicated history rows.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Business, BusinessLocation, Permission, Role, User
from .permissions import DEFAULT_ROLES, SUPER_ADMIN
from .services.auth_service import create_user, create_default_roles, assign_role, get_role_names, PasswordValidationError
from .services import permission_service
from .services import session_service
from .services import stock_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--business', 'business_name', default='Default Business', help='Business name')
@click.option('--code', 'business_code', default='DEFAULT', help='Business code')
@click.option('--admin-password', default='Password123!', help='Password for the admin user')
@with_appcontext
def init_system(business_name, business_code, admin_password):
    """
    Initialize Storeline: schema, permissions, default business, location, roles and admin.

    MULTI-TENANT: Creates a default business as the tenant root.
    All locations and users are scoped to this business.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing Storeline...")

    # 1. Schema
    db.create_all()

    # 2. Permissions must exist before roles can be granted them
    perm_count = permission_service.initialize_permissions()
    click.echo(f"PASS Created {perm_count} permissions")

    # 3. Default business
    business = db.session.query(Business).first()
    if not business:
        business = Business(name=business_name, code=business_code, is_active=True)
        db.session.add(business)
        db.session.commit()
        click.echo(f"PASS Created default business: {business.name} (ID: {business.id})")
    else:
        click.echo(f"PASS Using existing business: {business.name} (ID: {business.id})")

    # 4. Default location
    location = db.session.query(BusinessLocation).filter_by(business_id=business.id).first()
    if not location:
        location = BusinessLocation(business_id=business.id, name="Main Branch", code="MAIN")
        db.session.add(location)
        db.session.commit()
        click.echo(f"PASS Created default location: {location.name} (ID: {location.id})")
    else:
        click.echo(f"PASS Using existing location: {location.name} (ID: {location.id})")

    # 5. Roles with default permissions and menus
    roles = create_default_roles(business.id)
    click.echo(f"PASS Roles: {', '.join(r.name for r in roles)}")

    # 6. Admin user
    existing = db.session.query(User).filter_by(business_id=business.id, username="admin").first()
    if existing:
        click.echo("WARN  User 'admin' already exists, skipping...")
    else:
        try:
            admin = create_user(
                username="admin",
                email="admin@storeline.local",
                password=admin_password,
                business_id=business.id,
                location_id=location.id,
            )
            assign_role(admin.id, SUPER_ADMIN)
            click.echo(f"PASS Created user: admin with role '{SUPER_ADMIN}'")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed for 'admin': {str(e)}")

    click.echo("\n" + "=" * 60)
    click.echo("DONE Storeline Initialized Successfully!")
    click.echo("=" * 60)
    click.echo(f"\nBusiness: {business.name} (ID: {business.id})")
    click.echo(f"Location: {location.name} (ID: {location.id})")
    click.echo("\nSECURITY WARNING: change the admin password immediately in production!")


@system_group.command('init-permissions')
@with_appcontext
def init_permissions():
    """Create missing permissions and re-apply default role grants."""
    perm_count = permission_service.initialize_permissions()
    click.echo(f"PASS Created {perm_count} permissions")

    for business in db.session.query(Business).order_by(Business.id).all():
        roles = create_default_roles(business.id)
        click.echo(f"PASS {business.name}: {len(roles)} default roles refreshed")


# =============================================================================
# USER COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--business-id', type=int, help='Business ID (uses default if not specified)')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice([name for name, _ in DEFAULT_ROLES]), prompt=True, help='Role')
@click.option('--location-id', type=int, help='Primary location ID (first location if not specified)')
@with_appcontext
def create_user_cli(business_id, username, email, password, role, location_id):
    """
    Create a new user.

    MULTI-TENANT: The user is created within the specified business.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    if business_id:
        business = db.session.query(Business).filter_by(id=business_id).first()
    else:
        business = db.session.query(Business).first()
    if not business:
        click.echo("FAIL Business not found. Run 'python -m flask system init' first.")
        return

    if location_id is None:
        location = db.session.query(BusinessLocation).filter_by(business_id=business.id).first()
        location_id = location.id if location else None

    try:
        user = create_user(
            username=username,
            email=email,
            password=password,
            business_id=business.id,
            location_id=location_id,
        )
        assign_role(user.id, role)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except ValueError as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {str(e)}")
        return

    click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
    click.echo(f"     Business: {business.name} (ID: {business.id})")


@users_group.command('list')
@click.option('--business-id', type=int, help='Filter by business ID')
@with_appcontext
def list_users(business_id):
    """List all users with their roles."""
    query = db.session.query(User)
    if business_id:
        query = query.filter_by(business_id=business_id)
    users = query.order_by(User.business_id, User.username).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<5} {'Biz':<5} {'Username':<20} {'Email':<30} {'Active':<8} {'Roles'}")
    click.echo("=" * 100)

    for user in users:
        roles_str = ", ".join(get_role_names(user.id)) or "none"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.business_id:<5} {user.username:<20} {user.email:<30} {active_str:<8} {roles_str}")

    click.echo("=" * 100 + "\n")


@users_group.command('deactivate')
@click.option('--user-id', type=int, required=True, help='User ID')
@with_appcontext
def deactivate_user(user_id):
    """Deactivate a user and revoke every open session."""
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        click.echo(f"FAIL User ID {user_id} not found")
        return

    user.is_active = False
    db.session.commit()
    revoked = session_service.revoke_all_user_sessions(user.id, reason="User deactivated")
    click.echo(f"PASS Deactivated {user.username}; revoked {revoked} session(s)")


# =============================================================================
# PERMISSION COMMANDS
# =============================================================================

@click.group('perms')
def perms_group():
    """Permission inspection and repair commands."""


@perms_group.command('list')
@click.option('--category', help='Filter by category')
@with_appcontext
def list_permissions(category):
    """List permission codes."""
    query = db.session.query(Permission)
    if category:
        query = query.filter_by(category=category.upper())
    for permission in query.order_by(Permission.category, Permission.code).all():
        click.echo(f"{permission.category:<12} {permission.code:<36} {permission.name}")


@perms_group.command('grant')
@click.option('--business-id', type=int, required=True, help='Business ID')
@click.argument('role_name')
@click.argument('permission_code')
@with_appcontext
def grant_permission(business_id, role_name, permission_code):
    """Grant a permission to a role."""
    role = db.session.query(Role).filter_by(business_id=business_id, name=role_name).first()
    if not role:
        click.echo(f"FAIL Role '{role_name}' not found in business {business_id}")
        return
    try:
        permission_service.grant_permission_to_role(role, permission_code)
    except ValueError as e:
        click.echo(f"FAIL {str(e)}")
        return
    click.echo(f"PASS Granted {permission_code} to '{role_name}'")


# =============================================================================
# INVENTORY COMMANDS
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Stock ledger maintenance commands."""


@inventory_group.command('check-consistency')
@click.option('--business-id', type=int, required=True, help='Business ID')
@click.option('--location-id', type=int, help='Limit to one location')
@with_appcontext
def check_consistency(business_id, location_id):
    """
    Compare cached balances against StockTransaction and ProductHistory.

    Exits with status 1 when any issue or duplicate is found.
    """
    report = stock_service.verify_ledger_consistency(business_id, location_id)
    duplicates = stock_service.find_duplicate_history(business_id)

    click.echo(f"Checked {report['checked']} variation/location balances")
    for issue in report["issues"]:
        details = ", ".join(f"{k}={v}" for k, v in issue.items() if k not in ("code",))
        click.echo(f"FAIL {issue['code']}: {details}")
    for dup in duplicates:
        click.echo(
            f"FAIL DUPLICATE_HISTORY: variation={dup['variation_id']} location={dup['location_id']} "
            f"{dup['reference_type']}#{dup['reference_id']} x{dup['occurrences']}"
        )

    if report["consistent"] and not duplicates:
        click.echo("PASS Ledgers are consistent")
        return
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(inventory_group)
