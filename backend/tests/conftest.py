"""
Pytest fixtures for Storeline backend tests.

Provides the test database, two tenants with their locations, one user per
default role, a stocked product and auth helpers for the API client.

Business A has two locations (A1, A2). Users are placed so that every
transfer step can be performed by a different person:
- clerk_a      Inventory Clerk at A1 (creates transfers, records receipts)
- manager_a    Branch Manager at A1 (checks, approves)
- manager_a2   Branch Manager at A1 (sends)
- receiver_a   Inventory Clerk at A2 (receives, verifies, completes)
- cashier_a    Cashier at A1
- admin_a      Super Admin at A1 (exempt from separation of duties)
"""

import pytest

from storeline import create_app
from storeline.extensions import db
from storeline.models import Business, BusinessLocation
from storeline.permissions import BRANCH_MANAGER, CASHIER, INVENTORY_CLERK, SUPER_ADMIN
from storeline.services import permission_service
from storeline.services.auth_service import assign_role, create_default_roles, create_user
from storeline.services.opening_stock_service import set_opening_stock
from storeline.services.product_service import create_product
from storeline.services.shift_service import open_shift


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def permissions(db_session):
    permission_service.initialize_permissions()
    db_session.commit()


def _make_business(db_session, name, code):
    business = Business(name=name, code=code, is_active=True)
    db_session.add(business)
    db_session.commit()
    create_default_roles(business.id)
    return business


def _make_location(db_session, business, name, code):
    location = BusinessLocation(business_id=business.id, name=name, code=code)
    db_session.add(location)
    db_session.commit()
    return location


def _make_user(business, location, username, role_name):
    user = create_user(
        username=username,
        email=f"{username}@example.com",
        password=PASSWORD,
        business_id=business.id,
        location_id=location.id,
    )
    assign_role(user.id, role_name)
    return user


# =============================================================================
# Tenants
# =============================================================================

@pytest.fixture(scope='function')
def business_a(db_session, permissions):
    """Business A (first tenant)."""
    return _make_business(db_session, "Acme Trading", "ACME")


@pytest.fixture(scope='function')
def business_b(db_session, permissions):
    """Business B (second tenant)."""
    return _make_business(db_session, "Beta Retail", "BETA")


@pytest.fixture(scope='function')
def location_a1(db_session, business_a):
    return _make_location(db_session, business_a, "Acme Main", "A1")


@pytest.fixture(scope='function')
def location_a2(db_session, business_a):
    return _make_location(db_session, business_a, "Acme North", "A2")


@pytest.fixture(scope='function')
def location_b1(db_session, business_b):
    return _make_location(db_session, business_b, "Beta Main", "B1")


# =============================================================================
# Users
# =============================================================================

@pytest.fixture(scope='function')
def admin_a(business_a, location_a1):
    return _make_user(business_a, location_a1, "admin_a", SUPER_ADMIN)


@pytest.fixture(scope='function')
def manager_a(business_a, location_a1):
    return _make_user(business_a, location_a1, "manager_a", BRANCH_MANAGER)


@pytest.fixture(scope='function')
def manager_a2(business_a, location_a1):
    return _make_user(business_a, location_a1, "manager_a2", BRANCH_MANAGER)


@pytest.fixture(scope='function')
def clerk_a(business_a, location_a1):
    return _make_user(business_a, location_a1, "clerk_a", INVENTORY_CLERK)


@pytest.fixture(scope='function')
def receiver_a(business_a, location_a2):
    return _make_user(business_a, location_a2, "receiver_a", INVENTORY_CLERK)


@pytest.fixture(scope='function')
def cashier_a(business_a, location_a1):
    return _make_user(business_a, location_a1, "cashier_a", CASHIER)


@pytest.fixture(scope='function')
def admin_b(business_b, location_b1):
    return _make_user(business_b, location_b1, "admin_b", SUPER_ADMIN)


# =============================================================================
# Catalogue and stock
# =============================================================================

@pytest.fixture(scope='function')
def product_a(admin_a):
    """Product in Business A priced VAT-inclusive at 112.00."""
    return create_product(admin_a, name="Rice 5kg", sku="RICE-5", price_cents=11200, cost_cents=6000)


@pytest.fixture(scope='function')
def variation_a(product_a):
    return product_a.variations[0]


@pytest.fixture(scope='function')
def stocked_a(admin_a, product_a, variation_a, location_a1):
    """100 units of opening stock at A1."""
    set_opening_stock(admin_a, product_a.id, variation_a.id, location_a1.id, 100)
    return variation_a


@pytest.fixture(scope='function')
def product_b(admin_b):
    return create_product(admin_b, name="Sugar 1kg", sku="SUGAR-1", price_cents=6500, cost_cents=4000)


@pytest.fixture(scope='function')
def cashier_shift(cashier_a, location_a1):
    """Open shift for cashier_a at A1 with 50.00 float."""
    return open_shift(cashier_a, location_a1.id, 5000)


# =============================================================================
# API helpers
# =============================================================================

def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_a):
    return auth_headers(get_auth_token(client, admin_a.username))


@pytest.fixture(scope='function')
def manager_headers(client, manager_a):
    return auth_headers(get_auth_token(client, manager_a.username))


@pytest.fixture(scope='function')
def cashier_headers(client, cashier_a):
    return auth_headers(get_auth_token(client, cashier_a.username))


@pytest.fixture(scope='function')
def admin_b_headers(client, admin_b):
    return auth_headers(get_auth_token(client, admin_b.username))
