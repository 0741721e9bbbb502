"""
Pytest fixtures for the Abaya POS backend tests.

Provides an in-memory database, a branch with staff in every role,
stocked products, a loyalty customer and authentication helpers.
"""

import pytest

from abaya_pos import create_app
from abaya_pos.extensions import db
from abaya_pos.models import Branch, Category, Customer, Product
from abaya_pos.services import permission_service, sales_service
from abaya_pos.services.auth_service import assign_role, create_default_roles, create_user
from abaya_pos.services.inventory_service import restock_product


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'LOG_LEVEL': 'WARNING',
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
    """Empty every table before each test."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def setup_roles(db_session):
    """Default roles and permissions."""
    create_default_roles()
    permission_service.initialize_permissions()
    permission_service.assign_default_role_permissions()
    db_session.commit()


@pytest.fixture(scope='function')
def branch(db_session):
    branch = Branch(name="Gulshan", code="GUL", is_active=True, tax_rate_bps=0)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def other_branch(db_session):
    branch = Branch(name="Dhanmondi", code="DHN", is_active=True, tax_rate_bps=0)
    db_session.add(branch)
    db_session.commit()
    return branch


def _make_user(username, role, branch):
    # Low bcrypt cost keeps the suite fast; login still verifies normally
    user = create_user(
        username=username,
        email=f"{username}@abaya.local",
        password=PASSWORD,
        name=username.title(),
        branch_id=branch.id,
        rounds=4,
    )
    assign_role(user.id, role)
    return user


@pytest.fixture(scope='function')
def admin(branch, setup_roles):
    return _make_user("admin", "admin", branch)


@pytest.fixture(scope='function')
def manager(branch, setup_roles):
    return _make_user("manager", "manager", branch)


@pytest.fixture(scope='function')
def cashier(branch, setup_roles):
    return _make_user("cashier", "cashier", branch)


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Formal Abayas", color="#000000")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def products(db_session, branch, category):
    """Two products with 10 units each at the branch."""
    formal = Product(
        sku="ABY-FRM-001",
        name="Nida Formal Abaya",
        size="54",
        category_id=category.id,
        cost_price_cents=150000,
        selling_price_cents=250000,
        min_stock_level=3,
    )
    casual = Product(
        sku="ABY-CSL-001",
        name="Cotton Everyday Abaya",
        size="52",
        cost_price_cents=70000,
        selling_price_cents=120000,
        min_stock_level=3,
    )
    db_session.add_all([formal, casual])
    db_session.commit()

    for product in (formal, casual):
        restock_product(product_id=product.id, branch_id=branch.id, quantity=10)
    return formal, casual


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Fatima Rahman", phone="01711000000", email="fatima@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def make_sale(branch, cashier, products):
    """Ring up a sale: make_sale((product, qty), ..., customer=None, **kwargs)."""
    def _make(*lines, customer=None, **kwargs):
        return sales_service.create_sale(
            branch_id=branch.id,
            user_id=cashier.id,
            items=[{"product_id": p.id, "quantity": q} for p, q in lines],
            payment_method=kwargs.pop("payment_method", "cash"),
            customer_id=customer.id if customer else None,
            **kwargs,
        )
    return _make


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
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, "admin"))


@pytest.fixture(scope='function')
def manager_headers(client, manager):
    return auth_headers(get_auth_token(client, "manager"))


@pytest.fixture(scope='function')
def cashier_headers(client, cashier):
    return auth_headers(get_auth_token(client, "cashier"))
