"""
Pytest fixtures for poscore backend tests.

Provides test database setup, a tenant with two branches and two cashiers,
stocked products, and request contexts for calling services directly.
"""

import pytest
from poscore import create_app
from poscore.context import RequestContext
from poscore.extensions import db
from poscore.models import Branch, Customer, Product, Tenant, User
from poscore.services import notification_service, shift_service, stock_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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

        # Cleanup after test
        db.session.rollback()
        notification_service.clear_handlers()


@pytest.fixture(scope='function')
def tenant(db_session):
    """Tenant with 14% tax, negative stock disallowed."""
    tenant = Tenant(name="Acme Market", tax_rate_bps=1400, is_tax_enabled=True, allow_negative_stock=False)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def branch(db_session, tenant):
    branch = Branch(tenant_id=tenant.id, name="Downtown", code="DT", address="1 Main St", phone="0100")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def second_branch(db_session, tenant):
    branch = Branch(tenant_id=tenant.id, name="Airport", code="AP")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def cashier(db_session, tenant, branch):
    user = User(tenant_id=tenant.id, branch_id=branch.id, name="Mona", email="mona@acme.test")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def second_cashier(db_session, tenant, branch):
    user = User(tenant_id=tenant.id, branch_id=branch.id, name="Karim", email="karim@acme.test")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def ctx(tenant, branch, cashier):
    """Request context for the first cashier at the first branch."""
    return RequestContext(tenant_id=tenant.id, branch_id=branch.id, user_id=cashier.id, user_name=cashier.name)


@pytest.fixture(scope='function')
def second_ctx(tenant, branch, second_cashier):
    """Request context for the second cashier at the first branch."""
    return RequestContext(
        tenant_id=tenant.id,
        branch_id=branch.id,
        user_id=second_cashier.id,
        user_name=second_cashier.name,
    )


@pytest.fixture(scope='function')
def product(db_session, tenant, ctx):
    """Product priced 100.00, using the tenant tax rate, with 10 units in stock."""
    product = Product(tenant_id=tenant.id, sku="SKU-100", name="Olive Oil 1L", price_cents=10000, cost_cents=7000)
    db_session.add(product)
    db_session.commit()
    stock_service.increment(ctx, product.id, 10, reference_type="SEED", reason="Opening stock")
    return product


@pytest.fixture(scope='function')
def untracked_product(db_session, tenant):
    product = Product(
        tenant_id=tenant.id,
        sku="SVC-001",
        name="Gift Wrapping",
        price_cents=500,
        track_inventory=False,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def customer(db_session, tenant):
    customer = Customer(tenant_id=tenant.id, phone="01000000001", name="Sara", credit_limit_cents=50000)
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def open_shift(ctx):
    """Open shift for the first cashier with 100.00 in the drawer."""
    return shift_service.open_shift(ctx, 10000)


@pytest.fixture(scope='function')
def headers(tenant, branch, cashier):
    """Context headers for API calls as the first cashier."""
    return {
        "X-Tenant-Id": str(tenant.id),
        "X-Branch-Id": str(branch.id),
        "X-User-Id": str(cashier.id),
    }
