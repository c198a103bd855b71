import pytest
from datetime import date
from decimal import Decimal
import uuid

from backoffice import create_app
from backoffice import database
from backoffice.models import Tenant, TenantStatus, Product, InventoryUnit, UnitStatus
from backoffice.schemas import TenantContext, OverrideCredentials
from backoffice.services.override_service import OverrideGate


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite)."""
    app = create_app('config.TestingConfig')
    return app


@pytest.fixture(scope='function')
def app_context(app):
    """
    Fresh schema per test.

    The app context stays pushed for the whole test, so requests made with
    the test client share the test's database session.
    """
    with app.app_context():
        database.create_schema()
        yield
        database.db_session.remove()
        database.drop_schema()


@pytest.fixture(scope='function')
def client(app, app_context):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app_context):
    """Database session for testing."""
    session = database.get_session()
    yield session
    session.rollback()


def _make_tenant(session, label):
    suffix = str(uuid.uuid4())[:8]
    tenant = Tenant(
        slug=f'test-{label}-{suffix}',
        display_name=f'Test {label} {suffix}',
        status=TenantStatus.APPROVED,
        active=True
    )
    session.add(tenant)
    session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant1(session):
    """Create first test tenant."""
    return _make_tenant(session, 'tenant-1')


@pytest.fixture(scope='function')
def tenant2(session):
    """Create second test tenant for isolation tests."""
    return _make_tenant(session, 'tenant-2')


@pytest.fixture(scope='function')
def product_tenant1(session, tenant1):
    product = Product(
        tenant_id=tenant1.id,
        name='Glucometer G1',
        product_code='GLU-1',
        hsn_code='9027',
        sale_price=Decimal('1500.00'),
        tax_percent=Decimal('12.00'),
        active=True
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def second_product_tenant1(session, tenant1):
    product = Product(
        tenant_id=tenant1.id,
        name='Test Strips x50',
        product_code='STR-50',
        hsn_code='3822',
        sale_price=Decimal('400.00'),
        tax_percent=Decimal('5.00'),
        active=True
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def product_tenant2(session, tenant2):
    product = Product(
        tenant_id=tenant2.id,
        name='Glucometer G1',
        product_code='GLU-1',
        sale_price=Decimal('1400.00'),
        tax_percent=Decimal('12.00'),
        active=True
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def ctx1(tenant1):
    return TenantContext(tenant_id=tenant1.id, actor_name='Vendor One', actor_user_id='user-1')


@pytest.fixture(scope='function')
def ctx2(tenant2):
    return TenantContext(tenant_id=tenant2.id, actor_name='Vendor Two', actor_user_id='user-2')


@pytest.fixture(scope='function')
def gate(app):
    return OverrideGate.from_config(app.config)


@pytest.fixture
def admin_credentials():
    return OverrideCredentials(username='admin', password='admin-secret')


@pytest.fixture
def make_units(session):
    """Factory: insert units directly, bypassing the services."""
    def _make(product, count=1, prefix='U', status=UnitStatus.IN_STOCK, verified=False,
              manufacture_date=date(2025, 1, 10), expiry_date=None, **extra):
        units = []
        for i in range(count):
            unit = InventoryUnit(
                tenant_id=product.tenant_id,
                product_id=product.id,
                unit_code=f'{prefix}-{i + 1:03d}',
                status=status,
                verified=verified,
                manufacture_date=manufacture_date,
                expiry_date=expiry_date,
                **extra
            )
            session.add(unit)
            units.append(unit)
        session.commit()
        return units
    return _make


@pytest.fixture(scope='function')
def authenticated_client(client, tenant1):
    """Create authenticated client for tenant1."""
    with client.session_transaction() as sess:
        sess['tenant_id'] = tenant1.id
        sess['actor_name'] = 'Vendor One'
        sess['user_id'] = 'user-1'
    return client
