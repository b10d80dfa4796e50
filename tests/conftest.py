import pytest
from decimal import Decimal
import uuid

from quotations import create_app
from quotations.database import get_session, create_all, drop_all
from quotations.models import Organization, Product, PaymentMethod, PaymentType
from quotations.services import cart_service
from quotations.services.price_list_service import create_price_list, create_condition
from quotations.services.product_price_service import upsert_product_price


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite, no Redis)."""
    return create_app('config.TestConfig')


@pytest.fixture(autouse=True)
def app_context(app):
    """Requests made by the test client reuse this context, and with it the session."""
    with app.app_context():
        yield


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session():
    """Fresh schema and database session for each test."""
    create_all()
    session = get_session()
    yield session
    session.rollback()
    session.remove()
    drop_all()


@pytest.fixture(scope='function')
def organization(session):
    suffix = str(uuid.uuid4())[:8]
    organization = Organization(slug=f'tienda-{suffix}', name=f'Tienda {suffix}', active=True)
    session.add(organization)
    session.commit()
    return organization


@pytest.fixture(scope='function')
def other_organization(session):
    organization = Organization(slug='otra-tienda', name='Otra Tienda', active=True)
    session.add(organization)
    session.commit()
    return organization


@pytest.fixture(scope='function')
def product_a(session, organization):
    product = Product(
        organization_id=organization.id,
        sku='POL-001',
        name='Polera estampada',
        size='M',
        color='Negro',
        stock_qty=50,
        active=True
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(session, organization):
    product = Product(
        organization_id=organization.id,
        sku='GOR-001',
        name='Gorro bordado',
        stock_qty=50,
        active=True
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def default_list(session, organization, product_a, product_b):
    """Default list: A=$10, B=$8."""
    price_list = create_price_list(session, organization.id, {'name': 'General', 'currency': 'CLP'})
    upsert_product_price(session, organization.id, product_a.id, price_list.id, Decimal('10'), 'CLP')
    upsert_product_price(session, organization.id, product_b.id, price_list.id, Decimal('8'), 'CLP')
    session.commit()
    return price_list


@pytest.fixture(scope='function')
def wholesale_list(session, organization, default_list, product_a, product_b):
    """Conditional list: A=$9, B=$8 (no conditions yet, so it never applies on its own)."""
    price_list = create_price_list(session, organization.id, {'name': 'Mayorista', 'currency': 'CLP'})
    upsert_product_price(session, organization.id, product_a.id, price_list.id, Decimal('9'), 'CLP')
    upsert_product_price(session, organization.id, product_b.id, price_list.id, Decimal('8'), 'CLP')
    session.commit()
    return price_list


@pytest.fixture(scope='function')
def add_condition(session, organization):
    """Factory: attach a condition to a price list."""
    def _add(price_list, condition_type, operator, condition_value, **extra):
        data = {
            'condition_type': condition_type,
            'operator': operator,
            'condition_value': condition_value,
        }
        data.update(extra)
        return create_condition(session, price_list.id, organization.id, data)
    return _add


@pytest.fixture(scope='function')
def set_price(session, organization):
    """Factory: change a product's price in a list and commit."""
    def _set(product, price_list, amount):
        upsert_product_price(session, organization.id, product.id, price_list.id, Decimal(str(amount)), 'CLP')
        session.commit()
    return _set


@pytest.fixture(scope='function')
def quote_cart(session, organization, product_a, default_list, set_price):
    """A draft cart worth exactly $100 (one unit of A at $100)."""
    set_price(product_a, default_list, 100)
    return cart_service.create_cart(session, organization.id, {
        'items': [{'productId': product_a.id, 'quantity': 1}],
        'full_name': 'María González',
    })


@pytest.fixture(scope='function')
def transfer_method(session, organization):
    method = PaymentMethod(
        organization_id=organization.id,
        name='Transferencia bancaria',
        payment_type=PaymentType.BANK_TRANSFER.value,
        active=True
    )
    session.add(method)
    session.commit()
    return method


@pytest.fixture(scope='function')
def webpay_method(session, organization):
    method = PaymentMethod(
        organization_id=organization.id,
        name='WebPay Plus',
        payment_type=PaymentType.WEB_PAY.value,
        active=True
    )
    session.add(method)
    session.commit()
    return method


@pytest.fixture(scope='function')
def org_headers(organization):
    return {'X-Organization-ID': str(organization.id)}
