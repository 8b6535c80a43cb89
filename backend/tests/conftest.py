"""
Pytest fixtures for Lilium backend tests.

Provides the app on in-memory SQLite, a clean database per test, an engine
with a recording notifier, and a small two-vendor catalog.
"""

import pytest

from lilium import create_app
from lilium.extensions import db
from lilium.models import Address, Category, Company, Product, User
from lilium.policies import Actor, COMPANY_ADMIN, LOCATION_ADMIN, SHOP_OWNER, SUPER_ADMIN
from lilium.services.bootstrap import EXTENSION_KEY, build_engine
from lilium.validation import CreateOrderInput, OrderItemInput


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'DB_RETRY_BACKOFF': 0,
    'NOTIFICATION_WEBHOOK_URL': None,
}


class RecordingNotifier:
    """Collects dispatched events instead of delivering them."""

    def __init__(self):
        self.events = []

    def send(self, event, payload):
        self.events.append((event, payload))

    def of(self, event):
        return [payload for name, payload in self.events if name == event]


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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


@pytest.fixture(scope='function')
def notifier():
    return RecordingNotifier()


@pytest.fixture(scope='function')
def engine(app, db_session, notifier):
    """Engine wired to the recording notifier; also serves the HTTP routes during the test."""
    previous = app.extensions[EXTENSION_KEY]
    engine = build_engine(app, notifier=notifier)
    app.extensions[EXTENSION_KEY] = engine
    yield engine
    app.extensions[EXTENSION_KEY] = previous


# =============================================================================
# CATALOG
# =============================================================================

@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Groceries")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def karkh_vendor(db_session):
    """Vendor serving KARKH with an explicit 10% commission."""
    company = Company(name="Karkh Foods", zones=["KARKH"], commission_rate_bps=1000)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def rusafa_vendor(db_session):
    """Vendor serving RUSAFA on the platform default commission."""
    company = Company(name="Rusafa Supplies", zones=["RUSAFA"])
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def make_product(db_session, category):
    """Factory: make_product(company, sku=..., price=..., stock=..., ...)."""
    def _make(company, *, sku, price=1000, stock=100, min_order_qty=1, zones=("KARKH", "RUSAFA"), is_active=True):
        product = Product(
            sku=sku,
            name=f"Product {sku}",
            company_id=company.id if company is not None else None,
            category_id=category.id,
            price=price,
            stock=stock,
            min_order_qty=min_order_qty,
            zones=list(zones),
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def rice(make_product, karkh_vendor):
    return make_product(karkh_vendor, sku="RICE-10", price=10000, stock=50)


@pytest.fixture(scope='function')
def sugar(make_product, rusafa_vendor):
    return make_product(rusafa_vendor, sku="SUGAR-50", price=20000, stock=20)


# =============================================================================
# PEOPLE
# =============================================================================

@pytest.fixture(scope='function')
def shop_owner(db_session):
    user = User(name="Shop One", email="shop1@lilium.test", business_name="Market One", role=SHOP_OWNER)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def other_shop_owner(db_session):
    user = User(name="Shop Two", email="shop2@lilium.test", role=SHOP_OWNER)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def karkh_address(db_session, shop_owner):
    address = Address(user_id=shop_owner.id, label="Main shop", zone="KARKH", is_default=True)
    db_session.add(address)
    db_session.commit()
    return address


@pytest.fixture(scope='function')
def rusafa_address(db_session, shop_owner):
    address = Address(user_id=shop_owner.id, label="Branch", zone="RUSAFA")
    db_session.add(address)
    db_session.commit()
    return address


@pytest.fixture(scope='function')
def shop_actor(shop_owner):
    return Actor(id=shop_owner.id, role=SHOP_OWNER)


@pytest.fixture(scope='function')
def super_actor():
    return Actor(id=9001, role=SUPER_ADMIN)


@pytest.fixture(scope='function')
def karkh_admin_actor():
    return Actor(id=9002, role=LOCATION_ADMIN, zones=("KARKH",))


@pytest.fixture(scope='function')
def karkh_vendor_actor(karkh_vendor):
    return Actor(id=9003, role=COMPANY_ADMIN, company_id=karkh_vendor.id)


def actor_headers(actor) -> dict:
    """Gateway headers for an Actor."""
    headers = {
        'X-Actor-Id': str(actor.id),
        'X-Actor-Role': actor.role,
    }
    if actor.zones:
        headers['X-Actor-Zones'] = ",".join(actor.zones)
    if actor.company_id is not None:
        headers['X-Actor-Company'] = str(actor.company_id)
    return headers


@pytest.fixture(scope='function')
def headers_for():
    """headers_for(actor) -> gateway headers for test client requests."""
    return actor_headers


# =============================================================================
# ORDERS
# =============================================================================

@pytest.fixture(scope='function')
def place_order(engine, shop_owner, karkh_address):
    """place_order((product, qty), ...) -> PENDING order for shop_owner at karkh_address."""
    def _place(*items, buyer=None, address=None):
        buyer = buyer or shop_owner
        address = address or karkh_address
        return engine.orders.create_order(CreateOrderInput(
            buyer_id=buyer.id,
            address_id=address.id,
            items=tuple(OrderItemInput(product_id=p.id, quantity=q) for p, q in items),
        ))

    return _place


@pytest.fixture(scope='function')
def deliver(engine, super_actor):
    """deliver(order) walks the order through to DELIVERED."""
    def _deliver(order):
        for status in ("CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED"):
            order = engine.orders.transition(order.id, status, None, super_actor)
        return order

    return _deliver
