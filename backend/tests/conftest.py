"""
Pytest fixtures for Bazaar backend tests.

Provides the test app (in-memory SQLite, scripted settlement gateway),
per-test table wipe, accounts, products, bearer headers, and an in-memory
service stack for tests that do not need a database.
"""

import pytest

from bazaar import create_app
from bazaar.container import build_services
from bazaar.extensions import db
from bazaar.models import Seller, User
from bazaar.permissions import Actor, Role
from bazaar.services import account_service, session_service

from fakes import InMemoryRepository, ScriptedSettlementGateway


@pytest.fixture(scope='session')
def gateway():
    return ScriptedSettlementGateway()


@pytest.fixture(scope='session')
def app(gateway):
    """Create application for testing."""
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SQLALCHEMY_TRACK_MODIFICATIONS': False,
            'LOW_STOCK_THRESHOLD': 5,
            'LOYALTY_FILS_PER_POINT': 1000,
        },
        settlement_gateway=gateway,
    )

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app, gateway):
    """Create fresh database for each test."""
    gateway.reset()
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
def services(app):
    return app.extensions['bazaar']


@pytest.fixture(scope='function')
def admin(db_session):
    return account_service.create_user("admin@bazaar.test", Role.ADMIN, first_name="Ada", last_name="Admin")


@pytest.fixture(scope='function')
def seller(db_session):
    return account_service.create_user(
        "seller@bazaar.test",
        Role.SELLER,
        business_name="Souq One",
        low_stock_threshold=2,
    )


@pytest.fixture(scope='function')
def other_seller(db_session):
    return account_service.create_user("other@bazaar.test", Role.SELLER, business_name="Souq Two")


@pytest.fixture(scope='function')
def customer(db_session):
    return account_service.create_user("customer@bazaar.test", Role.CUSTOMER, first_name="Cai", last_name="Buyer")


@pytest.fixture(scope='function')
def other_customer(db_session):
    return account_service.create_user("customer2@bazaar.test", Role.CUSTOMER)


@pytest.fixture(scope='function')
def make_product(services, seller):
    """Factory: products owned by `seller` unless another seller user is given."""
    counter = {"n": 0}

    def _make(*, price_fils=10_000, stock=10, name=None, owner=None):
        counter["n"] += 1
        owner = owner or seller
        return services.catalog.create_product(
            seller_id=owner.seller_profile.id,
            sku=f"SKU-{owner.id}-{counter['n']}",
            name=name or f"Product {counter['n']}",
            price_fils=price_fils,
            stock=stock,
        )

    return _make


@pytest.fixture(scope='function')
def auth_headers(db_session):
    """Factory: bearer headers for a user (a fresh session each call)."""
    def _headers(user, **extra):
        _, token = session_service.create_session(user.id)
        return {"Authorization": f"Bearer {token}", **extra}

    return _headers


@pytest.fixture(scope='function')
def actor_for():
    return Actor.for_user


@pytest.fixture(scope='function')
def fill_cart(client, auth_headers):
    def _fill(user, *lines):
        headers = auth_headers(user)
        for product, quantity in lines:
            resp = client.post("/api/cart", json={"product_id": product.id, "quantity": quantity}, headers=headers)
            assert resp.status_code == 201, resp.get_json()
        return headers

    return _fill


# In-memory stack


@pytest.fixture(scope='function')
def memory():
    """
    Services over InMemoryRepository with a scripted gateway.

    Returns a namespace with the Services container, the repository, the
    gateway, and seeded customer/seller actors.
    """
    repo = InMemoryRepository()
    gateway = ScriptedSettlementGateway()
    services = build_services(
        {"LOW_STOCK_THRESHOLD": 5, "LOYALTY_FILS_PER_POINT": 1000},
        repository=repo,
        gateway=gateway,
    )

    customer = repo.seed_user(User(email="c@mem.test", role=Role.CUSTOMER, is_active=True))
    seller_user = repo.seed_user(User(email="s@mem.test", role=Role.SELLER, is_active=True))
    seller = repo.seed_seller(Seller(
        user_id=seller_user.id,
        business_name="Memory Mart",
        low_stock_alerts=True,
        low_stock_threshold=None,
    ))
    admin = repo.seed_user(User(email="a@mem.test", role=Role.ADMIN, is_active=True))

    class Stack:
        pass

    stack = Stack()
    stack.services = services
    stack.repo = repo
    stack.gateway = gateway
    stack.seller = seller
    stack.customer = Actor(user_id=customer.id, role=Role.CUSTOMER)
    stack.seller_actor = Actor(user_id=seller_user.id, role=Role.SELLER, seller_id=seller.id)
    stack.admin = Actor(user_id=admin.id, role=Role.ADMIN)

    def product(*, price_fils=10_000, stock=10, name="Item"):
        return services.catalog.create_product(seller_id=seller.id, name=name, price_fils=price_fils, stock=stock)

    stack.product = product
    return stack
