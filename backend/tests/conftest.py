"""
Pytest fixtures for Barrel POS backend tests.

Provides an in-memory database, store/user/product factories, an
authenticated test client and a recording WhatsApp sender.
"""

import pytest
from flask import g

from barrelpos import create_app
from barrelpos.extensions import db
from barrelpos.models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from barrelpos.services import catalog_service
from barrelpos.services.auth_service import create_user
from barrelpos.services.conversation_state import SendButtons, SendList, SendText
from barrelpos.services.session_store import InMemorySessionStore

PASSWORD = "Password123"


class FakeWhatsAppSender:
    """Records outbound effects instead of calling the Graph API."""

    enabled = True

    def __init__(self):
        self.sent = []

    def send_effect(self, to, effect):
        if not isinstance(effect, (SendText, SendButtons, SendList)):
            raise TypeError(f"Not an outbound message effect: {effect!r}")
        self.sent.append((to, effect))
        return True

    def bodies(self, to=None):
        return [effect.body for phone, effect in self.sent if to is None or phone == to]

    def clear(self):
        self.sent.clear()


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'WHATSAPP_ENABLED': False,
        'WHATSAPP_VERIFY_TOKEN': 'verify-me',
        'DEFAULT_GST_RATE_BPS': 1000,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        g.pop('current_user', None)

        yield db.session

        db.session.rollback()
        g.pop('current_user', None)


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def store(db_session):
    return catalog_service.create_store("Cookie Barrel Main", code="MAIN", gst_rate_bps=1000)


@pytest.fixture(scope='function')
def other_store(db_session):
    return catalog_service.create_store("Cookie Barrel North", code="NORTH", gst_rate_bps=1000)


@pytest.fixture(scope='function')
def cashier(store):
    return create_user("cashier", "cashier@barrel.test", PASSWORD, store_id=store.id, role=ROLE_CASHIER)


@pytest.fixture(scope='function')
def manager(store):
    return create_user("manager", "manager@barrel.test", PASSWORD, store_id=store.id, role=ROLE_MANAGER)


@pytest.fixture(scope='function')
def admin(store):
    return create_user("admin", "admin@barrel.test", PASSWORD, store_id=store.id, role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def make_product(store):
    """Factory: make_product(sku, price_ex_gst_cents, stock=..., **kwargs)."""
    counter = {"n": 0}

    def _make(sku=None, price_ex_gst_cents=909, stock=20, name=None, store_id=None, **kwargs):
        counter["n"] += 1
        sku = sku or f"SKU-{counter['n']:03d}"
        return catalog_service.create_product(
            store_id=store_id or store.id,
            sku=sku,
            name=name or f"Product {sku}",
            price_ex_gst_cents=price_ex_gst_cents,
            initial_stock=stock,
            **kwargs,
        )

    return _make


@pytest.fixture(scope='function')
def cookie(make_product):
    """$10.00 inc-GST cookie (909 ex + 91 GST) with 20 in stock."""
    return make_product("COOKIE", 909, stock=20, name="Chocolate Chip Cookie")


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={'username': username, 'password': password})
    assert response.status_code == 200, response.get_json()
    return response.get_json()['data']['token']


@pytest.fixture(scope='function')
def cashier_headers(client, cashier):
    return auth_headers(get_auth_token(client, cashier.username))


@pytest.fixture(scope='function')
def manager_headers(client, manager):
    return auth_headers(get_auth_token(client, manager.username))


@pytest.fixture(scope='function')
def conversations(app, db_session):
    """The app's ConversationService with a fresh session store and a recording sender."""
    service = app.extensions['conversation_service']
    original_store, original_sender = service.store, service.sender
    service.store = InMemorySessionStore()
    service.sender = FakeWhatsAppSender()
    yield service
    service.store, service.sender = original_store, original_sender
