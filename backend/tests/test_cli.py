"""Flask CLI commands."""

from datetime import timedelta

import pytest

from barrelpos.extensions import db
from barrelpos.models import Product, Store, User
from barrelpos.services import shift_service
from barrelpos.services.conversation_state import CustomerSession
from barrelpos.time_utils import utcnow


@pytest.fixture
def runner(app, db_session):
    return app.test_cli_runner()


def test_system_init_is_idempotent(runner):
    result = runner.invoke(args=["system", "init", "--store", "Cookie Barrel Test", "--password", "Password123"])

    assert result.exit_code == 0, result.output
    assert "PASS Created default store: Cookie Barrel Test" in result.output
    assert {u.username for u in db.session.query(User).all()} == {"admin", "manager", "cashier"}

    again = runner.invoke(args=["system", "init"])
    assert again.exit_code == 0
    assert "WARN  User 'admin' already exists" in again.output
    assert db.session.query(Store).count() == 1


def test_add_product(runner, store):
    result = runner.invoke(args=[
        "catalog", "add-product", "--store-id", str(store.id), "--sku", "CHOC-01",
        "--name", "Choc Chip Cookie", "--price-ex-gst", "909", "--stock", "12",
    ])

    assert result.exit_code == 0, result.output
    assert "$9.09 + GST $0.91 = $10.00, stock 12" in result.output
    product = db.session.query(Product).filter_by(sku="CHOC-01").one()
    assert product.stock_quantity == 12


def test_add_product_duplicate_sku_fails(runner, cookie):
    result = runner.invoke(args=[
        "catalog", "add-product", "--store-id", str(cookie.store_id), "--sku", "COOKIE",
        "--name", "Another", "--price-ex-gst", "100",
    ])

    assert result.exit_code == 1
    assert "FAIL VALIDATION_FAILED" in result.output


def test_inventory_verify(runner, cookie):
    result = runner.invoke(args=["inventory", "verify"])
    assert result.exit_code == 0
    assert "PASS" in result.output

    cookie.stock_quantity = 7
    db.session.commit()

    result = runner.invoke(args=["inventory", "verify", "--store-id", str(cookie.store_id)])
    assert result.exit_code == 1
    assert f"FAIL product {cookie.id} (COOKIE): stock=7 ledger=20" in result.output


def test_shifts_list(runner, store, cashier):
    assert "No shifts found." in runner.invoke(args=["shifts", "list"]).output

    shift_service.open_shift(cashier.id, store.id, 20000)

    result = runner.invoke(args=["shifts", "list", "--status", "OPEN"])
    assert result.exit_code == 0
    assert "SH-000001" in result.output


def test_sweep_sessions(runner, conversations):
    conversations.store.save(CustomerSession("61400000009", last_activity=utcnow() - timedelta(hours=5)))

    result = runner.invoke(args=["whatsapp", "sweep-sessions"])

    assert result.exit_code == 0
    assert "PASS Removed 1 expired session(s)." in result.output
