"""Order aggregate: totals, lifecycle and stock decrement at completion."""

import pytest

from barrelpos.errors import (
    BusinessRuleError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
    INSUFFICIENT_PAYMENT,
    INVALID_QUANTITY,
    INVALID_STATUS_TRANSITION,
    ITEM_ALREADY_VOIDED,
    ORDER_ALREADY_CANCELLED,
    ORDER_ALREADY_COMPLETED,
    ORDER_NOT_EDITABLE,
    PRODUCT_INACTIVE,
)
from barrelpos.extensions import db
from barrelpos.models import Customer, InventoryTransaction
from barrelpos.models.inventory import TX_RETURN, TX_SALE, TX_THEFT
from barrelpos.models.orders import (
    ORDER_CANCELLED,
    ORDER_COMPLETED,
    ORDER_ON_HOLD,
    ORDER_PARTIALLY_REFUNDED,
    ORDER_PENDING,
    ORDER_PROCESSING,
    ORDER_REFUNDED,
)
from barrelpos.services import inventory_service, order_service, shift_service


def _ledger_types(product_id):
    return [
        tx.type for tx in
        db.session.query(InventoryTransaction)
        .filter_by(product_id=product_id)
        .order_by(InventoryTransaction.id)
    ]


def _assert_totals_consistent(order):
    active_total = sum(item.total_cents for item in order.active_items)
    assert order.total_cents == max(0, active_total - order.discount_cents)
    assert order.total_cents == max(0, order.subtotal_cents - order.discount_cents + order.tax_cents)


# =============================================================================
# Creation and items
# =============================================================================

def test_create_order_prices_lines_from_the_product(cookie, cashier):
    order = order_service.create_order(cookie.store_id, cashier.id, items=[
        {"product_id": cookie.id, "quantity": 2},
    ])

    assert order.order_number == "ORD-000001"
    assert order.status == ORDER_PENDING
    assert (order.subtotal_cents, order.tax_cents, order.total_cents) == (1818, 182, 2000)
    item = order.items[0]
    assert (item.unit_price_ex_gst_cents, item.unit_gst_cents, item.unit_price_inc_gst_cents) == (909, 91, 1000)
    _assert_totals_consistent(order)


def test_stock_is_untouched_until_completion(cookie, cashier):
    order_service.create_order(cookie.store_id, cashier.id, items=[{"product_id": cookie.id, "quantity": 5}])
    assert cookie.stock_quantity == 20
    assert _ledger_types(cookie.id) == ["INITIAL_STOCK"]


def test_order_numbers_are_sequential_per_store(store, other_store, cashier):
    first = order_service.create_order(store.id, cashier.id)
    second = order_service.create_order(store.id, cashier.id)
    elsewhere = order_service.create_order(other_store.id, cashier.id)

    assert (first.order_number, second.order_number) == ("ORD-000001", "ORD-000002")
    assert elsewhere.order_number == "ORD-000001"


def test_order_discount_reduces_total(cookie, cashier):
    order = order_service.create_order(cookie.store_id, cashier.id, discount_cents=100, items=[
        {"product_id": cookie.id, "quantity": 2, "discount_cents": 50},
    ])
    assert order.total_cents == 2000 - 50 - 100
    _assert_totals_consistent(order)


def test_order_discount_above_total_clamps_to_zero(cookie, cashier):
    order = order_service.create_order(cookie.store_id, cashier.id, discount_cents=5000, items=[
        {"product_id": cookie.id, "quantity": 1},
    ])
    assert order.total_cents == 0


def test_invalid_order_type_is_rejected(store, cashier):
    with pytest.raises(ValidationError):
        order_service.create_order(store.id, cashier.id, order_type="DRIVE_THRU")


def test_create_order_links_a_customer_found_by_phone(cookie, cashier):
    order = order_service.create_order(
        cookie.store_id, cashier.id,
        customer={"phone": "61400000020", "name": "Sam Lee", "address": "1 Short St"},
    )

    customer = db.session.query(Customer).one()
    assert order.customer_id == customer.id
    assert (customer.first_name, customer.last_name, customer.address) == ("Sam", "Lee", "1 Short St")


def test_rejected_order_leaves_no_customer_behind(cookie, cashier):
    with pytest.raises(InsufficientStockError):
        order_service.create_order(
            cookie.store_id, cashier.id,
            items=[{"product_id": cookie.id, "quantity": 21}],
            customer={"phone": "61400000020", "name": "Sam Lee"},
        )

    assert db.session.query(Customer).count() == 0


def test_add_item_accumulates_against_stock(cookie, cashier):
    order = order_service.create_order(cookie.store_id, cashier.id)
    order_service.add_item(order.id, cookie.id, 15)

    with pytest.raises(InsufficientStockError) as exc:
        order_service.add_item(order.id, cookie.id, 6)
    assert exc.value.details["requested"] == 21

    order = order_service.get_order(order.id)
    assert len(order.items) == 1
    assert order.total_cents == 15000


@pytest.mark.parametrize("quantity", [0, -1, True, "2"])
def test_add_item_rejects_bad_quantity(cookie, cashier, quantity):
    order = order_service.create_order(cookie.store_id, cashier.id)
    with pytest.raises(BusinessRuleError) as exc:
        order_service.add_item(order.id, cookie.id, quantity)
    assert exc.value.code == INVALID_QUANTITY


def test_add_item_rejects_inactive_product(cookie, cashier):
    cookie.is_active = False
    db.session.commit()
    order = order_service.create_order(cookie.store_id, cashier.id)

    with pytest.raises(BusinessRuleError) as exc:
        order_service.add_item(order.id, cookie.id, 1)
    assert exc.value.code == PRODUCT_INACTIVE
    assert exc.value.details == {"product_id": cookie.id}


def test_add_item_unknown_product_carries_product_id(store, cashier):
    order = order_service.create_order(store.id, cashier.id)
    with pytest.raises(NotFoundError) as exc:
        order_service.add_item(order.id, 4242, 1)
    assert exc.value.details == {"product_id": 4242}


def test_cannot_add_items_to_completed_order(cookie, cashier):
    order = order_service.create_order(cookie.store_id, cashier.id, items=[{"product_id": cookie.id, "quantity": 1}])
    order_service.complete_order(order.id, 1000, actor_user_id=cashier.id)

    with pytest.raises(BusinessRuleError) as exc:
        order_service.add_item(order.id, cookie.id, 1)
    assert exc.value.code == ORDER_NOT_EDITABLE


# =============================================================================
# Completion
# =============================================================================

def test_complete_requires_full_payment(cookie, cashier):
    order = order_service.create_order(cookie.store_id, cashier.id, items=[{"product_id": cookie.id, "quantity": 2}])

    with pytest.raises(BusinessRuleError) as exc:
        order_service.complete_order(order.id, actor_user_id=cashier.id)
    assert exc.value.code == INSUFFICIENT_PAYMENT
    assert order_service.get_order(order.id).status == ORDER_PENDING
    assert cookie.stock_quantity == 20


def test_complete_decrements_stock_once_per_line(cookie, make_product, cashier):
    brownie = make_product("BROWNIE", 455, stock=3, name="Brownie")
    order = order_service.create_order(cookie.store_id, cashier.id, items=[
        {"product_id": cookie.id, "quantity": 2},
        {"product_id": brownie.id, "quantity": 3},
    ])

    completed = order_service.complete_order(order.id, 3600, actor_user_id=cashier.id)

    assert completed.status == ORDER_COMPLETED
    assert completed.total_cents == 2000 + 3 * 501
    assert completed.paid_cents == 3600
    assert completed.change_cents == 3600 - completed.total_cents
    assert completed.completed_at is not None
    assert cookie.stock_quantity == 18
    assert brownie.stock_quantity == 0
    assert all(item.sale_transaction_id is not None for item in completed.items)

    # Completing again is a no-op
    order_service.complete_order(order.id, actor_user_id=cashier.id)
    assert _ledger_types(cookie.id) == ["INITIAL_STOCK", TX_SALE]
    assert inventory_service.verify_ledger(cookie.id)
    assert inventory_service.verify_ledger(brownie.id)


def test_complete_fails_when_stock_sold_elsewhere(cookie, cashier, manager):
    order = order_service.create_order(cookie.store_id, cashier.id, items=[{"product_id": cookie.id, "quantity": 5}])
    inventory_service.adjust_stock(cookie.id, -18, "DAMAGE", user_id=manager.id)

    with pytest.raises(InsufficientStockError):
        order_service.complete_order(order.id, 5000, actor_user_id=cashier.id)

    order = order_service.get_order(order.id)
    assert order.status == ORDER_PENDING
    assert cookie.stock_quantity == 2
    assert inventory_service.verify_ledger(cookie.id)


def test_untracked_products_leave_no_sale_row(make_product, cashier):
    coffee = make_product("COFFEE", 364, stock=0, track_inventory=False)
    order = order_service.create_order(coffee.store_id, cashier.id, items=[{"product_id": coffee.id, "quantity": 3}])
    order_service.complete_order(order.id, order.total_cents, actor_user_id=cashier.id)
    assert _ledger_types(coffee.id) == []


# =============================================================================
# Voids, cancellation, refunds
# =============================================================================

def test_void_on_open_order_drops_line_from_totals(cookie, make_product, cashier):
    brownie = make_product("BROWNIE", 455, stock=5)
    order = order_service.create_order(cookie.store_id, cashier.id, items=[
        {"product_id": cookie.id, "quantity": 1},
        {"product_id": brownie.id, "quantity": 1},
    ])
    brownie_line = order.items[1]

    order = order_service.void_item(order.id, brownie_line.id, cashier.id, reason="Changed mind")

    assert order.total_cents == 1000
    assert brownie_line.is_voided
    assert _ledger_types(brownie.id) == ["INITIAL_STOCK"]
    _assert_totals_consistent(order)

    with pytest.raises(BusinessRuleError) as exc:
        order_service.void_item(order.id, brownie_line.id, cashier.id)
    assert exc.value.code == ITEM_ALREADY_VOIDED


def test_void_on_completed_order_is_a_partial_refund(cookie, make_product, cashier):
    brownie = make_product("BROWNIE", 455, stock=5)
    order = order_service.create_order(cookie.store_id, cashier.id, items=[
        {"product_id": cookie.id, "quantity": 2},
        {"product_id": brownie.id, "quantity": 1},
    ])
    order_service.complete_order(order.id, 3000, actor_user_id=cashier.id)
    cookie_line, brownie_line = order.items

    order = order_service.void_item(order.id, brownie_line.id, cashier.id, reason="Stale")
    assert order.status == ORDER_PARTIALLY_REFUNDED
    assert brownie.stock_quantity == 5
    assert brownie_line.restock_transaction_id is not None

    order = order_service.void_item(order.id, cookie_line.id, cashier.id)
    assert order.status == ORDER_REFUNDED
    assert cookie.stock_quantity == 20
    assert _ledger_types(cookie.id) == ["INITIAL_STOCK", TX_SALE, TX_RETURN]


def test_void_restocks_even_when_an_override_left_stock_negative(cookie, cashier, manager):
    order = order_service.create_order(cookie.store_id, cashier.id, items=[{"product_id": cookie.id, "quantity": 2}])
    order_service.complete_order(order.id, 2000, actor_user_id=cashier.id)
    inventory_service.adjust_stock(cookie.id, -30, TX_THEFT, user_id=manager.id)
    assert cookie.stock_quantity == -12

    order = order_service.void_item(order.id, order.items[0].id, cashier.id, reason="Returned")

    assert order.status == ORDER_REFUNDED
    assert cookie.stock_quantity == -10
    assert inventory_service.verify_ledger(cookie.id)


def test_refund_restocks_even_when_an_override_left_stock_negative(cookie, cashier, manager):
    order = order_service.create_order(cookie.store_id, cashier.id, items=[{"product_id": cookie.id, "quantity": 3}])
    order_service.complete_order(order.id, 3000, actor_user_id=cashier.id)
    inventory_service.adjust_stock(cookie.id, -20, TX_THEFT, user_id=manager.id)

    order = order_service.refund_order(order.id, "Wrong flavour", manager.id)

    assert order.status == ORDER_REFUNDED
    assert cookie.stock_quantity == 0
    assert _ledger_types(cookie.id)[-1] == TX_RETURN


def test_cancel_pending_order(cookie, cashier):
    order = order_service.create_order(cookie.store_id, cashier.id, items=[{"product_id": cookie.id, "quantity": 1}])
    order = order_service.cancel_order(order.id, "Customer left", cashier.id)

    assert order.status == ORDER_CANCELLED
    assert order.cancellation_reason == "Customer left"
    assert order.cancelled_at is not None
    assert cookie.stock_quantity == 20

    with pytest.raises(BusinessRuleError) as exc:
        order_service.cancel_order(order.id, None, cashier.id)
    assert exc.value.code == ORDER_ALREADY_CANCELLED


def test_cannot_cancel_completed_order(cookie, cashier):
    order = order_service.create_order(cookie.store_id, cashier.id, items=[{"product_id": cookie.id, "quantity": 1}])
    order_service.complete_order(order.id, 1000, actor_user_id=cashier.id)

    with pytest.raises(BusinessRuleError) as exc:
        order_service.cancel_order(order.id, None, cashier.id)
    assert exc.value.code == ORDER_ALREADY_COMPLETED


def test_refund_returns_stock_for_every_line(cookie, cashier, manager):
    order = order_service.create_order(cookie.store_id, cashier.id, items=[{"product_id": cookie.id, "quantity": 4}])
    order_service.complete_order(order.id, 4000, actor_user_id=cashier.id)
    assert cookie.stock_quantity == 16

    order = order_service.refund_order(order.id, "Burnt batch", manager.id)

    assert order.status == ORDER_REFUNDED
    assert cookie.stock_quantity == 20
    assert inventory_service.verify_ledger(cookie.id)

    with pytest.raises(BusinessRuleError) as exc:
        order_service.refund_order(order.id, None, manager.id)
    assert exc.value.code == INVALID_STATUS_TRANSITION


def test_hold_and_resume(cookie, cashier):
    order = order_service.create_order(cookie.store_id, cashier.id, items=[{"product_id": cookie.id, "quantity": 1}])

    assert order_service.hold_order(order.id).status == ORDER_ON_HOLD
    with pytest.raises(BusinessRuleError):
        order_service.hold_order(order.id)
    assert order_service.resume_order(order.id).status == ORDER_PROCESSING


def test_allowed_transitions():
    assert order_service.can_transition(ORDER_PENDING, ORDER_PROCESSING)
    assert order_service.can_transition(ORDER_ON_HOLD, ORDER_CANCELLED)
    assert not order_service.can_transition(ORDER_PENDING, ORDER_COMPLETED)
    assert not order_service.can_transition(ORDER_CANCELLED, ORDER_PENDING)
    assert not order_service.can_transition(ORDER_REFUNDED, ORDER_COMPLETED)


def test_delete_only_cancelled_or_unpaid_pending(cookie, cashier):
    completed = order_service.create_order(cookie.store_id, cashier.id, items=[{"product_id": cookie.id, "quantity": 1}])
    order_service.complete_order(completed.id, 1000, actor_user_id=cashier.id)
    with pytest.raises(BusinessRuleError):
        order_service.delete_order(completed.id)

    pending = order_service.create_order(cookie.store_id, cashier.id)
    order_service.delete_order(pending.id, actor_user_id=cashier.id)

    with pytest.raises(NotFoundError):
        order_service.get_order(pending.id)
    deleted = order_service.get_order(pending.id, include_deleted=True)
    assert deleted.is_deleted
    assert deleted.deleted_by_user_id == cashier.id


def test_order_joins_the_cashiers_open_shift(cookie, cashier):
    shift = shift_service.open_shift(cashier.id, cookie.store_id, 10000)
    order = order_service.create_order(cookie.store_id, cashier.id)
    assert order.shift_id == shift.id

    detached = order_service.create_order(cookie.store_id, cashier.id, attach_shift=False)
    assert detached.shift_id is None
