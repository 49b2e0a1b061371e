"""Pure conversation state machine: no I/O, returns new session plus effects."""

import pytest

from barrelpos.services.conversation_state import (
    ACTION_ADD_ITEM,
    ACTION_CANCEL,
    ACTION_CHECKOUT,
    ACTION_CONFIRM,
    AWAITING_ADDRESS,
    AWAITING_CONFIRMATION,
    AWAITING_INSTRUCTIONS,
    AWAITING_NAME,
    AWAITING_ORDER,
    INITIAL,
    ORDER_PLACED,
    ActionSelected,
    CartItem,
    ClearSession,
    ConversationSettings,
    CustomerSession,
    MenuItem,
    OrderFailed,
    OrderPlaced,
    PlaceOrder,
    SendButtons,
    SendList,
    SendText,
    TextReceived,
    format_money,
    match_products,
    same_word,
    transition,
)

PHONE = "61400000001"

MENU = [
    MenuItem(product_id=1, name="Chocolate Chip Cookie", price_cents=450, track_inventory=True, stock_quantity=10),
    MenuItem(product_id=2, name="Double Chocolate Cookie", price_cents=500, track_inventory=True, stock_quantity=10),
    MenuItem(product_id=3, name="Berry Muffin", price_cents=600, track_inventory=True, stock_quantity=2),
    MenuItem(product_id=4, name="Brownie", price_cents=550),
]


def _session(state=AWAITING_ORDER, cart=None, **kwargs):
    return CustomerSession(phone_number=PHONE, state=state, cart=cart or [], store_id=1, **kwargs)


def _step(session, text, menu=MENU, settings=None):
    return transition(session, TextReceived(text), menu, settings)


def _bodies(result):
    return [effect.body for effect in result.effects if hasattr(effect, "body")]


# =============================================================================
# Helpers
# =============================================================================

def test_format_money():
    assert format_money(0) == "$0.00"
    assert format_money(450) == "$4.50"
    assert format_money(123456) == "$1234.56"


@pytest.mark.parametrize("a,b", [("cookie", "cookies"), ("berry", "berries"), ("box", "boxes"), ("muffin", "muffin")])
def test_same_word_accepts_plurals(a, b):
    assert same_word(a, b)
    assert same_word(b, a)


def test_same_word_rejects_different_words():
    assert not same_word("cookie", "cook")


def test_match_products_prefers_closest_name():
    assert [m.product_id for m in match_products("brownies", MENU)] == [4]
    assert [m.product_id for m in match_products("chocolate chip cookies", MENU)] == [1]
    assert {m.product_id for m in match_products("chocolate cookie", MENU)} == {1, 2}
    assert match_products("pizza", MENU) == []


# =============================================================================
# Ordering
# =============================================================================

def test_greeting_sends_welcome_and_menu():
    result = _step(_session(INITIAL), "Hi")
    assert result.session.state == AWAITING_ORDER
    assert isinstance(result.effects[0], SendText)
    assert "Welcome" in result.effects[0].body
    menu_list = result.effects[-1]
    assert isinstance(menu_list, SendList)
    assert [row.id for row in menu_list.sections[0].rows] == ["product_1", "product_2", "product_3", "product_4"]


def test_menu_list_is_capped_at_ten_rows():
    menu = [MenuItem(product_id=i, name=f"Cookie {i}", price_cents=100) for i in range(1, 15)]
    result = _step(_session(), "menu", menu)
    assert len(result.effects[-1].sections[0].rows) == 10
    assert "14. Cookie 14" in result.effects[1].body


def test_empty_menu_says_nothing_is_available():
    result = _step(_session(), "menu", [])
    assert len(result.effects) == 2
    assert "nothing is available" in result.effects[1].body


def test_quantity_and_name_adds_to_cart():
    result = _step(_session(), "2 brownies")
    assert result.session.cart == [CartItem(product_id=4, name="Brownie", price_cents=550, quantity=2)]
    assert isinstance(result.effects[0], SendButtons)
    assert [b.id for b in result.effects[0].buttons] == [ACTION_ADD_ITEM, ACTION_CHECKOUT, ACTION_CANCEL]


def test_item_number_and_quantity_adds_to_cart():
    result = _step(_session(), "1, 3")
    assert result.session.cart[0].product_id == 1
    assert result.session.cart[0].quantity == 3


def test_adding_the_same_item_merges_lines():
    session = _step(_session(), "2 brownies").session
    session = _step(session, "brownie").session
    assert len(session.cart) == 1
    assert session.cart[0].quantity == 3
    assert session.cart_total_cents == 1650


def test_invalid_item_number():
    result = _step(_session(), "9, 1")
    assert "Invalid item number" in _bodies(result)[0]
    assert result.session.cart == []


def test_ambiguous_name_asks_which_one():
    result = _step(_session(), "chocolate cookie")
    assert "Which one did you mean?" in _bodies(result)[0]
    assert result.session.cart == []


def test_stock_limit_counts_what_is_already_in_the_cart():
    session = _step(_session(), "2 berry muffins").session
    result = _step(session, "berry muffin")
    assert "only 0 Berry Muffin(s) available" in _bodies(result)[0]
    assert result.session.cart[0].quantity == 2


def test_per_item_quantity_cap():
    settings = ConversationSettings(max_item_quantity=5)
    result = _step(_session(), "6 brownies", settings=settings)
    assert "Maximum quantity is 5" in _bodies(result)[0]
    assert result.session.cart == []


def test_unrecognized_text_explains_how_to_order():
    result = _step(_session(), "asdfgh")
    assert "didn't understand" in _bodies(result)[0]


def test_product_action_adds_one():
    result = transition(_session(), ActionSelected("product_3", "Berry Muffin"), MENU)
    assert result.session.cart[0].quantity == 1


def test_unknown_product_action_resends_menu():
    result = transition(_session(), ActionSelected("product_99"), MENU)
    assert "no longer available" in result.effects[0].body
    assert isinstance(result.effects[-1], SendList)


def test_cart_and_clear_commands():
    session = _step(_session(), "2 brownies").session
    assert "Your Cart" in _bodies(_step(session, "cart"))[0]
    cleared = _step(session, "clear").session
    assert cleared.cart == []


def test_transition_does_not_mutate_its_input():
    session = _session()
    _step(session, "2 brownies")
    assert session.cart == []


# =============================================================================
# Checkout
# =============================================================================

def _checkout_to_confirmation():
    session = _step(_session(), "2 brownies").session
    session = transition(session, ActionSelected(ACTION_CHECKOUT), MENU).session
    assert session.state == AWAITING_NAME
    session = _step(session, "Jo Citizen").session
    assert session.state == AWAITING_ADDRESS
    session = _step(session, "12 Baker Street, Sydney").session
    assert session.state == AWAITING_INSTRUCTIONS
    return session


def test_checkout_with_empty_cart_stays_ordering():
    result = _step(_session(), "done")
    assert result.session.state == AWAITING_ORDER
    assert "cart is empty" in _bodies(result)[0]


def test_details_are_validated():
    session = _step(_session(), "brownie").session
    session = _step(session, "checkout").session

    assert _step(session, "J").session.state == AWAITING_NAME
    session = _step(session, "Jo").session
    assert _step(session, "short").session.state == AWAITING_ADDRESS


def test_skip_instructions_then_summary():
    session = _checkout_to_confirmation()
    result = _step(session, "skip")

    assert result.session.state == AWAITING_CONFIRMATION
    assert result.session.special_instructions is None
    summary = result.effects[0]
    assert isinstance(summary, SendButtons)
    assert "*Name:* Jo Citizen" in summary.body
    assert "*Instructions:* None" in summary.body
    assert [b.id for b in summary.buttons] == [ACTION_CONFIRM, ACTION_CANCEL]


def test_confirm_emits_place_order():
    session = _step(_checkout_to_confirmation(), "Ring the bell").session
    result = transition(session, ActionSelected(ACTION_CONFIRM), MENU)

    (effect,) = result.effects
    assert isinstance(effect, PlaceOrder)
    assert effect.phone_number == PHONE
    assert effect.customer_name == "Jo Citizen"
    assert effect.delivery_address == "12 Baker Street, Sydney"
    assert effect.special_instructions == "Ring the bell"
    assert effect.items[0].quantity == 2
    assert effect.store_id == 1


def test_typed_confirmation_also_places_order():
    session = _step(_checkout_to_confirmation(), "none").session
    assert isinstance(_step(session, "yes").effects[0], PlaceOrder)


def test_confirm_outside_confirmation_reprompts():
    session = _checkout_to_confirmation()
    result = transition(session, ActionSelected(ACTION_CONFIRM), MENU)
    assert result.session.state == AWAITING_INSTRUCTIONS
    assert "special instructions" in result.effects[0].body


def test_cancel_resets_to_ordering_with_empty_cart():
    session = _checkout_to_confirmation()
    for event in (TextReceived("cancel"), TextReceived("Start Over"), ActionSelected(ACTION_CANCEL)):
        result = transition(session, event, MENU)
        assert result.session.state == AWAITING_ORDER
        assert result.session.cart == []
        assert result.session.customer_name is None


# =============================================================================
# Placement feedback
# =============================================================================

def test_order_placed_records_number():
    session = _session(AWAITING_CONFIRMATION, cart=[CartItem(4, "Brownie", 550, 2)])
    result = transition(session, OrderPlaced(order_number="WA-000001", total_cents=1100))

    assert result.session.state == ORDER_PLACED
    assert result.session.order_number == "WA-000001"
    assert "WA-000001" in result.effects[0].body
    assert "$11.00" in result.effects[0].body


def test_order_failed_removes_the_offending_item():
    session = _session(AWAITING_CONFIRMATION, cart=[CartItem(4, "Brownie", 550, 2), CartItem(3, "Berry Muffin", 600, 1)])
    result = transition(session, OrderFailed(reason="Berry Muffin is out of stock", product_id=3))

    assert result.session.state == AWAITING_ORDER
    assert [line.product_id for line in result.session.cart] == [4]
    assert "We removed Berry Muffin" in result.effects[0].body
    assert isinstance(result.effects[1], SendButtons)


def test_placed_session_reminds_until_greeted():
    session = _session(ORDER_PLACED, order_number="WA-000007")
    reminder = _step(session, "where is my order?")
    assert reminder.session.state == ORDER_PLACED
    assert "WA-000007" in reminder.effects[0].body

    fresh = _step(session, "hello")
    assert isinstance(fresh.effects[0], ClearSession)
    assert fresh.session.state == AWAITING_ORDER
    assert fresh.session.order_number is None


def test_unsupported_event_is_a_type_error():
    with pytest.raises(TypeError):
        transition(_session(), object(), MENU)
