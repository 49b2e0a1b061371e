# Overview: WhatsApp ordering conversation as data plus a pure transition function.

"""
Conversation state machine.

    INITIAL -> AWAITING_ORDER -> AWAITING_NAME -> AWAITING_ADDRESS
            -> AWAITING_INSTRUCTIONS -> AWAITING_CONFIRMATION -> ORDER_PLACED

transition(session, event, menu) never performs I/O and never mutates its
input: it returns a new session plus the effects (messages to send, an
order to place, a session to clear) for the caller to execute. The
ConversationService is the adapter that loads sessions, runs effects and
feeds OrderPlaced / OrderFailed back in.

INPUT RULES:
- Button / list replies (ActionSelected) take precedence over free text.
- cancel / restart / start over reset any non-terminal state to
  AWAITING_ORDER with an empty cart.
- In ORDER_PLACED a greeting starts a fresh order; anything else gets a
  reminder of the placed order.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from barrelpos.time_utils import utcnow, to_utc_z, parse_iso_datetime


# =============================================================================
# STATES
# =============================================================================

INITIAL = "INITIAL"
AWAITING_ORDER = "AWAITING_ORDER"
AWAITING_NAME = "AWAITING_NAME"
AWAITING_ADDRESS = "AWAITING_ADDRESS"
AWAITING_INSTRUCTIONS = "AWAITING_INSTRUCTIONS"
AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
ORDER_PLACED = "ORDER_PLACED"

STATES = [
    INITIAL,
    AWAITING_ORDER,
    AWAITING_NAME,
    AWAITING_ADDRESS,
    AWAITING_INSTRUCTIONS,
    AWAITING_CONFIRMATION,
    ORDER_PLACED,
]

# Action ids carried by button and list replies
ACTION_ADD_ITEM = "add_item"
ACTION_CHECKOUT = "checkout"
ACTION_CONFIRM = "confirm"
ACTION_CANCEL = "cancel"
PRODUCT_ACTION_PREFIX = "product_"

GREETINGS = {"hi", "hello", "hey", "start", "menu"}
RESTART_KEYWORDS = {"cancel", "restart", "start over"}
CHECKOUT_KEYWORDS = {"done", "checkout"}
CONFIRM_KEYWORDS = {"confirm", "yes"}
NO_INSTRUCTIONS = {"none", "skip", "no"}

NAME_MIN, NAME_MAX = 2, 100
ADDRESS_MIN, ADDRESS_MAX = 10, 500
INSTRUCTIONS_MAX = 500
RECENT_MESSAGE_IDS = 25

# WhatsApp interactive limits
MAX_LIST_ROWS = 10
LIST_TITLE_MAX = 24
LIST_DESCRIPTION_MAX = 72

_ITEM_NUMBER_RE = re.compile(r"^(\d+)\s*[,\s]\s*(\d+)$")
_QTY_WORDS_RE = re.compile(r"^(\d+)\s*x?\s+(.+)$")
_WORD_RE = re.compile(r"[a-z0-9]+")


# =============================================================================
# SESSION DATA
# =============================================================================

@dataclass
class CartItem:
    product_id: int
    name: str
    price_cents: int
    quantity: int
    notes: str | None = None

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * self.quantity


@dataclass
class CustomerSession:
    phone_number: str
    state: str = INITIAL
    cart: list[CartItem] = field(default_factory=list)
    customer_name: str | None = None
    delivery_address: str | None = None
    special_instructions: str | None = None
    store_id: int | None = None
    created_at: datetime = field(default_factory=utcnow)
    last_activity: datetime = field(default_factory=utcnow)
    order_number: str | None = None
    recent_message_ids: list[str] = field(default_factory=list)

    @property
    def cart_total_cents(self) -> int:
        return sum(item.line_total_cents for item in self.cart)

    def has_processed(self, message_id: str | None) -> bool:
        return bool(message_id) and message_id in self.recent_message_ids

    def remember_message(self, message_id: str | None) -> None:
        if not message_id:
            return
        self.recent_message_ids.append(message_id)
        del self.recent_message_ids[:-RECENT_MESSAGE_IDS]

    def to_dict(self) -> dict:
        return {
            "phone_number": self.phone_number,
            "state": self.state,
            "cart": [
                {
                    "product_id": item.product_id,
                    "name": item.name,
                    "price_cents": item.price_cents,
                    "quantity": item.quantity,
                    "notes": item.notes,
                }
                for item in self.cart
            ],
            "customer_name": self.customer_name,
            "delivery_address": self.delivery_address,
            "special_instructions": self.special_instructions,
            "store_id": self.store_id,
            "created_at": to_utc_z(self.created_at),
            "last_activity": to_utc_z(self.last_activity),
            "order_number": self.order_number,
            "recent_message_ids": list(self.recent_message_ids),
            "cart_total_cents": self.cart_total_cents,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CustomerSession":
        return cls(
            phone_number=data["phone_number"],
            state=data.get("state", INITIAL),
            cart=[CartItem(**item) for item in data.get("cart", [])],
            customer_name=data.get("customer_name"),
            delivery_address=data.get("delivery_address"),
            special_instructions=data.get("special_instructions"),
            store_id=data.get("store_id"),
            created_at=parse_iso_datetime(data.get("created_at")) or utcnow(),
            last_activity=parse_iso_datetime(data.get("last_activity")) or utcnow(),
            order_number=data.get("order_number"),
            recent_message_ids=list(data.get("recent_message_ids", [])),
        )


@dataclass(frozen=True)
class MenuItem:
    """What the conversation needs to know about one orderable product."""
    product_id: int
    name: str
    price_cents: int
    track_inventory: bool = False
    stock_quantity: int = 0
    description: str | None = None


# =============================================================================
# EVENTS
# =============================================================================

@dataclass(frozen=True)
class TextReceived:
    text: str


@dataclass(frozen=True)
class ActionSelected:
    action_id: str
    title: str | None = None


@dataclass(frozen=True)
class OrderPlaced:
    order_number: str
    total_cents: int


@dataclass(frozen=True)
class OrderFailed:
    reason: str
    product_id: int | None = None


# =============================================================================
# EFFECTS
# =============================================================================

@dataclass(frozen=True)
class SendText:
    body: str


@dataclass(frozen=True)
class Button:
    id: str
    title: str


@dataclass(frozen=True)
class SendButtons:
    body: str
    buttons: tuple
    header: str | None = None
    footer: str | None = None


@dataclass(frozen=True)
class ListRow:
    id: str
    title: str
    description: str | None = None


@dataclass(frozen=True)
class ListSection:
    title: str
    rows: tuple


@dataclass(frozen=True)
class SendList:
    body: str
    button_text: str
    sections: tuple
    header: str | None = None
    footer: str | None = None


@dataclass(frozen=True)
class PlaceOrder:
    phone_number: str
    items: tuple
    customer_name: str
    delivery_address: str
    special_instructions: str | None
    store_id: int | None


@dataclass(frozen=True)
class ClearSession:
    phone_number: str


@dataclass(frozen=True)
class Transition:
    session: CustomerSession
    effects: tuple


@dataclass(frozen=True)
class ConversationSettings:
    business_name: str = "Cookie Barrel"
    max_item_quantity: int = 50


# =============================================================================
# FORMATTING
# =============================================================================

def format_money(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}${cents // 100}.{cents % 100:02d}"


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 1] + "…"


def cart_lines(session: CustomerSession) -> str:
    lines = [
        f"• {item.quantity}x {item.name} - {format_money(item.line_total_cents)}"
        for item in session.cart
    ]
    lines.append(f"\n*Total: {format_money(session.cart_total_cents)}*")
    return "\n".join(lines)


def _welcome(settings: ConversationSettings) -> SendText:
    return SendText(
        f"👋 Welcome to {settings.business_name}!\n\n"
        "Fresh baked goods delivered to your door! 🍪"
    )


def _menu_effects(menu: Sequence[MenuItem]) -> list:
    if not menu:
        return [SendText("Sorry, nothing is available to order right now. Please try again later.")]

    numbered = "\n".join(
        f"{index}. {item.name} - {format_money(item.price_cents)}"
        for index, item in enumerate(menu, start=1)
    )
    effects = [
        SendText(
            "🍪 *Our Menu*\n\n"
            f"{numbered}\n\n"
            "To order, type the quantity and item, e.g. "
            f"*2 {menu[0].name.lower()}*, or the item number and quantity, e.g. *1, 2*."
        )
    ]
    rows = tuple(
        ListRow(
            id=f"{PRODUCT_ACTION_PREFIX}{item.product_id}",
            title=_truncate(item.name, LIST_TITLE_MAX),
            description=_truncate(
                f"{format_money(item.price_cents)}" + (f" · {item.description}" if item.description else ""),
                LIST_DESCRIPTION_MAX,
            ),
        )
        for item in menu[:MAX_LIST_ROWS]
    )
    effects.append(
        SendList(
            body="Or tap below to add one of an item to your cart.",
            button_text="View Menu",
            sections=(ListSection(title="Menu", rows=rows),),
        )
    )
    return effects


def _cart_buttons(body: str) -> SendButtons:
    return SendButtons(
        body=body,
        buttons=(
            Button(ACTION_ADD_ITEM, "Add More"),
            Button(ACTION_CHECKOUT, "Checkout"),
            Button(ACTION_CANCEL, "Cancel"),
        ),
    )


def _help(settings: ConversationSettings) -> SendText:
    return SendText(
        f"📱 *{settings.business_name} Help*\n\n"
        "*Available Commands:*\n"
        "• *menu* - Show products\n"
        "• *cart* - View your cart\n"
        "• *done* - Proceed to checkout\n"
        "• *clear* - Clear cart\n"
        "• *cancel* - Cancel order\n"
        "• *help* - Show this help\n\n"
        "*How to Order:*\n"
        "1. Type the quantity and item, e.g. *2 chocolate cookies*\n"
        "   or the item number and quantity, e.g. *1, 2*\n"
        "2. Type *done* when ready\n"
        "3. Provide your details\n"
        "4. Confirm your order"
    )


def _order_summary(session: CustomerSession) -> SendButtons:
    instructions = session.special_instructions or "None"
    body = (
        "📋 *Order Summary*\n\n"
        f"{cart_lines(session)}\n\n"
        f"*Name:* {session.customer_name}\n"
        f"*Address:* {session.delivery_address}\n"
        f"*Instructions:* {instructions}"
    )
    return SendButtons(
        body=body,
        buttons=(Button(ACTION_CONFIRM, "Confirm Order"), Button(ACTION_CANCEL, "Cancel")),
        footer="Tap Confirm to place your order",
    )


def _prompt_for(session: CustomerSession, menu: Sequence[MenuItem]) -> list:
    """Re-ask whatever the current state is waiting for."""
    state = session.state
    if state == AWAITING_NAME:
        return [SendText("What's your name?")]
    if state == AWAITING_ADDRESS:
        return [SendText("What's your delivery address?")]
    if state == AWAITING_INSTRUCTIONS:
        return [SendText("Any special instructions for your order?\n(Type *skip* if none)")]
    if state == AWAITING_CONFIRMATION:
        return [_order_summary(session)]
    if state == ORDER_PLACED:
        return [_placed_reminder(session)]
    return [SendText("Type *menu* to see our items, *cart* to view your cart or *done* to checkout.")]


def _placed_reminder(session: CustomerSession) -> SendText:
    return SendText(
        f"Your order *{session.order_number}* has already been placed and is being prepared. 🍪\n\n"
        "Type *hi* to start a new order."
    )


# =============================================================================
# PRODUCT MATCHING
# =============================================================================

def _plurals(word: str) -> set[str]:
    forms = {word + "s", word + "es"}
    if len(word) > 2 and word.endswith("y"):
        forms.add(word[:-1] + "ies")
    return forms


def same_word(a: str, b: str) -> bool:
    """Equal, or one is a plural of the other (cookie/cookies, berry/berries)."""
    return a == b or b in _plurals(a) or a in _plurals(b)


def _tokens(text: str) -> list[str]:
    return _WORD_RE.findall(text.lower())


def _covers(name_words: list[str], words: list[str]) -> bool:
    return all(any(same_word(word, name_word) for name_word in name_words) for word in words)


def match_products(query: str, menu: Sequence[MenuItem]) -> list[MenuItem]:
    """
    Menu items whose name covers every word of the query (plural tolerant).

    The closest names (fewest extra words) come first; a name with exactly
    the query's words wins outright.
    """
    words = _tokens(query)
    if not words:
        return []

    scored = []
    for item in menu:
        name_words = _tokens(item.name)
        if not _covers(name_words, words):
            continue
        extra = len(name_words) - len(words)
        if extra == 0 and _covers(words, name_words):
            return [item]
        scored.append((extra, item))

    if not scored:
        lowered = query.strip().lower()
        return [item for item in menu if lowered and lowered in item.name.lower()]

    best = min(extra for extra, _ in scored)
    return [item for extra, item in scored if extra == best]


def find_menu_item(menu: Sequence[MenuItem], product_id: int) -> MenuItem | None:
    return next((item for item in menu if item.product_id == product_id), None)


# =============================================================================
# TRANSITIONS
# =============================================================================

def _reset_order(session: CustomerSession) -> None:
    session.state = AWAITING_ORDER
    session.cart = []
    session.customer_name = None
    session.delivery_address = None
    session.special_instructions = None
    session.order_number = None


def _add_to_cart(session: CustomerSession, item: MenuItem, quantity: int,
                 settings: ConversationSettings) -> list:
    if quantity < 1:
        return [SendText("Quantity must be at least 1.")]
    if quantity > settings.max_item_quantity:
        return [SendText(f"Maximum quantity is {settings.max_item_quantity} items per product.")]

    existing = next((line for line in session.cart if line.product_id == item.product_id), None)
    in_cart = existing.quantity if existing else 0
    if in_cart + quantity > settings.max_item_quantity:
        return [SendText(
            f"You already have {in_cart}x {item.name} in your cart. "
            f"Maximum quantity is {settings.max_item_quantity} items per product."
        )]
    if item.track_inventory and in_cart + quantity > item.stock_quantity:
        available = max(0, item.stock_quantity - in_cart)
        return [SendText(f"❌ Sorry, only {available} {item.name}(s) available in stock.")]

    if existing:
        existing.quantity += quantity
    else:
        session.cart.append(
            CartItem(product_id=item.product_id, name=item.name, price_cents=item.price_cents, quantity=quantity)
        )
    session.state = AWAITING_ORDER
    return [_cart_buttons(
        f"✅ Added {quantity}x {item.name}\n\n"
        f"Item Total: {format_money(item.price_cents * quantity)}\n"
        f"Cart Total: {format_money(session.cart_total_cents)}\n\n"
        "Add more items or tap *Checkout*."
    )]


def _show_cart(session: CustomerSession) -> list:
    if not session.cart:
        return [SendText("🛒 Your cart is empty.\n\nType *menu* to see available items.")]
    return [_cart_buttons(f"🛒 *Your Cart*\n\n{cart_lines(session)}")]


def _checkout(session: CustomerSession) -> list:
    if not session.cart:
        return [SendText("🛒 Your cart is empty!\n\nType *menu* to see available items.")]
    session.state = AWAITING_NAME
    return [SendText("Great! Let's get your order details.\n\nWhat's your name?")]


def _restart(session: CustomerSession) -> list:
    _reset_order(session)
    return [SendText("❌ Order cancelled. Your cart is now empty.\n\nType *menu* to start a new order anytime!")]


def _place_order(session: CustomerSession) -> list:
    if not session.cart:
        session.state = AWAITING_ORDER
        return [SendText("🛒 Your cart is empty!\n\nType *menu* to see available items.")]
    return [PlaceOrder(
        phone_number=session.phone_number,
        items=tuple(copy.deepcopy(session.cart)),
        customer_name=session.customer_name,
        delivery_address=session.delivery_address,
        special_instructions=session.special_instructions,
        store_id=session.store_id,
    )]


def _on_order_text(session: CustomerSession, text: str, menu: Sequence[MenuItem],
                   settings: ConversationSettings) -> list:
    normalized = text.strip().lower()

    if normalized in GREETINGS:
        session.state = AWAITING_ORDER
        effects = [_welcome(settings), *_menu_effects(menu)]
        if session.cart:
            effects.append(SendText(f"You still have {len(session.cart)} item(s) in your cart. Type *cart* to view."))
        return effects
    if normalized in CHECKOUT_KEYWORDS:
        return _checkout(session)
    if normalized == "cart":
        return _show_cart(session)
    if normalized == "clear":
        session.cart = []
        return [SendText("🗑️ Cart cleared! Type *menu* to start ordering.")]

    match = _ITEM_NUMBER_RE.match(normalized)
    if match:
        number, quantity = int(match.group(1)), int(match.group(2))
        if number < 1 or number > len(menu):
            return [SendText(f"❌ Invalid item number. Please choose 1-{len(menu)}.")]
        return _add_to_cart(session, menu[number - 1], quantity, settings)

    quantity, query = 1, normalized
    match = _QTY_WORDS_RE.match(normalized)
    if match:
        quantity, query = int(match.group(1)), match.group(2)

    candidates = match_products(query, menu)
    if len(candidates) == 1:
        return _add_to_cart(session, candidates[0], quantity, settings)
    if len(candidates) > 1:
        names = "\n".join(f"• {item.name}" for item in candidates[:MAX_LIST_ROWS])
        return [SendText(f"Which one did you mean?\n\n{names}\n\nPlease type the full item name.")]

    return [SendText(
        "❌ Sorry, I didn't understand that.\n\n"
        "To add items, type the quantity and item, e.g. *2 chocolate cookies*, "
        "or the item number and quantity, e.g. *1, 2*.\n\n"
        "Or type:\n"
        "• *cart* - View cart\n"
        "• *done* - Checkout\n"
        "• *menu* - Show menu"
    )]


def _on_text(session: CustomerSession, text: str, menu: Sequence[MenuItem],
             settings: ConversationSettings) -> list:
    stripped = (text or "").strip()
    normalized = stripped.lower()
    state = session.state

    if state == ORDER_PLACED:
        if normalized in GREETINGS:
            _reset_order(session)
            return [ClearSession(session.phone_number), _welcome(settings), *_menu_effects(menu)]
        return [_placed_reminder(session)]

    if normalized in RESTART_KEYWORDS:
        return _restart(session)
    if normalized == "help":
        return [_help(settings)]

    if state in (INITIAL, AWAITING_ORDER):
        return _on_order_text(session, stripped, menu, settings)

    if state == AWAITING_NAME:
        if len(stripped) < NAME_MIN:
            return [SendText(f"Please enter a valid name (at least {NAME_MIN} characters).")]
        if len(stripped) > NAME_MAX:
            return [SendText("Name is too long. Please enter a shorter name.")]
        session.customer_name = stripped
        session.state = AWAITING_ADDRESS
        return [SendText(f"Thanks, {stripped}! 👋\n\nWhat's your delivery address?")]

    if state == AWAITING_ADDRESS:
        if len(stripped) < ADDRESS_MIN:
            return [SendText(
                f"Please provide a complete delivery address (at least {ADDRESS_MIN} characters)."
            )]
        if len(stripped) > ADDRESS_MAX:
            return [SendText("Address is too long. Please provide a shorter address.")]
        session.delivery_address = stripped
        session.state = AWAITING_INSTRUCTIONS
        return [SendText("Perfect! 📍\n\nAny special instructions for your order?\n(Type *skip* if none)")]

    if state == AWAITING_INSTRUCTIONS:
        if normalized in NO_INSTRUCTIONS or not stripped:
            session.special_instructions = None
        elif len(stripped) > INSTRUCTIONS_MAX:
            return [SendText(f"Instructions are too long. Please keep it under {INSTRUCTIONS_MAX} characters.")]
        else:
            session.special_instructions = stripped
        session.state = AWAITING_CONFIRMATION
        return [_order_summary(session)]

    if state == AWAITING_CONFIRMATION:
        if normalized in CONFIRM_KEYWORDS:
            return _place_order(session)
        return [SendText("Please tap *Confirm Order* (or type *confirm*) to place your order, or *cancel* to cancel.")]

    return _prompt_for(session, menu)


def _on_action(session: CustomerSession, action_id: str, menu: Sequence[MenuItem],
               settings: ConversationSettings) -> list:
    state = session.state
    ordering = state in (INITIAL, AWAITING_ORDER)

    if state == ORDER_PLACED:
        if action_id == ACTION_ADD_ITEM:
            _reset_order(session)
            return [ClearSession(session.phone_number), *_menu_effects(menu)]
        return [_placed_reminder(session)]

    if action_id == ACTION_CANCEL:
        return _restart(session)

    if action_id == ACTION_ADD_ITEM:
        if not ordering:
            return _prompt_for(session, menu)
        session.state = AWAITING_ORDER
        return _menu_effects(menu)

    if action_id == ACTION_CHECKOUT:
        if not ordering:
            return _prompt_for(session, menu)
        return _checkout(session)

    if action_id == ACTION_CONFIRM:
        if state != AWAITING_CONFIRMATION:
            return _prompt_for(session, menu)
        return _place_order(session)

    if action_id.startswith(PRODUCT_ACTION_PREFIX):
        if not ordering:
            return _prompt_for(session, menu)
        try:
            product_id = int(action_id[len(PRODUCT_ACTION_PREFIX):])
        except ValueError:
            product_id = None
        item = find_menu_item(menu, product_id) if product_id is not None else None
        if item is None:
            return [SendText("❌ Sorry, that item is no longer available."), *_menu_effects(menu)]
        return _add_to_cart(session, item, 1, settings)

    return _prompt_for(session, menu)


def _on_order_placed(session: CustomerSession, event: OrderPlaced, settings: ConversationSettings) -> list:
    session.state = ORDER_PLACED
    session.order_number = event.order_number
    return [SendText(
        "✅ *Order Confirmed!*\n\n"
        f"Order Number: *{event.order_number}*\n"
        f"Total: {format_money(event.total_cents)}\n\n"
        f"Thank you for ordering from {settings.business_name}! "
        "We'll let you know when your order is on its way. 🚚"
    )]


def _on_order_failed(session: CustomerSession, event: OrderFailed) -> list:
    removed = None
    if event.product_id is not None:
        removed = next((line for line in session.cart if line.product_id == event.product_id), None)
        session.cart = [line for line in session.cart if line.product_id != event.product_id]
    session.state = AWAITING_ORDER

    body = f"❌ Sorry, we couldn't place your order: {event.reason}"
    if removed is not None:
        body += f"\n\nWe removed {removed.name} from your cart."
    if session.cart:
        return [SendText(body), _cart_buttons(f"🛒 *Your Cart*\n\n{cart_lines(session)}")]
    return [SendText(body + "\n\nType *menu* to see available items.")]


def transition(session: CustomerSession, event, menu: Sequence[MenuItem] = (),
               settings: ConversationSettings | None = None) -> Transition:
    """Apply one event to a copy of `session`; returns the new session and its effects."""
    settings = settings or ConversationSettings()
    menu = list(menu)
    new_session = copy.deepcopy(session)

    if isinstance(event, OrderPlaced):
        effects = _on_order_placed(new_session, event, settings)
    elif isinstance(event, OrderFailed):
        effects = _on_order_failed(new_session, event)
    elif isinstance(event, ActionSelected):
        effects = _on_action(new_session, event.action_id, menu, settings)
    elif isinstance(event, TextReceived):
        effects = _on_text(new_session, event.text, menu, settings)
    else:
        raise TypeError(f"Unsupported conversation event: {event!r}")

    return Transition(session=new_session, effects=tuple(effects))
