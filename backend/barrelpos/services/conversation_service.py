# Overview: Runs WhatsApp conversations; loads sessions, applies the FSM, executes its effects.

"""
ConversationService.

The adapter between the wire and the pure state machine:

    handle_message(phone, text, message_id, action_id)
      -> lock phone -> load/create session -> drop repeated message ids
      -> transition() -> execute effects (send, place order, clear)
      -> save session

PlaceOrder goes through order_service.create_order like any POS order
(DELIVERY, WA- numbers, customer found or created by phone in the same
transaction). It joins no shift until a cashier records its payment. A
business failure during placement is fed back to the FSM as OrderFailed so
the customer is told and the offending item leaves the cart; the session
is never dropped.

One lock per phone number serializes deliveries for the same customer;
different customers proceed independently. The session store adds a
cross-worker lease on top (a no-op for the in-memory store).
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import timedelta

from flask import current_app

from ..errors import BusinessRuleError, NotFoundError, PosError
from ..extensions import db
from ..models import Store, User
from barrelpos.time_utils import utcnow
from . import catalog_service, order_service
from .conversation_state import (
    AWAITING_ORDER,
    ORDER_PLACED,
    ActionSelected,
    ClearSession,
    ConversationSettings,
    CustomerSession,
    MenuItem,
    OrderFailed,
    OrderPlaced,
    PlaceOrder,
    TextReceived,
    transition,
)
from .persistence import live
from .session_store import SessionStore
from .stores import products

WHATSAPP_ORDER_TYPE = "DELIVERY"
WHATSAPP_ORDER_PREFIX = "WA"


class PhoneLocks:
    """
    One lock per phone number, held only while someone uses it.

    An entry is dropped when its last holder releases it, so the map stays
    as small as the number of conversations currently being handled.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: dict[str, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    @contextmanager
    def hold(self, phone_number: str):
        with self._guard:
            entry = self._entries.setdefault(phone_number, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[phone_number]


class ConversationService:
    def __init__(self, store: SessionStore, sender, config):
        self.store = store
        self.sender = sender
        self.config = config
        self.settings = ConversationSettings(
            business_name=config.get("WHATSAPP_BUSINESS_NAME", "Cookie Barrel"),
            max_item_quantity=config.get("WHATSAPP_MAX_ITEM_QUANTITY", 50),
        )
        self._locks = PhoneLocks()

    @contextmanager
    def _lock_for(self, phone_number: str):
        """Serialize work on one conversation, within this process and across workers."""
        with self._locks.hold(phone_number), self.store.lease(phone_number):
            yield

    # =========================================================================
    # Lookups
    # =========================================================================

    def resolve_store_id(self) -> int:
        store_id = self.config.get("WHATSAPP_DEFAULT_STORE_ID")
        if store_id:
            return catalog_service.get_store(int(store_id)).id
        current_app.logger.warning("WHATSAPP_DEFAULT_STORE_ID not set; using the first active store")
        store = (
            live(db.session.query(Store), Store)
            .filter(Store.is_active.is_(True))
            .order_by(Store.id)
            .first()
        )
        if store is None:
            raise NotFoundError("No stores available for WhatsApp orders")
        return store.id

    def resolve_order_user_id(self) -> int:
        user_id = self.config.get("WHATSAPP_ORDER_USER_ID")
        if user_id:
            user = db.session.get(User, int(user_id))
            if user is None or not user.is_active:
                raise NotFoundError(f"WhatsApp order user {user_id} not found")
            return user.id
        user = (
            live(db.session.query(User), User)
            .filter(User.is_active.is_(True))
            .order_by(User.id)
            .first()
        )
        if user is None:
            raise NotFoundError("No users available to own WhatsApp orders")
        return user.id

    def menu_for(self, store_id: int) -> list[MenuItem]:
        return [
            MenuItem(
                product_id=p.id,
                name=p.name,
                price_cents=p.price_inc_gst_cents,
                track_inventory=p.track_inventory,
                stock_quantity=p.stock_quantity or 0,
                description=p.description,
            )
            for p in products.active_for_store(store_id)
        ]

    # =========================================================================
    # Message handling
    # =========================================================================

    def handle_message(self, phone_number: str, raw_message: str | None, message_id: str | None,
                       action_id: str | None = None) -> list:
        """
        Process one inbound message and return every effect that was executed.

        A message id seen before for this phone is a no-op (webhook retries).
        """
        with self._lock_for(phone_number):
            session = self.store.get(phone_number)
            if session is None:
                session = CustomerSession(phone_number=phone_number, state=AWAITING_ORDER)
            elif session.has_processed(message_id):
                current_app.logger.info("Duplicate WhatsApp message %s from %s ignored", message_id, phone_number)
                return []

            if session.store_id is None:
                session.store_id = self.resolve_store_id()
            session.remember_message(message_id)
            session.last_activity = utcnow()

            if action_id:
                event = ActionSelected(action_id=action_id, title=raw_message)
            else:
                event = TextReceived(text=raw_message or "")

            menu = self.menu_for(session.store_id)
            executed = []
            session, cleared = self._run(session, event, menu, executed)

            if cleared:
                self.store.clear(phone_number)
            else:
                self.store.save(session)
            return executed

    def _run(self, session: CustomerSession, event, menu, executed: list) -> tuple[CustomerSession, bool]:
        result = transition(session, event, menu, self.settings)
        session = result.session
        cleared = False

        for effect in result.effects:
            executed.append(effect)
            if isinstance(effect, PlaceOrder):
                follow_up = self._place_order(effect)
                session, follow_cleared = self._run(session, follow_up, menu, executed)
                cleared = cleared or follow_cleared
            elif isinstance(effect, ClearSession):
                cleared = True
            else:
                self.sender.send_effect(session.phone_number, effect)
        return session, cleared

    def _place_order(self, effect: PlaceOrder):
        """Create the order; returns OrderPlaced or OrderFailed for the FSM."""
        try:
            store_id = effect.store_id or self.resolve_store_id()
            user_id = self.resolve_order_user_id()

            notes = f"WhatsApp Order - {effect.delivery_address}"
            if effect.special_instructions:
                notes += f"\nInstructions: {effect.special_instructions}"

            order = order_service.create_order(
                store_id,
                user_id,
                order_type=WHATSAPP_ORDER_TYPE,
                items=[
                    {"product_id": item.product_id, "quantity": item.quantity, "notes": item.notes}
                    for item in effect.items
                ],
                customer={
                    "phone": effect.phone_number,
                    "name": effect.customer_name,
                    "address": effect.delivery_address,
                },
                notes=notes,
                number_prefix=WHATSAPP_ORDER_PREFIX,
                attach_shift=False,
            )
        except (BusinessRuleError, NotFoundError) as exc:
            product_id = (exc.details or {}).get("product_id")
            current_app.logger.info(
                "WhatsApp order for %s rejected (%s): %s", effect.phone_number, exc.code, exc.message
            )
            return OrderFailed(reason=exc.message, product_id=product_id)
        except PosError as exc:
            current_app.logger.error(
                "WhatsApp order for %s failed (%s): %s", effect.phone_number, exc.code, exc.message
            )
            return OrderFailed(reason="we could not process your order right now. Please try again shortly.")

        current_app.logger.info(
            "WhatsApp order %s placed for %s: total=%s",
            order.order_number, effect.phone_number, order.total_cents,
        )
        return OrderPlaced(order_number=order.order_number, total_cents=order.total_cents)

    # =========================================================================
    # Maintenance
    # =========================================================================

    def get_session(self, phone_number: str) -> CustomerSession | None:
        return self.store.get(phone_number)

    def clear_session(self, phone_number: str) -> None:
        with self._lock_for(phone_number):
            self.store.clear(phone_number)

    def _is_expired(self, session: CustomerSession, now) -> bool:
        idle = timedelta(hours=self.config.get("WHATSAPP_SESSION_TIMEOUT_HOURS", 1))
        retention = timedelta(minutes=self.config.get("WHATSAPP_PLACED_SESSION_RETENTION_MINUTES", 5))
        if session.last_activity < now - idle:
            return True
        return session.state == ORDER_PLACED and session.last_activity < now - retention

    def sweep_expired_sessions(self) -> int:
        """
        Clear idle sessions, plus placed-order sessions past their short retention.

        Each candidate is re-read under its conversation lock, so a message
        that arrived after the snapshot keeps its session. Returns the number
        of sessions removed.
        """
        removed = 0
        for candidate in self.store.list_active():
            if not self._is_expired(candidate, utcnow()):
                continue
            with self._lock_for(candidate.phone_number):
                current = self.store.get(candidate.phone_number)
                if current is None or not self._is_expired(current, utcnow()):
                    continue
                self.store.clear(candidate.phone_number)
                removed += 1

        if removed:
            current_app.logger.info("Swept %s expired WhatsApp session(s)", removed)
        return removed
