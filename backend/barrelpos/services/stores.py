# Overview: Per-aggregate read access used by the services.

from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import Order, Product, Shift
from ..models.shifts import SHIFT_OPEN
from .concurrency import lock_for_update
from .persistence import live


class _Store:
    model = None
    label = "Record"

    def query(self, *, include_deleted: bool = False):
        query = db.session.query(self.model)
        return query if include_deleted else live(query, self.model)

    def find(self, entity_id: int, *, include_deleted: bool = False, lock: bool = False):
        query = self.query(include_deleted=include_deleted).filter(self.model.id == entity_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def get(self, entity_id: int, *, include_deleted: bool = False, lock: bool = False):
        entity = self.find(entity_id, include_deleted=include_deleted, lock=lock)
        if entity is None:
            raise NotFoundError(f"{self.label} {entity_id} not found")
        return entity


class OrderStore(_Store):
    model = Order
    label = "Order"

    def for_shift(self, shift_id: int) -> list[Order]:
        return self.query().filter(Order.shift_id == shift_id).all()


class ShiftStore(_Store):
    model = Shift
    label = "Shift"

    def open_for_user(self, user_id: int, *, store_id: int | None = None, lock: bool = False) -> Shift | None:
        query = self.query().filter(Shift.user_id == user_id, Shift.status == SHIFT_OPEN)
        if store_id is not None:
            query = query.filter(Shift.store_id == store_id)
        if lock:
            query = lock_for_update(query)
        return query.order_by(Shift.start_time.desc()).first()


class ProductStore(_Store):
    model = Product
    label = "Product"

    def active_for_store(self, store_id: int) -> list[Product]:
        return (
            self.query()
            .filter(Product.store_id == store_id, Product.is_active.is_(True))
            .order_by(Product.display_order, Product.name)
            .all()
        )


orders = OrderStore()
shifts = ShiftStore()
products = ProductStore()
