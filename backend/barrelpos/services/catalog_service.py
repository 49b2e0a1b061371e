# Overview: Products, stores and customers; prices are always set through the tax engine.

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Product, Store
from ..models.inventory import TX_INITIAL_STOCK
from .inventory_service import apply_delta
from .persistence import live, save_all
from .stores import products
from .tax_service import price_from_ex_gst


def get_store(store_id: int) -> Store:
    store = live(db.session.query(Store), Store).filter(Store.id == store_id).first()
    if store is None:
        raise NotFoundError(f"Store {store_id} not found")
    return store


def create_store(name: str, *, code: str | None = None, gst_rate_bps: int | None = None,
                 actor_id: int | None = None) -> Store:
    if not name or not name.strip():
        raise ValidationError("Store name is required")
    if gst_rate_bps is None:
        gst_rate_bps = current_app.config.get("DEFAULT_GST_RATE_BPS", 1000)
    store = Store(name=name.strip(), code=code, gst_rate_bps=gst_rate_bps, is_active=True)
    save_all([store], actor_id=actor_id)
    return store


def apply_price(product: Product, price_ex_gst_cents: int, rate_bps: int) -> Product:
    """Set the authoritative ex-GST price and its derived GST / inc-GST values."""
    if not isinstance(price_ex_gst_cents, int) or price_ex_gst_cents < 0:
        raise ValidationError("price_ex_gst_cents must be a non-negative integer")
    breakdown = price_from_ex_gst(price_ex_gst_cents, rate_bps)
    product.price_ex_gst_cents = breakdown.ex_gst_cents
    product.gst_amount_cents = breakdown.gst_cents
    product.price_inc_gst_cents = breakdown.inc_gst_cents
    return product


def create_product(
    *,
    store_id: int,
    sku: str,
    name: str,
    price_ex_gst_cents: int,
    cost_cents: int | None = None,
    track_inventory: bool = True,
    initial_stock: int = 0,
    low_stock_threshold: int = 0,
    display_order: int = 0,
    supplier_id: int | None = None,
    description: str | None = None,
    actor_id: int | None = None,
) -> Product:
    """
    Create a product priced ex-GST at the store's rate.

    A positive initial_stock is booked as an INITIAL_STOCK ledger row in the
    same transaction so stock_quantity never diverges from the ledger.
    """
    if not sku or not sku.strip():
        raise ValidationError("SKU is required")
    if not name or not name.strip():
        raise ValidationError("Product name is required")
    if not isinstance(initial_stock, int) or initial_stock < 0:
        raise ValidationError("initial_stock must be a non-negative integer")

    store = get_store(store_id)
    existing = products.query(include_deleted=True).filter(
        Product.store_id == store_id, Product.sku == sku.strip()
    ).first()
    if existing is not None:
        raise ValidationError(f"SKU {sku} already exists in this store", errors={"sku": "duplicate"})

    product = Product(
        store_id=store_id,
        sku=sku.strip(),
        name=name.strip(),
        description=description,
        cost_cents=cost_cents,
        is_active=True,
        track_inventory=track_inventory,
        stock_quantity=0,
        low_stock_threshold=low_stock_threshold,
        display_order=display_order,
        supplier_id=supplier_id,
    )
    apply_price(product, price_ex_gst_cents, store.gst_rate_bps)
    save_all([product], actor_id=actor_id, commit=False)

    if initial_stock:
        apply_delta(product.id, store_id, initial_stock, TX_INITIAL_STOCK, user_id=actor_id,
                    notes="Initial stock")

    db.session.commit()
    return product


def update_price(product_id: int, price_ex_gst_cents: int, *, actor_id: int | None = None) -> Product:
    product = products.get(product_id, lock=True)
    apply_price(product, price_ex_gst_cents, product.store.gst_rate_bps)
    save_all([product], actor_id=actor_id)
    return product


def find_or_create_customer(phone: str, *, name: str | None = None, address: str | None = None,
                            actor_id: int | None = None) -> Customer:
    """
    Look up a customer by phone, creating one if needed.

    Joins the caller's transaction (flush only). Name and address are
    refreshed from the latest order so delivery details stay current.
    """
    if not phone:
        raise ValidationError("phone is required")
    customer = (
        live(db.session.query(Customer), Customer)
        .filter(Customer.phone == phone)
        .order_by(Customer.id)
        .first()
    )
    first_name, _, last_name = (name or "").strip().partition(" ")
    if customer is None:
        customer = Customer(
            phone=phone,
            first_name=first_name or phone,
            last_name=last_name or None,
            address=address,
        )
    else:
        if first_name:
            customer.first_name = first_name
            customer.last_name = last_name or None
        if address:
            customer.address = address
    save_all([customer], actor_id=actor_id, commit=False)
    return customer
