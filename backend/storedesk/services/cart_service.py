# Overview: Service-layer operations for the storefront cart; encapsulates business logic and database work.

"""
Cookie-persisted storefront cart.

The cart lives entirely in two cookies: `cart_session` holds a random session
id and `cart_<id>` holds {"items": [{"product_id", "quantity"}]}. There is no
server-side cart table; AbandonedCart rows are a best-effort snapshot for
follow-up, never the source of truth.

Cookie contents are client-controlled, so every read re-validates products,
stock and prices against the database.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AbandonedCart, Product
from storedesk.money import percent_of, from_cents
from storedesk.time_utils import utcnow
from . import settings_service
from .currency_service import convert_to_display
from .stock_ledger_service import get_total_available


CART_SESSION_COOKIE = "cart_session"


class CartError(ValueError):
    """400-level cart problem."""


class CartNotFoundError(CartError):
    pass


class CartStockError(CartError):
    def __init__(self, message: str, available: int):
        self.available = available
        super().__init__(message)


def cart_cookie_name(cart_id: str) -> str:
    return f"cart_{cart_id}"


def new_cart_id() -> str:
    return str(uuid.uuid4())


def _positive_int(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
        return parsed if parsed > 0 else None
    return None


@dataclass
class CartItem:
    product_id: int
    quantity: int


@dataclass
class Cart:
    items: list[CartItem] = field(default_factory=list)

    @classmethod
    def from_cookie(cls, raw: str | None) -> "Cart":
        """Malformed cookies become an empty cart; bad items are dropped, duplicates merged."""
        if not raw:
            return cls()
        try:
            data = json.loads(raw)
        except ValueError:
            return cls()
        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            return cls()

        merged: dict[int, int] = {}
        for entry in data["items"]:
            if not isinstance(entry, dict):
                continue
            product_id = _positive_int(entry.get("product_id"))
            quantity = _positive_int(entry.get("quantity"))
            if product_id is None or quantity is None:
                continue
            merged[product_id] = merged.get(product_id, 0) + quantity
        return cls(items=[CartItem(pid, qty) for pid, qty in merged.items()])

    def to_cookie(self) -> str:
        return json.dumps({"items": [{"product_id": i.product_id, "quantity": i.quantity} for i in self.items]})

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def item_count(self) -> int:
        return sum(i.quantity for i in self.items)

    def find(self, product_id: int) -> CartItem | None:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def remove(self, product_id: int) -> None:
        self.items = [i for i in self.items if i.product_id != product_id]


def _get_active_product(product_id) -> Product:
    pid = _positive_int(product_id)
    if pid is None:
        raise CartError("product_id is required")
    product = db.session.get(Product, pid)
    if product is None or not product.is_active:
        raise CartNotFoundError("Product not found")
    return product


def add_item(cart: Cart, product_id, quantity=1) -> Cart:
    qty = _positive_int(quantity)
    if qty is None:
        raise CartError("quantity must be a positive integer")
    product = _get_active_product(product_id)

    available = get_total_available(product.id)
    if available < qty:
        raise CartStockError("Insufficient stock", available)

    item = cart.find(product.id)
    if item is None:
        cart.items.append(CartItem(product.id, qty))
    else:
        item.quantity = min(item.quantity + qty, available)
    return cart


def update_item(cart: Cart, product_id, quantity) -> Cart:
    """Set a line's quantity; zero or less removes it. Quantities are clamped to stock."""
    if quantity is None or isinstance(quantity, bool):
        raise CartError("quantity is required")
    try:
        qty = int(quantity)
    except (TypeError, ValueError):
        raise CartError("quantity must be an integer")

    pid = _positive_int(product_id)
    if pid is None:
        raise CartError("product_id is required")
    item = cart.find(pid)
    if item is None:
        return cart
    if qty <= 0:
        cart.remove(pid)
        return cart

    product = db.session.get(Product, pid)
    if product is not None:
        item.quantity = min(qty, get_total_available(pid))
        if item.quantity <= 0:
            cart.remove(pid)
    return cart


def remove_item(cart: Cart, product_id) -> Cart:
    pid = _positive_int(product_id)
    if pid is not None:
        cart.remove(pid)
    return cart


def clear(cart: Cart) -> Cart:
    cart.items = []
    return cart


def price_cart(cart: Cart) -> dict:
    """
    Re-validate the cart against live products and stock and price it.

    Missing or inactive products are dropped and quantities are clamped to
    stock; `cart` is updated in place and `cleaned` reports whether it changed.
    """
    currency = current_app.config.get("DISPLAY_CURRENCY", "GHS")
    lines = []
    kept: list[CartItem] = []
    subtotal = 0
    changed = False

    for item in cart.items:
        product = db.session.get(Product, item.product_id)
        if product is None or not product.is_active:
            changed = True
            continue
        available = get_total_available(product.id)
        quantity = min(item.quantity, available)
        if quantity <= 0:
            changed = True
            continue
        if quantity != item.quantity:
            changed = True

        unit_cents = convert_to_display(product.price_cents or 0, product.base_currency)
        line_total = unit_cents * quantity
        subtotal += line_total
        kept.append(CartItem(product.id, quantity))
        lines.append({
            "product_id": product.id,
            "name": product.name,
            "sku": product.sku,
            "unit_price_cents": unit_cents,
            "price": from_cents(unit_cents),
            "currency": currency,
            "quantity": quantity,
            "max_quantity": available,
            "line_total_cents": line_total,
        })

    cart.items = kept
    tax = percent_of(subtotal, settings_service.get_tax_rate())
    return {
        "items": lines,
        "subtotal_cents": subtotal,
        "tax_cents": tax,
        "total_cents": subtotal + tax,
        "subtotal": from_cents(subtotal),
        "tax": from_cents(tax),
        "total": from_cents(subtotal + tax),
        "currency": currency,
        "item_count": sum(line["quantity"] for line in lines),
        "cleaned": changed,
    }


# =============================================================================
# ABANDONED CART TRACKING (best-effort)
# =============================================================================

def track_abandoned_cart(cart_id: str, cart: Cart, pricing: dict | None = None, *,
                         customer_id: int | None = None, email: str | None = None) -> None:
    """Upsert the abandoned-cart snapshot. Never raises."""
    try:
        row = db.session.query(AbandonedCart).filter_by(cart_session_id=cart_id).first()
        if cart.is_empty:
            if row is not None:
                row.converted_to_order = True
                db.session.commit()
            return

        if row is None:
            row = AbandonedCart(cart_session_id=cart_id, currency=current_app.config.get("DISPLAY_CURRENCY", "GHS"))
            db.session.add(row)
        pricing = pricing or {}
        row.items = json.loads(cart.to_cookie())["items"]
        row.subtotal_cents = pricing.get("subtotal_cents", 0)
        row.tax_cents = pricing.get("tax_cents", 0)
        row.total_cents = pricing.get("total_cents", 0)
        row.customer_id = customer_id
        row.email = email
        row.last_activity_at = utcnow()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to track abandoned cart %s", cart_id)


def mark_cart_converted(cart_id: str, order_id: int | None = None) -> int:
    """Flag unconverted snapshots for this cart session as converted. Caller commits."""
    return (
        db.session.query(AbandonedCart)
        .filter(AbandonedCart.cart_session_id == cart_id, AbandonedCart.converted_to_order.is_(False))
        .update(
            {AbandonedCart.converted_to_order: True, AbandonedCart.converted_order_id: order_id},
            synchronize_session=False,
        )
    )
