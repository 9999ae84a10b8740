# Overview: Flask API routes for the storefront cart and checkout; parses input and returns JSON responses.

"""
Storefront API (public)

The cart is held in cookies: `cart_session` names the cart and `cart_<id>`
holds its items. A logged-in storefront customer is `customer_id` in the
signed Flask session.
"""

from flask import Blueprint, request, jsonify, session, current_app

from ..models import Customer
from ..extensions import db
from ..services import cart_service, checkout_service
from ..services.cart_service import Cart, CartError, CartNotFoundError, CartStockError
from ..services.checkout_service import CheckoutError
from ..validation import ValidationError, parse_checkout_request
from .responses import server_error


shop_bp = Blueprint("shop", __name__, url_prefix="/api/shop")


def _load_cart() -> tuple[str, Cart]:
    cart_id = request.cookies.get(cart_service.CART_SESSION_COOKIE) or cart_service.new_cart_id()
    raw = request.cookies.get(cart_service.cart_cookie_name(cart_id))
    return cart_id, Cart.from_cookie(raw)


def _session_customer() -> Customer | None:
    customer_id = session.get("customer_id")
    if customer_id is None:
        return None
    return db.session.get(Customer, customer_id)


def _cookie_options() -> dict:
    return {
        "max_age": current_app.config.get("CART_COOKIE_MAX_AGE", 7 * 24 * 3600),
        "httponly": True,
        "samesite": "Lax",
        "secure": bool(current_app.config.get("CART_COOKIE_SECURE", False)),
    }


def _cart_response(cart_id: str, cart: Cart, status: int = 200, *, track: bool = False):
    pricing = cart_service.price_cart(cart)
    if track:
        customer = _session_customer()
        cart_service.track_abandoned_cart(
            cart_id,
            cart,
            pricing,
            customer_id=customer.id if customer else None,
            email=customer.email if customer else None,
        )
    response = jsonify({"cart_id": cart_id, **pricing})
    options = _cookie_options()
    response.set_cookie(cart_service.CART_SESSION_COOKIE, cart_id, **options)
    response.set_cookie(cart_service.cart_cookie_name(cart_id), cart.to_cookie(), **options)
    return response, status


def _cart_error(exc: CartError):
    if isinstance(exc, CartNotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, CartStockError):
        return jsonify({"error": str(exc), "available": exc.available}), 400
    return jsonify({"error": str(exc)}), 400


# =============================================================================
# CART
# =============================================================================

@shop_bp.get("/cart")
def get_cart_route():
    try:
        cart_id, cart = _load_cart()
        return _cart_response(cart_id, cart)
    except Exception as e:
        return server_error("Failed to load cart", e)


@shop_bp.post("/cart")
def add_to_cart_route():
    """
    Add a product to the cart.

    Request body:
    {
        "product_id": 12,
        "quantity": 2  (optional, default 1)
    }

    Returns:
        200: Priced cart
        400: Invalid quantity or insufficient stock
        404: Product not found or inactive
    """
    try:
        data = request.get_json(silent=True) or {}
        cart_id, cart = _load_cart()
        cart_service.add_item(cart, data.get("product_id"), data.get("quantity", 1))
        return _cart_response(cart_id, cart, track=True)
    except CartError as e:
        return _cart_error(e)
    except Exception as e:
        return server_error("Failed to add to cart", e)


@shop_bp.put("/cart")
def update_cart_route():
    try:
        data = request.get_json(silent=True) or {}
        cart_id, cart = _load_cart()
        cart_service.update_item(cart, data.get("product_id"), data.get("quantity"))
        return _cart_response(cart_id, cart, track=True)
    except CartError as e:
        return _cart_error(e)
    except Exception as e:
        return server_error("Failed to update cart", e)


@shop_bp.delete("/cart")
def delete_cart_route():
    """Remove one product (?product_id=) or clear the whole cart."""
    try:
        data = request.get_json(silent=True) or {}
        product_id = request.args.get("product_id") or data.get("product_id")
        cart_id, cart = _load_cart()
        if product_id:
            cart_service.remove_item(cart, product_id)
        else:
            cart_service.clear(cart)
        return _cart_response(cart_id, cart, track=True)
    except CartError as e:
        return _cart_error(e)
    except Exception as e:
        return server_error("Failed to update cart", e)


# =============================================================================
# CHECKOUT
# =============================================================================

@shop_bp.post("/checkout")
def checkout_route():
    """
    Place an order from the cookie cart.

    Request body:
    {
        "customer": {"name": "...", "email": "...", "phone": "...", "company": "..."},
        "shipping_address": {...},
        "billing_address": {...},  (optional, defaults to shipping)
        "payment_method": "CASH",  (optional)
        "notes": "..."  (optional)
    }

    Returns:
        201: {"success": true, "order": {...}}
        400: Validation, empty cart, minimum amount, or stock problem
        403: Account or email verification required
        500: Unexpected failure (message included)
    """
    try:
        checkout = parse_checkout_request(request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    cart_id, cart = _load_cart()
    try:
        order = checkout_service.place_order(
            checkout,
            cart,
            cart_id=request.cookies.get(cart_service.CART_SESSION_COOKIE),
            customer_id=session.get("customer_id"),
        )
    except CheckoutError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Checkout failed")
        return jsonify({"error": str(e) or "Failed to place order"}), 500

    response = jsonify({"success": True, "order": order})
    response.delete_cookie(cart_service.cart_cookie_name(cart_id))
    response.delete_cookie(cart_service.CART_SESSION_COOKIE)
    return response, 201
