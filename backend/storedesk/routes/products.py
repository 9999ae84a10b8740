# Overview: Flask API routes for catalog operations (products, warehouses, exchange rates); parses input and returns JSON responses.

# backend/storedesk/routes/products.py
"""
Catalog routes.

SECURITY: All routes require authentication.
- Reads are open to any back-office user
- Writes require ADMIN
"""
from flask import Blueprint, request

from ..extensions import db
from ..models import Product, Warehouse
from ..services import currency_service, products_service
from ..services.currency_service import CurrencyError
from ..time_utils import parse_iso_datetime
from ..validation import (
    PRODUCT_POLICY,
    WAREHOUSE_POLICY,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_role
from .responses import server_error

products_bp = Blueprint("products", __name__, url_prefix="/api")


# =============================================================================
# PRODUCTS
# =============================================================================

@products_bp.get("/products")
@require_auth
def list_products():
    """
    List products with stock totals.

    Query params:
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    - active: "1" to hide inactive products
    """
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)
    active_only = request.args.get("active") in ("1", "true")
    return products_service.list_products(page=page, per_page=per_page, active_only=active_only)


@products_bp.post("/products")
@require_auth
@require_role("ADMIN")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = products_service.create_product(patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409

    return created, 201


@products_bp.put("/products/<int:product_id>")
@require_auth
@require_role("ADMIN")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        updated = products_service.update_product(product_id=product_id, patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409

    if updated is None:
        return {"error": "Product not found"}, 404
    return updated, 200


@products_bp.delete("/products/<int:product_id>")
@require_auth
@require_role("ADMIN")
def delete_product_route(product_id: int):
    try:
        deleted = products_service.delete_product(product_id=product_id)
    except ConflictError as e:
        return {"error": str(e)}, 409

    if not deleted:
        return {"error": "Product not found"}, 404
    return {"ok": True}, 200


# =============================================================================
# WAREHOUSES
# =============================================================================

@products_bp.get("/warehouses")
@require_auth
def list_warehouses_route():
    items = products_service.list_warehouses(active_only=request.args.get("active") in ("1", "true"))
    return {"items": items, "count": len(items)}


@products_bp.post("/warehouses")
@require_auth
@require_role("ADMIN")
def create_warehouse_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Warehouse, payload=payload, policy=WAREHOUSE_POLICY, partial=False)
        created = products_service.create_warehouse(patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409

    return created, 201


# =============================================================================
# EXCHANGE RATES
# =============================================================================

@products_bp.post("/exchange-rates")
@require_auth
@require_role("ADMIN")
def set_exchange_rate_route():
    """
    Record an exchange rate.

    Request body:
    {
        "from_currency": "USD",
        "to_currency": "GHS",
        "rate": "15.20",
        "effective_from": "2026-01-01T00:00:00Z",  (optional, default now)
        "effective_to": null  (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        row = currency_service.set_exchange_rate(
            from_currency=payload.get("from_currency"),
            to_currency=payload.get("to_currency"),
            rate=payload.get("rate"),
            source=payload.get("source") or "manual",
            effective_from=parse_iso_datetime(payload.get("effective_from")),
            effective_to=parse_iso_datetime(payload.get("effective_to")),
        )
        db.session.commit()
    except (CurrencyError, ValueError) as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception as e:
        db.session.rollback()
        return server_error("Failed to set exchange rate", e)

    return row.to_dict(), 201


@products_bp.get("/exchange-rates/convert")
@require_auth
def convert_route():
    """Preview a conversion: ?from=USD&to=GHS&amount_cents=1000"""
    try:
        amount_cents = int(request.args.get("amount_cents", ""))
    except ValueError:
        return {"error": "amount_cents must be an integer"}, 400
    if not request.args.get("from") or not request.args.get("to"):
        return {"error": "from and to currencies are required"}, 400

    conversion = currency_service.convert_currency(
        request.args.get("from"), request.args.get("to"), amount_cents
    )
    if conversion is None:
        return {"error": "No exchange rate available"}, 404
    return conversion.to_dict(), 200
