# backend/storedesk/services/products_service.py
"""
Catalog Service: products and warehouses.

Products are priced in their own base_currency; storefront prices are converted
by the currency service. Deleting a product removes its StockItems but never
its StockMovements, which keep their snapshots.
"""
from __future__ import annotations
from flask import current_app
from ..extensions import db
from ..models import InvoiceLine, Product, Warehouse
from ..validation import ConflictError

PRODUCT_MUTABLE_FIELDS = {"sku", "name", "description", "price_cents", "base_currency", "is_active"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _with_stock(p: Product) -> dict:
    data = p.to_dict()
    data["stock"] = {
        "quantity": sum(i.quantity for i in p.stock_items),
        "reserved": sum(i.reserved for i in p.stock_items),
        "available": sum(i.available for i in p.stock_items),
    }
    return data


def list_products(
    page: int | None = None,
    per_page: int | None = None,
    active_only: bool = False,
) -> dict:
    """
    Product listing with stock totals and optional pagination.

    Args:
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)
        active_only: Hide inactive products

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product)
    if active_only:
        base_query = base_query.filter(Product.is_active.is_(True))
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [_with_stock(p) for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [_with_stock(p) for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def create_product(*, patch: dict) -> dict:
    """
    Create product using a validated patch dict.

    Raises:
        ConflictError: If SKU already exists
    """
    sku = patch.get("sku")
    if sku:
        existing = db.session.query(Product.id).filter(Product.sku == sku).first()
        if existing:
            raise ConflictError("SKU already exists.")

    p = Product()
    apply_product_patch(p, patch)
    db.session.add(p)
    db.session.commit()
    current_app.logger.info("Created product id=%s sku=%s", p.id, p.sku)
    return p.to_dict()


def update_product(*, product_id: int, patch: dict) -> dict | None:
    p = db.session.get(Product, product_id)
    if p is None:
        return None

    sku = patch.get("sku")
    if sku and sku != p.sku:
        clash = db.session.query(Product.id).filter(Product.sku == sku, Product.id != p.id).first()
        if clash:
            raise ConflictError("SKU already exists.")

    apply_product_patch(p, patch)
    db.session.commit()
    return p.to_dict()


def delete_product(*, product_id: int) -> bool:
    """
    Delete a product and its warehouse balances.

    Raises:
        ConflictError: product appears on invoices
    """
    p = db.session.get(Product, product_id)
    if p is None:
        return False

    invoiced = db.session.query(InvoiceLine.id).filter(InvoiceLine.product_id == p.id).first()
    if invoiced:
        raise ConflictError("Product has been invoiced; deactivate it instead.")

    for item in list(p.stock_items):
        db.session.delete(item)
    db.session.flush()
    db.session.delete(p)
    db.session.commit()
    return True


# =============================================================================
# WAREHOUSES
# =============================================================================

def list_warehouses(active_only: bool = False) -> list[dict]:
    query = db.session.query(Warehouse)
    if active_only:
        query = query.filter(Warehouse.is_active.is_(True))
    return [w.to_dict() for w in query.order_by(Warehouse.name.asc(), Warehouse.id.asc()).all()]


def create_warehouse(*, patch: dict) -> dict:
    code = (patch.get("code") or "").strip().upper()
    if not code:
        raise ValueError("code is required")
    if db.session.query(Warehouse.id).filter(Warehouse.code == code).first():
        raise ConflictError("Warehouse code already exists.")

    w = Warehouse(name=patch["name"], code=code, is_active=patch.get("is_active", True))
    db.session.add(w)
    db.session.commit()
    return w.to_dict()
