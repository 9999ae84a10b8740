# Overview: Service-layer operations for the stock movement ledger; encapsulates business logic and database work.

"""
Stock Movement Ledger

StockItem is the per-(product, warehouse) running balance; StockMovement is
the append-only history. Every change to a StockItem goes through this module
so the two never drift.

INVARIANTS:
- available = max(0, quantity - reserved)
- total_value_cents = quantity * average_cost_cents
- Outbound movements never take quantity below zero, and never take units
  reserved for open orders (they are limited to available).
- Average cost only changes on inbound movements that carry a positive unit
  cost: (old_qty * old_avg + qty * unit_cost) / new_qty, half-up to the cent.

RESERVATION:
- Checkout reserves stock (reserved up, available down) and writes a SALE
  movement per bucket referencing the invoice number. On-hand is unchanged.
- When the invoice is paid, deduct_stock_for_invoice consumes those
  reservations (quantity and reserved down) without new movements, then
  issues any unreserved remainder as ordinary SALE movements.

apply_movement and transfer_stock commit their own transaction; the
allocation and deduction helpers run inside the caller's.
"""

from __future__ import annotations

import os
from datetime import datetime

from flask import current_app
from werkzeug.utils import secure_filename

from ..extensions import db
from ..models import Product, Warehouse, StockItem, StockMovement
from storedesk.money import weighted_average_cents
from storedesk.time_utils import timestamp_millis, utcnow
from .concurrency import lock_for_update, run_in_transaction


class StockError(Exception):
    """Raised for stock ledger errors."""
    pass


class StockNotFoundError(StockError):
    pass


class InsufficientStockError(StockError):
    def __init__(self, product_name: str, requested: int, available: int):
        self.product_name = product_name
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {product_name}. Available: {available}, Requested: {requested}"
        )


# =============================================================================
# MOVEMENT TYPES (CONSTANTS)
# =============================================================================

MOVEMENT_RECEIPT = "RECEIPT"
MOVEMENT_SALE = "SALE"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_TRANSFER_IN = "TRANSFER_IN"
MOVEMENT_TRANSFER_OUT = "TRANSFER_OUT"
MOVEMENT_RETURN = "RETURN"
MOVEMENT_DAMAGE = "DAMAGE"
MOVEMENT_THEFT = "THEFT"
MOVEMENT_EXPIRY = "EXPIRY"
MOVEMENT_OTHER = "OTHER"

INBOUND_TYPES = {MOVEMENT_RECEIPT, MOVEMENT_RETURN, MOVEMENT_TRANSFER_IN}
OUTBOUND_TYPES = {MOVEMENT_SALE, MOVEMENT_DAMAGE, MOVEMENT_THEFT, MOVEMENT_EXPIRY, MOVEMENT_TRANSFER_OUT}
SIGNED_TYPES = {MOVEMENT_ADJUSTMENT, MOVEMENT_OTHER}
VALID_MOVEMENT_TYPES = INBOUND_TYPES | OUTBOUND_TYPES | SIGNED_TYPES

RESERVATION_REASON = "Reserved for order"
INVOICE_PAID_REASON = "Invoice paid"

ATTACHMENT_KINDS = ("grn", "purchase-order")


def normalize_quantity(movement_type: str, quantity: int) -> int:
    """Signed delta for a movement type; inbound positive, outbound negative."""
    if movement_type not in VALID_MOVEMENT_TYPES:
        raise StockError(f"Invalid movement type: {movement_type}. Must be one of {sorted(VALID_MOVEMENT_TYPES)}")
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise StockError("quantity must be an integer")
    if quantity == 0:
        raise StockError("quantity must be non-zero")
    if movement_type in INBOUND_TYPES:
        return abs(quantity)
    if movement_type in OUTBOUND_TYPES:
        return -abs(quantity)
    return quantity


def _recompute(item: StockItem) -> None:
    item.available = max(0, (item.quantity or 0) - (item.reserved or 0))
    item.total_value_cents = (item.quantity or 0) * (item.average_cost_cents or 0)


def _get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise StockNotFoundError(f"Product {product_id} not found")
    return product


def _get_warehouse(warehouse_id: int) -> Warehouse:
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise StockNotFoundError(f"Warehouse {warehouse_id} not found")
    return warehouse


def get_or_create_stock_item(product_id: int, warehouse_id: int, *, lock: bool = True) -> StockItem:
    query = db.session.query(StockItem).filter_by(product_id=product_id, warehouse_id=warehouse_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        item = StockItem(
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=0,
            reserved=0,
            available=0,
            average_cost_cents=0,
            total_value_cents=0,
        )
        db.session.add(item)
        db.session.flush()
    return item


def _record_movement(
    *,
    item: StockItem,
    product: Product,
    warehouse: Warehouse,
    movement_type: str,
    delta: int,
    unit_cost_cents: int | None,
    reference: str | None = None,
    reason: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
    from_warehouse_id: int | None = None,
    to_warehouse_id: int | None = None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product.id,
        stock_item_id=item.id,
        product_name_snapshot=product.name,
        product_sku_snapshot=product.sku,
        type=movement_type,
        quantity=delta,
        unit_cost_cents=unit_cost_cents,
        total_cost_cents=abs(delta) * unit_cost_cents if unit_cost_cents is not None else None,
        warehouse_id=warehouse.id,
        warehouse_name_snapshot=warehouse.name,
        from_warehouse_id=from_warehouse_id,
        to_warehouse_id=to_warehouse_id,
        reference=reference,
        reason=reason,
        notes=notes,
        user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


# =============================================================================
# MOVEMENTS
# =============================================================================

def _apply_movement_inner(
    *,
    product_id: int,
    warehouse_id: int,
    movement_type: str,
    quantity: int,
    unit_cost_cents: int | None = None,
    reference: str | None = None,
    reason: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
    from_warehouse_id: int | None = None,
    to_warehouse_id: int | None = None,
) -> StockMovement:
    """Core movement logic without retry or commit."""
    delta = normalize_quantity(movement_type, quantity)
    if unit_cost_cents is not None:
        if isinstance(unit_cost_cents, bool) or not isinstance(unit_cost_cents, int):
            raise StockError("unit_cost_cents must be an integer")
        if unit_cost_cents < 0:
            raise StockError("unit_cost_cents must be >= 0")

    product = _get_product(product_id)
    warehouse = _get_warehouse(warehouse_id)
    item = get_or_create_stock_item(product.id, warehouse.id)

    old_quantity = item.quantity or 0
    new_quantity = old_quantity + delta
    if new_quantity < 0:
        raise InsufficientStockError(product.name, abs(delta), old_quantity)
    # Units reserved for open orders are only released by deduct_stock_for_invoice
    if delta < 0 and -delta > (item.available or 0):
        raise InsufficientStockError(product.name, -delta, item.available or 0)

    if delta > 0 and unit_cost_cents:
        item.average_cost_cents = weighted_average_cents(
            max(old_quantity, 0), item.average_cost_cents or 0, delta, unit_cost_cents
        )

    item.quantity = new_quantity
    _recompute(item)

    # Outbound rows carry the cost basis they left at
    cost = unit_cost_cents
    if cost is None and delta < 0:
        cost = item.average_cost_cents

    return _record_movement(
        item=item,
        product=product,
        warehouse=warehouse,
        movement_type=movement_type,
        delta=delta,
        unit_cost_cents=cost,
        reference=reference,
        reason=reason,
        notes=notes,
        user_id=user_id,
        from_warehouse_id=from_warehouse_id,
        to_warehouse_id=to_warehouse_id,
    )


def apply_movement(
    *,
    product_id: int,
    warehouse_id: int,
    movement_type: str,
    quantity: int,
    unit_cost_cents: int | None = None,
    reference: str | None = None,
    reason: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> StockMovement:
    """
    Record a stock movement and update the warehouse balance.

    Raises:
        StockNotFoundError: unknown product or warehouse
        InsufficientStockError: outbound movement exceeds available (unreserved) quantity
        StockError: invalid type, quantity, or cost
    """
    return run_in_transaction(lambda: _apply_movement_inner(
        product_id=product_id,
        warehouse_id=warehouse_id,
        movement_type=movement_type,
        quantity=quantity,
        unit_cost_cents=unit_cost_cents,
        reference=reference,
        reason=reason,
        notes=notes,
        user_id=user_id,
    ))


def transfer_stock(
    *,
    product_id: int,
    from_warehouse_id: int,
    to_warehouse_id: int,
    quantity: int,
    unit_cost_cents: int | None = None,
    reference: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> tuple[StockMovement, StockMovement]:
    """
    Move stock between warehouses as a linked TRANSFER_OUT / TRANSFER_IN pair.

    The destination cost basis is unit_cost_cents when given, otherwise the
    source bucket's average cost.
    """
    if from_warehouse_id == to_warehouse_id:
        raise StockError("Source and destination warehouses must differ")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise StockError("quantity must be a positive integer")

    def _op():
        _get_warehouse(to_warehouse_id)
        outbound = _apply_movement_inner(
            product_id=product_id,
            warehouse_id=from_warehouse_id,
            movement_type=MOVEMENT_TRANSFER_OUT,
            quantity=quantity,
            reference=reference,
            notes=notes,
            user_id=user_id,
            from_warehouse_id=from_warehouse_id,
            to_warehouse_id=to_warehouse_id,
        )
        inbound = _apply_movement_inner(
            product_id=product_id,
            warehouse_id=to_warehouse_id,
            movement_type=MOVEMENT_TRANSFER_IN,
            quantity=quantity,
            unit_cost_cents=unit_cost_cents if unit_cost_cents is not None else outbound.unit_cost_cents,
            reference=reference,
            notes=notes,
            user_id=user_id,
            from_warehouse_id=from_warehouse_id,
            to_warehouse_id=to_warehouse_id,
        )
        outbound.linked_movement_id = inbound.id
        inbound.linked_movement_id = outbound.id
        db.session.flush()
        return outbound, inbound

    return run_in_transaction(_op)


# =============================================================================
# ALLOCATION AND DEDUCTION
# =============================================================================

def allocate_stock(
    *,
    product_id: int,
    quantity: int,
    reference: str | None = None,
    user_id: int | None = None,
    notes: str | None = None,
) -> list[dict]:
    """
    Reserve quantity across warehouses, largest available bucket first.

    Runs inside the caller's transaction. Raises InsufficientStockError and
    leaves nothing reserved when total availability is short.

    Returns:
        [{"warehouse_id", "stock_item_id", "quantity", "movement_id"}, ...]
    """
    if quantity <= 0:
        raise StockError("quantity must be positive")
    product = _get_product(product_id)

    items = (
        lock_for_update(
            db.session.query(StockItem)
            .filter(StockItem.product_id == product_id, StockItem.available > 0)
            .order_by(StockItem.available.desc(), StockItem.id.asc())
        )
        .all()
    )
    total_available = sum(item.available for item in items)
    if total_available < quantity:
        raise InsufficientStockError(product.name, quantity, total_available)

    allocations = []
    remaining = quantity
    for item in items:
        if remaining <= 0:
            break
        take = min(item.available, remaining)
        item.reserved = (item.reserved or 0) + take
        _recompute(item)

        movement = _record_movement(
            item=item,
            product=product,
            warehouse=item.warehouse,
            movement_type=MOVEMENT_SALE,
            delta=-take,
            unit_cost_cents=item.average_cost_cents,
            reference=reference,
            reason=RESERVATION_REASON,
            notes=notes,
            user_id=user_id,
        )
        allocations.append({
            "warehouse_id": item.warehouse_id,
            "stock_item_id": item.id,
            "quantity": take,
            "movement_id": movement.id,
        })
        remaining -= take

    return allocations


def _issue_unreserved(product_id: int, quantity: int, reference: str, user_id: int | None) -> list[StockMovement]:
    product = _get_product(product_id)
    items = (
        lock_for_update(
            db.session.query(StockItem)
            .filter(StockItem.product_id == product_id, StockItem.available > 0)
            .order_by(StockItem.available.desc(), StockItem.id.asc())
        )
        .all()
    )
    total_available = sum(item.available for item in items)
    if total_available < quantity:
        raise InsufficientStockError(product.name, quantity, total_available)

    movements = []
    remaining = quantity
    for item in items:
        if remaining <= 0:
            break
        take = min(item.available, remaining)
        movements.append(_apply_movement_inner(
            product_id=product_id,
            warehouse_id=item.warehouse_id,
            movement_type=MOVEMENT_SALE,
            quantity=take,
            reference=reference,
            reason=INVOICE_PAID_REASON,
            user_id=user_id,
        ))
        remaining -= take
    return movements


def deduct_stock_for_invoice(invoice, user_id: int | None = None) -> dict:
    """
    Take paid invoice quantities out of stock exactly once.

    Runs inside the caller's transaction; idempotent through
    invoice.stock_deducted.

    Returns:
        {"consumed": units taken from reservations, "issued": [movement ids]}
    """
    if invoice.stock_deducted:
        return {"consumed": 0, "issued": []}

    needed: dict[int, int] = {}
    for line in invoice.lines:
        if line.product_id is None or not line.quantity:
            continue
        needed[line.product_id] = needed.get(line.product_id, 0) + line.quantity

    consumed = 0
    issued: list[int] = []
    for product_id, quantity in needed.items():
        reservations = (
            db.session.query(StockMovement)
            .filter(
                StockMovement.reference == invoice.number,
                StockMovement.product_id == product_id,
                StockMovement.type == MOVEMENT_SALE,
                StockMovement.reason == RESERVATION_REASON,
            )
            .order_by(StockMovement.id.asc())
            .all()
        )

        remaining = quantity
        for reservation in reservations:
            if remaining <= 0:
                break
            item = lock_for_update(
                db.session.query(StockItem).filter_by(id=reservation.stock_item_id)
            ).first()
            if item is None:
                continue
            take = min(abs(reservation.quantity), remaining, item.quantity or 0)
            if take <= 0:
                continue
            item.quantity -= take
            item.reserved = max(0, (item.reserved or 0) - take)
            _recompute(item)
            consumed += take
            remaining -= take

        if remaining > 0:
            movements = _issue_unreserved(product_id, remaining, invoice.number, user_id)
            issued.extend(m.id for m in movements)

    invoice.stock_deducted = True
    db.session.flush()
    return {"consumed": consumed, "issued": issued}


# =============================================================================
# QUERIES
# =============================================================================

def _product_view(product_id, products: dict, movement: StockMovement) -> dict | None:
    product = products.get(product_id)
    if product is not None:
        return {"id": product.id, "name": product.name, "sku": product.sku, "deleted": False}
    if product_id is None and not movement.product_name_snapshot:
        return None
    return {
        "id": product_id,
        "name": movement.product_name_snapshot,
        "sku": movement.product_sku_snapshot,
        "deleted": True,
    }


def _warehouse_view(warehouse_id, warehouses: dict, snapshot: str | None = None) -> dict | None:
    if warehouse_id is None:
        return None
    warehouse = warehouses.get(warehouse_id)
    if warehouse is not None:
        return {"id": warehouse.id, "name": warehouse.name, "code": warehouse.code}
    return {"id": warehouse_id, "name": snapshot, "code": None}


def list_movements(
    *,
    product_id: int | None = None,
    warehouse_id: int | None = None,
    movement_type: str | None = None,
    reference: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """
    Movement history, newest first, enriched through lookup maps.

    Rows whose product or stock item has since been deleted are kept and
    labelled from their snapshots.
    """
    query = db.session.query(StockMovement)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if warehouse_id is not None:
        query = query.filter(StockMovement.warehouse_id == warehouse_id)
    if movement_type:
        query = query.filter(StockMovement.type == movement_type)
    if reference:
        query = query.filter(StockMovement.reference == reference)
    if date_from is not None:
        query = query.filter(StockMovement.created_at >= date_from)
    if date_to is not None:
        query = query.filter(StockMovement.created_at <= date_to)

    total = query.count()
    limit = max(1, min(int(limit or 50), 500))
    offset = max(0, int(offset or 0))
    rows = (
        query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )

    product_ids = {m.product_id for m in rows if m.product_id is not None}
    item_ids = {m.stock_item_id for m in rows if m.stock_item_id is not None}
    warehouse_ids = set()
    for m in rows:
        warehouse_ids.update(w for w in (m.warehouse_id, m.from_warehouse_id, m.to_warehouse_id) if w is not None)

    products = (
        {p.id: p for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()}
        if product_ids else {}
    )
    items = (
        {i.id: i for i in db.session.query(StockItem).filter(StockItem.id.in_(item_ids)).all()}
        if item_ids else {}
    )
    warehouses = (
        {w.id: w for w in db.session.query(Warehouse).filter(Warehouse.id.in_(warehouse_ids)).all()}
        if warehouse_ids else {}
    )

    out = []
    for m in rows:
        data = m.to_dict()
        item = items.get(m.stock_item_id)
        data["product"] = _product_view(m.product_id, products, m)
        data["stock_item"] = (
            {"id": item.id, "quantity": item.quantity, "available": item.available}
            if item is not None else None
        )
        data["warehouse"] = _warehouse_view(m.warehouse_id, warehouses, m.warehouse_name_snapshot)
        data["from_warehouse"] = _warehouse_view(m.from_warehouse_id, warehouses)
        data["to_warehouse"] = _warehouse_view(m.to_warehouse_id, warehouses)
        out.append(data)
    return out, total


def get_total_available(product_id: int) -> int:
    total = (
        db.session.query(db.func.coalesce(db.func.sum(StockItem.available), 0))
        .filter(StockItem.product_id == product_id)
        .scalar()
    )
    return int(total or 0)


def get_stock_levels(product_id: int) -> dict:
    product = _get_product(product_id)
    items = (
        db.session.query(StockItem)
        .filter_by(product_id=product_id)
        .order_by(StockItem.warehouse_id.asc())
        .all()
    )
    return {
        "product": product.to_dict(),
        "items": [item.to_dict() for item in items],
        "totals": {
            "quantity": sum(i.quantity for i in items),
            "reserved": sum(i.reserved for i in items),
            "available": sum(i.available for i in items),
            "total_value_cents": sum(i.total_value_cents for i in items),
        },
    }


# =============================================================================
# ATTACHMENTS
# =============================================================================

def save_movement_attachments(movement: StockMovement, files: dict) -> list[str]:
    """
    Store GRN / purchase-order uploads for a movement and record their paths.

    files maps kind ("grn", "purchase-order") to a werkzeug FileStorage.
    A file that cannot be written is logged and skipped; the movement stands.
    """
    base = os.path.join(current_app.config["UPLOAD_FOLDER"], "stock-movements", str(movement.id))
    saved = list(movement.attachments or [])
    for kind, storage in files.items():
        if kind not in ATTACHMENT_KINDS or storage is None or not storage.filename:
            continue
        name = secure_filename(storage.filename) or "upload"
        path = os.path.join(base, f"{kind}-{timestamp_millis()}-{name}")
        try:
            os.makedirs(base, exist_ok=True)
            storage.save(path)
        except OSError:
            current_app.logger.exception("Failed to save %s attachment for stock movement %s", kind, movement.id)
            continue
        saved.append(path)

    movement.attachments = saved
    db.session.commit()
    return saved
