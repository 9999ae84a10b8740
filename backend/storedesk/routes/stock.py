# Overview: Flask API routes for stock movements and levels; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..services import stock_ledger_service
from ..services.stock_ledger_service import StockError, StockNotFoundError
from ..decorators import require_auth
from ..time_utils import parse_iso_datetime
from .responses import int_arg, server_error


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")

_UPLOAD_FIELDS = {"grn_file": "grn", "purchase_order_file": "purchase-order"}


def _stock_error(exc: StockError):
    if isinstance(exc, StockNotFoundError):
        return jsonify({"error": str(exc)}), 404
    return jsonify({"error": str(exc)}), 400


def _payload() -> dict:
    """JSON body, or form fields for multipart uploads."""
    if request.mimetype == "multipart/form-data" or request.form:
        return request.form.to_dict()
    return request.get_json(silent=True) or {}


def _required_int(data: dict, key: str) -> int:
    value = data.get(key)
    if value is None or value == "":
        raise ValueError(f"{key} is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be an integer")


def _optional_int(data: dict, key: str) -> int | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    return _required_int(data, key)


@stock_bp.post("/movements")
@require_auth
def create_movement_route():
    """
    Record a stock movement.

    Accepts JSON or multipart/form-data with the same fields:
        product_id, warehouse_id, type, quantity,
        unit_cost_cents (optional), reference, reason, notes (optional)
    Multipart may also carry `grn_file` and `purchase_order_file`.

    Returns:
        201: Movement (with attachment paths)
        400: Invalid input or insufficient stock
        404: Unknown product or warehouse
    """
    data = _payload()
    try:
        product_id = _required_int(data, "product_id")
        warehouse_id = _required_int(data, "warehouse_id")
        quantity = _required_int(data, "quantity")
        unit_cost_cents = _optional_int(data, "unit_cost_cents")
        movement_type = (data.get("type") or "").strip().upper()
        if not movement_type:
            raise ValueError("type is required")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    try:
        movement = stock_ledger_service.apply_movement(
            product_id=product_id,
            warehouse_id=warehouse_id,
            movement_type=movement_type,
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            reference=data.get("reference") or None,
            reason=data.get("reason") or None,
            notes=data.get("notes") or None,
            user_id=g.current_user.id,
        )
    except StockError as e:
        return _stock_error(e)
    except Exception as e:
        return server_error("Failed to record stock movement", e)

    files = {
        kind: request.files.get(field)
        for field, kind in _UPLOAD_FIELDS.items()
        if request.files.get(field) is not None
    }
    if files:
        stock_ledger_service.save_movement_attachments(movement, files)

    return jsonify(movement.to_dict()), 201


@stock_bp.get("/movements")
@require_auth
def list_movements_route():
    """
    Movement history.

    Query params: product_id, warehouse_id, type, reference, date_from,
    date_to, limit (default 50), offset
    """
    try:
        limit = int_arg(request.args, "limit", 50)
        offset = int_arg(request.args, "offset", 0)
        movements, total = stock_ledger_service.list_movements(
            product_id=int_arg(request.args, "product_id"),
            warehouse_id=int_arg(request.args, "warehouse_id"),
            movement_type=(request.args.get("type") or "").upper() or None,
            reference=request.args.get("reference") or None,
            date_from=parse_iso_datetime(request.args.get("date_from")),
            date_to=parse_iso_datetime(request.args.get("date_to")),
            limit=limit,
            offset=offset,
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "movements": movements,
        "pagination": {"limit": limit, "offset": offset, "total": total},
    })


@stock_bp.post("/transfers")
@require_auth
def transfer_route():
    """
    Move stock between warehouses.

    Request body:
    {
        "product_id": 1,
        "from_warehouse_id": 1,
        "to_warehouse_id": 2,
        "quantity": 5,
        "unit_cost_cents": 1200,  (optional)
        "reference": "...", "notes": "..."  (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        product_id = _required_int(data, "product_id")
        from_warehouse_id = _required_int(data, "from_warehouse_id")
        to_warehouse_id = _required_int(data, "to_warehouse_id")
        quantity = _required_int(data, "quantity")
        unit_cost_cents = _optional_int(data, "unit_cost_cents")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    try:
        outbound, inbound = stock_ledger_service.transfer_stock(
            product_id=product_id,
            from_warehouse_id=from_warehouse_id,
            to_warehouse_id=to_warehouse_id,
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            reference=data.get("reference"),
            notes=data.get("notes"),
            user_id=g.current_user.id,
        )
        return jsonify({"out": outbound.to_dict(), "in": inbound.to_dict()}), 201
    except StockError as e:
        return _stock_error(e)
    except Exception as e:
        return server_error("Failed to transfer stock", e)


@stock_bp.get("/products/<int:product_id>")
@require_auth
def stock_levels_route(product_id: int):
    try:
        return jsonify(stock_ledger_service.get_stock_levels(product_id))
    except StockError as e:
        return _stock_error(e)
