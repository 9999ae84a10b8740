from __future__ import annotations

from flask import Blueprint, jsonify, request, g

from ..decorators import require_auth, require_role
from ..extensions import db
from ..services import settings_service
from ..services.settings_service import SettingsError


settings_bp = Blueprint("settings", __name__, url_prefix="/api")


def _parse_updates(payload: dict) -> dict:
    if isinstance(payload.get("settings"), dict):
        return payload["settings"]
    key = payload.get("key")
    if not key:
        return {}
    return {key: payload.get("value")}


@settings_bp.get("/settings")
@require_auth
def list_settings_route():
    items = settings_service.list_settings()
    return jsonify({"items": items, "count": len(items)})


@settings_bp.put("/settings")
@require_auth
@require_role("ADMIN")
def update_settings_route():
    """
    Body: {"settings": {"ECOMMERCE_TAX_RATE": "15"}} or {"key": ..., "value": ...}
    """
    payload = request.get_json(silent=True) or {}
    try:
        settings_service.bulk_set_settings(_parse_updates(payload), user_id=g.current_user.id)
        db.session.commit()
    except SettingsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400

    items = settings_service.list_settings()
    return jsonify({"items": items, "count": len(items)})
