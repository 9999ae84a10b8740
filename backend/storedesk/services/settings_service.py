# Overview: Service-layer operations for business settings; encapsulates business logic and database work.

"""
Business settings are plain string rows in system_settings.

Values are read at call time so an administrator can change the tax rate or
checkout policy without a restart. Typed getters parse the stored string and
fall back to the default when the row is missing or unparsable.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from ..extensions import db
from ..models import SystemSetting
from storedesk.money import to_decimal, to_cents


class SettingsError(ValueError):
    pass


TAX_RATE = "ECOMMERCE_TAX_RATE"
MIN_ORDER_AMOUNT = "ECOMMERCE_MIN_ORDER_AMOUNT"
ALLOW_GUEST_CHECKOUT = "ECOMMERCE_ALLOW_GUEST_CHECKOUT"
REQUIRE_ACCOUNT_CREATION = "ECOMMERCE_REQUIRE_ACCOUNT_CREATION"
REQUIRE_EMAIL_VERIFICATION = "ECOMMERCE_REQUIRE_EMAIL_VERIFICATION"
ORDER_NUMBER_PREFIX = "ECOMMERCE_ORDER_NUMBER_PREFIX"
SEND_ORDER_CONFIRMATION = "ECOMMERCE_SEND_ORDER_CONFIRMATION"
COMMISSION_ENABLED = "COMMISSION_ENABLED"
COMMISSION_RATE = "COMMISSION_DEFAULT_RATE"
COMPANY_NAME = "company_name"

DEFAULTS: dict[str, str] = {
    TAX_RATE: "12.5",
    MIN_ORDER_AMOUNT: "0",
    ALLOW_GUEST_CHECKOUT: "true",
    REQUIRE_ACCOUNT_CREATION: "false",
    REQUIRE_EMAIL_VERIFICATION: "false",
    ORDER_NUMBER_PREFIX: "ORD",
    SEND_ORDER_CONFIRMATION: "true",
    COMMISSION_ENABLED: "true",
    COMMISSION_RATE: "5",
    COMPANY_NAME: "",
}

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


def get_setting(key: str, default: str | None = None) -> str | None:
    row = db.session.query(SystemSetting).filter_by(key=key).first()
    if row is not None and row.value is not None and row.value.strip() != "":
        return row.value
    if default is not None:
        return default
    return DEFAULTS.get(key)


def get_bool(key: str) -> bool:
    fallback = DEFAULTS.get(key, "false").lower() in _TRUE
    raw = get_setting(key)
    if raw is None:
        return fallback
    s = raw.strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    return fallback


def get_decimal(key: str) -> Decimal:
    fallback = to_decimal(DEFAULTS.get(key), Decimal("0"))
    value = to_decimal(get_setting(key))
    if value is None or value < 0:
        return fallback
    return value


def get_tax_rate() -> Decimal:
    """Tax rate in percent (12.5 means 12.5%). "0" disables tax."""
    return get_decimal(TAX_RATE)


def get_min_order_cents() -> int:
    """Minimum order amount setting is in major units; returned in cents."""
    return to_cents(get_decimal(MIN_ORDER_AMOUNT)) or 0


def get_order_number_prefix() -> str:
    prefix = (get_setting(ORDER_NUMBER_PREFIX) or "").strip()
    return prefix or DEFAULTS[ORDER_NUMBER_PREFIX]


def set_setting(key: str, value: Any, user_id: int | None = None) -> SystemSetting:
    """Upsert a setting row. Caller commits."""
    key = (key or "").strip()
    if not key:
        raise SettingsError("key is required")
    if value is not None and not isinstance(value, str):
        if isinstance(value, bool):
            value = "true" if value else "false"
        else:
            value = str(value)

    row = db.session.query(SystemSetting).filter_by(key=key).first()
    if row is None:
        row = SystemSetting(key=key)
        db.session.add(row)
    row.value = value
    row.updated_by_user_id = user_id
    db.session.flush()
    return row


def bulk_set_settings(values: dict, user_id: int | None = None) -> list[SystemSetting]:
    if not isinstance(values, dict) or not values:
        raise SettingsError("settings must be a non-empty object")
    return [set_setting(k, v, user_id=user_id) for k, v in values.items()]


def list_settings() -> list[dict]:
    """Stored rows merged over DEFAULTS; stored values win."""
    rows = {r.key: r for r in db.session.query(SystemSetting).order_by(SystemSetting.key.asc()).all()}
    out = []
    for key in sorted(set(DEFAULTS) | set(rows)):
        row = rows.get(key)
        out.append({
            "key": key,
            "value": row.value if row is not None else DEFAULTS[key],
            "is_default": row is None,
        })
    return out


def ensure_defaults_seeded() -> int:
    existing = {k for (k,) in db.session.query(SystemSetting.key).all()}
    added = 0
    for key, value in DEFAULTS.items():
        if key in existing:
            continue
        db.session.add(SystemSetting(key=key, value=value))
        added += 1
    if added:
        db.session.commit()
    return added
