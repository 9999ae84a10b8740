from __future__ import annotations
from datetime import datetime
from storedesk.time_utils import parse_iso_datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from storedesk.money import to_cents


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

PAYMENT_METHODS = ("CASH", "CARD", "MOBILE_MONEY", "BANK_TRANSFER", "CHEQUE", "ONLINE", "OTHER")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "description", "price_cents", "base_currency", "is_active"},
    required_on_create={"name", "price_cents"},
)

WAREHOUSE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "code", "is_active"},
    required_on_create={"name", "code"},
)


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "price_cents" in patch and patch["price_cents"] is not None:
        price = patch["price_cents"]
        if price < 0:
            raise ValidationError("price_cents must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS}")
    if "base_currency" in patch and patch["base_currency"] is not None:
        currency = patch["base_currency"].upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError("base_currency must be a 3-letter currency code")
        patch["base_currency"] = currency


# =============================================================================
# REQUEST SHAPES (checkout, payments)
# =============================================================================

def _text(payload: dict, key: str, max_length: int | None = None) -> str | None:
    raw = payload.get(key)
    if raw is None:
        return None
    value = str(raw).strip()
    if not value:
        return None
    if max_length and len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value


def _amount_cents(payload: dict, key_prefix: str = "amount") -> int | None:
    """amount_cents (integer) wins; otherwise amount in major units."""
    cents_key = f"{key_prefix}_cents"
    if payload.get(cents_key) is not None:
        return _coerce_int(cents_key, payload[cents_key])
    if payload.get(key_prefix) is not None:
        cents = to_cents(payload[key_prefix])
        if cents is None:
            raise ValidationError(f"{key_prefix} must be a number")
        return cents
    return None


@dataclass(frozen=True)
class CheckoutCustomer:
    name: str
    email: str
    phone: str | None = None
    company: str | None = None


@dataclass(frozen=True)
class CheckoutRequest:
    customer: CheckoutCustomer
    shipping_address: dict
    billing_address: dict | None = None
    payment_method: str = "CASH"
    notes: str | None = None


def parse_checkout_request(payload: Any) -> CheckoutRequest:
    """Order of checks: customer name and email, then shipping address."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    customer = payload.get("customer")
    if not isinstance(customer, dict):
        raise ValidationError("Customer information is required")
    name = _text(customer, "name", 255)
    email = _text(customer, "email", 255)
    if not name or not email:
        raise ValidationError("Customer information is required")
    if "@" not in email:
        raise ValidationError("Customer email is invalid")

    shipping = payload.get("shipping_address")
    if not shipping or not isinstance(shipping, (dict, str)):
        raise ValidationError("Shipping address is required")
    if isinstance(shipping, str):
        shipping = {"address": shipping}

    billing = payload.get("billing_address")
    if billing is not None and not isinstance(billing, (dict, str)):
        raise ValidationError("billing_address must be an object")
    if isinstance(billing, str):
        billing = {"address": billing}

    method = (_text(payload, "payment_method") or "CASH").upper()
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {method}. Must be one of {list(PAYMENT_METHODS)}")

    return CheckoutRequest(
        customer=CheckoutCustomer(
            name=name,
            email=email.lower(),
            phone=_text(customer, "phone", 64),
            company=_text(customer, "company", 255),
        ),
        shipping_address=shipping,
        billing_address=billing or None,
        payment_method=method,
        notes=_text(payload, "notes"),
    )


@dataclass(frozen=True)
class AllocationRequest:
    invoice_id: int
    amount_cents: int
    notes: str | None = None


@dataclass(frozen=True)
class PaymentRequest:
    account_id: int
    amount_cents: int
    method: str
    reference: str | None = None
    notes: str | None = None
    allocations: list[AllocationRequest] = field(default_factory=list)


def parse_payment_request(payload: Any) -> PaymentRequest:
    """
    Shape and arithmetic checks for a payment, before any transaction starts.

    Rejects non-positive amounts, unknown methods, non-positive allocations,
    duplicate invoices, and allocations summing past the payment amount.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    account_raw = payload.get("account_id")
    amount_cents = _amount_cents(payload)
    method = _text(payload, "method")
    if account_raw is None or amount_cents is None or not method:
        raise ValidationError("Account ID, amount, and payment method are required")
    account_id = _coerce_int("account_id", account_raw)

    if amount_cents <= 0:
        raise ValidationError("Payment amount must be positive")
    method = method.upper()
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {method}. Must be one of {list(PAYMENT_METHODS)}")

    raw_allocations = payload.get("invoice_allocations") or []
    if not isinstance(raw_allocations, list):
        raise ValidationError("invoice_allocations must be a list")

    allocations = []
    seen = set()
    for entry in raw_allocations:
        if not isinstance(entry, dict) or entry.get("invoice_id") is None:
            raise ValidationError("Each allocation requires invoice_id and amount")
        invoice_id = _coerce_int("invoice_id", entry["invoice_id"])
        alloc_cents = _amount_cents(entry)
        if alloc_cents is None or alloc_cents <= 0:
            raise ValidationError("Allocation amounts must be positive")
        if invoice_id in seen:
            raise ValidationError(f"Invoice {invoice_id} is allocated more than once")
        seen.add(invoice_id)
        allocations.append(AllocationRequest(invoice_id, alloc_cents, _text(entry, "notes", 255)))

    if sum(a.amount_cents for a in allocations) > amount_cents:
        raise ValidationError("Total allocated amount cannot exceed payment amount")

    return PaymentRequest(
        account_id=account_id,
        amount_cents=amount_cents,
        method=method,
        reference=_text(payload, "reference", 128),
        notes=_text(payload, "notes"),
        allocations=allocations,
    )
