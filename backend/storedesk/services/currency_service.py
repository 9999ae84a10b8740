# Overview: Service-layer operations for currency conversion; encapsulates business logic and database work.

"""
Currency conversion for storefront display prices.

RATE RESOLUTION (first hit wins):
1. same currency -> 1
2. latest active direct rate effective at the given time
3. inverse of the latest active reverse rate, rounded to 4 dp
4. remote provider (EXCHANGE_RATE_API_URL), if configured
5. static FALLBACK_EXCHANGE_RATES table
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

import httpx
from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import ExchangeRate
from storedesk.money import round_half_up, to_decimal
from storedesk.time_utils import utcnow


class CurrencyError(ValueError):
    pass


SOURCE_SAME = "same_currency"
SOURCE_DATABASE = "database"
SOURCE_INVERSE = "database_inverse"
SOURCE_REMOTE = "remote"
SOURCE_STATIC = "static_fallback"


@dataclass(frozen=True)
class Conversion:
    from_currency: str
    to_currency: str
    amount_cents: int
    converted_cents: int
    rate: Decimal
    source: str

    def to_dict(self) -> dict:
        return {
            "from_currency": self.from_currency,
            "to_currency": self.to_currency,
            "amount_cents": self.amount_cents,
            "converted_cents": self.converted_cents,
            "rate": str(self.rate),
            "source": self.source,
        }


def _norm(code: str | None) -> str:
    return (code or "").strip().upper()


def _active_rate(from_currency: str, to_currency: str, at: datetime) -> ExchangeRate | None:
    return (
        db.session.query(ExchangeRate)
        .filter(
            ExchangeRate.from_currency == from_currency,
            ExchangeRate.to_currency == to_currency,
            ExchangeRate.is_active.is_(True),
            ExchangeRate.effective_from <= at,
            or_(ExchangeRate.effective_to.is_(None), ExchangeRate.effective_to >= at),
        )
        .order_by(ExchangeRate.effective_from.desc(), ExchangeRate.id.desc())
        .first()
    )


def _http_client() -> httpx.Client:
    return httpx.Client(timeout=current_app.config.get("EXCHANGE_RATE_API_TIMEOUT", 5))


def _fetch_remote_rate(from_currency: str, to_currency: str) -> Decimal | None:
    url = current_app.config.get("EXCHANGE_RATE_API_URL")
    if not url:
        return None
    try:
        with _http_client() as client:
            response = client.get(url, params={"from": from_currency, "to": to_currency})
            response.raise_for_status()
            data = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        current_app.logger.warning(
            "Remote exchange rate lookup failed for %s->%s: %s", from_currency, to_currency, exc
        )
        return None

    rate = to_decimal(data.get("rate") if isinstance(data, dict) else None)
    if rate is None or rate <= 0:
        return None
    return rate


def _static_rate(from_currency: str, to_currency: str) -> Decimal | None:
    table = current_app.config.get("FALLBACK_EXCHANGE_RATES") or {}
    rate = to_decimal((table.get(from_currency) or {}).get(to_currency))
    if rate is None or rate <= 0:
        return None
    return rate


def resolve_rate(from_currency: str, to_currency: str, at: datetime | None = None) -> tuple[Decimal, str] | None:
    """Return (rate, source) or None when no rate is known anywhere."""
    from_currency = _norm(from_currency)
    to_currency = _norm(to_currency)
    if from_currency == to_currency:
        return Decimal(1), SOURCE_SAME

    at = at or utcnow()

    direct = _active_rate(from_currency, to_currency, at)
    if direct is not None and direct.rate:
        return Decimal(direct.rate), SOURCE_DATABASE

    reverse = _active_rate(to_currency, from_currency, at)
    if reverse is not None and reverse.rate:
        inverse = (Decimal(1) / Decimal(reverse.rate)).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
        return inverse, SOURCE_INVERSE

    remote = _fetch_remote_rate(from_currency, to_currency)
    if remote is not None:
        return remote, SOURCE_REMOTE

    static = _static_rate(from_currency, to_currency)
    if static is not None:
        return static, SOURCE_STATIC

    return None


def get_exchange_rate(from_currency: str, to_currency: str, at: datetime | None = None) -> Decimal | None:
    resolved = resolve_rate(from_currency, to_currency, at)
    return resolved[0] if resolved else None


def convert_currency(
    from_currency: str,
    to_currency: str,
    amount_cents: int,
    at: datetime | None = None,
) -> Conversion | None:
    resolved = resolve_rate(from_currency, to_currency, at)
    if resolved is None:
        return None
    rate, source = resolved
    return Conversion(
        from_currency=_norm(from_currency),
        to_currency=_norm(to_currency),
        amount_cents=amount_cents,
        converted_cents=round_half_up(Decimal(amount_cents) * rate),
        rate=rate,
        source=source,
    )


def convert_to_display(amount_cents: int, currency: str | None) -> int:
    """
    Convert a product price into the display currency.

    A missing rate leaves the amount unconverted (logged), so the storefront
    keeps selling rather than failing checkout.
    """
    display = current_app.config.get("DISPLAY_CURRENCY", "GHS")
    source_currency = _norm(currency) or display
    conversion = convert_currency(source_currency, display, amount_cents)
    if conversion is None:
        current_app.logger.warning(
            "No exchange rate for %s->%s; using unconverted amount", source_currency, display
        )
        return amount_cents
    return conversion.converted_cents


def set_exchange_rate(
    *,
    from_currency: str,
    to_currency: str,
    rate,
    source: str = "manual",
    effective_from: datetime | None = None,
    effective_to: datetime | None = None,
) -> ExchangeRate:
    """Record a new active rate. Caller commits."""
    from_currency = _norm(from_currency)
    to_currency = _norm(to_currency)
    if len(from_currency) != 3 or len(to_currency) != 3:
        raise CurrencyError("Currency codes must be 3 letters")
    if from_currency == to_currency:
        raise CurrencyError("from_currency and to_currency must differ")

    value = to_decimal(rate)
    if value is None or value <= 0:
        raise CurrencyError("rate must be a positive number")

    row = ExchangeRate(
        from_currency=from_currency,
        to_currency=to_currency,
        rate=value,
        source=source or "manual",
        effective_from=effective_from or utcnow(),
        effective_to=effective_to,
        is_active=True,
    )
    db.session.add(row)
    db.session.flush()
    return row
