"""Exchange rate resolution and conversion."""

from datetime import timedelta
from decimal import Decimal

import httpx
import pytest

from storedesk.services import currency_service
from storedesk.services.currency_service import CurrencyError
from storedesk.time_utils import utcnow


@pytest.fixture
def no_remote(app):
    app.config["EXCHANGE_RATE_API_URL"] = None
    yield
    app.config["EXCHANGE_RATE_API_URL"] = None


def test_same_currency_is_identity(db_session):
    conversion = currency_service.convert_currency("ghs", "GHS", 1234)
    assert conversion.converted_cents == 1234
    assert conversion.source == currency_service.SOURCE_SAME


def test_direct_database_rate(db_session, no_remote):
    currency_service.set_exchange_rate(from_currency="usd", to_currency="ghs", rate="15.2")
    db_session.commit()

    conversion = currency_service.convert_currency("USD", "GHS", 1000)
    assert conversion.rate == Decimal("15.2")
    assert conversion.converted_cents == 15200
    assert conversion.source == currency_service.SOURCE_DATABASE


def test_latest_effective_rate_wins(db_session, no_remote):
    now = utcnow()
    currency_service.set_exchange_rate(
        from_currency="USD", to_currency="GHS", rate="14", effective_from=now - timedelta(days=10)
    )
    currency_service.set_exchange_rate(
        from_currency="USD", to_currency="GHS", rate="15", effective_from=now - timedelta(days=1)
    )
    # Not yet effective
    currency_service.set_exchange_rate(
        from_currency="USD", to_currency="GHS", rate="99", effective_from=now + timedelta(days=5)
    )
    db_session.commit()

    assert currency_service.get_exchange_rate("USD", "GHS") == Decimal("15")


def test_inverse_rate_rounded_to_four_places(db_session, no_remote):
    currency_service.set_exchange_rate(from_currency="USD", to_currency="GHS", rate="15.2")
    db_session.commit()

    conversion = currency_service.convert_currency("GHS", "USD", 10000)
    # 1 / 15.2 = 0.065789... -> 0.0658
    assert conversion.rate == Decimal("0.0658")
    assert conversion.converted_cents == 658
    assert conversion.source == currency_service.SOURCE_INVERSE


def test_remote_provider_used_when_no_database_rate(app, db_session, monkeypatch):
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"rate": 11.5})

    app.config["EXCHANGE_RATE_API_URL"] = "https://rates.example.test/latest"
    monkeypatch.setattr(
        currency_service, "_http_client", lambda: httpx.Client(transport=httpx.MockTransport(handler))
    )
    try:
        conversion = currency_service.convert_currency("CAD", "GHS", 200)
    finally:
        app.config["EXCHANGE_RATE_API_URL"] = None

    assert seen["params"] == {"from": "CAD", "to": "GHS"}
    assert conversion.rate == Decimal("11.5")
    assert conversion.converted_cents == 2300
    assert conversion.source == currency_service.SOURCE_REMOTE


def test_remote_failure_falls_back_to_static_table(app, db_session, monkeypatch):
    def handler(request):
        return httpx.Response(503, json={"error": "down"})

    app.config["EXCHANGE_RATE_API_URL"] = "https://rates.example.test/latest"
    monkeypatch.setattr(
        currency_service, "_http_client", lambda: httpx.Client(transport=httpx.MockTransport(handler))
    )
    try:
        conversion = currency_service.convert_currency("EUR", "GHS", 100)
    finally:
        app.config["EXCHANGE_RATE_API_URL"] = None

    assert conversion.source == currency_service.SOURCE_STATIC
    assert conversion.converted_cents == 1600


def test_unknown_pair_returns_none(db_session, no_remote):
    assert currency_service.convert_currency("JPY", "CHF", 100) is None


def test_convert_to_display_keeps_amount_without_rate(db_session, no_remote):
    assert currency_service.convert_to_display(2500, "JPY") == 2500
    assert currency_service.convert_to_display(2500, None) == 2500


def test_set_exchange_rate_validation(db_session):
    with pytest.raises(CurrencyError):
        currency_service.set_exchange_rate(from_currency="USD", to_currency="USD", rate="1")
    with pytest.raises(CurrencyError):
        currency_service.set_exchange_rate(from_currency="USD", to_currency="GHS", rate="-2")
    with pytest.raises(CurrencyError):
        currency_service.set_exchange_rate(from_currency="US", to_currency="GHS", rate="2")
