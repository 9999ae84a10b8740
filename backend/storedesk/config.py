# backend/storedesk/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storedesk.sqlite3 unless overridden
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///storedesk.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Storefront prices are shown and invoiced in this currency
    DISPLAY_CURRENCY = os.environ.get("DISPLAY_CURRENCY", "GHS")

    # Ceiling for the multi-step settlement transactions (PostgreSQL only)
    TRANSACTION_TIMEOUT_SECONDS = int(os.environ.get("TRANSACTION_TIMEOUT_SECONDS", "10"))

    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", "uploads")
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024

    # Optional remote rate provider, queried only when no DB rate exists.
    # Expected to answer GET {url}?from=USD&to=GHS with {"rate": 15.2}
    EXCHANGE_RATE_API_URL = os.environ.get("EXCHANGE_RATE_API_URL")
    EXCHANGE_RATE_API_TIMEOUT = float(os.environ.get("EXCHANGE_RATE_API_TIMEOUT", "5"))

    # Last-resort static rates used when neither the DB nor the provider has one
    FALLBACK_EXCHANGE_RATES = {
        "USD": {"GHS": "15"},
        "EUR": {"GHS": "16"},
        "GBP": {"GHS": "18"},
    }

    # Include raw exception detail in 500 responses (never in production)
    EXPOSE_ERROR_DETAILS = _env_bool("EXPOSE_ERROR_DETAILS", True)

    OUTBOX_MAX_ATTEMPTS = int(os.environ.get("OUTBOX_MAX_ATTEMPTS", "5"))

    CART_COOKIE_MAX_AGE = 60 * 60 * 24 * 7
    CART_COOKIE_SECURE = _env_bool("CART_COOKIE_SECURE", False)
