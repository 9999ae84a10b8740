"""
Flask CLI command groups.
"""

from storedesk.models import OutboxEvent, SystemSetting, User
from storedesk.services import outbox_service, settings_service


def _invoke(app, *args):
    return app.test_cli_runner().invoke(args=list(args))


def test_system_init_creates_admin_and_defaults(app, db_session):
    result = _invoke(app, "system", "init")

    assert result.exit_code == 0
    assert "PASS Admin user: system@storedesk.local" in result.output
    admin = db_session.query(User).filter_by(role="ADMIN").one()
    assert admin.api_token and admin.api_token in result.output
    assert db_session.query(SystemSetting).count() == len(settings_service.DEFAULTS)

    again = _invoke(app, "system", "init")
    assert "Seeded 0 default setting(s)" in again.output
    assert db_session.query(User).count() == 1


def test_system_init_reuses_existing_admin(app, admin_user):
    result = _invoke(app, "system", "init")
    assert "PASS Admin user: admin@test.local" in result.output


def test_users_create_and_rotate(app, db_session):
    result = _invoke(app, "users", "create", "--name", "Kofi Sales", "--email", "Kofi@Example.com", "--role", "sales")

    assert result.exit_code == 0
    user = db_session.query(User).filter_by(email="kofi@example.com").one()
    assert user.role == "SALES"
    old_token = user.api_token

    duplicate = _invoke(app, "users", "create", "--name", "Kofi", "--email", "kofi@example.com", "--role", "STAFF")
    assert "FAIL User with email kofi@example.com already exists" in duplicate.output

    rotated = _invoke(app, "users", "rotate-token", "kofi@example.com")
    db_session.refresh(user)
    assert user.api_token != old_token
    assert user.api_token in rotated.output

    listing = _invoke(app, "users", "list")
    assert "kofi@example.com" in listing.output


def test_users_create_rejects_unknown_role(app, db_session):
    result = _invoke(app, "users", "create", "--name", "X", "--email", "x@example.com", "--role", "OWNER")
    assert result.exit_code != 0
    assert db_session.query(User).count() == 0


def test_settings_commands(app, db_session):
    result = _invoke(app, "settings", "set", "ECOMMERCE_TAX_RATE", "15")
    assert "PASS ECOMMERCE_TAX_RATE = 15" in result.output
    assert settings_service.get_setting("ECOMMERCE_TAX_RATE") == "15"

    assert _invoke(app, "settings", "get", "ECOMMERCE_TAX_RATE").output.strip() == "15"
    assert "FAIL" in _invoke(app, "settings", "get", "UNKNOWN_KEY").output
    assert "(default)" in _invoke(app, "settings", "list").output


def test_rates_commands(app, db_session):
    result = _invoke(app, "rates", "set", "usd", "ghs", "15.2")
    assert "PASS USD->GHS" in result.output

    converted = _invoke(app, "rates", "convert", "USD", "GHS", "1000")
    assert converted.output.startswith("15200 ")

    assert "FAIL rate must be a positive number" in _invoke(app, "rates", "set", "USD", "GHS", "zero").output
    assert "FAIL No rate for JPY->GHS" in _invoke(app, "rates", "convert", "JPY", "GHS", "1000").output


def test_outbox_commands(app, db_session):
    assert "No outbox events." in _invoke(app, "outbox", "list").output

    db_session.add(OutboxEvent(
        event_type=outbox_service.EVENT_ACTIVITY,
        status="FAILED",
        attempts=1,
        last_error="SMTP relay down",
        payload={"entity_type": "invoice", "entity_id": 1, "action": "viewed"},
    ))
    db_session.commit()

    listing = _invoke(app, "outbox", "list", "--status", "FAILED")
    assert "SMTP relay down" in listing.output

    result = _invoke(app, "outbox", "dispatch")
    assert "PASS Dispatched 1, failed 0" in result.output
    assert db_session.query(OutboxEvent).one().status == "DISPATCHED"
