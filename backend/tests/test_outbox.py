"""
Post-commit side effects through the outbox.

Verifies:
- Events are written in the business transaction and run after commit
- A failing handler is isolated: marked FAILED, never raised to the caller
- dispatch_pending retries FAILED events until max attempts
"""

import pytest

from storedesk.extensions import db
from storedesk.models import Activity, Invoice, OutboxEvent, Payment, SalesOrder
from storedesk.services import notification_service, outbox_service
from storedesk.services.payment_service import record_payment
from storedesk.validation import parse_payment_request


def _pay_in_full(account, invoice):
    return record_payment(parse_payment_request({
        "account_id": account.id,
        "amount_cents": invoice.total_cents,
        "method": "CASH",
        "invoice_allocations": [{"invoice_id": invoice.id, "amount_cents": invoice.total_cents}],
    }))


def test_publish_rejects_unknown_event(db_session):
    with pytest.raises(ValueError, match="Unknown outbox event type"):
        outbox_service.publish("invoice.exploded", {})


def test_publish_then_dispatch(db_session):
    event = outbox_service.publish(outbox_service.EVENT_ACTIVITY, {
        "entity_type": "invoice", "entity_id": 7, "action": "viewed", "details": {"by": "test"},
    })
    db_session.commit()
    assert event.status == "PENDING"

    result = outbox_service.dispatch([event.id])

    assert result == {"dispatched": 1, "failed": 0}
    event = db_session.get(OutboxEvent, event.id)
    assert event.status == "DISPATCHED"
    assert event.attempts == 1
    assert event.dispatched_at is not None
    assert db_session.query(Activity).filter_by(entity_type="invoice", entity_id=7, action="viewed").count() == 1


def test_dispatched_event_is_not_rerun(db_session):
    event = outbox_service.publish(outbox_service.EVENT_ACTIVITY, {
        "entity_type": "invoice", "entity_id": 7, "action": "viewed",
    })
    db_session.commit()

    outbox_service.dispatch([event.id])
    outbox_service.dispatch([event.id])

    assert db_session.query(Activity).count() == 1
    assert db_session.get(OutboxEvent, event.id).attempts == 1


def test_failing_handler_does_not_fail_payment(db_session, account, make_invoice, monkeypatch):
    invoice = make_invoice(account, 20000)

    def broken(**kwargs):
        raise RuntimeError("SMTP relay down")

    monkeypatch.setattr(notification_service, "send_payment_notification", broken)

    payment = _pay_in_full(account, invoice)

    assert db_session.query(Payment).count() == 1
    assert db_session.get(Invoice, invoice.id).payment_status == "PAID"

    failed = db_session.query(OutboxEvent).filter_by(status="FAILED").one()
    assert failed.event_type == outbox_service.EVENT_PAYMENT_NOTIFICATION
    assert failed.attempts == 1
    assert failed.last_error == "SMTP relay down"
    assert failed.payload == {"payment_id": payment.id, "invoice_id": invoice.id}

    # Independent effects still ran
    assert db_session.query(SalesOrder).filter_by(invoice_id=invoice.id).count() == 1
    assert db_session.query(Activity).filter_by(entity_type="payment", entity_id=payment.id).count() == 1


def test_failed_handler_rolls_back_its_own_writes(db_session, account, make_invoice, monkeypatch):
    invoice = make_invoice(account, 20000)

    def half_done(invoice_id, owner_id=None):
        db.session.add(SalesOrder(number="SO-BROKEN", status="PENDING", source="INVOICE", invoice_id=invoice_id))
        db.session.flush()
        raise RuntimeError("warehouse API timeout")

    monkeypatch.setattr(outbox_service.sales_order_service, "create_sales_order_from_invoice", half_done)

    _pay_in_full(account, invoice)

    assert db_session.query(SalesOrder).count() == 0
    failed = db_session.query(OutboxEvent).filter_by(event_type=outbox_service.EVENT_INVOICE_SALES_ORDER).one()
    assert failed.status == "FAILED"


def test_dispatch_pending_retries_failed(db_session, account, make_invoice, monkeypatch):
    invoice = make_invoice(account, 20000)
    real_send = notification_service.send_payment_notification

    def broken(**kwargs):
        raise RuntimeError("SMTP relay down")

    monkeypatch.setattr(notification_service, "send_payment_notification", broken)
    _pay_in_full(account, invoice)

    monkeypatch.setattr(notification_service, "send_payment_notification", real_send)
    result = outbox_service.dispatch_pending()

    assert result == {"dispatched": 1, "failed": 0}
    event = db_session.query(OutboxEvent).filter_by(event_type=outbox_service.EVENT_PAYMENT_NOTIFICATION).one()
    assert event.status == "DISPATCHED"
    assert event.attempts == 2
    assert event.last_error is None


def test_dispatch_pending_respects_max_attempts(db_session):
    exhausted = OutboxEvent(event_type=outbox_service.EVENT_ACTIVITY, status="FAILED", attempts=5,
                            payload={"entity_type": "invoice", "entity_id": 1, "action": "viewed"})
    pending = OutboxEvent(event_type=outbox_service.EVENT_ACTIVITY, status="PENDING", attempts=0,
                          payload={"entity_type": "invoice", "entity_id": 2, "action": "viewed"})
    db_session.add_all([exhausted, pending])
    db_session.commit()

    result = outbox_service.dispatch_pending(max_attempts=5)

    assert result == {"dispatched": 1, "failed": 0}
    assert db_session.get(OutboxEvent, exhausted.id).status == "FAILED"
    assert db_session.get(OutboxEvent, pending.id).status == "DISPATCHED"


def test_list_events_filters_by_status(db_session):
    db_session.add_all([
        OutboxEvent(event_type=outbox_service.EVENT_ACTIVITY, status="FAILED", attempts=1, payload={}),
        OutboxEvent(event_type=outbox_service.EVENT_ACTIVITY, status="DISPATCHED", attempts=1, payload={}),
    ])
    db_session.commit()

    assert [e.status for e in outbox_service.list_events(status="FAILED")] == ["FAILED"]
    assert len(outbox_service.list_events()) == 2


def test_health_reports_failed_side_effects(client, db_session):
    resp = client.get("/api/system/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "healthy"

    db_session.add(OutboxEvent(event_type=outbox_service.EVENT_ACTIVITY, status="FAILED", attempts=1, payload={}))
    db_session.commit()

    resp = client.get("/api/system/health")
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["status"] == "degraded"
    assert body["checks"]["outbox"]["details"] == {"pending": 0, "failed": 1}
    assert body["checks"]["database"]["status"] == "healthy"
