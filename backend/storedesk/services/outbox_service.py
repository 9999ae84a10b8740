# Overview: Service-layer operations for post-commit side effects; encapsulates business logic and database work.

"""
Transactional outbox for best-effort side effects.

Business transactions publish() events alongside their own writes, so an
event exists if and only if the business change committed. After the commit
the caller dispatch()es them. Each event runs in its own transaction: a
handler failure rolls back only that handler's writes, marks the event FAILED
and is logged. It never reaches the caller.

FAILED and undelivered PENDING events are retried by `flask outbox dispatch`
until OUTBOX_MAX_ATTEMPTS is reached.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Account, OutboxEvent, SalesOrder
from storedesk.time_utils import utcnow
from . import activity_service, cart_service, commission_service, notification_service, sales_order_service


STATUS_PENDING = "PENDING"
STATUS_DISPATCHED = "DISPATCHED"
STATUS_FAILED = "FAILED"

EVENT_PAYMENT_NOTIFICATION = "payment.notification"
EVENT_INVOICE_SALES_ORDER = "invoice.paid.sales_order"
EVENT_INVOICE_COMMISSION = "invoice.paid.commission"
EVENT_ACTIVITY = "activity.log"
EVENT_CART_CONVERTED = "cart.converted"
EVENT_ORDER_CREATED = "order.created"


def _handle_payment_notification(payload: dict):
    return notification_service.send_payment_notification(
        payment_id=payload["payment_id"], invoice_id=payload["invoice_id"]
    )


def _handle_sales_order(payload: dict):
    return sales_order_service.create_sales_order_from_invoice(
        payload["invoice_id"], owner_id=payload.get("user_id")
    )


def _handle_commission(payload: dict):
    return commission_service.create_commissions_for_invoice(
        payload["invoice_id"], user_id=payload.get("user_id")
    )


def _handle_activity(payload: dict):
    return activity_service.log_activity(
        entity_type=payload["entity_type"],
        entity_id=payload["entity_id"],
        action=payload["action"],
        details=payload.get("details"),
        user_id=payload.get("user_id"),
    )


def _handle_cart_converted(payload: dict):
    return cart_service.mark_cart_converted(payload["cart_session_id"], payload.get("order_id"))


def _handle_order_created(payload: dict):
    order = db.session.get(SalesOrder, payload["sales_order_id"])
    if order is None:
        raise ValueError(f"Sales order {payload['sales_order_id']} not found")
    return notification_service.send_order_created_notification(
        order, db.session.get(Account, order.account_id), is_ecommerce=payload.get("is_ecommerce", False)
    )


HANDLERS = {
    EVENT_PAYMENT_NOTIFICATION: _handle_payment_notification,
    EVENT_INVOICE_SALES_ORDER: _handle_sales_order,
    EVENT_INVOICE_COMMISSION: _handle_commission,
    EVENT_ACTIVITY: _handle_activity,
    EVENT_CART_CONVERTED: _handle_cart_converted,
    EVENT_ORDER_CREATED: _handle_order_created,
}


def publish(event_type: str, payload: dict) -> OutboxEvent:
    """Record a side effect inside the current transaction. Caller commits."""
    if event_type not in HANDLERS:
        raise ValueError(f"Unknown outbox event type: {event_type}")
    event = OutboxEvent(event_type=event_type, payload=payload, status=STATUS_PENDING, attempts=0)
    db.session.add(event)
    db.session.flush()
    return event


def _dispatch_one(event_id: int) -> bool:
    event = db.session.get(OutboxEvent, event_id)
    if event is None or event.status == STATUS_DISPATCHED:
        return True

    event_type = event.event_type
    handler = HANDLERS.get(event_type)
    try:
        if handler is None:
            raise ValueError(f"No handler for {event_type}")
        handler(event.payload or {})
        event.status = STATUS_DISPATCHED
        event.attempts = (event.attempts or 0) + 1
        event.last_error = None
        event.dispatched_at = utcnow()
        db.session.commit()
        return True
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("Outbox event %s (%s) failed", event_id, event_type)
        failed = db.session.get(OutboxEvent, event_id)
        if failed is not None:
            failed.status = STATUS_FAILED
            failed.attempts = (failed.attempts or 0) + 1
            failed.last_error = str(exc)[:2000]
            db.session.commit()
        return False


def dispatch(events) -> dict:
    """
    Run handlers for the given events (OutboxEvent rows or ids) after commit.

    Returns:
        {"dispatched": n, "failed": n}
    """
    ids = [e.id if isinstance(e, OutboxEvent) else int(e) for e in events]
    result = {"dispatched": 0, "failed": 0}
    for event_id in ids:
        if _dispatch_one(event_id):
            result["dispatched"] += 1
        else:
            result["failed"] += 1
    return result


def dispatch_pending(*, limit: int = 100, max_attempts: int | None = None) -> dict:
    if max_attempts is None:
        max_attempts = current_app.config.get("OUTBOX_MAX_ATTEMPTS", 5)
    ids = [
        row.id
        for row in db.session.query(OutboxEvent.id)
        .filter(
            OutboxEvent.status.in_([STATUS_PENDING, STATUS_FAILED]),
            OutboxEvent.attempts < max_attempts,
        )
        .order_by(OutboxEvent.created_at.asc(), OutboxEvent.id.asc())
        .limit(limit)
        .all()
    ]
    return dispatch(ids)


def list_events(*, status: str | None = None, limit: int = 50) -> list[OutboxEvent]:
    query = db.session.query(OutboxEvent)
    if status:
        query = query.filter(OutboxEvent.status == status)
    return query.order_by(OutboxEvent.id.desc()).limit(limit).all()
