# Overview: Service-layer operations for customer notifications; encapsulates business logic and database work.

"""
Customer notifications for payments and new orders.

Messages are queued as Notification rows; delivery (SMTP/SMS) is handled by an
external worker reading the queue. Nothing here raises into the payment or
checkout flow: callers run through the outbox dispatcher.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Account, Invoice, Notification, Payment
from storedesk.time_utils import to_utc_z
from . import settings_service


CHANNEL_EMAIL = "EMAIL"
CHANNEL_SMS = "SMS"


def format_money(cents: int | None, currency: str = "GHS") -> str:
    return f"{currency} {(cents or 0) / 100:,.2f}"


def _queue(
    *,
    channel: str,
    recipient: str,
    subject: str | None,
    body: str,
    entity_type: str,
    entity_id: int,
) -> Notification:
    row = Notification(
        channel=channel,
        recipient=recipient,
        subject=subject,
        body=body,
        entity_type=entity_type,
        entity_id=entity_id,
        status="QUEUED",
    )
    db.session.add(row)
    db.session.flush()
    current_app.logger.info("Queued %s notification to %s (%s %s)", channel, recipient, entity_type, entity_id)
    return row


def send_payment_notification(*, payment_id: int, invoice_id: int) -> list[Notification]:
    payment = db.session.get(Payment, payment_id)
    invoice = db.session.get(Invoice, invoice_id)
    if payment is None or invoice is None:
        raise ValueError(f"Payment {payment_id} or invoice {invoice_id} not found")

    account = db.session.get(Account, payment.account_id)
    email = account.email if account else None
    phone = account.phone if account else None
    if not email and not phone:
        current_app.logger.info("No email or phone for account %s; skipping payment notification", payment.account_id)
        return []

    currency = invoice.currency or "GHS"
    company = settings_service.get_setting(settings_service.COMPANY_NAME) or ""
    allocated = sum(a.amount_cents for a in payment.allocations if a.invoice_id == invoice.id)
    paid_text = format_money(allocated or payment.amount_cents, currency)
    due_text = format_money(invoice.amount_due_cents, currency)
    fully_paid = invoice.payment_status == "PAID"

    sent = []
    if email:
        lines = [
            f"Dear {account.name or 'Valued Customer'},",
            "",
            f"We have received your payment of {paid_text} for Invoice {invoice.number}.",
            "",
            "Payment Details:",
            f"- Payment Number: {payment.number}",
            f"- Payment Method: {payment.method}",
            f"- Payment Date: {to_utc_z(payment.received_at)}",
        ]
        if payment.reference:
            lines.append(f"- Reference: {payment.reference}")
        lines += [
            "",
            "Invoice Details:",
            f"- Invoice Number: {invoice.number}",
            f"- Invoice Total: {format_money(invoice.total_cents, currency)}",
            f"- Amount Due: {due_text}",
            "",
            "This invoice is now fully paid. Thank you!" if fully_paid else f"Remaining Balance: {due_text}",
            "",
            "Best regards,",
            company,
        ]
        sent.append(_queue(
            channel=CHANNEL_EMAIL,
            recipient=email,
            subject=f"Payment Received - Invoice {invoice.number}",
            body="\n".join(lines).rstrip(),
            entity_type="invoice",
            entity_id=invoice.id,
        ))
    if phone:
        tail = "Invoice fully paid." if fully_paid else f"Balance: {due_text}"
        sent.append(_queue(
            channel=CHANNEL_SMS,
            recipient=phone,
            subject=None,
            body=f"Payment of {paid_text} received for Invoice {invoice.number}. {tail} {company}".rstrip(),
            entity_type="invoice",
            entity_id=invoice.id,
        ))
    return sent


def send_order_created_notification(order, account: Account | None, *, is_ecommerce: bool = False) -> list[Notification]:
    """Order confirmation for a new sales order."""
    if is_ecommerce and not settings_service.get_bool(settings_service.SEND_ORDER_CONFIRMATION):
        current_app.logger.info("Order confirmation disabled; skipping order %s", order.number)
        return []

    email = account.email if account else None
    phone = account.phone if account else None
    if not email and not phone:
        return []

    total = format_money(order.total_cents)
    sent = []
    if email:
        body = "\n".join([
            f"Dear {account.name or 'Valued Customer'},",
            "",
            f"Thank you for your order! We have received your order {order.number}.",
            "",
            f"- Order Total: {total}",
            f"- Status: {order.status}",
            "",
            "We will process your order and notify you of any updates.",
        ])
        sent.append(_queue(
            channel=CHANNEL_EMAIL,
            recipient=email,
            subject=f"Order Confirmation - {order.number}",
            body=body,
            entity_type="sales_order",
            entity_id=order.id,
        ))
    if phone:
        sent.append(_queue(
            channel=CHANNEL_SMS,
            recipient=phone,
            subject=None,
            body=f"Order {order.number} received. Total: {total}.",
            entity_type="sales_order",
            entity_id=order.id,
        ))
    return sent
