# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment Recording Service

Records customer payments against one or more invoices and keeps each
invoice's paid/due amounts and payment status in step with its allocations.

INVARIANTS:
- Sum of a payment's allocations never exceeds the payment amount
- Invoice "paid" = payment allocations + credit note applications
- Payment status only moves UNPAID -> PARTIALLY_PAID -> PAID
- Side effects of becoming PAID (stock deduction, opportunity WON, sales
  order, commission) fire on the transition edge only, never on re-payment
- Stock deduction runs in a savepoint: a failure there is logged and the
  payment still commits
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import (
    Account,
    CreditNote,
    CreditNoteApplication,
    EcommerceOrder,
    Invoice,
    Payment,
    PaymentAllocation,
)
from storedesk.money import PAID_TOLERANCE_CENTS
from storedesk.time_utils import utcnow
from storedesk.validation import PAYMENT_METHODS, PaymentRequest
from . import crm_service, outbox_service
from .concurrency import lock_for_update, run_in_transaction
from .numbering_service import next_document_number
from .stock_ledger_service import StockError, deduct_stock_for_invoice


class PaymentError(Exception):
    """Raised for payment operation errors."""
    pass


class PaymentNotFoundError(PaymentError):
    pass


# =============================================================================
# PAYMENT STATUS (CONSTANTS)
# =============================================================================

PAYMENT_STATUS_UNPAID = "UNPAID"
PAYMENT_STATUS_PARTIAL = "PARTIALLY_PAID"
PAYMENT_STATUS_PAID = "PAID"

VALID_METHODS = list(PAYMENT_METHODS)

_STATUS_RANK = {PAYMENT_STATUS_UNPAID: 0, PAYMENT_STATUS_PARTIAL: 1, PAYMENT_STATUS_PAID: 2}


def classify_payment_status(total_cents: int, paid_cents: int) -> str:
    if paid_cents <= 0:
        return PAYMENT_STATUS_UNPAID
    if paid_cents >= total_cents - PAID_TOLERANCE_CENTS:
        return PAYMENT_STATUS_PAID
    return PAYMENT_STATUS_PARTIAL


def _paid_cents(invoice_id: int) -> int:
    allocated = (
        db.session.query(func.coalesce(func.sum(PaymentAllocation.amount_cents), 0))
        .filter(PaymentAllocation.invoice_id == invoice_id)
        .scalar()
    )
    credited = (
        db.session.query(func.coalesce(func.sum(CreditNoteApplication.amount_cents), 0))
        .filter(CreditNoteApplication.invoice_id == invoice_id)
        .scalar()
    )
    return int(allocated or 0) + int(credited or 0)


def recompute_invoice_payment(invoice: Invoice) -> tuple[str, bool]:
    """
    Recompute paid/due/status from allocations and credit applications.

    Returns:
        (new_status, transitioned_to_paid)
    """
    previous = invoice.payment_status or PAYMENT_STATUS_UNPAID
    paid = _paid_cents(invoice.id)
    status = classify_payment_status(invoice.total_cents or 0, paid)
    if _STATUS_RANK[status] < _STATUS_RANK.get(previous, 0):
        status = previous

    invoice.amount_paid_cents = paid
    invoice.amount_due_cents = max(0, (invoice.total_cents or 0) - paid)
    invoice.payment_status = status
    db.session.flush()
    return status, previous != PAYMENT_STATUS_PAID and status == PAYMENT_STATUS_PAID


def _on_invoice_paid(invoice: Invoice, user_id: int | None) -> None:
    """Transition-edge effects that belong to the settlement transaction."""
    invoice.paid_date = utcnow()

    try:
        with db.session.begin_nested():
            deduct_stock_for_invoice(invoice, user_id)
    except (StockError, SQLAlchemyError):
        current_app.logger.exception("Stock deduction failed for invoice %s", invoice.number)

    quotation = invoice.quotation
    opportunity = quotation.opportunity if quotation is not None else None
    if opportunity is not None and opportunity.stage != crm_service.STAGE_WON:
        crm_service.mark_opportunity_won(opportunity, invoice.total_cents)

    (
        db.session.query(EcommerceOrder)
        .filter(EcommerceOrder.invoice_id == invoice.id)
        .update({EcommerceOrder.payment_status: PAYMENT_STATUS_PAID}, synchronize_session="fetch")
    )
    db.session.flush()


def _publish_paid_events(invoice_id: int, user_id: int | None) -> list:
    return [
        outbox_service.publish(
            outbox_service.EVENT_INVOICE_SALES_ORDER, {"invoice_id": invoice_id, "user_id": user_id}
        ),
        outbox_service.publish(
            outbox_service.EVENT_INVOICE_COMMISSION, {"invoice_id": invoice_id, "user_id": user_id}
        ),
    ]


# =============================================================================
# PAYMENT RECORDING
# =============================================================================

def record_payment(request: PaymentRequest, *, received_by: int | None = None) -> Payment:
    """
    Record a payment and allocate it to invoices.

    Args:
        request: parsed PaymentRequest (amounts and methods already validated)
        received_by: User recording the payment

    Returns:
        Payment record (committed)

    Raises:
        PaymentNotFoundError: account or invoice missing
        PaymentError: invoice belongs to another account
    """
    if request.amount_cents <= 0:
        raise PaymentError("Payment amount must be positive")
    if request.method not in VALID_METHODS:
        raise PaymentError(f"Invalid payment method: {request.method}. Must be one of {VALID_METHODS}")
    if sum(a.amount_cents for a in request.allocations) > request.amount_cents:
        raise PaymentError("Total allocated amount cannot exceed payment amount")

    def _op():
        account = db.session.get(Account, request.account_id)
        if account is None:
            raise PaymentNotFoundError("Account not found")

        invoice_ids = [a.invoice_id for a in request.allocations]
        invoices = {}
        if invoice_ids:
            rows = lock_for_update(db.session.query(Invoice).filter(Invoice.id.in_(invoice_ids))).all()
            invoices = {row.id: row for row in rows}
        missing = [i for i in invoice_ids if i not in invoices]
        if missing:
            raise PaymentNotFoundError(f"Invoice {missing[0]} not found")
        for invoice in invoices.values():
            if invoice.account_id is not None and invoice.account_id != account.id:
                raise PaymentError(f"Invoice {invoice.number} does not belong to this account")

        payment = Payment(
            number=next_document_number(Payment, "PAY"),
            account_id=account.id,
            amount_cents=request.amount_cents,
            method=request.method,
            reference=request.reference,
            notes=request.notes,
            received_by=received_by,
            received_at=utcnow(),
        )
        for allocation in request.allocations:
            payment.allocations.append(PaymentAllocation(
                invoice_id=allocation.invoice_id,
                amount_cents=allocation.amount_cents,
                notes=allocation.notes,
            ))
        db.session.add(payment)
        db.session.flush()

        events = []
        newly_paid = []
        for allocation in request.allocations:
            invoice = invoices[allocation.invoice_id]
            _status, transitioned = recompute_invoice_payment(invoice)
            if transitioned:
                _on_invoice_paid(invoice, received_by)
                newly_paid.append(invoice.id)
            events.append(outbox_service.publish(
                outbox_service.EVENT_PAYMENT_NOTIFICATION,
                {"payment_id": payment.id, "invoice_id": invoice.id},
            ))

        for invoice_id in newly_paid:
            events.extend(_publish_paid_events(invoice_id, received_by))

        events.append(outbox_service.publish(
            outbox_service.EVENT_ACTIVITY,
            {
                "entity_type": "payment",
                "entity_id": payment.id,
                "action": "payment_recorded",
                "details": {
                    "number": payment.number,
                    "amount_cents": payment.amount_cents,
                    "method": payment.method,
                    "invoices": invoice_ids,
                    "paid_invoices": newly_paid,
                },
                "user_id": received_by,
            },
        ))
        return payment.id, [e.id for e in events]

    payment_id, event_ids = run_in_transaction(_op)
    current_app.logger.info("Recorded payment %s", payment_id)
    outbox_service.dispatch(event_ids)
    return db.session.get(Payment, payment_id)


# =============================================================================
# CREDIT NOTES
# =============================================================================

def apply_credit_note(
    credit_note_id: int,
    invoice_id: int,
    amount_cents: int,
    user_id: int | None = None,
) -> CreditNoteApplication:
    """Apply part of a credit note to an invoice; counts toward paid like a payment."""
    if amount_cents is None or amount_cents <= 0:
        raise PaymentError("Credit amount must be positive")

    def _op():
        credit = lock_for_update(db.session.query(CreditNote).filter_by(id=credit_note_id)).first()
        if credit is None:
            raise PaymentNotFoundError("Credit note not found")
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if invoice is None:
            raise PaymentNotFoundError(f"Invoice {invoice_id} not found")
        if invoice.account_id is not None and invoice.account_id != credit.account_id:
            raise PaymentError(f"Invoice {invoice.number} does not belong to this account")
        if amount_cents > credit.remaining_cents:
            raise PaymentError(
                f"Credit note {credit.number} has only {credit.remaining_cents} cents remaining"
            )

        application = CreditNoteApplication(invoice_id=invoice.id, amount_cents=amount_cents, applied_by=user_id)
        credit.applications.append(application)
        credit.applied_cents = (credit.applied_cents or 0) + amount_cents
        db.session.flush()

        _status, transitioned = recompute_invoice_payment(invoice)
        events = []
        if transitioned:
            _on_invoice_paid(invoice, user_id)
            events.extend(_publish_paid_events(invoice.id, user_id))
        events.append(outbox_service.publish(
            outbox_service.EVENT_ACTIVITY,
            {
                "entity_type": "invoice",
                "entity_id": invoice.id,
                "action": "credit_applied",
                "details": {"credit_note": credit.number, "amount_cents": amount_cents},
                "user_id": user_id,
            },
        ))
        return application.id, [e.id for e in events]

    application_id, event_ids = run_in_transaction(_op)
    outbox_service.dispatch(event_ids)
    return db.session.get(CreditNoteApplication, application_id)


# =============================================================================
# QUERIES
# =============================================================================

def get_payment(payment_id: int) -> Payment:
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise PaymentNotFoundError("Payment not found")
    return payment


def list_payments(
    filters: dict | None = None,
    *,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Payment], int]:
    """
    Payments newest first.

    Filters: account_id, method, invoice_id, date_from, date_to (datetimes).
    """
    filters = filters or {}
    query = db.session.query(Payment)
    if filters.get("account_id"):
        query = query.filter(Payment.account_id == filters["account_id"])
    if filters.get("method"):
        query = query.filter(Payment.method == str(filters["method"]).upper())
    if filters.get("invoice_id"):
        query = query.filter(
            Payment.id.in_(
                db.session.query(PaymentAllocation.payment_id).filter(
                    PaymentAllocation.invoice_id == filters["invoice_id"]
                )
            )
        )
    date_from: datetime | None = filters.get("date_from")
    date_to: datetime | None = filters.get("date_to")
    if date_from:
        query = query.filter(Payment.received_at >= date_from)
    if date_to:
        query = query.filter(Payment.received_at <= date_to)

    page = max(1, int(page or 1))
    limit = min(max(1, int(limit or 50)), 200)
    total = query.count()
    items = (
        query.order_by(Payment.received_at.desc(), Payment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total
