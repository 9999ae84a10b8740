# Overview: Service-layer operations for sales commissions; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Invoice, SalesCommission, User
from storedesk.money import percent_of
from . import settings_service
from .crm_service import SYSTEM_USER_EMAIL


class CommissionError(Exception):
    pass


def create_commissions_for_invoice(invoice_id: int, user_id: int | None = None) -> list[SalesCommission]:
    """
    One PENDING commission for the invoice owner, on the invoice subtotal.

    Idempotent per (invoice, owner). Returns the rows created by this call,
    which is empty when commissions are disabled, the invoice is not PAID,
    it came from the storefront, it has no human owner, or a commission
    already exists.
    """
    if not settings_service.get_bool(settings_service.COMMISSION_ENABLED):
        return []

    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise CommissionError(f"Invoice {invoice_id} not found")
    if invoice.payment_status != "PAID" or invoice.owner_id is None:
        return []
    # Storefront orders are owned by the automated checkout user, not a salesperson
    if invoice.source == "ECOMMERCE":
        return []

    owner = db.session.get(User, invoice.owner_id)
    if owner is None or owner.email == SYSTEM_USER_EMAIL:
        return []

    existing = (
        db.session.query(SalesCommission.id)
        .filter_by(invoice_id=invoice.id, user_id=owner.id)
        .first()
    )
    if existing is not None:
        return []

    rate = settings_service.get_decimal(settings_service.COMMISSION_RATE)
    commission = SalesCommission(
        invoice_id=invoice.id,
        user_id=owner.id,
        rate_percent=rate,
        base_amount_cents=invoice.subtotal_cents,
        commission_cents=percent_of(invoice.subtotal_cents, rate),
        status="PENDING",
        created_by=user_id,
    )
    db.session.add(commission)
    db.session.flush()
    current_app.logger.info("Created commission %s for invoice %s", commission.id, invoice.number)
    return [commission]
