# Overview: Service-layer operations for sales orders; encapsulates business logic and database work.

from __future__ import annotations

from ..extensions import db
from ..models import Account, EcommerceOrder, Invoice, SalesOrder, SalesOrderLine
from .numbering_service import next_document_number
from . import notification_service


class SalesOrderError(Exception):
    pass


def build_sales_order(
    invoice: Invoice,
    *,
    owner_id: int | None,
    source: str,
    notes: str | None = None,
    delivery_notes: str | None = None,
) -> SalesOrder:
    """Mirror an invoice into a PENDING sales order. Caller owns the transaction."""
    order = SalesOrder(
        number=next_document_number(SalesOrder, "SO"),
        status="PENDING",
        source=source,
        quotation_id=invoice.quotation_id,
        invoice_id=invoice.id,
        account_id=invoice.account_id,
        owner_id=owner_id,
        subtotal_cents=invoice.subtotal_cents,
        tax_cents=invoice.tax_cents,
        discount_cents=invoice.discount_cents or 0,
        total_cents=invoice.total_cents,
        delivery_address=invoice.shipping_address_snapshot,
        delivery_notes=delivery_notes,
        notes=notes,
    )
    for position, line in enumerate(invoice.lines):
        order.lines.append(SalesOrderLine(
            position=position,
            product_id=line.product_id,
            description=line.description,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            discount_cents=line.discount_cents or 0,
            tax_cents=line.tax_cents or 0,
            line_total_cents=line.line_total_cents,
        ))
    db.session.add(order)
    db.session.flush()
    return order


def create_sales_order_from_invoice(invoice_id: int, owner_id: int | None = None) -> SalesOrder | None:
    """
    Create the fulfillment order for a paid invoice.

    Returns None when the invoice already has one or has no account.
    """
    existing = db.session.query(SalesOrder).filter_by(invoice_id=invoice_id).first()
    if existing is not None:
        return None

    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise SalesOrderError(f"Invoice {invoice_id} not found")
    if invoice.account_id is None:
        return None

    is_ecommerce = (
        db.session.query(EcommerceOrder.id).filter_by(invoice_id=invoice.id).first() is not None
    )
    order = build_sales_order(
        invoice,
        owner_id=owner_id or invoice.owner_id,
        source="ECOMMERCE" if is_ecommerce else "INVOICE",
        notes=f"Created from paid invoice {invoice.number}",
    )
    notification_service.send_order_created_notification(
        order, db.session.get(Account, invoice.account_id), is_ecommerce=is_ecommerce
    )
    return order
