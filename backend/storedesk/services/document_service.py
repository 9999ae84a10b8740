# Overview: Service-layer operations for sales documents; encapsulates read-side queries over the document chain.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import (
    CreditNoteApplication,
    EcommerceOrder,
    Invoice,
    Opportunity,
    Payment,
    PaymentAllocation,
    Quotation,
    SalesOrder,
)
from storedesk.time_utils import to_utc_z
from . import activity_service, crm_service


class DocumentError(Exception):
    pass


class DocumentNotFoundError(DocumentError):
    pass


DOCUMENT_TYPES = {
    "QUOTATIONS": Quotation,
    "INVOICES": Invoice,
    "SALES_ORDERS": SalesOrder,
    "ECOMMERCE_ORDERS": EcommerceOrder,
    "PAYMENTS": Payment,
}


def _document_to_index_row(doc_type: str, doc) -> dict:
    if doc_type == "ECOMMERCE_ORDERS":
        return {
            "id": doc.id,
            "type": doc_type,
            "document_number": doc.order_number,
            "account_id": None,
            "status": doc.payment_status,
            "total_cents": doc.total_cents,
            "occurred_at": to_utc_z(doc.created_at),
        }
    if doc_type == "PAYMENTS":
        return {
            "id": doc.id,
            "type": doc_type,
            "document_number": doc.number,
            "account_id": doc.account_id,
            "status": doc.method,
            "total_cents": doc.amount_cents,
            "occurred_at": to_utc_z(doc.received_at),
        }
    status = doc.payment_status if doc_type == "INVOICES" else doc.status
    return {
        "id": doc.id,
        "type": doc_type,
        "document_number": doc.number,
        "account_id": doc.account_id,
        "status": status,
        "total_cents": doc.total_cents,
        "occurred_at": to_utc_z(doc.created_at),
    }


def _created_column(model):
    return model.received_at if model is Payment else model.created_at


def list_documents(
    *,
    doc_type: str | None = None,
    account_id: int | None = None,
    from_dt: datetime | None = None,
    to_dt: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> dict:
    """
    Consolidated index across document types, newest first.

    EcommerceOrders carry no account and are skipped when account_id is given.
    """
    if doc_type and doc_type not in DOCUMENT_TYPES:
        raise DocumentError(f"Invalid type. Must be one of: {', '.join(DOCUMENT_TYPES.keys())}")
    limit = max(1, min(int(limit or 100), 500))
    offset = max(0, int(offset or 0))

    types = [doc_type] if doc_type else list(DOCUMENT_TYPES.keys())
    rows = []
    for dtype in types:
        model = DOCUMENT_TYPES[dtype]
        query = db.session.query(model)
        if account_id is not None:
            if not hasattr(model, "account_id"):
                continue
            query = query.filter(model.account_id == account_id)
        created = _created_column(model)
        if from_dt is not None:
            query = query.filter(created >= from_dt)
        if to_dt is not None:
            query = query.filter(created <= to_dt)
        # Fetch enough per type to fill the requested window after merging
        for doc in query.order_by(created.desc(), model.id.desc()).limit(offset + limit).all():
            rows.append(_document_to_index_row(dtype, doc))

    rows.sort(key=lambda r: (r["occurred_at"] or "", r["id"]), reverse=True)
    return {
        "items": rows[offset:offset + limit],
        "count": len(rows[offset:offset + limit]),
        "limit": limit,
        "offset": offset,
    }


def get_document(doc_type: str, doc_id: int) -> dict | None:
    model = DOCUMENT_TYPES.get(doc_type)
    if model is None:
        raise DocumentError(f"Invalid type. Must be one of: {', '.join(DOCUMENT_TYPES.keys())}")
    doc = db.session.get(model, doc_id)
    return doc.to_dict() if doc is not None else None


def get_invoice_detail(invoice_id: int) -> dict:
    """Invoice with its payments, credits, linked orders and activity trail."""
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise DocumentNotFoundError("Invoice not found")

    data = invoice.to_dict()
    data["allocations"] = [
        {**a.to_dict(), "payment_number": a.payment.number}
        for a in db.session.query(PaymentAllocation)
        .filter_by(invoice_id=invoice.id)
        .order_by(PaymentAllocation.id.asc())
        .all()
    ]
    data["credit_applications"] = [
        c.to_dict()
        for c in db.session.query(CreditNoteApplication)
        .filter_by(invoice_id=invoice.id)
        .order_by(CreditNoteApplication.id.asc())
        .all()
    ]
    order = db.session.query(EcommerceOrder).filter_by(invoice_id=invoice.id).first()
    data["ecommerce_order"] = order.to_dict() if order is not None else None
    sales_order = db.session.query(SalesOrder).filter_by(invoice_id=invoice.id).first()
    data["sales_order"] = sales_order.to_dict() if sales_order is not None else None
    data["activities"] = [
        a.to_dict() for a in activity_service.list_activities(entity_type="invoice", entity_id=invoice.id)
    ]
    return data


def link_quotation_opportunity(quotation_id: int, opportunity_id: int) -> Quotation:
    quotation = db.session.get(Quotation, quotation_id)
    if quotation is None:
        raise DocumentNotFoundError("Quotation not found")
    opportunity = db.session.get(Opportunity, opportunity_id)
    if opportunity is None:
        raise DocumentNotFoundError("Opportunity not found")
    crm_service.link_opportunity(quotation, opportunity)
    db.session.commit()
    return quotation
