# Overview: Flask API routes for sales documents; parses input and returns JSON responses.

"""
Sales Document Routes

Read access to the document chain (quotations, invoices, sales orders,
storefront orders, payments) and quotation/opportunity linking.
"""

from flask import Blueprint, request, jsonify

from ..decorators import require_auth
from ..services.document_service import (
    DocumentError,
    DocumentNotFoundError,
    get_document,
    get_invoice_detail,
    link_quotation_opportunity,
    list_documents,
)
from storedesk.time_utils import parse_iso_datetime


documents_bp = Blueprint("documents", __name__, url_prefix="/api")


@documents_bp.get("/documents")
@require_auth
def list_documents_route():
    doc_type = request.args.get("type")
    account_id = request.args.get("account_id", type=int)
    limit = request.args.get("limit", 100, type=int)
    offset = request.args.get("offset", 0, type=int)

    try:
        from_dt = parse_iso_datetime(request.args.get("from_date"))
        to_dt = parse_iso_datetime(request.args.get("to_date"))
    except ValueError:
        return jsonify({"error": "from_date and to_date must be ISO-8601 datetimes"}), 400

    try:
        result = list_documents(
            doc_type=doc_type.upper() if doc_type else None,
            account_id=account_id,
            from_dt=from_dt,
            to_dt=to_dt,
            limit=limit,
            offset=offset,
        )
    except DocumentError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(result)


@documents_bp.get("/documents/<doc_type>/<int:doc_id>")
@require_auth
def get_document_route(doc_type: str, doc_id: int):
    try:
        doc = get_document(doc_type.upper(), doc_id)
    except DocumentError as e:
        return jsonify({"error": str(e)}), 400
    if doc is None:
        return jsonify({"error": "Document not found"}), 404
    return jsonify(doc)


@documents_bp.get("/invoices/<int:invoice_id>")
@require_auth
def get_invoice_route(invoice_id: int):
    try:
        return jsonify(get_invoice_detail(invoice_id))
    except DocumentNotFoundError as e:
        return jsonify({"error": str(e)}), 404


@documents_bp.post("/quotations/<int:quotation_id>/opportunity")
@require_auth
def link_opportunity_route(quotation_id: int):
    """Request body: {"opportunity_id": 4}"""
    data = request.get_json(silent=True) or {}
    opportunity_id = data.get("opportunity_id")
    if not isinstance(opportunity_id, int) or isinstance(opportunity_id, bool):
        return jsonify({"error": "opportunity_id is required"}), 400
    try:
        quotation = link_quotation_opportunity(quotation_id, opportunity_id)
    except DocumentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(quotation.to_dict())
