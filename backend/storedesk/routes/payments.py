# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

"""
Payment Recording API Routes

- Record a customer payment and allocate it across invoices
- List and fetch payments
- Apply credit notes to invoices

All endpoints require a back-office user (Bearer api_token).
"""

from flask import Blueprint, request, jsonify, g

from ..extensions import db
from ..models import Invoice
from ..services import payment_service
from ..services.payment_service import PaymentError, PaymentNotFoundError
from ..decorators import require_auth
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError, parse_payment_request
from .responses import int_arg, server_error


payments_bp = Blueprint("payments", __name__, url_prefix="/api")


def _payment_error(exc: PaymentError):
    if isinstance(exc, PaymentNotFoundError):
        return jsonify({"error": str(exc)}), 404
    return jsonify({"error": str(exc)}), 400


# =============================================================================
# PAYMENT CREATION
# =============================================================================

@payments_bp.post("/payments")
@require_auth
def record_payment_route():
    """
    Record a payment.

    Request body:
    {
        "account_id": 3,
        "amount_cents": 20000,  (or "amount": 200.00)
        "method": "CASH",
        "reference": "MOMO-8812",  (optional)
        "notes": "...",  (optional)
        "invoice_allocations": [
            {"invoice_id": 7, "amount_cents": 20000, "notes": "..."}
        ]
    }

    Returns:
        201: Payment with account, receiver and allocations
        400: Invalid input or business rule violation
        404: Account or invoice not found
        500: Server error
    """
    try:
        payment_request = parse_payment_request(request.get_json(silent=True))
        payment = payment_service.record_payment(payment_request, received_by=g.current_user.id)
        return jsonify(payment.to_dict()), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PaymentError as e:
        return _payment_error(e)
    except Exception as e:
        return server_error("Failed to record payment", e, message="Failed to record payment")


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

@payments_bp.get("/payments")
@require_auth
def list_payments_route():
    """
    List payments, newest first.

    Query params: account_id, invoice_id, method, date_from, date_to, page, limit
    """
    try:
        filters = {
            "account_id": int_arg(request.args, "account_id"),
            "invoice_id": int_arg(request.args, "invoice_id"),
            "method": request.args.get("method"),
            "date_from": parse_iso_datetime(request.args.get("date_from")),
            "date_to": parse_iso_datetime(request.args.get("date_to")),
        }
        page = int_arg(request.args, "page", 1)
        limit = int_arg(request.args, "limit", 50)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    try:
        items, total = payment_service.list_payments(filters, page=page, limit=limit)
        return jsonify({
            "payments": [p.to_dict() for p in items],
            "pagination": {"page": page, "limit": limit, "total": total},
        })
    except Exception as e:
        return server_error("Failed to list payments", e)


@payments_bp.get("/payments/<int:payment_id>")
@require_auth
def get_payment_route(payment_id: int):
    try:
        return jsonify(payment_service.get_payment(payment_id).to_dict())
    except PaymentError as e:
        return _payment_error(e)


# =============================================================================
# CREDIT NOTES
# =============================================================================

@payments_bp.post("/credit-notes/<int:credit_note_id>/apply")
@require_auth
def apply_credit_note_route(credit_note_id: int):
    """
    Apply credit to an invoice.

    Request body: {"invoice_id": 7, "amount_cents": 5000}
    """
    data = request.get_json(silent=True) or {}
    try:
        invoice_id = int(data.get("invoice_id"))
        amount_cents = int(data.get("amount_cents"))
    except (TypeError, ValueError):
        return jsonify({"error": "invoice_id and amount_cents are required integers"}), 400

    try:
        application = payment_service.apply_credit_note(
            credit_note_id, invoice_id, amount_cents, user_id=g.current_user.id
        )
        invoice = db.session.get(Invoice, invoice_id)
        return jsonify({"application": application.to_dict(), "invoice": invoice.to_dict()}), 201
    except PaymentError as e:
        return _payment_error(e)
    except Exception as e:
        return server_error("Failed to apply credit note", e)
