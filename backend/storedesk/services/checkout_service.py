# Overview: Service-layer operations for storefront checkout; encapsulates business logic and database work.

"""
Checkout: turn a cookie cart into the full document chain in one transaction.

Quotation -> Invoice -> EcommerceOrder -> SalesOrder, plus stock reservations
against the invoice number. Everything commits together or not at all; the
cart-converted and order-confirmation side effects run after commit through
the outbox.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import (
    Customer,
    EcommerceOrder,
    EcommerceOrderItem,
    Invoice,
    InvoiceLine,
    Product,
    Quotation,
    QuotationLine,
)
from storedesk.money import from_cents, percent_of
from storedesk.time_utils import days_from_now, utcnow
from storedesk.validation import CheckoutRequest
from . import crm_service, outbox_service, settings_service
from .cart_service import Cart
from .concurrency import run_in_transaction
from .currency_service import convert_to_display
from .numbering_service import next_document_number
from .sales_order_service import build_sales_order
from .stock_ledger_service import InsufficientStockError, StockError, allocate_stock, get_total_available


QUOTATION_VALID_DAYS = 30
INVOICE_DUE_DAYS = 7


class CheckoutError(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        *,
        requires_account: bool = False,
        requires_email_verification: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.requires_account = requires_account
        self.requires_email_verification = requires_email_verification

    def to_dict(self) -> dict:
        body = {"error": str(self)}
        if self.requires_account:
            body["requires_account"] = True
        if self.requires_email_verification:
            body["requires_email_verification"] = True
        return body


def _format_major(cents: int) -> str:
    return f"{cents / 100:.2f}"


def _display_prices(cart: Cart) -> dict[int, int]:
    """
    Display-currency unit price per active cart product.

    Rate lookups may reach the remote provider, so this runs before the
    settlement transaction opens.
    """
    prices = {}
    for item in cart.items:
        if item.product_id in prices:
            continue
        product = db.session.get(Product, item.product_id)
        if product is None or not product.is_active:
            continue
        prices[product.id] = convert_to_display(product.price_cents or 0, product.base_currency)
    return prices


def _preview_subtotal(cart: Cart, prices: dict[int, int]) -> int:
    return sum(prices[item.product_id] * item.quantity for item in cart.items if item.product_id in prices)


def _check_policies(
    request: CheckoutRequest,
    cart: Cart,
    customer: Customer | None,
    tax_rate: Decimal,
    prices: dict[int, int],
) -> None:
    if cart.is_empty:
        raise CheckoutError("Cart is empty")

    if customer is None:
        if settings_service.get_bool(settings_service.REQUIRE_ACCOUNT_CREATION):
            raise CheckoutError(
                "Please create an account or log in to complete your order", 403, requires_account=True
            )
        if not settings_service.get_bool(settings_service.ALLOW_GUEST_CHECKOUT):
            raise CheckoutError(
                "Guest checkout is disabled. Please log in to continue", 403, requires_account=True
            )
    elif settings_service.get_bool(settings_service.REQUIRE_EMAIL_VERIFICATION) and not customer.email_verified:
        raise CheckoutError(
            "Please verify your email address before placing an order", 403, requires_email_verification=True
        )

    min_cents = settings_service.get_min_order_cents()
    if min_cents > 0:
        subtotal = _preview_subtotal(cart, prices)
        total = subtotal + percent_of(subtotal, tax_rate)
        if total < min_cents:
            currency = current_app.config.get("DISPLAY_CURRENCY", "GHS")
            raise CheckoutError(
                f"Minimum order amount is {_format_major(min_cents)} {currency}. "
                f"Your order total is {_format_major(total)} {currency}."
            )


def _resolve_customer(customer_id: int | None) -> Customer | None:
    if customer_id is None:
        return None
    return db.session.get(Customer, customer_id)


def place_order(
    request: CheckoutRequest,
    cart: Cart,
    *,
    cart_id: str | None = None,
    customer_id: int | None = None,
) -> dict:
    """
    Place a storefront order.

    Raises:
        CheckoutError: policy, empty cart, minimum amount, missing product or
            insufficient stock (nothing is written in that case).
    """
    tax_rate = settings_service.get_tax_rate()
    session_customer = _resolve_customer(customer_id)
    prices = _display_prices(cart)
    _check_policies(request, cart, session_customer, tax_rate, prices)

    buyer = request.customer
    if session_customer is not None:
        ecommerce_customer_id = session_customer.id
    else:
        match = db.session.query(Customer.id).filter(Customer.email == buyer.email).first()
        ecommerce_customer_id = match.id if match else None

    currency = current_app.config.get("DISPLAY_CURRENCY", "GHS")
    shipping = request.shipping_address
    billing = request.billing_address or shipping
    items = [(item.product_id, item.quantity) for item in cart.items]

    def _op():
        owner = crm_service.get_system_user()
        lead = crm_service.resolve_or_create_lead(
            name=buyer.name,
            email=buyer.email,
            phone=buyer.phone,
            company=buyer.company,
            shipping_address=shipping,
            billing_address=billing,
            owner_id=owner.id,
        )
        account = crm_service.resolve_or_create_account(
            name=buyer.name,
            email=buyer.email,
            phone=buyer.phone,
            company=buyer.company,
            owner_id=owner.id,
        )

        lines = []
        subtotal = 0
        for product_id, quantity in items:
            product = db.session.get(Product, product_id)
            if product is None or not product.is_active or product_id not in prices:
                raise CheckoutError(f"Product {product_id} is no longer available")
            available = get_total_available(product.id)
            if available < quantity:
                raise InsufficientStockError(product.name, quantity, available)
            unit_cents = prices[product_id]
            line_total = unit_cents * quantity
            subtotal += line_total
            lines.append((product, quantity, unit_cents, line_total))

        tax = percent_of(subtotal, tax_rate)
        total = subtotal + tax
        now = utcnow()

        quotation = Quotation(
            number=next_document_number(Quotation, "QT"),
            status="SENT",
            subject=f"Online Order - {buyer.name}",
            currency=currency,
            subtotal_cents=subtotal,
            tax_cents=tax,
            total_cents=total,
            valid_until=days_from_now(QUOTATION_VALID_DAYS),
            lead_id=lead.id,
            account_id=account.id,
            owner_id=owner.id,
            billing_address_snapshot=billing,
            shipping_address_snapshot=shipping,
        )
        for position, (product, quantity, unit_cents, line_total) in enumerate(lines):
            quotation.lines.append(QuotationLine(
                position=position,
                product_id=product.id,
                description=product.name,
                quantity=quantity,
                unit_price_cents=unit_cents,
                line_total_cents=line_total,
            ))
        db.session.add(quotation)
        db.session.flush()

        invoice_notes = f"Payment Method: {request.payment_method}"
        if request.notes:
            invoice_notes = f"{invoice_notes}\n{request.notes}"
        invoice = Invoice(
            number=next_document_number(Invoice, "INV"),
            subject=quotation.subject,
            status="SENT",
            payment_status="UNPAID",
            source="ECOMMERCE",
            currency=currency,
            subtotal_cents=subtotal,
            tax_cents=tax,
            total_cents=total,
            amount_paid_cents=0,
            amount_due_cents=total,
            issue_date=now,
            due_date=days_from_now(INVOICE_DUE_DAYS),
            payment_terms=f"Net {INVOICE_DUE_DAYS} days",
            notes=invoice_notes,
            quotation_id=quotation.id,
            lead_id=lead.id,
            account_id=account.id,
            owner_id=owner.id,
            billing_address_snapshot=billing,
            shipping_address_snapshot=shipping,
        )
        for position, (product, quantity, unit_cents, line_total) in enumerate(lines):
            invoice.lines.append(InvoiceLine(
                position=position,
                product_id=product.id,
                description=product.name,
                quantity=quantity,
                unit_price_cents=unit_cents,
                tax_cents=percent_of(line_total, tax_rate),
                line_total_cents=line_total,
            ))
        db.session.add(invoice)
        db.session.flush()

        order = EcommerceOrder(
            order_number=next_document_number(
                EcommerceOrder, settings_service.get_order_number_prefix(), column="order_number"
            ),
            customer_id=ecommerce_customer_id,
            customer_email=buyer.email,
            customer_name=buyer.name,
            customer_phone=buyer.phone,
            shipping_address=shipping,
            billing_address=billing,
            subtotal_cents=subtotal,
            tax_cents=tax,
            discount_cents=0,
            total_cents=total,
            currency=currency,
            status="PROCESSING",
            payment_status="PENDING",
            payment_method=request.payment_method,
            invoice_id=invoice.id,
            notes=request.notes,
        )
        for product, quantity, unit_cents, line_total in lines:
            order.items.append(EcommerceOrderItem(
                product_id=product.id,
                product_name=product.name,
                sku=product.sku,
                quantity=quantity,
                unit_price_cents=unit_cents,
                total_price_cents=line_total,
            ))
        db.session.add(order)
        db.session.flush()

        sales_order = None
        if account is not None:
            sales_order = build_sales_order(
                invoice,
                owner_id=owner.id,
                source="ECOMMERCE",
                notes=f"Online order {order.order_number}",
                delivery_notes=request.notes,
            )

        allocations = []
        for product, quantity, _unit, _total in lines:
            allocations.extend(allocate_stock(
                product_id=product.id,
                quantity=quantity,
                reference=invoice.number,
                user_id=owner.id,
                notes=f"Order {order.order_number}",
            ))

        events = []
        if cart_id:
            events.append(outbox_service.publish(
                outbox_service.EVENT_CART_CONVERTED,
                {"cart_session_id": cart_id, "order_id": order.id},
            ))
        if sales_order is not None:
            events.append(outbox_service.publish(
                outbox_service.EVENT_ORDER_CREATED,
                {"sales_order_id": sales_order.id, "is_ecommerce": True},
            ))
        events.append(outbox_service.publish(
            outbox_service.EVENT_ACTIVITY,
            {
                "entity_type": "ecommerce_order",
                "entity_id": order.id,
                "action": "order_placed",
                "details": {
                    "order_number": order.order_number,
                    "invoice_number": invoice.number,
                    "total_cents": total,
                    "allocations": len(allocations),
                },
                "user_id": None,
            },
        ))

        return {
            "id": order.id,
            "quotation_number": quotation.number,
            "invoice_id": invoice.id,
            "invoice_number": invoice.number,
            "order_number": order.order_number,
            "total_cents": total,
            "total": from_cents(total),
            "currency": currency,
            "status": order.status,
        }, [e.id for e in events]

    try:
        result, event_ids = run_in_transaction(_op)
    except StockError as exc:
        raise CheckoutError(str(exc)) from exc

    current_app.logger.info("Order %s placed (invoice %s)", result["order_number"], result["invoice_number"])
    outbox_service.dispatch(event_ids)
    return result
