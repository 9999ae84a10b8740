"""Request parsing for checkout and payments."""

import pytest

from storedesk.validation import (
    ValidationError,
    parse_checkout_request,
    parse_payment_request,
)


def _checkout(**overrides):
    payload = {
        "customer": {"name": "Ama Mensah", "email": "AMA@Example.com", "phone": "0240000000"},
        "shipping_address": {"line1": "12 Ring Road", "city": "Accra"},
    }
    payload.update(overrides)
    return payload


class TestCheckoutRequest:

    def test_normalizes_email_and_defaults(self):
        req = parse_checkout_request(_checkout())
        assert req.customer.email == "ama@example.com"
        assert req.payment_method == "CASH"
        assert req.billing_address is None

    def test_customer_required(self):
        with pytest.raises(ValidationError, match="Customer information is required"):
            parse_checkout_request(_checkout(customer=None))
        with pytest.raises(ValidationError, match="Customer information is required"):
            parse_checkout_request(_checkout(customer={"name": "Ama"}))

    def test_customer_checked_before_shipping(self):
        with pytest.raises(ValidationError, match="Customer information is required"):
            parse_checkout_request({"customer": {}, "shipping_address": None})

    def test_shipping_required(self):
        with pytest.raises(ValidationError, match="Shipping address is required"):
            parse_checkout_request(_checkout(shipping_address=None))

    def test_string_address_is_wrapped(self):
        req = parse_checkout_request(_checkout(shipping_address="12 Ring Road"))
        assert req.shipping_address == {"address": "12 Ring Road"}

    def test_invalid_payment_method(self):
        with pytest.raises(ValidationError, match="Invalid payment method"):
            parse_checkout_request(_checkout(payment_method="BARTER"))

    def test_payment_method_upper_cased(self):
        assert parse_checkout_request(_checkout(payment_method="mobile_money")).payment_method == "MOBILE_MONEY"


class TestPaymentRequest:

    def test_required_fields(self):
        with pytest.raises(ValidationError, match="Account ID, amount, and payment method are required"):
            parse_payment_request({"account_id": 1, "amount_cents": 100})

    def test_amount_must_be_positive(self):
        with pytest.raises(ValidationError, match="Payment amount must be positive"):
            parse_payment_request({"account_id": 1, "amount_cents": 0, "method": "CASH"})

    def test_major_unit_amount(self):
        req = parse_payment_request({"account_id": 1, "amount": "200.00", "method": "cash"})
        assert req.amount_cents == 20000
        assert req.method == "CASH"

    def test_invalid_method(self):
        with pytest.raises(ValidationError, match="Invalid payment method"):
            parse_payment_request({"account_id": 1, "amount_cents": 100, "method": "IOU"})

    def test_allocation_amounts_positive(self):
        with pytest.raises(ValidationError, match="Allocation amounts must be positive"):
            parse_payment_request({
                "account_id": 1, "amount_cents": 100, "method": "CASH",
                "invoice_allocations": [{"invoice_id": 1, "amount_cents": 0}],
            })

    def test_duplicate_invoice_rejected(self):
        with pytest.raises(ValidationError, match="allocated more than once"):
            parse_payment_request({
                "account_id": 1, "amount_cents": 100, "method": "CASH",
                "invoice_allocations": [
                    {"invoice_id": 1, "amount_cents": 50},
                    {"invoice_id": 1, "amount_cents": 50},
                ],
            })

    def test_allocations_cannot_exceed_payment(self):
        with pytest.raises(ValidationError, match="Total allocated amount cannot exceed payment amount"):
            parse_payment_request({
                "account_id": 1, "amount_cents": 100, "method": "CASH",
                "invoice_allocations": [
                    {"invoice_id": 1, "amount_cents": 60},
                    {"invoice_id": 2, "amount_cents": 41},
                ],
            })

    def test_unallocated_remainder_allowed(self):
        req = parse_payment_request({
            "account_id": "3", "amount_cents": 100, "method": "CARD",
            "invoice_allocations": [{"invoice_id": 9, "amount": "0.40"}],
        })
        assert req.account_id == 3
        assert req.allocations[0].invoice_id == 9
        assert req.allocations[0].amount_cents == 40
