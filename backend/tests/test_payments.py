"""
Payment recording and invoice settlement.

Verifies:
- Allocations drive invoice paid/due/status, with a one-cent tolerance
- Payment status never moves backwards
- Becoming PAID deducts stock, wins the opportunity, creates the sales order
  and the commission exactly once
- Recomputing an unchanged invoice is a no-op
- Storefront orders earn no commission
- Invalid allocations leave no payment behind
"""

import json

import pytest

from storedesk.models import (
    Account,
    Activity,
    CreditNote,
    EcommerceOrder,
    Invoice,
    Notification,
    Opportunity,
    OutboxEvent,
    Payment,
    Quotation,
    SalesCommission,
    SalesOrder,
    StockItem,
)
from storedesk.services import checkout_service, payment_service, settings_service, stock_ledger_service
from storedesk.services.cart_service import Cart
from storedesk.services.payment_service import PaymentError, PaymentNotFoundError
from storedesk.services.stock_ledger_service import InsufficientStockError, StockError, get_total_available
from storedesk.validation import parse_checkout_request, parse_payment_request


def _pay(account, *allocations, amount_cents=None, method="CASH", received_by=None):
    total = amount_cents if amount_cents is not None else sum(cents for _invoice, cents in allocations)
    request = parse_payment_request({
        "account_id": account.id,
        "amount_cents": total,
        "method": method,
        "invoice_allocations": [
            {"invoice_id": invoice.id, "amount_cents": cents} for invoice, cents in allocations
        ],
    })
    return payment_service.record_payment(request, received_by=received_by)


class TestClassification:

    @pytest.mark.parametrize("total,paid,expected", [
        (20000, 0, "UNPAID"),
        (20000, 5000, "PARTIALLY_PAID"),
        (20000, 19998, "PARTIALLY_PAID"),
        (20000, 19999, "PAID"),
        (20000, 20000, "PAID"),
        (20000, 25000, "PAID"),
    ])
    def test_classify_payment_status(self, total, paid, expected):
        assert payment_service.classify_payment_status(total, paid) == expected


class TestRecordPayment:

    def test_full_payment_settles_invoice(self, db_session, account, make_invoice, admin_user):
        invoice = make_invoice(account, 20000)

        payment = _pay(account, (invoice, 20000), received_by=admin_user.id)

        assert payment.number == "PAY-000001"
        assert payment.received_by == admin_user.id
        assert [a.amount_cents for a in payment.allocations] == [20000]

        invoice = db_session.get(Invoice, invoice.id)
        assert invoice.payment_status == "PAID"
        assert invoice.amount_paid_cents == 20000
        assert invoice.amount_due_cents == 0
        assert invoice.paid_date is not None

    def test_partial_then_final_payment(self, db_session, account, make_invoice):
        invoice = make_invoice(account, 20000)

        _pay(account, (invoice, 5000))
        invoice = db_session.get(Invoice, invoice.id)
        assert invoice.payment_status == "PARTIALLY_PAID"
        assert invoice.amount_due_cents == 15000
        assert invoice.paid_date is None
        assert db_session.query(SalesOrder).count() == 0

        _pay(account, (invoice, 15000))
        invoice = db_session.get(Invoice, invoice.id)
        assert invoice.payment_status == "PAID"
        assert invoice.amount_due_cents == 0
        assert db_session.query(SalesOrder).filter_by(invoice_id=invoice.id).count() == 1

    def test_paid_within_one_cent(self, db_session, account, make_invoice):
        invoice = make_invoice(account, 20000)

        _pay(account, (invoice, 19999))

        invoice = db_session.get(Invoice, invoice.id)
        assert invoice.payment_status == "PAID"
        assert invoice.amount_due_cents == 1

    def test_one_payment_across_invoices(self, db_session, account, make_invoice):
        first = make_invoice(account, 10000)
        second = make_invoice(account, 30000)

        payment = _pay(account, (first, 10000), (second, 10000), amount_cents=25000)

        assert payment.amount_cents == 25000
        assert db_session.get(Invoice, first.id).payment_status == "PAID"
        assert db_session.get(Invoice, second.id).payment_status == "PARTIALLY_PAID"
        assert db_session.get(Invoice, second.id).amount_due_cents == 20000

    def test_unallocated_payment_is_recorded(self, db_session, account):
        payment = _pay(account, amount_cents=5000)
        assert payment.allocations == []
        assert db_session.query(Payment).count() == 1

    def test_status_never_regresses(self, db_session, account, make_invoice):
        invoice = make_invoice(account, 20000)
        invoice.payment_status = "PAID"
        db_session.commit()

        status, transitioned = payment_service.recompute_invoice_payment(invoice)

        assert status == "PAID"
        assert transitioned is False
        assert invoice.amount_paid_cents == 0
        assert invoice.amount_due_cents == 20000

    def test_recompute_is_idempotent(self, db_session, account, make_invoice):
        invoice = make_invoice(account, 20000)
        _pay(account, (invoice, 5000))
        _pay(account, (invoice, 15000))
        invoice = db_session.get(Invoice, invoice.id)

        first = payment_service.recompute_invoice_payment(invoice)
        snapshot = (invoice.amount_paid_cents, invoice.amount_due_cents, invoice.payment_status)
        second = payment_service.recompute_invoice_payment(invoice)

        assert first == second == ("PAID", False)
        assert (invoice.amount_paid_cents, invoice.amount_due_cents, invoice.payment_status) == snapshot
        assert snapshot == (20000, 0, "PAID")


class TestPaidTransition:

    def test_side_effects_run_once(self, db_session, account, make_invoice, make_product, warehouses,
                                   sales_user, monkeypatch):
        main, _annex = warehouses
        product = make_product(stock={main: 5})
        invoice = make_invoice(account, 22500, owner=sales_user, product=product, quantity=2, subtotal_cents=20000)

        calls = []
        real_deduct = payment_service.deduct_stock_for_invoice

        def counting_deduct(inv, user_id=None):
            calls.append(inv.id)
            return real_deduct(inv, user_id)

        monkeypatch.setattr(payment_service, "deduct_stock_for_invoice", counting_deduct)

        _pay(account, (invoice, 22500))
        _pay(account, (invoice, 100))

        assert calls == [invoice.id]
        assert get_total_available(product.id) == 3
        assert db_session.get(Invoice, invoice.id).stock_deducted is True
        assert db_session.query(SalesOrder).filter_by(invoice_id=invoice.id).count() == 1

        commissions = db_session.query(SalesCommission).filter_by(invoice_id=invoice.id).all()
        assert len(commissions) == 1
        assert commissions[0].user_id == sales_user.id
        assert commissions[0].base_amount_cents == 20000
        assert commissions[0].commission_cents == 1000

    def test_sales_order_mirrors_invoice(self, db_session, account, make_invoice, make_product, warehouses):
        main, _annex = warehouses
        product = make_product(name="Desk Lamp", stock={main: 5})
        invoice = make_invoice(account, 20000, product=product, quantity=2)

        _pay(account, (invoice, 20000))

        order = db_session.query(SalesOrder).one()
        assert order.number == "SO-000001"
        assert order.source == "INVOICE"
        assert order.account_id == account.id
        assert order.total_cents == 20000
        assert [(line.description, line.quantity) for line in order.lines] == [("Desk Lamp", 2)]

    def test_no_commission_without_owner_or_when_disabled(self, db_session, account, make_invoice, sales_user):
        unowned = make_invoice(account, 10000)
        _pay(account, (unowned, 10000))

        settings_service.set_setting(settings_service.COMMISSION_ENABLED, "false")
        db_session.commit()
        owned = make_invoice(account, 10000, owner=sales_user)
        _pay(account, (owned, 10000))

        assert db_session.query(SalesCommission).count() == 0

    def test_opportunity_marked_won(self, db_session, account, make_invoice):
        opportunity = Opportunity(name="Office fit-out", stage="QUOTE_SENT", account_id=account.id)
        db_session.add(opportunity)
        db_session.flush()
        quotation = Quotation(number="QT-T0001", status="SENT", total_cents=20000,
                              account_id=account.id, opportunity_id=opportunity.id)
        db_session.add(quotation)
        db_session.flush()
        invoice = make_invoice(account, 20000)
        invoice.quotation_id = quotation.id
        db_session.commit()

        _pay(account, (invoice, 20000))

        opportunity = db_session.get(Opportunity, opportunity.id)
        assert opportunity.stage == "WON"
        assert opportunity.value_cents == 20000
        assert opportunity.probability == 100
        assert opportunity.won_date is not None

    def test_stock_failure_does_not_block_payment(self, db_session, account, make_invoice, monkeypatch):
        invoice = make_invoice(account, 20000)

        def failing_deduct(inv, user_id=None):
            raise StockError("ledger offline")

        monkeypatch.setattr(payment_service, "deduct_stock_for_invoice", failing_deduct)

        payment = _pay(account, (invoice, 20000))

        assert payment.id is not None
        invoice = db_session.get(Invoice, invoice.id)
        assert invoice.payment_status == "PAID"
        assert invoice.stock_deducted is False

    def test_storefront_order_settles_end_to_end(self, db_session, warehouses, make_product):
        main, _annex = warehouses
        product = make_product(stock={main: 5})
        request = parse_checkout_request({
            "customer": {"name": "Ama Mensah", "email": "ama@example.com"},
            "shipping_address": "12 Ring Road",
        })
        cart = Cart.from_cookie(json.dumps({"items": [{"product_id": product.id, "quantity": 2}]}))
        placed = checkout_service.place_order(request, cart)
        buyer = db_session.query(Account).filter_by(email="ama@example.com").one()
        invoice = db_session.get(Invoice, placed["invoice_id"])

        _pay(buyer, (invoice, placed["total_cents"]), method="MOBILE_MONEY")

        assert db_session.get(EcommerceOrder, placed["id"]).payment_status == "PAID"
        item = db_session.query(StockItem).filter_by(product_id=product.id, warehouse_id=main.id).one()
        assert (item.quantity, item.reserved, item.available) == (3, 0, 3)
        # Checkout already created the sales order; the system user earns no commission
        assert db_session.query(SalesOrder).count() == 1
        assert db_session.query(SalesCommission).count() == 0

    def test_storefront_order_earns_no_commission_for_admin_owner(self, db_session, admin_user, warehouses,
                                                                  make_product):
        main, _annex = warehouses
        product = make_product(stock={main: 5})
        request = parse_checkout_request({
            "customer": {"name": "Kofi Boateng", "email": "kofi@example.com"},
            "shipping_address": "4 Oxford Street",
        })
        cart = Cart.from_cookie(json.dumps({"items": [{"product_id": product.id, "quantity": 1}]}))
        placed = checkout_service.place_order(request, cart)
        invoice = db_session.get(Invoice, placed["invoice_id"])
        assert invoice.owner_id == admin_user.id
        assert invoice.source == "ECOMMERCE"
        buyer = db_session.query(Account).filter_by(email="kofi@example.com").one()

        _pay(buyer, (invoice, placed["total_cents"]))

        assert db_session.get(Invoice, invoice.id).payment_status == "PAID"
        assert db_session.query(SalesCommission).count() == 0

    def test_reserved_units_survive_write_offs_until_paid(self, db_session, warehouses, make_product):
        main, _annex = warehouses
        product = make_product(stock={main: 5})
        request = parse_checkout_request({
            "customer": {"name": "Ama Mensah", "email": "ama@example.com"},
            "shipping_address": "12 Ring Road",
        })
        cart = Cart.from_cookie(json.dumps({"items": [{"product_id": product.id, "quantity": 5}]}))
        placed = checkout_service.place_order(request, cart)

        with pytest.raises(InsufficientStockError):
            stock_ledger_service.apply_movement(
                product_id=product.id, warehouse_id=main.id,
                movement_type=stock_ledger_service.MOVEMENT_DAMAGE, quantity=5,
            )

        buyer = db_session.query(Account).filter_by(email="ama@example.com").one()
        _pay(buyer, (db_session.get(Invoice, placed["invoice_id"]), placed["total_cents"]))

        invoice = db_session.get(Invoice, placed["invoice_id"])
        assert invoice.stock_deducted is True
        item = db_session.query(StockItem).filter_by(product_id=product.id, warehouse_id=main.id).one()
        assert (item.quantity, item.reserved, item.available) == (0, 0, 0)

    def test_notifications_and_activity(self, db_session, account, make_invoice):
        invoice = make_invoice(account, 20000)

        payment = _pay(account, (invoice, 5000))

        notes = db_session.query(Notification).filter_by(entity_type="invoice", entity_id=invoice.id).all()
        assert {n.channel for n in notes} == {"EMAIL", "SMS"}
        email = next(n for n in notes if n.channel == "EMAIL")
        assert email.subject == f"Payment Received - Invoice {invoice.number}"
        assert "Remaining Balance: GHS 150.00" in email.body

        activity = db_session.query(Activity).filter_by(entity_type="payment", entity_id=payment.id).one()
        assert activity.action == "payment_recorded"


class TestPaymentRejections:

    def test_invoice_of_another_account(self, db_session, account, make_invoice):
        other = Account(name="Kwame Boateng", type="INDIVIDUAL", email="kwame@example.com")
        db_session.add(other)
        db_session.commit()
        invoice = make_invoice(other, 20000)

        with pytest.raises(PaymentError, match="does not belong to this account"):
            _pay(account, (invoice, 20000))

        assert db_session.query(Payment).count() == 0
        assert db_session.get(Invoice, invoice.id).payment_status == "UNPAID"

    def test_missing_invoice(self, db_session, account, make_invoice):
        invoice = make_invoice(account, 20000)
        request = parse_payment_request({
            "account_id": account.id,
            "amount_cents": 30000,
            "method": "CASH",
            "invoice_allocations": [
                {"invoice_id": invoice.id, "amount_cents": 20000},
                {"invoice_id": 9999, "amount_cents": 10000},
            ],
        })

        with pytest.raises(PaymentNotFoundError, match="Invoice 9999 not found"):
            payment_service.record_payment(request)

        assert db_session.query(Payment).count() == 0
        assert db_session.get(Invoice, invoice.id).amount_paid_cents == 0
        assert db_session.query(OutboxEvent).count() == 0

    def test_missing_account(self, db_session):
        request = parse_payment_request({"account_id": 404, "amount_cents": 100, "method": "CASH"})
        with pytest.raises(PaymentNotFoundError, match="Account not found"):
            payment_service.record_payment(request)


class TestCreditNotes:

    def test_credit_counts_toward_paid(self, db_session, account, make_invoice):
        invoice = make_invoice(account, 20000)
        credit = CreditNote(number="CN-000001", account_id=account.id, amount_cents=8000, reason="Damaged item")
        db_session.add(credit)
        db_session.commit()

        payment_service.apply_credit_note(credit.id, invoice.id, 5000)
        invoice = db_session.get(Invoice, invoice.id)
        assert invoice.payment_status == "PARTIALLY_PAID"
        assert invoice.amount_paid_cents == 5000
        assert db_session.get(CreditNote, credit.id).remaining_cents == 3000

        _pay(account, (invoice, 15000))
        invoice = db_session.get(Invoice, invoice.id)
        assert invoice.payment_status == "PAID"
        assert invoice.amount_paid_cents == 20000

    def test_credit_cannot_exceed_remaining(self, db_session, account, make_invoice):
        invoice = make_invoice(account, 20000)
        credit = CreditNote(number="CN-000001", account_id=account.id, amount_cents=3000)
        db_session.add(credit)
        db_session.commit()

        with pytest.raises(PaymentError, match="3000 cents remaining"):
            payment_service.apply_credit_note(credit.id, invoice.id, 5000)

    def test_unknown_credit_note(self, db_session, account, make_invoice):
        invoice = make_invoice(account, 20000)
        with pytest.raises(PaymentNotFoundError):
            payment_service.apply_credit_note(999, invoice.id, 100)


class TestPaymentRoutes:

    def test_requires_auth(self, client, db_session):
        resp = client.post("/api/payments", json={})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Authentication required"

    def test_record_payment(self, client, account, make_invoice, sales_user, sales_headers):
        invoice = make_invoice(account, 20000)

        resp = client.post("/api/payments", headers=sales_headers, json={
            "account_id": account.id,
            "amount": "200.00",
            "method": "mobile_money",
            "reference": "MOMO-8812",
            "invoice_allocations": [{"invoice_id": invoice.id, "amount": 200}],
        })

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["amount_cents"] == 20000
        assert body["method"] == "MOBILE_MONEY"
        assert body["receiver"]["id"] == sales_user.id
        assert body["account"]["name"] == "Ama Mensah"
        assert body["allocations"][0]["invoice"]["number"] == invoice.number

    def test_validation_errors(self, client, account, sales_headers):
        resp = client.post("/api/payments", headers=sales_headers, json={"account_id": account.id})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Account ID, amount, and payment method are required"

        resp = client.post("/api/payments", headers=sales_headers, json={
            "account_id": account.id, "amount_cents": 100, "method": "CASH",
            "invoice_allocations": [{"invoice_id": 1, "amount_cents": 500}],
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Total allocated amount cannot exceed payment amount"

    def test_unknown_account_is_404(self, client, db_session, sales_headers):
        resp = client.post("/api/payments", headers=sales_headers, json={
            "account_id": 404, "amount_cents": 100, "method": "CASH",
        })
        assert resp.status_code == 404

    def test_list_and_get(self, client, account, make_invoice, sales_headers):
        first = make_invoice(account, 20000)
        second = make_invoice(account, 10000)
        _pay(account, (first, 5000))
        _pay(account, (second, 10000), method="CARD")

        resp = client.get("/api/payments", headers=sales_headers)
        body = resp.get_json()
        assert body["pagination"]["total"] == 2
        assert [p["number"] for p in body["payments"]] == ["PAY-000002", "PAY-000001"]

        resp = client.get(f"/api/payments?invoice_id={first.id}", headers=sales_headers)
        assert [p["number"] for p in resp.get_json()["payments"]] == ["PAY-000001"]

        resp = client.get("/api/payments?method=card", headers=sales_headers)
        assert [p["number"] for p in resp.get_json()["payments"]] == ["PAY-000002"]

        payment_id = body["payments"][0]["id"]
        assert client.get(f"/api/payments/{payment_id}", headers=sales_headers).get_json()["number"] == "PAY-000002"
        assert client.get("/api/payments/9999", headers=sales_headers).status_code == 404

    def test_apply_credit_note(self, client, account, make_invoice, db_session, sales_headers):
        invoice = make_invoice(account, 5000)
        credit = CreditNote(number="CN-000001", account_id=account.id, amount_cents=5000)
        db_session.add(credit)
        db_session.commit()

        resp = client.post(f"/api/credit-notes/{credit.id}/apply", headers=sales_headers,
                           json={"invoice_id": invoice.id, "amount_cents": 5000})

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["application"]["amount_cents"] == 5000
        assert body["invoice"]["payment_status"] == "PAID"

        resp = client.post(f"/api/credit-notes/{credit.id}/apply", headers=sales_headers, json={})
        assert resp.status_code == 400
