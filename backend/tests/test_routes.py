"""
Back-office API routes: authentication, catalog, stock ledger, documents.
"""

import io

from conftest import auth_headers

from storedesk.models import Opportunity, Quotation, StockMovement, User
from storedesk.services import payment_service
from storedesk.validation import parse_payment_request


class TestAuthentication:

    def test_missing_token(self, client, db_session):
        resp = client.get("/api/products")
        assert resp.status_code == 401
        assert resp.get_json() == {"error": "Authentication required"}

    def test_unknown_token(self, client, db_session):
        resp = client.get("/api/products", headers=auth_headers("nope"))
        assert resp.status_code == 401
        assert resp.get_json() == {"error": "Invalid or expired token"}

    def test_deactivated_user(self, client, db_session):
        db_session.add(User(name="Gone", email="gone@test.local", role="ADMIN", api_token="gone", is_active=False))
        db_session.commit()
        resp = client.get("/api/products", headers=auth_headers("gone"))
        assert resp.status_code == 401

    def test_role_required(self, client, sales_headers):
        resp = client.post("/api/products", headers=sales_headers, json={"name": "Lamp", "price_cents": 100})
        assert resp.status_code == 403
        assert resp.get_json()["required_roles"] == ["ADMIN"]


class TestProducts:

    def test_create_and_list(self, client, admin_headers):
        resp = client.post("/api/products", headers=admin_headers, json={
            "sku": "LAMP-01", "name": "Desk Lamp", "price_cents": 12000, "base_currency": "usd",
        })
        assert resp.status_code == 201
        created = resp.get_json()
        assert created["base_currency"] == "USD"

        body = client.get("/api/products", headers=admin_headers).get_json()
        assert body["count"] == 1
        assert body["items"][0]["stock"] == {"quantity": 0, "reserved": 0, "available": 0}

    def test_duplicate_sku_conflicts(self, client, admin_headers):
        payload = {"sku": "LAMP-01", "name": "Desk Lamp", "price_cents": 12000}
        client.post("/api/products", headers=admin_headers, json=payload)
        resp = client.post("/api/products", headers=admin_headers, json=payload)
        assert resp.status_code == 409

    def test_validation(self, client, admin_headers):
        resp = client.post("/api/products", headers=admin_headers, json={"name": "Lamp"})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Missing required fields: price_cents"

        resp = client.post("/api/products", headers=admin_headers, json={"name": "Lamp", "price_cents": -1})
        assert resp.status_code == 400

        resp = client.post("/api/products", headers=admin_headers, json={"name": "Lamp", "price_cents": 1, "cost": 2})
        assert resp.get_json()["error"] == "Field not allowed: cost"

    def test_update_and_delete(self, client, admin_headers, make_product):
        product = make_product(name="Lamp")

        resp = client.put(f"/api/products/{product.id}", headers=admin_headers, json={"price_cents": "15000"})
        assert resp.status_code == 200
        assert resp.get_json()["price_cents"] == 15000

        assert client.delete(f"/api/products/{product.id}", headers=admin_headers).status_code == 200
        assert client.delete(f"/api/products/{product.id}", headers=admin_headers).status_code == 404

    def test_invoiced_product_cannot_be_deleted(self, client, admin_headers, make_product, make_invoice, account):
        product = make_product()
        make_invoice(account, 10000, product=product)
        resp = client.delete(f"/api/products/{product.id}", headers=admin_headers)
        assert resp.status_code == 409


class TestWarehousesAndRates:

    def test_warehouses(self, client, admin_headers, warehouses):
        body = client.get("/api/warehouses", headers=admin_headers).get_json()
        assert [w["code"] for w in body["items"]] == ["ANNEX", "MAIN"]

        resp = client.post("/api/warehouses", headers=admin_headers, json={"name": "Depot", "code": "main"})
        assert resp.status_code == 409

        resp = client.post("/api/warehouses", headers=admin_headers, json={"name": "Depot", "code": "depot"})
        assert resp.status_code == 201
        assert resp.get_json()["code"] == "DEPOT"

    def test_exchange_rate_and_convert(self, client, admin_headers):
        resp = client.post("/api/exchange-rates", headers=admin_headers, json={
            "from_currency": "USD", "to_currency": "GHS", "rate": "15.20",
        })
        assert resp.status_code == 201
        assert resp.get_json()["source"] == "manual"

        resp = client.get("/api/exchange-rates/convert?from=USD&to=GHS&amount_cents=1000", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["converted_cents"] == 15200

    def test_invalid_rate(self, client, admin_headers):
        resp = client.post("/api/exchange-rates", headers=admin_headers, json={
            "from_currency": "USD", "to_currency": "GHS", "rate": "-1",
        })
        assert resp.status_code == 400

    def test_convert_requires_amount(self, client, admin_headers):
        resp = client.get("/api/exchange-rates/convert?from=USD&to=GHS", headers=admin_headers)
        assert resp.status_code == 400


class TestStockRoutes:

    def test_json_movement(self, client, sales_headers, warehouses, make_product):
        main, _annex = warehouses
        product = make_product()

        resp = client.post("/api/stock/movements", headers=sales_headers, json={
            "product_id": product.id, "warehouse_id": main.id, "type": "receipt",
            "quantity": 10, "unit_cost_cents": 500, "reference": "GRN-1",
        })

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["type"] == "RECEIPT"
        assert body["quantity"] == 10
        assert body["attachments"] == []

    def test_multipart_movement_with_grn(self, client, sales_headers, warehouses, make_product):
        main, _annex = warehouses
        product = make_product()

        resp = client.post(
            "/api/stock/movements",
            headers=sales_headers,
            data={
                "product_id": str(product.id),
                "warehouse_id": str(main.id),
                "type": "RECEIPT",
                "quantity": "4",
                "grn_file": (io.BytesIO(b"%PDF-1.4"), "delivery note.pdf"),
            },
            content_type="multipart/form-data",
        )

        assert resp.status_code == 201
        attachments = resp.get_json()["attachments"]
        assert len(attachments) == 1
        assert attachments[0].endswith("delivery_note.pdf")

    def test_movement_errors(self, client, sales_headers, warehouses, make_product):
        main, _annex = warehouses
        product = make_product(stock={main: 1})

        resp = client.post("/api/stock/movements", headers=sales_headers, json={"warehouse_id": main.id})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "product_id is required"

        resp = client.post("/api/stock/movements", headers=sales_headers, json={
            "product_id": product.id, "warehouse_id": 999, "type": "RECEIPT", "quantity": 1,
        })
        assert resp.status_code == 404

        resp = client.post("/api/stock/movements", headers=sales_headers, json={
            "product_id": product.id, "warehouse_id": main.id, "type": "SALE", "quantity": 5,
        })
        assert resp.status_code == 400

    def test_transfer_and_levels(self, client, sales_headers, warehouses, make_product):
        main, annex = warehouses
        product = make_product(stock={main: 6})

        resp = client.post("/api/stock/transfers", headers=sales_headers, json={
            "product_id": product.id, "from_warehouse_id": main.id, "to_warehouse_id": annex.id, "quantity": 2,
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["out"]["quantity"] == -2
        assert body["in"]["quantity"] == 2
        assert body["out"]["linked_movement_id"] == body["in"]["id"]

        levels = client.get(f"/api/stock/products/{product.id}", headers=sales_headers).get_json()
        assert [(i["warehouse_id"], i["quantity"]) for i in levels["items"]] == [(main.id, 4), (annex.id, 2)]
        assert levels["totals"]["quantity"] == 6

        assert client.get("/api/stock/products/9999", headers=sales_headers).status_code == 404

    def test_movement_history(self, client, sales_headers, warehouses, make_product, db_session):
        main, _annex = warehouses
        product = make_product(stock={main: 3})

        body = client.get(f"/api/stock/movements?product_id={product.id}", headers=sales_headers).get_json()
        assert body["pagination"]["total"] == 1
        assert body["movements"][0]["reference"] == "OPENING"

        resp = client.get("/api/stock/movements?product_id=abc", headers=sales_headers)
        assert resp.status_code == 400
        assert db_session.query(StockMovement).count() == 1


class TestDocumentRoutes:

    def test_invoice_detail_and_index(self, client, sales_headers, account, make_invoice):
        invoice = make_invoice(account, 20000)
        payment_service.record_payment(parse_payment_request({
            "account_id": account.id, "amount_cents": 20000, "method": "CASH",
            "invoice_allocations": [{"invoice_id": invoice.id, "amount_cents": 20000}],
        }))

        detail = client.get(f"/api/invoices/{invoice.id}", headers=sales_headers).get_json()
        assert detail["payment_status"] == "PAID"
        assert detail["allocations"][0]["payment_number"] == "PAY-000001"
        assert detail["sales_order"]["number"] == "SO-000001"

        index = client.get(f"/api/documents?account_id={account.id}", headers=sales_headers).get_json()
        assert {row["type"] for row in index["items"]} == {"INVOICES", "SALES_ORDERS", "PAYMENTS"}

        one = client.get(f"/api/documents/invoices/{invoice.id}", headers=sales_headers).get_json()
        assert one["number"] == invoice.number

    def test_document_errors(self, client, sales_headers):
        assert client.get("/api/invoices/999", headers=sales_headers).status_code == 404
        assert client.get("/api/documents/invoices/999", headers=sales_headers).status_code == 404
        assert client.get("/api/documents?type=receipts", headers=sales_headers).status_code == 400
        assert client.get("/api/documents/receipts/1", headers=sales_headers).status_code == 400

    def test_link_quotation_opportunity(self, client, sales_headers, db_session, account):
        opportunity = Opportunity(name="Office fit-out", stage="DRAFT", account_id=account.id)
        quotation = Quotation(number="QT-T0001", status="SENT", account_id=account.id)
        db_session.add_all([opportunity, quotation])
        db_session.commit()

        resp = client.post(f"/api/quotations/{quotation.id}/opportunity", headers=sales_headers,
                           json={"opportunity_id": opportunity.id})

        assert resp.status_code == 200
        assert resp.get_json()["opportunity_id"] == opportunity.id
        assert db_session.get(Opportunity, opportunity.id).stage == "QUOTE_SENT"

        resp = client.post(f"/api/quotations/{quotation.id}/opportunity", headers=sales_headers, json={})
        assert resp.status_code == 400
