"""Cookie cart: parsing, service operations, and the /api/shop/cart endpoints."""

import json

import pytest

from storedesk.models import AbandonedCart
from storedesk.services import cart_service, settings_service
from storedesk.services.cart_service import Cart, CartError, CartNotFoundError, CartStockError


class TestCartCookie:

    def test_malformed_cookie_is_empty_cart(self):
        assert Cart.from_cookie("not json").is_empty
        assert Cart.from_cookie(json.dumps(["x"])).is_empty
        assert Cart.from_cookie(None).is_empty

    def test_bad_items_dropped_and_duplicates_merged(self):
        raw = json.dumps({"items": [
            {"product_id": 1, "quantity": 2},
            {"product_id": "1", "quantity": "3"},
            {"product_id": 2, "quantity": 0},
            {"product_id": True, "quantity": 1},
            "junk",
        ]})
        cart = Cart.from_cookie(raw)
        assert [(i.product_id, i.quantity) for i in cart.items] == [(1, 5)]

    def test_round_trip(self):
        cart = Cart.from_cookie(json.dumps({"items": [{"product_id": 4, "quantity": 2}]}))
        assert json.loads(cart.to_cookie()) == {"items": [{"product_id": 4, "quantity": 2}]}


class TestCartService:

    def test_add_merges_and_clamps_to_stock(self, db_session, warehouses, make_product):
        main, _annex = warehouses
        product = make_product(stock={main: 5})
        cart = Cart()

        cart_service.add_item(cart, product.id, 3)
        cart_service.add_item(cart, product.id, 4)

        assert cart.find(product.id).quantity == 5

    def test_add_insufficient_stock(self, db_session, warehouses, make_product):
        main, _annex = warehouses
        product = make_product(stock={main: 2})

        with pytest.raises(CartStockError) as exc:
            cart_service.add_item(Cart(), product.id, 3)
        assert exc.value.available == 2

    def test_add_inactive_product(self, db_session, warehouses, make_product):
        main, _annex = warehouses
        product = make_product(stock={main: 2})
        product.is_active = False
        db_session.commit()

        with pytest.raises(CartNotFoundError):
            cart_service.add_item(Cart(), product.id, 1)

    def test_add_invalid_quantity(self, db_session, warehouses, make_product):
        product = make_product()
        with pytest.raises(CartError):
            cart_service.add_item(Cart(), product.id, 0)

    def test_update_to_zero_removes(self, db_session, warehouses, make_product):
        main, _annex = warehouses
        product = make_product(stock={main: 5})
        cart = cart_service.add_item(Cart(), product.id, 2)

        cart_service.update_item(cart, product.id, 0)
        assert cart.is_empty

    def test_price_cart_with_tax(self, db_session, warehouses, make_product):
        main, _annex = warehouses
        product = make_product(price_cents=10000, stock={main: 5})
        cart = cart_service.add_item(Cart(), product.id, 1)

        pricing = cart_service.price_cart(cart)

        assert pricing["subtotal_cents"] == 10000
        assert pricing["tax_cents"] == 1250
        assert pricing["total_cents"] == 11250
        assert pricing["currency"] == "GHS"
        assert pricing["item_count"] == 1
        assert pricing["cleaned"] is False

    def test_price_cart_respects_tax_setting(self, db_session, warehouses, make_product):
        main, _annex = warehouses
        product = make_product(price_cents=10000, stock={main: 5})
        settings_service.set_setting(settings_service.TAX_RATE, "0")
        db_session.commit()

        pricing = cart_service.price_cart(cart_service.add_item(Cart(), product.id, 2))
        assert pricing["tax_cents"] == 0
        assert pricing["total_cents"] == 20000

    def test_price_cart_drops_vanished_products(self, db_session, warehouses, make_product):
        main, _annex = warehouses
        product = make_product(stock={main: 5})
        cart = Cart.from_cookie(json.dumps({"items": [
            {"product_id": product.id, "quantity": 9},
            {"product_id": 9999, "quantity": 1},
        ]}))

        pricing = cart_service.price_cart(cart)

        assert pricing["cleaned"] is True
        assert [(i.product_id, i.quantity) for i in cart.items] == [(product.id, 5)]


class TestCartRoutes:

    def test_empty_cart(self, client, db_session):
        resp = client.get("/api/shop/cart")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["items"] == []
        assert body["total_cents"] == 0
        assert client.get_cookie(cart_service.CART_SESSION_COOKIE) is not None

    def test_add_sets_cookies_and_tracks_snapshot(self, client, db_session, warehouses, make_product):
        main, _annex = warehouses
        product = make_product(price_cents=10000, stock={main: 5})

        resp = client.post("/api/shop/cart", json={"product_id": product.id, "quantity": 2})

        assert resp.status_code == 200
        body = resp.get_json()
        cart_id = body["cart_id"]
        assert body["subtotal_cents"] == 20000
        assert client.get_cookie(cart_service.CART_SESSION_COOKIE).decoded_value == cart_id
        stored = json.loads(client.get_cookie(cart_service.cart_cookie_name(cart_id)).decoded_value)
        assert stored == {"items": [{"product_id": product.id, "quantity": 2}]}

        snapshot = db_session.query(AbandonedCart).filter_by(cart_session_id=cart_id).one()
        assert snapshot.total_cents == 22500
        assert snapshot.converted_to_order is False

        # Same cart is reused on the next request
        resp = client.get("/api/shop/cart")
        assert resp.get_json()["cart_id"] == cart_id
        assert resp.get_json()["item_count"] == 2

    def test_add_unknown_product(self, client, db_session):
        resp = client.post("/api/shop/cart", json={"product_id": 4242})
        assert resp.status_code == 404

    def test_add_over_stock(self, client, db_session, warehouses, make_product):
        main, _annex = warehouses
        product = make_product(stock={main: 1})

        resp = client.post("/api/shop/cart", json={"product_id": product.id, "quantity": 2})
        assert resp.status_code == 400
        assert resp.get_json()["available"] == 1

    def test_update_and_remove(self, client, db_session, warehouses, make_product):
        main, _annex = warehouses
        first = make_product(stock={main: 5})
        second = make_product(name="Gadget", stock={main: 5})
        client.post("/api/shop/cart", json={"product_id": first.id, "quantity": 1})
        client.post("/api/shop/cart", json={"product_id": second.id, "quantity": 1})

        resp = client.put("/api/shop/cart", json={"product_id": first.id, "quantity": 3})
        assert {i["product_id"]: i["quantity"] for i in resp.get_json()["items"]} == {first.id: 3, second.id: 1}

        resp = client.delete(f"/api/shop/cart?product_id={second.id}")
        assert [i["product_id"] for i in resp.get_json()["items"]] == [first.id]

        resp = client.delete("/api/shop/cart")
        assert resp.get_json()["items"] == []
