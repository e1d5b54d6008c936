"""
Tests for checkout and payment confirmation.

Tests: order creation (repricing, stock checks, pay-on-delivery), the signed
Paystack webhook, the manual verification endpoint and order history.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import hashlib
import hmac
import json

import pytest
from sqlalchemy import select

from config import settings
from db_models import Cart, Order, OrderItem
from exceptions import PaystackError


def _sign(body: bytes) -> str:
    return hmac.new(settings.paystack_secret_key.encode("utf-8"), body, hashlib.sha512).hexdigest()


async def _card_order(client, headers, shipping_info, product, *, quantity=2, price=None):
    r = await client.post(
        "/api/create-order",
        json={
            "shippingInfo": shipping_info,
            "items": [{"productId": product.id, "quantity": quantity, "price": price or product.price}],
        },
        headers=headers,
    )
    assert r.status_code == 201, r.text
    return r.json()["data"]


async def _reload(db_session, order_id) -> Order:
    from services import order_service
    return await order_service.get_order(db_session, order_id)


class TestCreateOrder:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_charged_total_follows_live_prices(
        self, client, db_session, mock_paystack, sample_user, sample_product, shipping_info, auth_header
    ):
        headers = {**auth_header(sample_user, "user"), "Origin": "https://shop.example"}
        data = await _card_order(client, headers, shipping_info, sample_product, quantity=2, price=2000)

        assert data["hasPriceChanges"] is True
        assert data["totalAmount"] == 5000.0
        assert data["paymentRequired"] is True
        assert data["authorizationUrl"] == "https://checkout.paystack.com/abc123"
        assert data["message"] == "Order created with updated prices"

        kwargs = mock_paystack["initialize_transaction"].call_args.kwargs
        assert kwargs["amount_kobo"] == 500000
        assert kwargs["email"] == "ada@example.com"
        assert kwargs["reference"].startswith(f"order_{data['orderId']}_")
        assert kwargs["callback_url"] == f"https://shop.example/payment-verify?orderId={data['orderId']}"

        order = await _reload(db_session, data["orderId"])
        assert order.payment_status == "pending"
        assert order.total_amount == 5000.0
        assert order.paystack_reference == data["reference"]
        assert order.items[0].seller_id == sample_product.seller_id
        assert order.items[0].price == 2500.0

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_card_order_keeps_cart_until_paid(
        self, client, db_session, mock_paystack, sample_user, sample_product, shipping_info, auth_header
    ):
        headers = auth_header(sample_user, "user")
        await client.post("/api/cart/add", json={"productId": sample_product.id, "quantity": 2}, headers=headers)

        r = await client.post("/api/create-order", json={"shippingInfo": shipping_info}, headers=headers)
        assert r.status_code == 201
        assert r.json()["data"]["totalAmount"] == 5000.0
        assert r.json()["data"]["hasPriceChanges"] is False

        res = await db_session.execute(select(Cart).where(Cart.user_id == sample_user.id))
        assert res.scalar_one_or_none() is not None

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_guest_requires_session(self, client, mock_paystack, sample_product, shipping_info):
        r = await client.post(
            "/api/create-order",
            json={"shippingInfo": shipping_info, "items": [{"productId": sample_product.id, "quantity": 1}]},
        )
        assert r.status_code == 400
        assert "Session ID required" in r.json()["error"]["message"]

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_missing_shipping_fields(self, client, sample_product, shipping_info):
        del shipping_info["city"]
        r = await client.post(
            "/api/create-order",
            json={"shippingInfo": shipping_info, "sessionId": "g", "items": [{"productId": sample_product.id}]},
        )
        assert r.status_code == 400

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_stock_and_missing_product_block_order(self, client, db_session, mock_paystack, sample_product, shipping_info):
        r = await client.post(
            "/api/create-order",
            json={"shippingInfo": shipping_info, "sessionId": "g", "items": [{"productId": sample_product.id, "quantity": 6}]},
        )
        assert r.status_code == 400
        assert r.json()["error"]["message"] == "Insufficient stock for Ankara Shirt. Available: 5"

        r = await client.post(
            "/api/create-order",
            json={"shippingInfo": shipping_info, "sessionId": "g", "items": [{"productId": 999, "quantity": 1}]},
        )
        assert r.status_code == 404
        mock_paystack["initialize_transaction"].assert_not_called()

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_repeated_lines_count_against_stock_together(
        self, client, db_session, mock_paystack, sample_product, shipping_info
    ):
        r = await client.post(
            "/api/create-order",
            json={
                "shippingInfo": shipping_info,
                "sessionId": "g",
                "paymentMethod": "pay_on_delivery",
                "items": [
                    {"productId": sample_product.id, "quantity": 3},
                    {"productId": sample_product.id, "quantity": 3},
                ],
            },
        )
        assert r.status_code == 400
        assert r.json()["error"]["message"] == "Insufficient stock for Ankara Shirt. Available: 5"

        res = await db_session.execute(select(Order))
        assert res.scalars().all() == []
        await db_session.refresh(sample_product)
        assert sample_product.stock == 5
        assert sample_product.sales == 0

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_empty_cart_without_items(self, client, shipping_info):
        r = await client.post("/api/create-order", json={"shippingInfo": shipping_info, "sessionId": "g"})
        assert r.status_code == 400

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_amount_below_one_naira(self, client, mock_paystack, sample_seller, make_product, shipping_info):
        cheap = await make_product(sample_seller, price=0.5)
        r = await client.post(
            "/api/create-order",
            json={"shippingInfo": shipping_info, "sessionId": "g", "items": [{"productId": cheap.id, "quantity": 1}]},
        )
        assert r.status_code == 400
        assert r.json()["error"]["message"] == "Amount must be at least ₦1"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_gateway_failure_is_5xx(self, client, mock_paystack, sample_product, shipping_info):
        mock_paystack["initialize_transaction"].side_effect = PaystackError("Invalid key", status_code=401)
        r = await client.post(
            "/api/create-order",
            json={"shippingInfo": shipping_info, "sessionId": "g", "items": [{"productId": sample_product.id}]},
        )
        assert r.status_code == 502
        assert "Invalid key" in r.json()["error"]["message"]

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_pay_on_delivery_goes_straight_to_hold(
        self, client, db_session, mock_paystack, sample_product, shipping_info
    ):
        await client.post("/api/cart/add", json={"productId": sample_product.id, "quantity": 2, "sessionId": "g"})

        r = await client.post(
            "/api/create-order",
            json={"shippingInfo": shipping_info, "sessionId": "g", "paymentMethod": "pay_on_delivery"},
        )
        assert r.status_code == 201
        data = r.json()["data"]
        assert data["paymentRequired"] is False
        assert data["paymentStatus"] == "hold"
        mock_paystack["initialize_transaction"].assert_not_called()

        order = await _reload(db_session, data["orderId"])
        assert order.session_id == "g"
        assert order.payment_confirmed_at is not None
        assert order.items[0].product.stock == 3
        assert order.items[0].product.sales == 2

        res = await db_session.execute(select(Cart))
        assert res.scalars().all() == []


class TestWebhook:

    async def _pending(self, client, mock_paystack, user, product, shipping_info, auth_header):
        data = await _card_order(client, auth_header(user, "user"), shipping_info, product)
        mock_paystack["verify_transaction"].return_value = {
            "status": "success",
            "reference": data["reference"],
            "amount": 500000,
        }
        return data

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_bad_signature_rejected_before_any_change(
        self, client, db_session, mock_paystack, sample_user, sample_product, shipping_info, auth_header
    ):
        data = await self._pending(client, mock_paystack, sample_user, sample_product, shipping_info, auth_header)
        body = json.dumps({"event": "charge.success", "data": {"reference": data["reference"]}}).encode()

        for headers in ({"x-paystack-signature": "0" * 128}, {}):
            r = await client.post("/api/webhook/paystack", content=body, headers=headers)
            assert r.status_code == 401

        mock_paystack["verify_transaction"].assert_not_called()
        assert (await _reload(db_session, data["orderId"])).payment_status == "pending"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_unset_secret_fails_closed(self, client, monkeypatch):
        body = b'{"event": "charge.success", "data": {}}'
        sig = _sign(body)
        monkeypatch.setattr(settings, "paystack_secret_key", "")
        r = await client.post("/api/webhook/paystack", content=body, headers={"x-paystack-signature": sig})
        assert r.status_code == 401

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_charge_success_moves_order_to_hold(
        self, client, db_session, mock_paystack, sample_user, sample_product, shipping_info, auth_header
    ):
        headers = auth_header(sample_user, "user")
        await client.post("/api/cart/add", json={"productId": sample_product.id, "quantity": 1}, headers=headers)
        data = await self._pending(client, mock_paystack, sample_user, sample_product, shipping_info, auth_header)

        body = json.dumps({"event": "charge.success", "data": {"reference": data["reference"]}}).encode()
        r = await client.post("/api/webhook/paystack", content=body, headers={"x-paystack-signature": _sign(body)})
        assert r.status_code == 200
        assert r.json()["data"]["status"] == "hold"

        order = await _reload(db_session, data["orderId"])
        assert order.payment_status == "hold"
        assert order.payment_confirmed_at is not None
        assert order.items[0].product.stock == 3
        res = await db_session.execute(select(Cart).where(Cart.user_id == sample_user.id))
        assert res.scalar_one_or_none() is None

        # Redelivery is acknowledged without touching the gateway again
        r = await client.post("/api/webhook/paystack", content=body, headers={"x-paystack-signature": _sign(body)})
        assert r.status_code == 200
        assert r.json()["data"]["reason"] == "already_processed"
        assert mock_paystack["verify_transaction"].call_count == 1

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_other_events_are_acknowledged(self, client, mock_paystack):
        body = json.dumps({"event": "transfer.success", "data": {"reference": "x"}}).encode()
        r = await client.post("/api/webhook/paystack", content=body, headers={"x-paystack-signature": _sign(body)})
        assert r.status_code == 200
        assert r.json()["data"]["status"] == "ignored"

        body = json.dumps({"event": "charge.success", "data": {"reference": "unknown"}}).encode()
        r = await client.post("/api/webhook/paystack", content=body, headers={"x-paystack-signature": _sign(body)})
        assert r.status_code == 200
        assert r.json()["data"]["reason"] == "unknown_order"
        mock_paystack["verify_transaction"].assert_not_called()

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_signed_body_that_is_not_an_object(self, client, mock_paystack):
        for body in (b"[]", b'{"event": "charge.success", "data": ["ref"]}'):
            r = await client.post("/api/webhook/paystack", content=body, headers={"x-paystack-signature": _sign(body)})
            assert r.status_code == 500
            assert r.json()["error"]["message"] == "Webhook processing failed"
        mock_paystack["verify_transaction"].assert_not_called()

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_failed_verification_is_500(
        self, client, db_session, mock_paystack, sample_user, sample_product, shipping_info, auth_header
    ):
        data = await self._pending(client, mock_paystack, sample_user, sample_product, shipping_info, auth_header)
        mock_paystack["verify_transaction"].return_value = {"status": "failed", "reference": data["reference"]}

        body = json.dumps({"event": "charge.success", "data": {"reference": data["reference"]}}).encode()
        r = await client.post("/api/webhook/paystack", content=body, headers={"x-paystack-signature": _sign(body)})
        assert r.status_code == 500
        assert r.json()["error"]["message"] == "Webhook processing failed"
        assert (await _reload(db_session, data["orderId"])).payment_status == "pending"


class TestManualVerification:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_parameter_validation(self, client):
        r = await client.get("/api/verify-payment-handler", params={"reference": "x"})
        assert r.status_code == 400
        r = await client.get("/api/verify-payment-handler", params={"reference": "x", "orderId": "abc"})
        assert r.status_code == 400
        assert r.json()["error"]["message"] == "Invalid order ID format"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_verify_is_idempotent(
        self, client, db_session, mock_paystack, sample_user, sample_product, shipping_info, auth_header
    ):
        data = await _card_order(client, auth_header(sample_user, "user"), shipping_info, sample_product)
        mock_paystack["verify_transaction"].return_value = {
            "status": "success",
            "reference": data["reference"],
            "amount": 500000,
        }
        params = {"reference": data["reference"], "orderId": str(data["orderId"])}

        for _ in range(2):
            r = await client.get("/api/verify-payment-handler", params=params)
            assert r.status_code == 200
            order = r.json()["data"]["order"]
            assert order["payment_status"] == "hold"
            assert order["items"][0]["product"]["title"] == "Ankara Shirt"

        # Stock taken once
        assert (await _reload(db_session, data["orderId"])).items[0].product.stock == 3

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_mismatches_are_rejected(
        self, client, db_session, mock_paystack, sample_user, sample_product, shipping_info, auth_header
    ):
        data = await _card_order(client, auth_header(sample_user, "user"), shipping_info, sample_product)
        params = {"reference": "order_other_ref", "orderId": str(data["orderId"])}
        mock_paystack["verify_transaction"].return_value = {"status": "success", "amount": 500000}
        r = await client.get("/api/verify-payment-handler", params=params)
        assert r.status_code == 400
        assert r.json()["error"]["message"] == "Payment reference mismatch"

        params["reference"] = data["reference"]
        mock_paystack["verify_transaction"].return_value = {"status": "success", "amount": 100}
        r = await client.get("/api/verify-payment-handler", params=params)
        assert r.status_code == 400
        assert r.json()["error"]["message"] == "Payment amount mismatch"

        mock_paystack["verify_transaction"].side_effect = PaystackError("Transaction reference not found", status_code=400)
        r = await client.get("/api/verify-payment-handler", params=params)
        assert r.status_code == 400

        r = await client.get("/api/verify-payment-handler", params={"reference": data["reference"], "orderId": "999"})
        assert r.status_code == 400

        assert (await _reload(db_session, data["orderId"])).payment_status == "pending"


class TestOrderHistory:

    async def _two_seller_order(self, db_session, user, sample_product, other_product) -> Order:
        order = Order(
            user_id=user.id,
            shipping_info="{}",
            total_amount=3500.0,
            payment_status="hold",
            items=[
                OrderItem(product_id=sample_product.id, seller_id=sample_product.seller_id, quantity=1, price=2500.0),
                OrderItem(product_id=other_product.id, seller_id=other_product.seller_id, quantity=1, price=1000.0),
            ],
        )
        db_session.add(order)
        await db_session.commit()
        return order

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_listing_per_role(
        self, client, db_session, sample_user, sample_seller, unpaid_seller, sample_product, other_product, auth_header
    ):
        order = await self._two_seller_order(db_session, sample_user, sample_product, other_product)

        r = await client.get("/api/orders", headers=auth_header(sample_user, "user"))
        assert [o["id"] for o in r.json()["data"]] == [order.id]
        assert len(r.json()["data"][0]["items"]) == 2

        r = await client.get("/api/orders", headers=auth_header(sample_seller, "seller"))
        items = r.json()["data"][0]["items"]
        assert [i["seller_id"] for i in items] == [sample_seller.id]

        r = await client.get("/api/orders", headers=auth_header(unpaid_seller, "seller"))
        assert r.json()["data"] == []

        r = await client.get("/api/orders")
        assert r.status_code == 401

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_detail_access(
        self, client, db_session, sample_user, admin_user, unpaid_seller, sample_seller,
        sample_product, other_product, auth_header,
    ):
        order = await self._two_seller_order(db_session, sample_user, sample_product, other_product)
        path = f"/api/orders/{order.id}"

        assert (await client.get(path, headers=auth_header(sample_user, "user"))).status_code == 200
        assert (await client.get(path, headers=auth_header(admin_user, "user"))).status_code == 200
        assert (await client.get(path, headers=auth_header(sample_seller, "seller"))).status_code == 200
        assert (await client.get(path, headers=auth_header(unpaid_seller, "seller"))).status_code == 403
        assert (await client.get("/api/orders/999", headers=auth_header(sample_user, "user"))).status_code == 404
