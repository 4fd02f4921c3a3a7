"""
test_orders.py
==============
Checkout, manual payment confirmation and admin status changes.
"""

from datetime import datetime, timedelta, timezone

import pytest

import models
from conftest import SHIPPING_INFO, FakeNotifier, auth_headers
from main import app
from notifications import get_notification_service


@pytest.fixture
def saree(make_product):
    return make_product()


def order_payload(product, quantity=1, **overrides):
    payload = {
        "items": [{"productId": product.id, "quantity": quantity, "size": "Free Size"}],
        "shippingInfo": dict(SHIPPING_INFO),
        "paymentMethod": "upi",
        "transactionNumber": "UPI123456",
    }
    payload.update(overrides)
    return payload


def place_order(client, headers, product, **overrides):
    return client.post("/orders", json=order_payload(product, **overrides), headers=headers)


# ══════════════════════════════════════════════
#  CHECKOUT
# ══════════════════════════════════════════════

class TestCreateOrder:

    def test_create_order(self, client, customer_headers, saree):
        res = place_order(client, customer_headers, saree, quantity=2)
        assert res.status_code == 201
        body = res.json()
        assert body["message"] == "Order created successfully"

        order = body["order"]
        assert order["status"] == "pending"
        assert order["paymentStatus"] == "pending"
        assert order["shippingCost"] == 99
        assert order["totalAmount"] == 2099
        assert order["discountAmount"] == 0
        assert order["transactionNumber"] == "UPI123456"
        assert order["items"] == [{
            "productId": saree.id,
            "name": "Banarasi Silk Saree",
            "price": 1000,
            "quantity": 2,
            "size": "Free Size",
            "image": "https://cdn.janucollections.com/saree-1.jpg",
        }]
        assert order["shippingInfo"]["fullName"] == "Priya Sharma"

    def test_requires_token(self, client, saree):
        res = client.post("/orders", json=order_payload(saree))
        assert res.status_code == 401

    def test_items_required(self, client, customer_headers, saree):
        res = place_order(client, customer_headers, saree, items=[])
        assert res.status_code == 400
        assert res.json()["error"] == "Items are required"

    def test_unknown_product(self, client, customer_headers, saree):
        res = place_order(client, customer_headers, saree, items=[{"productId": 999, "quantity": 1}])
        assert res.status_code == 400
        assert res.json()["error"] == "Product 999 not found"

    def test_incomplete_shipping(self, client, customer_headers, saree):
        shipping = dict(SHIPPING_INFO, pincode="  ")
        res = place_order(client, customer_headers, saree, shippingInfo=shipping)
        assert res.status_code == 400
        assert res.json()["error"] == "Complete shipping information is required"

    def test_invalid_payment_method(self, client, customer_headers, saree):
        res = place_order(client, customer_headers, saree, paymentMethod="cash")
        assert res.status_code == 400

    def test_amount_mismatch(self, client, customer_headers, saree, db):
        res = place_order(client, customer_headers, saree, totalAmount=500)
        assert res.status_code == 400
        assert res.json()["error"] == "Amount mismatch: calculated 1099, provided 500"
        assert db.query(models.Order).count() == 0

    def test_amount_within_tolerance(self, client, customer_headers, saree):
        res = place_order(client, customer_headers, saree, totalAmount=1099.5)
        assert res.status_code == 201
        assert res.json()["order"]["totalAmount"] == 1099

    def test_transaction_number_trimmed(self, client, customer_headers, saree):
        res = place_order(client, customer_headers, saree, paymentMethod="bank_transfer",
                          transactionNumber="  NEFT998877  ")
        assert res.json()["order"]["transactionNumber"] == "NEFT998877"

    def test_stripe_keeps_payment_intent(self, client, customer_headers, saree):
        res = place_order(client, customer_headers, saree, paymentMethod="stripe",
                          paymentIntentId="pi_123", transactionNumber=None)
        order = res.json()["order"]
        assert order["paymentIntentId"] == "pi_123"
        assert order["transactionNumber"] is None

    def test_fills_incomplete_profile_address(self, client, customer, customer_headers, saree, db):
        place_order(client, customer_headers, saree)
        db.expire_all()
        user = db.get(models.User, customer.id)
        assert user.address["city"] == "Bengaluru"
        assert user.address["pincode"] == "560001"
        assert user.address["country"] == "India"
        assert user.phone == "+919876543210"

    def test_keeps_complete_profile_address(self, client, make_user, saree, db):
        address = {"street": "Park Street", "city": "Kolkata", "state": "West Bengal", "pincode": "700016"}
        user = make_user(email="ananya@gmail.com", address=address)
        place_order(client, auth_headers(user), saree)
        db.expire_all()
        assert db.get(models.User, user.id).address == address


class TestCheckoutCoupons:

    def test_coupon_discount_applied(self, client, customer, customer_headers, saree, make_coupon, db):
        coupon = make_coupon()
        res = place_order(client, customer_headers, saree, couponCode="welcome10", totalAmount=999)
        assert res.status_code == 201
        order = res.json()["order"]
        assert order["couponCode"] == "WELCOME10"
        assert order["discountAmount"] == 100
        assert order["totalAmount"] == 999

        db.expire_all()
        stored = db.get(models.Coupon, coupon.id)
        assert stored.used_count == 1
        assert stored.usages[0].user_id == customer.id
        assert stored.usages[0].order_amount == 1000

    def test_unknown_coupon(self, client, customer_headers, saree):
        res = place_order(client, customer_headers, saree, couponCode="NOPE")
        assert res.status_code == 400
        assert res.json()["error"] == "Invalid coupon code"

    def test_rejected_coupon_fails_order(self, client, customer_headers, make_product, make_coupon, db):
        dress = make_product(name="Floral Maxi Dress", category="western")
        make_coupon(code="FESTIVE50", applicable_categories=["sarees", "kurtis", "ethnic"])
        res = place_order(client, customer_headers, dress, couponCode="FESTIVE50")
        assert res.status_code == 400
        assert res.json()["error"] == "This coupon is not applicable to items in your cart"
        assert db.query(models.Order).count() == 0

    def test_mismatch_rolls_back_redemption(self, client, customer_headers, saree, make_coupon, db):
        coupon = make_coupon()
        res = place_order(client, customer_headers, saree, couponCode="WELCOME10", totalAmount=1099)
        assert res.status_code == 400
        assert res.json()["error"] == "Amount mismatch: calculated 999, provided 1099"

        db.expire_all()
        stored = db.get(models.Coupon, coupon.id)
        assert stored.used_count == 0
        assert stored.usages == []


# ══════════════════════════════════════════════
#  CUSTOMER ORDER ACCESS
# ══════════════════════════════════════════════

class TestOwnOrders:

    def test_lists_only_own_orders(self, client, customer_headers, make_user, saree):
        other = make_user(email="other@gmail.com")
        place_order(client, customer_headers, saree)
        place_order(client, auth_headers(other), saree)

        res = client.get("/orders", headers=customer_headers)
        assert res.status_code == 200
        assert len(res.json()) == 1

    def test_other_users_order_is_hidden(self, client, customer_headers, make_user, saree):
        other = make_user(email="other@gmail.com")
        order_id = place_order(client, auth_headers(other), saree).json()["order"]["id"]

        res = client.get(f"/orders/{order_id}", headers=customer_headers)
        assert res.status_code == 404
        assert res.json()["error"] == "Order not found"


# ══════════════════════════════════════════════
#  PAYMENT
# ══════════════════════════════════════════════

class TestPayment:

    def test_confirm_payment(self, client, customer_headers, saree):
        order_id = place_order(client, customer_headers, saree, transactionNumber=None).json()["order"]["id"]
        res = client.put(
            f"/orders/{order_id}/confirm-payment",
            json={"transactionNumber": " TXN42 "},
            headers=customer_headers,
        )
        assert res.status_code == 200
        body = res.json()
        assert body["message"] == "Payment confirmed successfully"
        assert body["order"]["transactionNumber"] == "TXN42"
        assert body["order"]["paymentStatus"] == "completed"
        assert body["order"]["status"] == "pending"

    def test_confirm_payment_needs_transaction_number(self, client, customer_headers, saree):
        order_id = place_order(client, customer_headers, saree).json()["order"]["id"]
        res = client.put(
            f"/orders/{order_id}/confirm-payment",
            json={"transactionNumber": "   "},
            headers=customer_headers,
        )
        assert res.status_code == 400
        assert res.json()["error"] == "Transaction number is required"

    def test_blank_transaction_number_checked_before_lookup(self, client, customer_headers):
        res = client.put(
            "/orders/999/confirm-payment",
            json={"transactionNumber": ""},
            headers=customer_headers,
        )
        assert res.status_code == 400
        assert res.json()["error"] == "Transaction number is required"

    def test_confirm_payment_unknown_order(self, client, customer_headers):
        res = client.put(
            "/orders/999/confirm-payment",
            json={"transactionNumber": "TXN42"},
            headers=customer_headers,
        )
        assert res.status_code == 404
        assert res.json() == {"error": "Order not found"}

    def test_payment_complete(self, client, customer_headers, saree):
        order_id = place_order(client, customer_headers, saree).json()["order"]["id"]
        res = client.patch(f"/orders/{order_id}/payment-complete", headers=customer_headers)
        assert res.status_code == 200
        order = res.json()["order"]
        assert order["status"] == "confirmed"
        assert order["paymentStatus"] == "completed"
        assert order["paymentCompletedAt"] is not None

        again = client.patch(f"/orders/{order_id}/payment-complete", headers=customer_headers)
        assert again.status_code == 400
        assert again.json()["error"] == "Order is not in pending status"


# ══════════════════════════════════════════════
#  ADMIN STATUS UPDATES
# ══════════════════════════════════════════════

class TestAdminOrders:

    def test_confirm_sends_notifications(self, client, customer_headers, admin_headers, saree, notifier):
        order_id = place_order(client, customer_headers, saree).json()["order"]["id"]
        res = client.put(f"/admin/orders/{order_id}", json={"status": "confirmed"}, headers=admin_headers)
        assert res.status_code == 200
        body = res.json()
        assert body["message"] == "Order status updated successfully"
        assert body["order"]["status"] == "confirmed"
        assert body["notifications"] == {"email": True, "sms": True, "whatsapp": False}
        assert notifier.sent == [(order_id, "priya@gmail.com")]

    def test_notification_failure_does_not_fail_update(self, client, customer_headers, admin_headers, saree):
        app.dependency_overrides[get_notification_service] = lambda: FakeNotifier(fail=True)
        order_id = place_order(client, customer_headers, saree).json()["order"]["id"]
        res = client.put(f"/admin/orders/{order_id}", json={"status": "confirmed"}, headers=admin_headers)
        assert res.status_code == 200
        assert res.json()["order"]["status"] == "confirmed"
        assert res.json()["notifications"] is None

    def test_shipped_sets_estimated_delivery(self, client, customer_headers, admin_headers, saree, notifier):
        order_id = place_order(client, customer_headers, saree).json()["order"]["id"]
        res = client.put(
            f"/admin/orders/{order_id}",
            json={"status": "shipped", "trackingNumber": "DTDC12345", "notes": "Packed with care"},
            headers=admin_headers,
        )
        body = res.json()
        assert body["notifications"] is None
        assert notifier.sent == []
        assert body["order"]["trackingNumber"] == "DTDC12345"
        assert body["order"]["notes"] == "Packed with care"

        estimated = datetime.fromisoformat(body["order"]["estimatedDelivery"])
        if estimated.tzinfo is None:
            estimated = estimated.replace(tzinfo=timezone.utc)
        remaining = estimated - datetime.now(timezone.utc)
        assert timedelta(days=6, hours=23) < remaining <= timedelta(days=7)

    def test_any_transition_allowed(self, client, customer_headers, admin_headers, saree, notifier):
        order_id = place_order(client, customer_headers, saree).json()["order"]["id"]
        for next_status in ("delivered", "pending", "cancelled"):
            res = client.put(f"/admin/orders/{order_id}", json={"status": next_status}, headers=admin_headers)
            assert res.json()["order"]["status"] == next_status

    def test_unknown_status(self, client, customer_headers, admin_headers, saree):
        order_id = place_order(client, customer_headers, saree).json()["order"]["id"]
        res = client.put(f"/admin/orders/{order_id}", json={"status": "lost"}, headers=admin_headers)
        assert res.status_code == 400

    def test_customers_cannot_update(self, client, customer_headers, saree):
        order_id = place_order(client, customer_headers, saree).json()["order"]["id"]
        res = client.put(f"/admin/orders/{order_id}", json={"status": "confirmed"}, headers=customer_headers)
        assert res.status_code == 403

    def test_missing_order(self, client, admin_headers, notifier):
        res = client.put("/admin/orders/999", json={"status": "confirmed"}, headers=admin_headers)
        assert res.status_code == 404
        assert res.json()["error"] == "Order not found"

    def test_list_and_filter(self, client, customer_headers, admin_headers, saree, notifier):
        first = place_order(client, customer_headers, saree).json()["order"]["id"]
        place_order(client, customer_headers, saree)
        client.put(f"/admin/orders/{first}", json={"status": "cancelled"}, headers=admin_headers)

        res = client.get("/admin/orders", headers=admin_headers)
        assert res.json()["pagination"]["totalOrders"] == 2

        cancelled = client.get("/admin/orders", params={"status": "cancelled"}, headers=admin_headers).json()
        assert [o["id"] for o in cancelled["orders"]] == [first]

        single = client.get(f"/admin/orders/{first}", headers=admin_headers)
        assert single.json()["status"] == "cancelled"
