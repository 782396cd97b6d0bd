from decimal import Decimal

import pytest
from cart.tests.factories import ProductFactory, UserFactory
from catalog.models import Product
from orders.models import IdempotencyKey, Order
from rest_framework.test import APIClient

CHECKOUT = {
    "payment_method": "cod",
    "shipping_address": {
        "first_name": "Asha",
        "last_name": "Rao",
        "address": "12 MG Road",
        "city": "Bengaluru",
        "state": "Karnataka",
        "pincode": "560001",
        "phone": "9876543210",
        "email": "asha@example.com",
    },
}


@pytest.mark.django_db
def test_checkout_is_idempotent_with_header():
    user = UserFactory()
    client = APIClient()
    client.force_authenticate(user=user)
    product = ProductFactory(price=Decimal("1000.00"), quantity=10)

    r_add = client.post("/api/v1/cart/items/", {"product_id": product.id, "quantity": 2}, format="json")
    assert r_add.status_code == 201

    key = "abc-idem-123"
    r1 = client.post("/api/v1/cart/checkout/", CHECKOUT, format="json", HTTP_IDEMPOTENCY_KEY=key)
    assert r1.status_code == 201
    body1 = r1.json()
    assert body1["success"] is True
    order_id = body1["order"]["id"]
    assert body1["order"]["total_price"] == "2000.00"

    r2 = client.post("/api/v1/cart/checkout/", CHECKOUT, format="json", HTTP_IDEMPOTENCY_KEY=key)
    assert r2.status_code == 201
    assert r2.json() == body1

    assert Order.objects.filter(user=user).count() == 1
    assert Product.objects.get(id=product.id).quantity == 8

    idem = IdempotencyKey.objects.get(key=key, user=user, path="/api/v1/cart/checkout/", method="POST")
    assert idem.response_code == 201
    assert idem.response_json["order"]["id"] == order_id


@pytest.mark.django_db
def test_checkout_key_reuse_with_different_payload_conflicts():
    user = UserFactory()
    client = APIClient()
    client.force_authenticate(user=user)
    product = ProductFactory(quantity=10)
    client.post("/api/v1/cart/items/", {"product_id": product.id, "quantity": 1}, format="json")

    key = "reused-key"
    r1 = client.post("/api/v1/cart/checkout/", CHECKOUT, format="json", HTTP_IDEMPOTENCY_KEY=key)
    assert r1.status_code == 201

    r2 = client.post(
        "/api/v1/cart/checkout/", {**CHECKOUT, "payment_method": "upi"}, format="json", HTTP_IDEMPOTENCY_KEY=key
    )
    assert r2.status_code == 409
    assert r2.json()["code"] == "idempotency_conflict"


@pytest.mark.django_db
def test_checkout_stock_failure_keeps_cart():
    user = UserFactory()
    client = APIClient()
    client.force_authenticate(user=user)
    product = ProductFactory(quantity=5)
    client.post("/api/v1/cart/items/", {"product_id": product.id, "quantity": 3}, format="json")
    Product.objects.filter(id=product.id).update(quantity=2)

    resp = client.post("/api/v1/cart/checkout/", CHECKOUT, format="json")
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "insufficient_stock"
    assert body["available_quantity"] == 2

    assert Order.objects.filter(user=user).count() == 0
    assert client.get("/api/v1/cart/").json()["cart"]["total_items"] == 3
