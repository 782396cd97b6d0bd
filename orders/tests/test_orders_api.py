from decimal import Decimal

import pytest
from catalog.models import Product
from orders.models import Order
from orders.tests.factories import OrderFactory, ProductFactory, StaffUserFactory, UserFactory, address_payload
from rest_framework.test import APIClient


def _client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


def _order_request(*lines, **extra):
    body = {
        "order_items": [{"product_id": p.id, "quantity": q} for p, q in lines],
        "shipping_address": address_payload(),
        "payment_method": "cod",
        "total_price": "2000.00",
    }
    body.update(extra)
    return body


@pytest.mark.django_db
def test_place_order_endpoint():
    user = UserFactory()
    product = ProductFactory(price=Decimal("1000.00"), quantity=5)

    resp = _client(user).post(
        "/api/v1/orders/", _order_request((product, 2), order_notes="Leave at door"), format="json"
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    order = body["order"]
    assert order["status"] == "pending"
    assert order["is_paid"] is False
    assert order["number"].startswith("ORD-")
    assert order["order_notes"] == "Leave at door"
    assert order["items"][0]["line_total"] == "2000.00"
    assert order["shipping_address"]["email"] == "asha@example.com"
    assert order["summary"]["subtotal"] == "2000.00"
    assert order["can_be_cancelled"] is True
    assert Product.objects.get(id=product.id).quantity == 3


@pytest.mark.django_db
def test_place_order_endpoint_errors():
    user = UserFactory()
    client = _client(user)
    scarce = ProductFactory(quantity=1)

    r_stock = client.post("/api/v1/orders/", _order_request((scarce, 2)), format="json")
    assert r_stock.status_code == 400
    assert r_stock.json()["code"] == "insufficient_stock"
    assert r_stock.json()["requested_quantity"] == 2

    r_online = client.post("/api/v1/orders/", _order_request((scarce, 1), payment_method="online"), format="json")
    assert r_online.status_code == 400
    assert "payment_method" in r_online.json()

    r_empty = client.post("/api/v1/orders/", _order_request(), format="json")
    assert r_empty.status_code == 400
    assert "order_items" in r_empty.json()

    assert Order.objects.count() == 0


@pytest.mark.django_db
def test_order_list_is_scoped_and_filterable():
    user = UserFactory()
    mine = OrderFactory(user=user)
    shipped = OrderFactory(user=user, status="shipped")
    OrderFactory()

    client = _client(user)
    resp = client.get("/api/v1/orders/")
    assert resp.status_code == 200
    ids = [o["id"] for o in resp.json()["results"]]
    assert sorted(ids) == sorted([mine.id, shipped.id])

    r_status = client.get("/api/v1/orders/?status=SHIPPED")
    assert [o["id"] for o in r_status.json()["results"]] == [shipped.id]


@pytest.mark.django_db
def test_order_detail_access():
    owner = UserFactory()
    order = OrderFactory(user=owner)

    r_owner = _client(owner).get(f"/api/v1/orders/{order.id}/")
    assert r_owner.status_code == 200
    assert r_owner.json()["order"]["id"] == order.id

    r_other = _client(UserFactory()).get(f"/api/v1/orders/{order.id}/")
    assert r_other.status_code == 403
    assert r_other.json()["code"] == "forbidden"

    assert _client(StaffUserFactory()).get(f"/api/v1/orders/{order.id}/").status_code == 200
    assert _client(owner).get("/api/v1/orders/999999/").status_code == 404
    assert APIClient().get(f"/api/v1/orders/{order.id}/").status_code == 401


@pytest.mark.django_db
def test_cancel_endpoint_is_idempotent():
    user = UserFactory()
    product = ProductFactory(quantity=5)
    client = _client(user)
    order_id = client.post("/api/v1/orders/", _order_request((product, 2)), format="json").json()["order"]["id"]

    key = "idem-cancel-123"
    r1 = client.post(f"/api/v1/orders/{order_id}/cancel/", {"notes": "Ordered twice"}, format="json",
                     HTTP_IDEMPOTENCY_KEY=key)
    assert r1.status_code == 200
    assert r1.json()["order"]["status"] == "cancelled"
    assert r1.json()["order"]["status_history"][0]["notes"] == "Ordered twice"

    r2 = client.post(f"/api/v1/orders/{order_id}/cancel/", {"notes": "Ordered twice"}, format="json",
                     HTTP_IDEMPOTENCY_KEY=key)
    assert r2.status_code == 200
    assert r2.json() == r1.json()
    assert Product.objects.get(id=product.id).quantity == 5

    r3 = client.post(f"/api/v1/orders/{order_id}/cancel/", {}, format="json")
    assert r3.status_code == 409
    assert r3.json()["code"] == "already_cancelled"


@pytest.mark.django_db
def test_cancel_endpoint_guards():
    owner = UserFactory()
    shipped = OrderFactory(user=owner, status="shipped")
    pending = OrderFactory(user=owner)

    r_shipped = _client(owner).post(f"/api/v1/orders/{shipped.id}/cancel/", {}, format="json")
    assert r_shipped.status_code == 400
    assert r_shipped.json()["code"] == "cannot_cancel_shipped"

    r_other = _client(UserFactory()).post(f"/api/v1/orders/{pending.id}/cancel/", {}, format="json")
    assert r_other.status_code == 403
    pending.refresh_from_db()
    assert pending.status == "pending"


@pytest.mark.django_db
def test_place_order_idempotent_replay_creates_one_order():
    user = UserFactory()
    product = ProductFactory(quantity=10)
    client = _client(user)
    payload = _order_request((product, 1), total_price="1000.00")

    r1 = client.post("/api/v1/orders/", payload, format="json", HTTP_IDEMPOTENCY_KEY="place-1")
    r2 = client.post("/api/v1/orders/", payload, format="json", HTTP_IDEMPOTENCY_KEY="place-1")

    assert r1.status_code == r2.status_code == 201
    assert r1.json()["order"]["id"] == r2.json()["order"]["id"]
    assert Order.objects.filter(user=user).count() == 1
    assert Product.objects.get(id=product.id).quantity == 9
