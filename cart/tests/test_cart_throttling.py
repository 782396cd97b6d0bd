import pytest
from cart.tests.factories import ProductFactory, UserFactory
from django.core.cache import cache
from rest_framework.test import APIClient


@pytest.fixture
def tight_cart_rates(settings):
    cache.clear()
    rates = {**settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"], "cart": "2/min", "cart_write": "1/min"}
    settings.REST_FRAMEWORK = {**settings.REST_FRAMEWORK, "DEFAULT_THROTTLE_RATES": rates}
    yield
    cache.clear()


@pytest.mark.django_db
def test_cart_read_throttle_exceeded(tight_cart_rates):
    client = APIClient()
    client.force_authenticate(user=UserFactory())

    assert client.get("/api/v1/cart/").status_code == 200
    assert client.get("/api/v1/cart/").status_code == 200
    assert client.get("/api/v1/cart/").status_code == 429


@pytest.mark.django_db
def test_cart_writes_are_rated_separately(tight_cart_rates):
    product = ProductFactory()
    client = APIClient()
    client.force_authenticate(user=UserFactory())

    assert client.post("/api/v1/cart/items/", {"product_id": product.id}, format="json").status_code == 201
    assert client.put("/api/v1/cart/", {"items": []}, format="json").status_code == 429
    assert client.get("/api/v1/cart/").status_code == 200


@pytest.mark.django_db
def test_throttle_is_per_user(tight_cart_rates):
    first = APIClient()
    first.force_authenticate(user=UserFactory())
    second = APIClient()
    second.force_authenticate(user=UserFactory())

    for _ in range(2):
        first.get("/api/v1/cart/")
    assert first.get("/api/v1/cart/").status_code == 429
    assert second.get("/api/v1/cart/").status_code == 200
