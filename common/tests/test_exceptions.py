import pytest
from cart.services import MinimumNotMet
from catalog.services import ProductNotFound
from common.exceptions import ServiceError, error_response, failure_body
from orders.services import AlreadyPaid
from rest_framework.test import APIClient


def test_failure_body_carries_code_and_details():
    body, code = failure_body(MinimumNotMet("Minimum order amount 5,000 required.", min_order="5000"))

    assert code == 400
    assert body == {
        "success": False,
        "detail": "Minimum order amount 5,000 required.",
        "code": "minimum_not_met",
        "min_order": "5000",
    }


def test_error_response_uses_error_status():
    resp = error_response(AlreadyPaid())
    assert resp.status_code == 409
    assert resp.data["detail"] == "Order is already paid."

    assert error_response(ProductNotFound(product_id=3)).status_code == 404
    assert ServiceError().message == "Unable to complete the request."


@pytest.mark.django_db
def test_health_endpoint():
    resp = APIClient().get("/health/")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "database": "ok"}
