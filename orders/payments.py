"""Payment capture helpers.

The gateway signs ``"<gateway_order_id>|<payment_id>"`` with HMAC-SHA256
using the shared ``PAYMENT_GATEWAY_SECRET``. With ``PAYMENTS_MOCK_MODE`` on,
signatures are not checked and the captured result is tagged ``mock``.
"""

import hashlib
import hmac
import logging
from typing import Optional

from django.conf import settings
from django.utils import timezone

from .services import OrderError

logger = logging.getLogger("storefront.orders")


class PaymentVerificationFailed(OrderError):
    code = "invalid_signature"
    default_message = "Invalid payment signature."


def sign(gateway_order_id: str, payment_id: str, secret: str) -> str:
    body = f"{gateway_order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(*, gateway_order_id: str, payment_id: str, signature: str, secret: Optional[str] = None) -> bool:
    secret = secret if secret is not None else getattr(settings, "PAYMENT_GATEWAY_SECRET", "")
    if not secret or not signature:
        return False
    return hmac.compare_digest(sign(gateway_order_id, payment_id, secret), str(signature))


def verify_payment(*, gateway_order_id: str, payment_id: str, signature: str) -> dict:
    """Check a gateway callback and return the ``payment_result`` to store."""

    mock = bool(getattr(settings, "PAYMENTS_MOCK_MODE", False))
    if mock:
        logger.info(
            "payment_signature_skipped",
            extra={"event": "payment_signature_skipped", "gateway_order_id": gateway_order_id},
        )
    elif not verify_signature(gateway_order_id=gateway_order_id, payment_id=payment_id, signature=signature):
        logger.warning(
            "payment_signature_invalid",
            extra={"event": "payment_signature_invalid", "gateway_order_id": gateway_order_id},
        )
        raise PaymentVerificationFailed()

    result = {
        "id": payment_id,
        "status": "completed",
        "gateway_order_id": gateway_order_id,
        "payment_id": payment_id,
        "signature": signature,
        "update_time": timezone.now().isoformat(),
    }
    if mock:
        result["mock"] = True
    return result
