"""Order placement and lifecycle services.

Placement validates the request shape before touching the database, then
reserves stock for every line and writes the order inside one transaction,
so a failure on any line leaves every product's stock unchanged.
"""

import hashlib
import json
import logging
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, Mapping, Optional, Tuple

from catalog.services import reserve_stock_for_items, restore_stock
from common.choices import OrderStatus, PaymentMethod
from common.exceptions import ServiceError
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import QuerySet
from django.utils import timezone
from rest_framework import status as http

from .models import IdempotencyKey, Order, OrderItem, OrderStatusHistory, ShippingAddress

logger = logging.getLogger("storefront.orders")

SHIPPING_ADDRESS_FIELDS = (
    "first_name",
    "last_name",
    "company",
    "address",
    "apartment",
    "city",
    "state",
    "pincode",
    "phone",
    "email",
)


class OrderError(ServiceError):
    code = "order_error"
    default_message = "Unable to update order."


class InvalidOrderRequest(OrderError):
    code = "invalid_request"
    default_message = "Invalid order request."


class OrderNotFound(OrderError):
    code = "order_not_found"
    status_code = http.HTTP_404_NOT_FOUND
    default_message = "Order not found."


class OrderForbidden(OrderError):
    code = "forbidden"
    status_code = http.HTTP_403_FORBIDDEN
    default_message = "You do not have access to this order."


class InvalidStatus(OrderError):
    code = "invalid_status"
    default_message = "Invalid order status."


class AlreadyPaid(OrderError):
    code = "already_paid"
    status_code = http.HTTP_409_CONFLICT
    default_message = "Order is already paid."


class AlreadyDelivered(OrderError):
    code = "already_delivered"
    status_code = http.HTTP_409_CONFLICT
    default_message = "Order is already delivered."


class AlreadyCancelled(OrderError):
    code = "already_cancelled"
    status_code = http.HTTP_409_CONFLICT
    default_message = "Order is already cancelled."


class CannotCancelDelivered(OrderError):
    code = "cannot_cancel_delivered"
    default_message = "Delivered orders cannot be cancelled."


class CannotCancelShipped(OrderError):
    code = "cannot_cancel_shipped"
    default_message = "Shipped orders cannot be cancelled."


# Request validation


def _coerce_positive_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(str(value).strip())
    except ValueError:
        return None
    return number if number > 0 else None


def _clean_items(order_items) -> list[dict]:
    if not isinstance(order_items, (list, tuple)) or not order_items:
        raise InvalidOrderRequest("Order must contain at least one item.")
    cleaned = []
    for position, raw in enumerate(order_items):
        if not isinstance(raw, Mapping):
            raise InvalidOrderRequest(f"Invalid order item at position {position}.")
        product_id = _coerce_positive_int(
            next((raw[k] for k in ("product_id", "product", "productId") if raw.get(k) is not None), None)
        )
        quantity = raw.get("quantity")
        if product_id is None:
            raise InvalidOrderRequest(f"Product ID is required for item at position {position}.")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidOrderRequest(f"Quantity must be at least 1 for item at position {position}.")
        cleaned.append(
            {
                "product_id": product_id,
                "quantity": quantity,
                "selected_color": (raw.get("selected_color") or raw.get("selectedColor") or None),
                "selected_size": (raw.get("selected_size") or raw.get("selectedSize") or None),
            }
        )
    return cleaned


def _clean_address(shipping_address) -> ShippingAddress:
    if not isinstance(shipping_address, Mapping) or not shipping_address:
        raise InvalidOrderRequest("Shipping address is required.")
    values = {}
    for name in SHIPPING_ADDRESS_FIELDS:
        value = shipping_address.get(name)
        values[name] = str(value).strip() if value is not None else ""
    values["email"] = values["email"].lower()
    address = ShippingAddress(**values)
    try:
        address.full_clean(exclude=["order"])
    except DjangoValidationError as exc:
        raise InvalidOrderRequest("Invalid shipping address.", errors=exc.message_dict) from exc
    return address


def _clean_amount(value, name: str, *, positive: bool = False) -> Decimal:
    if value is None or isinstance(value, bool):
        raise InvalidOrderRequest(f"Invalid {name}.")
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidOrderRequest(f"Invalid {name}.") from exc
    if not amount.is_finite() or amount < 0:
        raise InvalidOrderRequest(f"Invalid {name}.")
    if positive and amount <= 0:
        raise InvalidOrderRequest(f"{name} must be greater than 0.")
    return amount.quantize(Decimal("0.01"))


# Status bookkeeping


def _record_status(order: Order, previous: str, *, updated_by=None, notes: str = "") -> None:
    if order.status == previous:
        return
    OrderStatusHistory.objects.create(
        order=order,
        status=order.status,
        updated_by=updated_by if getattr(updated_by, "pk", None) else None,
        notes=notes or "",
    )
    logger.info(
        "order_status_changed",
        extra={
            "event": "order_status_changed",
            "order_id": order.id,
            "user_id": order.user_id,
            "status_from": previous,
            "status_to": order.status,
        },
    )


def _lock_order(order_id) -> Order:
    pk = _coerce_positive_int(order_id)
    order = Order.objects.select_for_update().filter(pk=pk).first() if pk else None
    if order is None:
        raise OrderNotFound(order_id=order_id)
    return order


def _can_access(order: Order, user) -> bool:
    return bool(user) and (order.user_id == getattr(user, "id", None) or getattr(user, "is_staff", False))


# Placement


def place_order(
    *,
    user,
    order_items,
    shipping_address,
    payment_method: str,
    total_price,
    is_paid: bool = False,
    payment_result: Optional[dict] = None,
    discount_amount=Decimal("0.00"),
    tax_amount=Decimal("0.00"),
    shipping_cost=Decimal("0.00"),
    order_notes: str = "",
) -> Order:
    """Create an order, decrementing catalog stock for every line.

    Raises ``InvalidOrderRequest`` before any database access when the request
    is malformed, ``ProductNotFound`` or ``InsufficientStock`` when a line
    cannot be fulfilled. Line prices are taken from the catalog at placement.
    An order that is paid up front, or placed with the ``online`` method,
    starts in ``processing`` with ``paid_at`` set.
    """

    items = _clean_items(order_items)
    address = _clean_address(shipping_address)
    if not payment_method:
        raise InvalidOrderRequest("Payment method is required.")
    if payment_method not in PaymentMethod.values:
        raise InvalidOrderRequest("Invalid payment method.")
    total = _clean_amount(total_price, "total_price", positive=True)
    adjustments = {
        "discount_amount": _clean_amount(discount_amount, "discount_amount"),
        "tax_amount": _clean_amount(tax_amount, "tax_amount"),
        "shipping_cost": _clean_amount(shipping_cost, "shipping_cost"),
    }

    paid = bool(is_paid) or payment_method == PaymentMethod.ONLINE
    with transaction.atomic():
        products = reserve_stock_for_items((line["product_id"], line["quantity"]) for line in items)
        now = timezone.now()
        order = Order.objects.create(
            user=user,
            payment_method=payment_method,
            total_price=total,
            status=OrderStatus.PROCESSING if paid else OrderStatus.PENDING,
            is_paid=paid,
            paid_at=now if paid else None,
            payment_result=dict(payment_result or {}),
            order_notes=(order_notes or "")[:500],
            **adjustments,
        )
        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    product_id=line["product_id"],
                    product_name=products[line["product_id"]].name,
                    quantity=line["quantity"],
                    price=products[line["product_id"]].price,
                    selected_color=line["selected_color"],
                    selected_size=line["selected_size"],
                )
                for line in items
            ]
        )
        address.order = order
        address.save()
        order.number = f"ORD-{int(order.id):06d}"
        order.save(update_fields=["number"])

    logger.info(
        "order_placed",
        extra={
            "event": "order_placed",
            "order_id": order.id,
            "user_id": order.user_id,
            "payment_method": payment_method,
            "status": order.status,
            "total": str(total),
            "items": len(items),
        },
    )
    return order


# Lifecycle


def _cancel(order: Order, *, updated_by=None, notes: str = "") -> Order:
    if order.status == OrderStatus.CANCELLED:
        raise AlreadyCancelled()
    if order.status == OrderStatus.DELIVERED:
        raise CannotCancelDelivered()
    if order.status == OrderStatus.SHIPPED:
        raise CannotCancelShipped()

    for item in order.items.all():
        restore_stock(item.product_id, item.quantity)
    previous = order.status
    order.status = OrderStatus.CANCELLED
    order.cancelled_at = order.cancelled_at or timezone.now()
    order.save(update_fields=["status", "cancelled_at", "updated_at"])
    _record_status(order, previous, updated_by=updated_by, notes=notes)
    return order


@transaction.atomic
def cancel_order(*, order_id, user, notes: str = "") -> Order:
    """Cancel a pending or processing order and put its stock back.

    Allowed for the order's owner and for staff.
    """

    order = _lock_order(order_id)
    if not _can_access(order, user):
        raise OrderForbidden()
    return _cancel(order, updated_by=user, notes=notes)


@transaction.atomic
def update_order_status(
    *,
    order_id,
    status: str,
    updated_by=None,
    notes: str = "",
    tracking_number: Optional[str] = None,
    shipping_carrier: Optional[str] = None,
) -> Order:
    """Move an order to ``status`` (case-insensitive).

    ``delivered`` also sets the delivery flag and timestamp once; ``processing``
    backfills ``paid_at`` for paid orders. ``cancelled`` goes through the same
    guards as ``cancel_order`` and restores stock. A cancelled order keeps its
    status.
    """

    new_status = str(status or "").strip().lower()
    if new_status not in OrderStatus.values:
        raise InvalidStatus(f"Invalid status: {status}.", allowed=list(OrderStatus.values))

    order = _lock_order(order_id)
    if new_status == OrderStatus.CANCELLED:
        return _cancel(order, updated_by=updated_by, notes=notes)
    if order.status == OrderStatus.CANCELLED:
        raise AlreadyCancelled("Cancelled orders cannot change status.")

    now = timezone.now()
    previous = order.status
    order.status = new_status
    if new_status == OrderStatus.DELIVERED and not order.is_delivered:
        order.is_delivered = True
        order.delivered_at = order.delivered_at or now
    if new_status == OrderStatus.PROCESSING and order.is_paid and not order.paid_at:
        order.paid_at = now
    if tracking_number is not None:
        order.tracking_number = tracking_number
    if shipping_carrier is not None:
        order.shipping_carrier = shipping_carrier
    if notes:
        order.admin_notes = notes[:500]
    order.save()
    _record_status(order, previous, updated_by=updated_by, notes=notes)
    return order


@transaction.atomic
def mark_order_as_paid(*, order_id, payment_result: Optional[dict] = None, updated_by=None) -> Order:
    """Flag an order as paid; a pending order advances to processing."""

    order = _lock_order(order_id)
    if order.is_paid:
        raise AlreadyPaid()
    previous = order.status
    order.is_paid = True
    order.paid_at = order.paid_at or timezone.now()
    if payment_result:
        order.payment_result = {**(order.payment_result or {}), **payment_result}
    if order.status == OrderStatus.PENDING:
        order.status = OrderStatus.PROCESSING
    order.save()
    _record_status(order, previous, updated_by=updated_by)
    logger.info(
        "order_paid",
        extra={"event": "order_paid", "order_id": order.id, "user_id": order.user_id},
    )
    return order


@transaction.atomic
def mark_order_as_delivered(*, order_id, updated_by=None) -> Order:
    """Flag an order as delivered and force its status to ``delivered``."""

    order = _lock_order(order_id)
    if order.is_delivered:
        raise AlreadyDelivered()
    previous = order.status
    if previous != OrderStatus.SHIPPED:
        logger.warning(
            "order_delivered_out_of_sequence",
            extra={
                "event": "order_delivered_out_of_sequence",
                "order_id": order.id,
                "status_from": previous,
            },
        )
    order.is_delivered = True
    order.delivered_at = order.delivered_at or timezone.now()
    order.status = OrderStatus.DELIVERED
    order.save()
    _record_status(order, previous, updated_by=updated_by)
    return order


# Reads


def get_order_for_user(*, order_id, user) -> Order:
    pk = _coerce_positive_int(order_id)
    order = None
    if pk:
        order = (
            Order.objects.select_related("shipping_address")
            .prefetch_related("items", "status_history")
            .filter(pk=pk)
            .first()
        )
    if order is None:
        raise OrderNotFound(order_id=order_id)
    if not _can_access(order, user):
        raise OrderForbidden()
    return order


def list_orders_for_user(*, user, status: Optional[str] = None) -> QuerySet[Order]:
    qs = Order.objects.filter(user_id=user.id).select_related("shipping_address").prefetch_related("items")
    if status:
        qs = qs.filter(status=str(status).strip().lower())
    return qs.order_by("-created_at", "-id")


# Idempotency


def _json_safe(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def with_idempotency(
    *,
    key: str,
    user,
    path: str,
    method: str,
    handler: Callable[[], Tuple[dict, int]],
    request_hash: Optional[str] = None,
) -> Tuple[dict, int]:
    """Run handler idempotently and persist its response for the given key and scope.

    - Scope is derived from the caller: for authenticated users, "user:<id>"; otherwise "anon".
    - If a record exists and the stored `request_hash` differs from the provided one, returns 409.
    - If a record exists but response is not yet stored, returns 409 to indicate in-progress.
    - Expired records are discarded and the request runs again.
    """

    scope = f"user:{getattr(user, 'id', None)}" if getattr(user, "id", None) else "anon"
    method = str(method).upper()
    path = str(path)
    lookup = {"key": key, "scope": scope, "path": path, "method": method}

    IdempotencyKey.objects.filter(expires_at__lt=timezone.now(), **lookup).delete()
    try:
        with transaction.atomic():
            idem = IdempotencyKey.objects.create(
                user=user if getattr(user, "id", None) else None,
                request_hash=request_hash,
                expires_at=timezone.now() + timedelta(hours=24),
                **lookup,
            )
    except IntegrityError:
        idem = IdempotencyKey.objects.get(**lookup)
        if idem.request_hash and request_hash and idem.request_hash != request_hash:
            return {
                "success": False,
                "detail": "Idempotency key reused with different request payload",
                "code": "idempotency_conflict",
            }, 409
        if idem.response_json is not None and idem.response_code is not None:
            return idem.response_json, int(idem.response_code)
        return {"success": False, "detail": "Request in progress", "code": "idempotency_in_progress"}, 409

    try:
        body, code = handler()
    except Exception:
        IdempotencyKey.objects.filter(id=idem.id).delete()
        raise

    IdempotencyKey.objects.filter(id=idem.id).update(response_json=_json_safe(body), response_code=code)
    return body, code


def compute_request_hash(data: Optional[dict]) -> Optional[str]:
    """Compute a canonical SHA256 hash of the request body.

    Uses sorted keys JSON representation to stabilize the hash across equivalent payloads.
    Returns None when data is falsy.
    """
    if not data:
        return None
    try:
        payload = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        return None
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def cleanup_idempotency_keys(*, now=None) -> int:
    now = now or timezone.now()
    count, _ = IdempotencyKey.objects.filter(expires_at__lt=now).delete()
    return count
