"""Cart services: mutations, catalog reconciliation, coupons and checkout.

Every mutation locks the user's cart row, rewrites the derived totals before
saving, and appends a ``CartHistory`` entry. A failed history write is logged
and never fails the mutation itself.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from decimal import Decimal
from math import isfinite
from typing import Optional

from catalog.selectors import find_by_id, find_many
from catalog.services import InsufficientStock, ProductNotFound
from common.choices import CartAction, IssueCode
from common.exceptions import ServiceError
from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from orders.services import place_order
from rest_framework import status

from .coupons import Coupon, CouponBook
from .models import Cart, CartHistory, CartItem
from .pricing import CartTotals, CheckoutTotals, checkout_summary, compute_totals, to_money
from .selectors import cart_expiry, get_cart_for_user, get_or_create_cart

logger = logging.getLogger("storefront.cart")

__all__ = [
    "add_item",
    "apply_coupon",
    "checkout_cart",
    "checkout_totals",
    "cleanup_expired_carts",
    "clear_cart",
    "get_or_create_cart",
    "mark_abandoned_carts",
    "normalize_cart_items",
    "prune_cart_history",
    "reconcile_cart",
    "remove_coupon",
    "remove_item",
    "replace_cart",
    "sync_cart",
    "update_item_quantity",
    "validate_cart",
]


class CartError(ServiceError):
    """Raised for cart mutation failures."""

    code = "cart_error"
    default_message = "Unable to update cart."


class CartNotFound(CartError):
    code = "cart_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Cart not found."


class CartItemNotFound(CartError):
    code = "cart_item_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Cart item not found."


class InvalidCartRequest(CartError):
    code = "invalid_request"


class InvalidCoupon(CartError):
    code = "invalid_coupon"
    default_message = "Invalid coupon code."


class MinimumNotMet(CartError):
    code = "minimum_not_met"
    default_message = "Cart total is below the coupon minimum."


class EmptyCart(CartError):
    code = "empty_cart"
    default_message = "Cart is empty."


class CartChanged(CartError):
    code = "cart_changed"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Cart changed since it was last reviewed. Confirm the updated cart before checking out."


CHECKOUT_BLOCKING_ISSUES = (IssueCode.PRICE_CHANGED, IssueCode.PRODUCT_NOT_FOUND)


@dataclass
class SyncResult:
    cart: Cart
    conflict: bool = False


@dataclass(frozen=True)
class CartIssue:
    cart_item_id: str
    issue: str
    message: str
    extra: dict = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {"cart_item_id": self.cart_item_id, "issue": self.issue, "message": self.message, **self.extra}


# Item normalisation


def _first(raw: dict, *keys):
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _is_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return False
    return isfinite(value)


def _coerce_product_id(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        product_id = int(str(value).strip())
    except ValueError:
        return None
    return product_id if product_id > 0 else None


def _optional_text(value, limit: int) -> Optional[str]:
    if value in (None, ""):
        return None
    return str(value)[:limit]


def _parse_timestamp(value) -> Optional[datetime]:
    """Accept datetimes, ISO-8601 strings or epoch milliseconds."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=dt_timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        try:
            parsed = parse_datetime(str(value).strip())
        except ValueError:
            return None
        if parsed is None:
            return None
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


def normalize_cart_items(items) -> list[dict]:
    """Filter and normalise raw client cart lines.

    A line is kept only when it has a positive integer product id (``productId``,
    ``product_id``, ``id`` or ``_id``), a non-empty name, a numeric price >= 0
    and an integer quantity > 0. Everything else is dropped silently. Lines that
    resolve to the same cart item id are merged by summing quantities.
    """

    if not isinstance(items, (list, tuple)):
        return []

    merged: dict[str, dict] = {}
    for raw in items:
        if not isinstance(raw, dict):
            continue
        product_id = _coerce_product_id(_first(raw, "productId", "product_id", "id", "_id"))
        name = raw.get("name")
        price = raw.get("price")
        quantity = raw.get("quantity")
        if product_id is None or not isinstance(name, str) or not name.strip():
            continue
        if not _is_number(price) or price < 0:
            continue
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            continue

        price = to_money(price)
        original = _first(raw, "originalPrice", "original_price")
        original = max(to_money(original), price) if _is_number(original) else price
        color = _optional_text(_first(raw, "selectedColor", "selected_color"), 64)
        size = _optional_text(_first(raw, "selectedSize", "selected_size"), 64)
        key = CartItem.build_key(product_id, color, size)

        if key in merged:
            merged[key]["quantity"] += quantity
            continue

        images = raw.get("images")
        snapshot = _first(raw, "productSnapshot", "product_snapshot", "originalProduct")
        merged[key] = {
            "product_id": product_id,
            "cart_item_id": key,
            "name": name.strip()[:200],
            "brand": str(raw.get("brand") or "")[:50],
            "price": price,
            "original_price": original,
            "quantity": quantity,
            "selected_color": color,
            "selected_size": size,
            "images": [str(i) for i in images] if isinstance(images, list) else [],
            "product_snapshot": snapshot if isinstance(snapshot, dict) else {},
            "added_at": _parse_timestamp(_first(raw, "addedAt", "added_at")) or timezone.now(),
        }
    return list(merged.values())


# Internal helpers


def _lock_cart(user, *, create: bool = False) -> Cart:
    if create:
        get_or_create_cart(user=user)
    cart = get_cart_for_user(user=user, for_update=True)
    if cart is None:
        raise CartNotFound()
    return cart


def _items_snapshot(cart: Cart) -> list[dict]:
    return [item.to_history() for item in cart.items.all()]


def _cart_snapshot(cart: Cart) -> dict:
    return {
        "total_items": cart.total_items,
        "total_price": str(cart.total_price),
        "total_original_price": str(cart.total_original_price),
        "total_savings": str(cart.total_savings),
        "coupon": cart.coupon_snapshot(),
    }


def _record_history(*, cart: Cart, action: str, items: list[dict], snapshot: Optional[dict] = None) -> None:
    try:
        with transaction.atomic():
            CartHistory.objects.create(
                user_id=cart.user_id,
                items=items,
                action=action,
                timestamp=timezone.now(),
                cart_snapshot=snapshot if snapshot is not None else _cart_snapshot(cart),
                session_id=cart.session_id,
            )
    except DatabaseError:
        logger.exception(
            "cart.history_failed",
            extra={"event": "cart.history_failed", "cart_id": cart.id, "user_id": cart.user_id, "action": action},
        )


def _save_totals(cart: Cart) -> Cart:
    totals = compute_totals(cart.items.all())
    now = timezone.now()
    cart.total_items = totals.total_items
    cart.total_price = totals.total_price
    cart.total_original_price = totals.total_original_price
    cart.total_savings = totals.total_savings
    cart.last_updated = now
    cart.expires_at = cart_expiry(now)
    cart.is_abandoned = False
    cart.abandoned_at = None
    cart.save()
    return cart


def _log(event: str, cart: Cart, **fields) -> None:
    logger.info(event, extra={"event": event, "cart_id": cart.id, "user_id": cart.user_id, **fields})


# Item mutations


@transaction.atomic
def add_item(*, user, product_id, quantity: int = 1, selected_color=None, selected_size=None) -> Cart:
    """Add a product to the user's cart, merging with an existing line.

    The line key is derived from (product, color, size); adding the same key
    again increments the existing quantity.
    """

    if isinstance(quantity, bool) or int(quantity) <= 0:
        raise InvalidCartRequest("Quantity must be positive.")
    quantity = int(quantity)

    product = find_by_id(product_id)
    if product is None or not product.is_active:
        raise ProductNotFound(product_id=product_id)
    if product.quantity < quantity:
        raise InsufficientStock(
            f"Only {product.quantity} items available.",
            product_id=product.id,
            available_quantity=product.quantity,
            requested_quantity=quantity,
        )

    cart = _lock_cart(user, create=True)
    selected_color = selected_color or None
    selected_size = selected_size or None
    key = CartItem.build_key(product.id, selected_color, selected_size)
    item = cart.items.filter(cart_item_id=key).first()
    if item is not None:
        item.quantity += quantity
        item.save(update_fields=["quantity"])
    else:
        item = CartItem.objects.create(
            cart=cart,
            product_id=product.id,
            cart_item_id=key,
            name=product.name,
            brand=product.brand,
            price=product.price,
            original_price=product.list_price,
            quantity=quantity,
            selected_color=selected_color,
            selected_size=selected_size,
            images=list(product.images or []),
            product_snapshot=product.to_snapshot(),
            added_at=timezone.now(),
        )
    _save_totals(cart)
    added = item.to_history()
    added["quantity"] = quantity
    _record_history(cart=cart, action=CartAction.ADD, items=[added])
    _log("cart.item_added", cart, product_id=product.id, cart_item_id=key, quantity=quantity)
    return cart


@transaction.atomic
def update_item_quantity(*, user, cart_item_id: str, quantity: int) -> Cart:
    """Set a line's quantity; zero or less removes the line."""

    cart = _lock_cart(user)
    item = cart.items.filter(cart_item_id=cart_item_id).first()
    if item is None:
        raise CartItemNotFound(cart_item_id=cart_item_id)
    if quantity <= 0:
        item.delete()
    else:
        item.quantity = quantity
        item.save(update_fields=["quantity"])
    _save_totals(cart)
    _record_history(cart=cart, action=CartAction.UPDATE, items=_items_snapshot(cart))
    _log("cart.item_updated", cart, cart_item_id=cart_item_id, quantity=max(quantity, 0))
    return cart


@transaction.atomic
def remove_item(*, user, cart_item_id: str) -> Cart:
    """Remove a line from the cart; a missing line is not an error."""

    cart = _lock_cart(user)
    deleted, _ = cart.items.filter(cart_item_id=cart_item_id).delete()
    _save_totals(cart)
    _record_history(cart=cart, action=CartAction.REMOVE, items=_items_snapshot(cart))
    _log("cart.item_removed", cart, cart_item_id=cart_item_id, removed=bool(deleted))
    return cart


@transaction.atomic
def clear_cart(*, user) -> Cart:
    """Empty the cart and drop any applied coupon."""

    cart = _lock_cart(user)
    prior_items = _items_snapshot(cart)
    prior_snapshot = _cart_snapshot(cart)
    cart.items.all().delete()
    cart.clear_coupon()
    _save_totals(cart)
    _record_history(cart=cart, action=CartAction.CLEAR, items=prior_items, snapshot=prior_snapshot)
    _log("cart.cleared", cart)
    return cart


def _replace_items(cart: Cart, items) -> Cart:
    normalized = normalize_cart_items(items)
    _record_history(cart=cart, action=CartAction.SYNC, items=_items_snapshot(cart))
    cart.items.all().delete()
    CartItem.objects.bulk_create([CartItem(cart=cart, **line) for line in normalized])
    return _save_totals(cart)


@transaction.atomic
def replace_cart(*, user, items) -> Cart:
    """Replace every line in the cart with the normalised ``items``."""

    cart = _lock_cart(user, create=True)
    received = len(items) if isinstance(items, (list, tuple)) else 0
    _replace_items(cart, items)
    _log("cart.replaced", cart, received=received, kept=cart.items.count())
    return cart


@transaction.atomic
def sync_cart(*, user, items, last_sync_time=None) -> SyncResult:
    """Replace the cart from a client copy unless the server copy is newer.

    When the stored ``last_sync_time`` is later than the client's (or the
    client sends none while the server has one), nothing is written and the
    result is flagged as a conflict.
    """

    cart = _lock_cart(user, create=True)
    client_time = _parse_timestamp(last_sync_time)
    if cart.last_sync_time and (client_time is None or client_time < cart.last_sync_time):
        _log("cart.sync_conflict", cart, server_sync_time=cart.last_sync_time.isoformat())
        return SyncResult(cart=cart, conflict=True)

    _replace_items(cart, items)
    cart.last_sync_time = timezone.now()
    cart.save(update_fields=["last_sync_time", "updated_at"])
    _log("cart.synced", cart, total_items=cart.total_items)
    return SyncResult(cart=cart, conflict=False)


# Reconciliation


def _reconcile(cart: Cart) -> list[CartIssue]:
    """Bring stored lines in line with the live catalog.

    Lines whose product is gone or inactive are deleted; lines whose price
    drifted adopt the live price. Stock shortfalls are only reported.
    """

    items = list(cart.items.all())
    products = find_many(item.product_id for item in items)
    issues: list[CartIssue] = []
    changed = False

    for item in items:
        product = products.get(item.product_id)
        if product is None or not product.is_active:
            issues.append(
                CartIssue(item.cart_item_id, IssueCode.PRODUCT_NOT_FOUND, "Product no longer available")
            )
            item.delete()
            changed = True
            continue

        old_price = item.price
        if product.price != old_price:
            item.price = product.price
            item.original_price = max(item.original_price, old_price, product.price)
            item.save(update_fields=["price", "original_price"])
            changed = True

        if product.quantity < item.quantity:
            issues.append(
                CartIssue(
                    item.cart_item_id,
                    IssueCode.INSUFFICIENT_STOCK,
                    f"Only {product.quantity} items available",
                    {"available_quantity": product.quantity},
                )
            )
        elif product.price != old_price:
            issues.append(
                CartIssue(
                    item.cart_item_id,
                    IssueCode.PRICE_CHANGED,
                    "Price has changed",
                    {"old_price": str(old_price), "new_price": str(product.price)},
                )
            )

    if changed:
        _save_totals(cart)
    return issues


@transaction.atomic
def reconcile_cart(*, user) -> Cart:
    """Return the user's cart, created if missing, reconciled against the catalog."""

    cart = _lock_cart(user, create=True)
    _reconcile(cart)
    return cart


@transaction.atomic
def validate_cart(*, user) -> tuple[Cart, list[CartIssue]]:
    """Reconcile the cart and report per-line issues."""

    cart = _lock_cart(user)
    issues = _reconcile(cart)
    _log("cart.validated", cart, issues=len(issues))
    return cart, issues


# Coupons and totals


@transaction.atomic
def apply_coupon(*, user, code: str, coupons: Optional[CouponBook] = None) -> Cart:
    """Attach a coupon to the cart; the discount is applied at checkout."""

    book = coupons if coupons is not None else CouponBook.from_settings()
    cart = _lock_cart(user)
    coupon = book.get(code)
    if coupon is None:
        raise InvalidCoupon(code=str(code))
    if cart.total_price < coupon.min_order:
        raise MinimumNotMet(
            f"Minimum order amount {coupon.min_order:,} required.",
            min_order=str(coupon.min_order),
        )
    now = timezone.now()
    cart.coupon_code = coupon.code
    cart.coupon_discount = coupon.discount
    cart.coupon_type = coupon.type
    cart.coupon_applied_at = now
    cart.last_updated = now
    cart.expires_at = cart_expiry(now)
    cart.save()
    _log("cart.coupon_applied", cart, coupon_code=coupon.code)
    return cart


@transaction.atomic
def remove_coupon(*, user) -> Cart:
    cart = _lock_cart(user)
    now = timezone.now()
    cart.clear_coupon()
    cart.last_updated = now
    cart.expires_at = cart_expiry(now)
    cart.save()
    _log("cart.coupon_removed", cart)
    return cart


def _stored_coupon(cart: Cart, book: CouponBook) -> Optional[Coupon]:
    if not cart.has_coupon:
        return None
    listed = book.get(cart.coupon_code)
    return Coupon(
        code=cart.coupon_code,
        discount=cart.coupon_discount or Decimal("0"),
        type=cart.coupon_type,
        min_order=listed.min_order if listed else Decimal("0"),
    )


def checkout_totals(cart: Cart, coupon_code: Optional[str] = None, coupons: Optional[CouponBook] = None) -> CheckoutTotals:
    """Totals for checkout display.

    A ``coupon_code`` other than the applied one is evaluated without being
    stored. Coupons whose minimum is no longer met contribute nothing.
    """

    book = coupons if coupons is not None else CouponBook.from_settings()
    if coupon_code and coupon_code.strip().upper() != cart.coupon_code.upper():
        coupon = book.get(coupon_code)
    else:
        coupon = _stored_coupon(cart, book)
    if coupon is not None and cart.total_price < coupon.min_order:
        coupon = None
    totals = CartTotals(
        total_items=cart.total_items,
        total_price=cart.total_price,
        total_original_price=cart.total_original_price,
        total_savings=cart.total_savings,
    )
    return checkout_summary(totals, coupon)


def checkout_cart(
    *,
    user,
    shipping_address: dict,
    payment_method: str,
    is_paid: bool = False,
    payment_result: Optional[dict] = None,
    coupons: Optional[CouponBook] = None,
):
    """Place an order from the cart contents and empty the cart.

    The cart is reconciled with the catalog first. Price changes and removed
    products are kept on the cart and reported through ``CartChanged`` so the
    client can confirm the new totals. Placement then runs in one transaction:
    if it fails the cart is left exactly as it was.
    """

    with transaction.atomic():
        cart = _lock_cart(user)
        if not cart.items.exists():
            raise EmptyCart()
        blocking = [issue for issue in _reconcile(cart) if issue.issue in CHECKOUT_BLOCKING_ISSUES]
    if blocking:
        _log("cart.checkout_blocked", cart, issues=len(blocking))
        raise CartChanged(issues=[issue.as_dict() for issue in blocking])

    with transaction.atomic():
        cart = _lock_cart(user)
        items = list(cart.items.all())
        if not items:
            raise EmptyCart()

        totals = checkout_totals(cart, coupons=coupons)
        order = place_order(
            user=user,
            order_items=[
                {
                    "product_id": item.product_id,
                    "quantity": item.quantity,
                    "selected_color": item.selected_color,
                    "selected_size": item.selected_size,
                }
                for item in items
            ],
            shipping_address=shipping_address,
            payment_method=payment_method,
            total_price=totals.total,
            is_paid=is_paid,
            payment_result=payment_result,
            discount_amount=totals.coupon_discount,
            tax_amount=totals.tax,
            shipping_cost=totals.shipping,
        )

        _record_history(cart=cart, action=CartAction.CHECKOUT, items=[item.to_history() for item in items])
        cart.items.all().delete()
        cart.clear_coupon()
        _save_totals(cart)
        _log("cart.checked_out", cart, order_id=order.id, total=str(totals.total))
    return order


# Maintenance


def mark_abandoned_carts(days: Optional[int] = None) -> int:
    """Flag non-empty carts idle for ``days`` as abandoned."""

    days = int(days if days is not None else getattr(settings, "CART_ABANDON_DAYS", 7))
    now = timezone.now()
    cutoff = now - timedelta(days=days)
    count = Cart.objects.filter(is_abandoned=False, total_items__gt=0, last_updated__lt=cutoff).update(
        is_abandoned=True, abandoned_at=now
    )
    logger.info("cart.abandoned_marked", extra={"event": "cart.abandoned_marked", "count": count, "days": days})
    return count


def cleanup_expired_carts() -> int:
    """Delete carts whose TTL has passed. Returns the number of carts removed."""

    _, per_model = Cart.objects.filter(expires_at__lt=timezone.now()).delete()
    count = per_model.get(Cart._meta.label, 0)
    logger.info("cart.expired_removed", extra={"event": "cart.expired_removed", "count": count})
    return count


def prune_cart_history(days: Optional[int] = None) -> int:
    days = int(days if days is not None else getattr(settings, "CART_HISTORY_RETENTION_DAYS", 90))
    cutoff = timezone.now() - timedelta(days=days)
    count, _ = CartHistory.objects.filter(timestamp__lt=cutoff).delete()
    logger.info("cart.history_pruned", extra={"event": "cart.history_pruned", "count": count, "days": days})
    return count
