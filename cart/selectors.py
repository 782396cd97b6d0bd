"""Selectors for read-only cart queries."""

from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.db.models import QuerySet
from django.utils import timezone

from .models import Cart, CartHistory


def cart_expiry(now=None):
    now = now or timezone.now()
    return now + timedelta(days=int(getattr(settings, "CART_TTL_DAYS", 30)))


def get_or_create_cart(*, user) -> Cart:
    """Return the user's cart, creating an empty one if missing."""

    now = timezone.now()
    cart, _ = Cart.objects.get_or_create(
        user=user,
        defaults={"last_updated": now, "expires_at": cart_expiry(now)},
    )
    return cart


def get_cart_for_user(*, user, for_update: bool = False) -> Optional[Cart]:
    """Return the user's cart or None when they have never had one."""

    qs = Cart.objects.select_for_update() if for_update else Cart.objects.all()
    return qs.filter(user=user).first()


def list_cart_history(*, user) -> QuerySet[CartHistory]:
    return CartHistory.objects.filter(user=user).order_by("-timestamp", "-id")
