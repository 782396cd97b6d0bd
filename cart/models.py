"""Cart app models.

One cart per user. Line items carry a frozen copy of the catalog data taken
when they were added; totals on the cart are derived from the items and are
rewritten by the services on every mutation.
"""

from decimal import Decimal

from common.choices import CartAction, CouponType
from django.conf import settings
from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Cart(TimeStampedModel):
    """Shopping cart bound to a single user."""

    user = models.OneToOneField(settings.AUTH_USER_MODEL, related_name="cart", on_delete=models.CASCADE)

    coupon_code = models.CharField(max_length=32, blank=True, default="")
    coupon_discount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    coupon_type = models.CharField(max_length=16, choices=CouponType.choices, blank=True, default="")
    coupon_applied_at = models.DateTimeField(null=True, blank=True)

    total_items = models.PositiveIntegerField(default=0)
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total_original_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total_savings = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    last_updated = models.DateTimeField(null=True, blank=True, db_index=True)
    last_sync_time = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True, db_index=True)
    session_id = models.CharField(max_length=64, blank=True, default="")

    is_abandoned = models.BooleanField(default=False, db_index=True)
    abandoned_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-last_updated"]
        indexes = [
            models.Index(fields=["is_abandoned", "last_updated"], name="cart_abandoned_updated_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Cart#{self.id} ({self.user_id})"

    @property
    def has_coupon(self) -> bool:
        return bool(self.coupon_code)

    @property
    def summary(self) -> dict:
        return {
            "total_items": self.total_items,
            "total_price": self.total_price,
            "total_original_price": self.total_original_price,
            "total_savings": self.total_savings,
            "item_count": self.items.count(),
            "is_empty": self.total_items == 0,
            "has_discounts": self.total_savings > 0,
            "has_coupon": self.has_coupon,
        }

    def coupon_snapshot(self):
        if not self.has_coupon:
            return None
        return {
            "code": self.coupon_code,
            "discount": str(self.coupon_discount),
            "type": self.coupon_type,
            "applied_at": self.coupon_applied_at.isoformat() if self.coupon_applied_at else None,
        }

    def clear_coupon(self) -> None:
        self.coupon_code = ""
        self.coupon_discount = None
        self.coupon_type = ""
        self.coupon_applied_at = None


class CartItem(models.Model):
    """One selected product variant (color/size) in a cart."""

    cart = models.ForeignKey(Cart, related_name="items", on_delete=models.CASCADE)
    # No database constraint: the line outlives a deleted product until the
    # cart is next reconciled against the catalog.
    product = models.ForeignKey(
        "catalog.Product",
        related_name="+",
        on_delete=models.DO_NOTHING,
        db_constraint=False,
    )
    cart_item_id = models.CharField(max_length=255)
    name = models.CharField(max_length=200)
    brand = models.CharField(max_length=50, blank=True, default="")
    price = models.DecimalField(max_digits=12, decimal_places=2)
    original_price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField(default=1)
    selected_color = models.CharField(max_length=64, null=True, blank=True)
    selected_size = models.CharField(max_length=64, null=True, blank=True)
    images = models.JSONField(default=list, blank=True)
    product_snapshot = models.JSONField(default=dict, blank=True)
    added_at = models.DateTimeField()

    class Meta:
        ordering = ["added_at", "id"]
        constraints = [
            models.UniqueConstraint(fields=["cart", "cart_item_id"], name="unique_cart_item_per_cart"),
            models.CheckConstraint(name="cart_item_quantity_positive", condition=models.Q(quantity__gte=1)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"CartItem {self.cart_item_id} cart={self.cart_id} qty={self.quantity}"

    @staticmethod
    def build_key(product_id, selected_color=None, selected_size=None) -> str:
        return f"{product_id}_{selected_color or 'default'}_{selected_size or 'default'}"

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    @property
    def line_original_total(self) -> Decimal:
        return (self.original_price or self.price) * self.quantity

    def to_history(self) -> dict:
        return {
            "product_id": self.product_id,
            "cart_item_id": self.cart_item_id,
            "name": self.name,
            "brand": self.brand,
            "price": str(self.price),
            "original_price": str(self.original_price),
            "quantity": self.quantity,
            "selected_color": self.selected_color,
            "selected_size": self.selected_size,
        }


class CartHistory(models.Model):
    """Append-only audit record written alongside every cart mutation."""

    user = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="cart_history", on_delete=models.CASCADE)
    items = models.JSONField(default=list, blank=True)
    action = models.CharField(max_length=16, choices=CartAction.choices, default=CartAction.UPDATE)
    timestamp = models.DateTimeField(db_index=True)
    cart_snapshot = models.JSONField(default=dict, blank=True)
    session_id = models.CharField(max_length=64, blank=True, default="")

    class Meta:
        ordering = ["-timestamp", "-id"]
        verbose_name_plural = "cart history"
        indexes = [
            models.Index(fields=["user", "timestamp"], name="cart_history_user_ts_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"CartHistory#{self.id} {self.action} user={self.user_id}"
