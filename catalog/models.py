"""Catalog app models.

The product table is the authoritative source for name, price and stock.
Cart and order workflows read it for snapshots and validation; only order
placement and cancellation write to ``quantity``.
"""

from decimal import Decimal

from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Product(TimeStampedModel):
    """Sellable product with a single shared stock counter."""

    name = models.CharField(max_length=200, db_index=True)
    brand = models.CharField(max_length=50, blank=True, db_index=True)
    category = models.CharField(max_length=64, blank=True, db_index=True)
    sku = models.CharField(max_length=64, unique=True, null=True, blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    original_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    quantity = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True, db_index=True)
    images = models.JSONField(default=list, blank=True)
    colors = models.JSONField(default=list, blank=True)
    sizes = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(name="product_price_non_negative", condition=models.Q(price__gte=0)),
        ]
        indexes = [
            models.Index(fields=["category", "is_active"], name="product_category_active_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.name} ({self.quantity} in stock)"

    @property
    def list_price(self) -> Decimal:
        """Price before discount; falls back to the selling price."""
        return self.original_price or self.price

    def can_purchase(self, quantity: int = 1) -> bool:
        return self.is_active and self.quantity >= quantity

    def to_snapshot(self) -> dict:
        """JSON-safe copy of the catalog fields frozen into a cart line."""
        return {
            "id": self.id,
            "name": self.name,
            "brand": self.brand,
            "category": self.category,
            "sku": self.sku,
            "price": str(self.price),
            "original_price": str(self.list_price),
            "images": list(self.images or []),
            "colors": list(self.colors or []),
            "sizes": list(self.sizes or []),
        }
