"""Shared enumerations and choices used across apps."""

from django.db import models


class CouponType(models.TextChoices):
    PERCENTAGE = "percentage", "Percentage"
    FIXED = "fixed", "Fixed"


class CartAction(models.TextChoices):
    """Mutations recorded in the cart audit trail."""

    ADD = "add", "Add"
    UPDATE = "update", "Update"
    REMOVE = "remove", "Remove"
    CLEAR = "clear", "Clear"
    SYNC = "sync", "Sync"
    CHECKOUT = "checkout", "Checkout"


class OrderStatus(models.TextChoices):
    """Lifecycle statuses for orders."""

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"


class PaymentMethod(models.TextChoices):
    COD = "cod", "Cash on delivery"
    ONLINE = "online", "Online"
    CARD = "card", "Card"
    UPI = "upi", "UPI"
    NETBANKING = "netbanking", "Net banking"


class IssueCode(models.TextChoices):
    """Per-item problems reported by cart validation."""

    PRODUCT_NOT_FOUND = "product_not_found", "Product no longer available"
    INSUFFICIENT_STOCK = "insufficient_stock", "Insufficient stock"
    PRICE_CHANGED = "price_changed", "Price has changed"
