from datetime import timedelta
from decimal import Decimal

from common.choices import OrderStatus, PaymentMethod
from django.conf import settings
from django.core.validators import MaxLengthValidator, RegexValidator
from django.db import models
from django.utils import timezone

RETURN_WINDOW = timedelta(days=7)


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Order(TimeStampedModel):
    """Purchase order with frozen line prices and a status lifecycle.

    ``is_paid`` and ``is_delivered`` are independent of ``status``; their
    timestamps are set once, the first time each flag becomes true.
    """

    STATUS_PENDING = OrderStatus.PENDING
    STATUS_PROCESSING = OrderStatus.PROCESSING
    STATUS_SHIPPED = OrderStatus.SHIPPED
    STATUS_DELIVERED = OrderStatus.DELIVERED
    STATUS_CANCELLED = OrderStatus.CANCELLED
    STATUS_CHOICES = OrderStatus.choices
    CANCELLABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.PROCESSING)

    user = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="orders", on_delete=models.CASCADE)
    number = models.CharField(max_length=32, unique=True, null=True, blank=True, db_index=True)
    payment_method = models.CharField(max_length=16, choices=PaymentMethod.choices, db_index=True)
    total_price = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)

    is_paid = models.BooleanField(default=False, db_index=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    is_delivered = models.BooleanField(default=False)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    payment_result = models.JSONField(default=dict, blank=True)

    tracking_number = models.CharField(max_length=64, blank=True, default="", db_index=True)
    shipping_carrier = models.CharField(max_length=64, blank=True, default="")
    order_notes = models.TextField(blank=True, default="", validators=[MaxLengthValidator(500)])
    admin_notes = models.TextField(blank=True, default="", validators=[MaxLengthValidator(500)])

    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "created_at"], name="order_user_created_idx"),
            models.Index(fields=["status", "created_at"], name="order_status_created_idx"),
            models.Index(fields=["is_paid", "created_at"], name="order_paid_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(name="order_total_non_negative", condition=models.Q(total_price__gte=0)),
            models.CheckConstraint(
                name="order_adjustments_non_negative",
                condition=models.Q(tax_amount__gte=0, discount_amount__gte=0, shipping_cost__gte=0),
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Order#{self.id} user={self.user_id} status={self.status}"

    @property
    def total_items(self) -> int:
        return sum(int(item.quantity) for item in self.items.all())

    def summary(self) -> dict:
        subtotal = sum((item.line_total for item in self.items.all()), Decimal("0.00"))
        return {
            "subtotal": subtotal,
            "tax_amount": self.tax_amount,
            "shipping_cost": self.shipping_cost,
            "discount_amount": self.discount_amount,
            "total": subtotal + self.tax_amount + self.shipping_cost - self.discount_amount,
            "total_items": self.total_items,
        }

    def can_be_cancelled(self) -> bool:
        return self.status in self.CANCELLABLE_STATUSES

    def can_be_returned(self, now=None) -> bool:
        if self.status != OrderStatus.DELIVERED or not self.delivered_at:
            return False
        now = now or timezone.now()
        return now - self.delivered_at <= RETURN_WINDOW


class OrderItem(models.Model):
    """Line item within an order; the price is frozen at placement."""

    order = models.ForeignKey(Order, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey("catalog.Product", related_name="order_items", on_delete=models.PROTECT)
    product_name = models.CharField(max_length=200, blank=True)
    quantity = models.PositiveIntegerField(default=1)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    selected_color = models.CharField(max_length=64, null=True, blank=True)
    selected_size = models.CharField(max_length=64, null=True, blank=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(name="orderitem_price_non_negative", condition=models.Q(price__gte=0)),
            models.CheckConstraint(name="orderitem_quantity_positive", condition=models.Q(quantity__gte=1)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"OrderItem#{self.id} order={self.order_id} product={self.product_id} qty={self.quantity}"

    @property
    def line_total(self) -> Decimal:
        return (self.price or Decimal("0.00")) * Decimal(int(self.quantity))


class ShippingAddress(models.Model):
    order = models.OneToOneField(Order, related_name="shipping_address", on_delete=models.CASCADE)
    first_name = models.CharField(max_length=50)
    last_name = models.CharField(max_length=50)
    company = models.CharField(max_length=100, blank=True, default="")
    address = models.CharField(max_length=200)
    apartment = models.CharField(max_length=50, blank=True, default="")
    city = models.CharField(max_length=50)
    state = models.CharField(max_length=50)
    pincode = models.CharField(max_length=6, validators=[RegexValidator(r"^\d{6}$", "PIN code must be 6 digits")])
    phone = models.CharField(max_length=10, validators=[RegexValidator(r"^\d{10}$", "Phone number must be 10 digits")])
    email = models.EmailField()

    class Meta:
        verbose_name_plural = "shipping addresses"

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.full_name}, {self.city}"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class OrderStatusHistory(models.Model):
    """Append-only record of status changes on an order."""

    order = models.ForeignKey(Order, related_name="status_history", on_delete=models.CASCADE)
    status = models.CharField(max_length=16, choices=OrderStatus.choices)
    timestamp = models.DateTimeField(default=timezone.now)
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, related_name="+", on_delete=models.SET_NULL
    )
    notes = models.CharField(max_length=500, blank=True, default="")

    class Meta:
        ordering = ["timestamp", "id"]
        verbose_name_plural = "order status history"

    def __str__(self) -> str:  # pragma: no cover
        return f"Order#{self.order_id} -> {self.status}"


class IdempotencyKey(TimeStampedModel):
    """Stores idempotent request results to prevent duplicate processing."""

    key = models.CharField(max_length=128)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.CASCADE)
    scope = models.CharField(max_length=128)
    path = models.CharField(max_length=255)
    method = models.CharField(max_length=16)
    request_hash = models.CharField(max_length=64, null=True, blank=True)
    response_code = models.IntegerField(null=True, blank=True)
    response_json = models.JSONField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True, db_index=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["key", "scope", "path", "method"], name="uniq_idem_scope_path_method"),
        ]
