from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

ORDER_STATUS_CHOICES = [
    ("pending", "Pending"),
    ("processing", "Processing"),
    ("shipped", "Shipped"),
    ("delivered", "Delivered"),
    ("cancelled", "Cancelled"),
]

PAYMENT_METHOD_CHOICES = [
    ("cod", "Cash on delivery"),
    ("online", "Online"),
    ("card", "Card"),
    ("upi", "UPI"),
    ("netbanking", "Net banking"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("number", models.CharField(blank=True, db_index=True, max_length=32, null=True, unique=True)),
                ("payment_method", models.CharField(choices=PAYMENT_METHOD_CHOICES, db_index=True, max_length=16)),
                ("total_price", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "status",
                    models.CharField(choices=ORDER_STATUS_CHOICES, db_index=True, default="pending", max_length=16),
                ),
                ("is_paid", models.BooleanField(db_index=True, default=False)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("is_delivered", models.BooleanField(default=False)),
                ("delivered_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("payment_result", models.JSONField(blank=True, default=dict)),
                ("tracking_number", models.CharField(blank=True, db_index=True, default="", max_length=64)),
                ("shipping_carrier", models.CharField(blank=True, default="", max_length=64)),
                (
                    "order_notes",
                    models.TextField(
                        blank=True, default="", validators=[django.core.validators.MaxLengthValidator(500)]
                    ),
                ),
                (
                    "admin_notes",
                    models.TextField(
                        blank=True, default="", validators=[django.core.validators.MaxLengthValidator(500)]
                    ),
                ),
                ("tax_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("discount_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("shipping_cost", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["user", "created_at"], name="order_user_created_idx"),
                    models.Index(fields=["status", "created_at"], name="order_status_created_idx"),
                    models.Index(fields=["is_paid", "created_at"], name="order_paid_created_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("total_price__gte", 0)), name="order_total_non_negative"),
                    models.CheckConstraint(
                        condition=models.Q(("discount_amount__gte", 0), ("shipping_cost__gte", 0), ("tax_amount__gte", 0)),
                        name="order_adjustments_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("product_name", models.CharField(blank=True, max_length=200)),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("price", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("selected_color", models.CharField(blank=True, max_length=64, null=True)),
                ("selected_size", models.CharField(blank=True, max_length=64, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="items", to="orders.order"
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="order_items", to="catalog.product"
                    ),
                ),
            ],
            options={
                "ordering": ["id"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("price__gte", 0)), name="orderitem_price_non_negative"),
                    models.CheckConstraint(condition=models.Q(("quantity__gte", 1)), name="orderitem_quantity_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ShippingAddress",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("first_name", models.CharField(max_length=50)),
                ("last_name", models.CharField(max_length=50)),
                ("company", models.CharField(blank=True, default="", max_length=100)),
                ("address", models.CharField(max_length=200)),
                ("apartment", models.CharField(blank=True, default="", max_length=50)),
                ("city", models.CharField(max_length=50)),
                ("state", models.CharField(max_length=50)),
                (
                    "pincode",
                    models.CharField(
                        max_length=6,
                        validators=[django.core.validators.RegexValidator("^\\d{6}$", "PIN code must be 6 digits")],
                    ),
                ),
                (
                    "phone",
                    models.CharField(
                        max_length=10,
                        validators=[
                            django.core.validators.RegexValidator("^\\d{10}$", "Phone number must be 10 digits")
                        ],
                    ),
                ),
                ("email", models.EmailField(max_length=254)),
                (
                    "order",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="shipping_address",
                        to="orders.order",
                    ),
                ),
            ],
            options={"verbose_name_plural": "shipping addresses"},
        ),
        migrations.CreateModel(
            name="OrderStatusHistory",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("status", models.CharField(choices=ORDER_STATUS_CHOICES, max_length=16)),
                ("timestamp", models.DateTimeField(default=django.utils.timezone.now)),
                ("notes", models.CharField(blank=True, default="", max_length=500)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="status_history",
                        to="orders.order",
                    ),
                ),
                (
                    "updated_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"ordering": ["timestamp", "id"], "verbose_name_plural": "order status history"},
        ),
        migrations.CreateModel(
            name="IdempotencyKey",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("key", models.CharField(max_length=128)),
                ("scope", models.CharField(max_length=128)),
                ("path", models.CharField(max_length=255)),
                ("method", models.CharField(max_length=16)),
                ("request_hash", models.CharField(blank=True, max_length=64, null=True)),
                ("response_code", models.IntegerField(blank=True, null=True)),
                ("response_json", models.JSONField(blank=True, null=True)),
                ("expires_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        fields=("key", "scope", "path", "method"), name="uniq_idem_scope_path_method"
                    )
                ],
            },
        ),
    ]
