from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Cart",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("coupon_code", models.CharField(blank=True, default="", max_length=32)),
                ("coupon_discount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                (
                    "coupon_type",
                    models.CharField(
                        blank=True,
                        choices=[("percentage", "Percentage"), ("fixed", "Fixed")],
                        default="",
                        max_length=16,
                    ),
                ),
                ("coupon_applied_at", models.DateTimeField(blank=True, null=True)),
                ("total_items", models.PositiveIntegerField(default=0)),
                ("total_price", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                (
                    "total_original_price",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12),
                ),
                ("total_savings", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("last_updated", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("last_sync_time", models.DateTimeField(blank=True, null=True)),
                ("expires_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("session_id", models.CharField(blank=True, default="", max_length=64)),
                ("is_abandoned", models.BooleanField(db_index=True, default=False)),
                ("abandoned_at", models.DateTimeField(blank=True, null=True)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="cart",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-last_updated"],
                "indexes": [
                    models.Index(fields=["is_abandoned", "last_updated"], name="cart_abandoned_updated_idx")
                ],
            },
        ),
        migrations.CreateModel(
            name="CartItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("cart_item_id", models.CharField(max_length=255)),
                ("name", models.CharField(max_length=200)),
                ("brand", models.CharField(blank=True, default="", max_length=50)),
                ("price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("original_price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("selected_color", models.CharField(blank=True, max_length=64, null=True)),
                ("selected_size", models.CharField(blank=True, max_length=64, null=True)),
                ("images", models.JSONField(blank=True, default=list)),
                ("product_snapshot", models.JSONField(blank=True, default=dict)),
                ("added_at", models.DateTimeField()),
                (
                    "cart",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="items", to="cart.cart"
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        db_constraint=False,
                        on_delete=django.db.models.deletion.DO_NOTHING,
                        related_name="+",
                        to="catalog.product",
                    ),
                ),
            ],
            options={
                "ordering": ["added_at", "id"],
                "constraints": [
                    models.UniqueConstraint(fields=("cart", "cart_item_id"), name="unique_cart_item_per_cart"),
                    models.CheckConstraint(condition=models.Q(("quantity__gte", 1)), name="cart_item_quantity_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CartHistory",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("items", models.JSONField(blank=True, default=list)),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("add", "Add"),
                            ("update", "Update"),
                            ("remove", "Remove"),
                            ("clear", "Clear"),
                            ("sync", "Sync"),
                            ("checkout", "Checkout"),
                        ],
                        default="update",
                        max_length=16,
                    ),
                ),
                ("timestamp", models.DateTimeField(db_index=True)),
                ("cart_snapshot", models.JSONField(blank=True, default=dict)),
                ("session_id", models.CharField(blank=True, default="", max_length=64)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="cart_history",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "cart history",
                "ordering": ["-timestamp", "-id"],
                "indexes": [models.Index(fields=["user", "timestamp"], name="cart_history_user_ts_idx")],
            },
        ),
    ]
