from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(db_index=True, max_length=200)),
                ("brand", models.CharField(blank=True, db_index=True, max_length=50)),
                ("category", models.CharField(blank=True, db_index=True, max_length=64)),
                ("sku", models.CharField(blank=True, max_length=64, null=True, unique=True)),
                ("price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("original_price", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("quantity", models.PositiveIntegerField(default=0)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("images", models.JSONField(blank=True, default=list)),
                ("colors", models.JSONField(blank=True, default=list)),
                ("sizes", models.JSONField(blank=True, default=list)),
            ],
            options={
                "ordering": ["name"],
                "indexes": [models.Index(fields=["category", "is_active"], name="product_category_active_idx")],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("price__gte", 0)), name="product_price_non_negative")
                ],
            },
        ),
    ]
