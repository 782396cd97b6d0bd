"""Seed catalog products for local development.

Re-running is idempotent; existing products are matched by SKU and updated.
"""

from decimal import Decimal

from catalog.models import Product
from django.core.management.base import BaseCommand
from django.db import transaction

PRODUCTS = [
    {
        "sku": "AUD-MON-001",
        "name": "Studio Monitor Speakers",
        "brand": "Acoustica",
        "category": "audio",
        "price": Decimal("2999.00"),
        "original_price": Decimal("3499.00"),
        "quantity": 25,
        "colors": ["Black", "White"],
        "images": ["https://images.example.com/monitor-speakers-primary.jpg"],
    },
    {
        "sku": "VID-CAM-001",
        "name": "4K Camcorder",
        "brand": "Lumen",
        "category": "video",
        "price": Decimal("7990.00"),
        "original_price": None,
        "quantity": 8,
        "colors": ["Black"],
        "images": ["https://images.example.com/camcorder-primary.jpg"],
    },
    {
        "sku": "ACC-HDMI-002",
        "name": "HDMI 2.1 Cable 2m",
        "brand": "Linkline",
        "category": "accessories",
        "price": Decimal("199.00"),
        "original_price": Decimal("249.00"),
        "quantity": 200,
        "sizes": ["1m", "2m", "3m"],
        "images": ["https://images.example.com/hdmi-cable-primary.jpg"],
    },
    {
        "sku": "AUD-HP-003",
        "name": "Closed-back Headphones",
        "brand": "Acoustica",
        "category": "audio",
        "price": Decimal("1499.00"),
        "original_price": Decimal("1999.00"),
        "quantity": 40,
        "colors": ["Black", "Silver"],
        "images": ["https://images.example.com/headphones-primary.jpg"],
    },
]


class Command(BaseCommand):
    help = "Seed catalog products for development (idempotent by SKU)"

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write("Seeding catalog data...")
        created = 0
        for entry in PRODUCTS:
            defaults = {k: v for k, v in entry.items() if k != "sku"}
            defaults.setdefault("is_active", True)
            _, was_created = Product.objects.update_or_create(sku=entry["sku"], defaults=defaults)
            created += int(was_created)
        self.stdout.write(self.style.SUCCESS(f"Seeded {len(PRODUCTS)} products ({created} new)."))
