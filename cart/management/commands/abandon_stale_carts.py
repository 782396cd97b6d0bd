from cart.services import mark_abandoned_carts
from django.conf import settings
from django.core.management.base import BaseCommand


class Command(BaseCommand):
    help = "Flag non-empty carts idle for longer than CART_ABANDON_DAYS as abandoned"

    def add_arguments(self, parser):
        parser.add_argument("--days", type=int, default=None, help="Idle days (defaults to CART_ABANDON_DAYS)")

    def handle(self, *args, **options):
        days = options["days"] if options["days"] is not None else getattr(settings, "CART_ABANDON_DAYS", 7)
        count = mark_abandoned_carts(days=days)
        self.stdout.write(self.style.SUCCESS(f"Marked {count} stale carts as abandoned."))
