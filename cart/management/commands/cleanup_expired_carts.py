from cart.services import cleanup_expired_carts, prune_cart_history
from django.core.management.base import BaseCommand


class Command(BaseCommand):
    help = "Delete carts past their TTL and prune old cart history entries"

    def add_arguments(self, parser):
        parser.add_argument(
            "--history-days",
            type=int,
            default=None,
            help="History retention in days (defaults to CART_HISTORY_RETENTION_DAYS)",
        )
        parser.add_argument("--skip-history", action="store_true", help="Only delete expired carts")

    def handle(self, *args, **options):
        carts = cleanup_expired_carts()
        self.stdout.write(self.style.SUCCESS(f"Deleted {carts} expired carts."))
        if options["skip_history"]:
            return
        entries = prune_cart_history(days=options["history_days"])
        self.stdout.write(self.style.SUCCESS(f"Pruned {entries} cart history entries."))
