from cart.services import abandon_stale_carts
from django.core.management.base import BaseCommand


class Command(BaseCommand):
    help = "Abandon open carts untouched for longer than CART_ABANDON_TTL_MINUTES, refunding loyalty credits"

    def add_arguments(self, parser):
        parser.add_argument("--ttl-minutes", type=int, default=None, help="Override CART_ABANDON_TTL_MINUTES")

    def handle(self, *args, **options):
        count = abandon_stale_carts(ttl_minutes=options.get("ttl_minutes"))
        self.stdout.write(self.style.SUCCESS(f"Abandoned {count} stale carts."))
