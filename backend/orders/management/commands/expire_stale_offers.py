from django.conf import settings
from django.core.management.base import BaseCommand

from services.matching import expire_stale_offers


class Command(BaseCommand):
    help = "Expire pending order offers that nobody claimed in time."

    def add_arguments(self, parser):
        parser.add_argument(
            "--max-age",
            type=int,
            default=None,
            help=(
                "Seconds before a pending offer expires "
                f"(default: ORDER_OFFER_EXPIRY_SECONDS = {settings.ORDER_OFFER_EXPIRY_SECONDS})."
            ),
        )

    def handle(self, *args, **options):
        expired_count = expire_stale_offers(max_age_seconds=options["max_age"])

        self.stdout.write(
            self.style.SUCCESS(f"Expired {expired_count} offer(s).")
        )
