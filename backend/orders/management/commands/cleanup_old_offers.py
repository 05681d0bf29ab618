import logging
from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from orders.models import OrderOffer

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Delete settled order offers (cancelled/expired) older than a number of days."

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=30,
            help="Delete offers older than this many days (default: 30).",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be deleted without actually deleting.",
        )

    def handle(self, *args, **options):
        days = options["days"]
        cutoff = timezone.now() - timedelta(days=days)

        # Accepted offers record who delivered the order; they are kept
        old_offers = OrderOffer.objects.filter(
            created_at__lt=cutoff,
            status__in=[OrderOffer.STATUS_CANCELLED, OrderOffer.STATUS_EXPIRED],
        )
        offers_count = old_offers.count()

        if options["dry_run"]:
            self.stdout.write(
                self.style.WARNING(
                    f"DRY RUN: Would delete {offers_count} offers older than {days} days."
                )
            )
            return

        old_offers.delete()
        logger.info("Cleaned up %s old order offers", offers_count)
        self.stdout.write(
            self.style.SUCCESS(f"Deleted {offers_count} offers older than {days} days.")
        )
