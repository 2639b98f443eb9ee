import logging
from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from shop.models import Order

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Cancel PENDING orders whose payment session was abandoned."

    def add_arguments(self, parser):
        parser.add_argument(
            "--hours",
            type=int,
            default=None,
            help="Age in hours after which a PENDING order is cancelled (default: PENDING_ORDER_TTL_HOURS).",
        )

    def handle(self, *args, **options):
        hours = options["hours"]
        if hours is None:
            hours = int(getattr(settings, "PENDING_ORDER_TTL_HOURS", 48))
        if hours <= 0:
            raise CommandError("--hours must be a positive number")

        cutoff = timezone.now() - timedelta(hours=hours)
        cancelled = Order.objects.cancel_stale(older_than=cutoff)
        logger.info(f"Cancelled {cancelled} pending order(s) created before {cutoff.isoformat()}")
        self.stdout.write(self.style.SUCCESS(f"Cancelled {cancelled} stale pending order(s)."))
