"""
Offer expiry.

Pending offers are time-boxed. Once an offer is older than
``ORDER_OFFER_EXPIRY_SECONDS`` it moves to ``expired`` and can no longer be
claimed. The order itself keeps its status; the store dashboard is told so
staff can broadcast again.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Optional

from django.conf import settings
from django.utils import timezone

from orders.models import OrderOffer
from realtime.notifications import notify_driver_event, publish_offers_updated

logger = logging.getLogger(__name__)


def expire_stale_offers(now: Optional[datetime] = None, max_age_seconds: Optional[int] = None) -> int:
    """
    Expire every pending offer created before ``now - max_age_seconds``.

    Returns:
        Number of offers moved to ``expired``
    """
    now = now or timezone.now()
    if max_age_seconds is None:
        max_age_seconds = settings.ORDER_OFFER_EXPIRY_SECONDS
    cutoff = now - timedelta(seconds=max_age_seconds)

    # Conditional on pending: an offer claimed or cancelled meanwhile is left alone
    expired = OrderOffer.objects.filter(
        status=OrderOffer.STATUS_PENDING,
        created_at__lt=cutoff,
    ).update(status=OrderOffer.STATUS_EXPIRED, responded_at=now)
    if not expired:
        return 0

    # Only the rows this run wrote carry its timestamp
    stale = (
        OrderOffer.objects
        .filter(status=OrderOffer.STATUS_EXPIRED, responded_at=now, created_at__lt=cutoff)
        .values_list("id", "order_id", "store_id", "driver__user_id")
    )

    by_order = defaultdict(list)
    for offer_id, order_id, store_id, driver_user_id in stale:
        by_order[(store_id, order_id)].append(offer_id)
        notify_driver_event(
            "offer_expired",
            driver_user_id,
            "This delivery offer has timed out.",
            {"offer_id": str(offer_id), "order_id": str(order_id)},
        )

    for (store_id, order_id), offer_ids in by_order.items():
        publish_offers_updated(store_id, order_id, "expired", offer_ids)

    logger.info("Expired %s stale order offers across %s orders", expired, len(by_order))
    return expired
