"""
Offer claiming.

Every driver contacted by a broadcast holds a pending offer for the same
order; the first claim wins. Exclusivity comes from two conditional
updates in one transaction:
    - offer: pending -> accepted
    - order: awaiting_driver (no driver, or this driver by assignment) -> assigned
If either matches no row the transaction rolls back. The partial unique
constraint on accepted offers backs this up at the database level.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from drivers.models import DriverProfile
from notifications.fanout import notify_users
from notifications.messages import order_assigned_message
from orders.models import Order, OrderOffer
from realtime.notifications import (
    notify_driver_event,
    publish_offers_updated,
    publish_order_status,
    publish_store_event,
)
from .exceptions import (
    DriverNotAvailableError,
    OfferAlreadyClaimedError,
    OfferNotAvailableError,
    OfferNotFoundError,
)

logger = logging.getLogger(__name__)


@dataclass
class OfferClaimResult:
    """Result object for a successful claim."""
    order: Order
    offer: OrderOffer
    cancelled_offer_ids: List[Any] = field(default_factory=list)
    message: str = "Delivery accepted! Head to the store for pickup."


def _get_driver_profile(user) -> DriverProfile:
    try:
        return user.driver_profile
    except DriverProfile.DoesNotExist:
        raise OfferNotFoundError("Driver profile not found")


def _lost_race_error(offer: OrderOffer) -> Exception:
    order = Order.objects.only("status", "driver").get(id=offer.order_id)
    if (order.driver_id and order.driver_id != offer.driver_id) or order.status not in Order.BROADCASTABLE_STATUSES:
        return OfferAlreadyClaimedError("Another driver already accepted this delivery")
    return OfferNotAvailableError(f"This offer is {offer.status} and can no longer be accepted")


def claim_offer(user, offer_id) -> OfferClaimResult:
    """
    Accept one pending offer on behalf of a driver.

    Args:
        user: User model instance (driver)
        offer_id: Offer addressed to this driver

    Returns:
        OfferClaimResult with the assigned order

    Raises:
        OfferNotFoundError: no such offer for this driver
        DriverNotAvailableError: driver inactive or not set to available
        OfferAlreadyClaimedError: another driver won the order
        OfferNotAvailableError: the offer was cancelled or expired
    """
    profile = _get_driver_profile(user)

    if not profile.is_active:
        raise DriverNotAvailableError("Your driver account is inactive")

    try:
        offer = OrderOffer.objects.select_related("order").get(id=offer_id, driver=profile)
    except OrderOffer.DoesNotExist:
        raise OfferNotFoundError("This offer was not sent to you")

    # A store-assigned driver is held in pending_acceptance for this order
    assigned_to_me = offer.order.driver_id == profile.id
    if assigned_to_me:
        if profile.driver_status != DriverProfile.STATUS_PENDING_ACCEPTANCE:
            raise DriverNotAvailableError("This assignment is no longer waiting for you")
    elif not profile.is_available or profile.driver_status != DriverProfile.STATUS_AVAILABLE:
        raise DriverNotAvailableError("Please set your status to available before accepting orders")

    now = timezone.now()
    try:
        with transaction.atomic():
            claimed = OrderOffer.objects.filter(
                id=offer.id,
                status=OrderOffer.STATUS_PENDING,
            ).update(status=OrderOffer.STATUS_ACCEPTED, responded_at=now)
            if not claimed:
                offer.refresh_from_db(fields=["status"])
                raise _lost_race_error(offer)

            assigned = Order.objects.filter(
                Q(driver__isnull=True) | Q(driver=profile),
                id=offer.order_id,
                status=Order.STATUS_AWAITING_DRIVER,
            ).update(status=Order.STATUS_ASSIGNED, driver=profile, updated_at=now)
            if not assigned:
                raise OfferAlreadyClaimedError("Another driver already accepted this delivery")

            siblings = list(
                OrderOffer.objects
                .filter(order_id=offer.order_id, status=OrderOffer.STATUS_PENDING)
                .exclude(id=offer.id)
                .values_list("id", "driver__user_id")
            )
            if siblings:
                OrderOffer.objects.filter(
                    id__in=[sibling_id for sibling_id, _ in siblings],
                    status=OrderOffer.STATUS_PENDING,
                ).update(status=OrderOffer.STATUS_CANCELLED, responded_at=now)

            DriverProfile.objects.filter(id=profile.id).update(
                driver_status=DriverProfile.STATUS_BUSY,
                is_available=False,
                updated_at=now,
            )
    except IntegrityError:
        logger.info("Offer %s lost the claim race on the unique constraint", offer_id)
        raise OfferAlreadyClaimedError("Another driver already accepted this delivery")

    offer.refresh_from_db()
    profile.refresh_from_db()
    order = Order.objects.select_related("store").get(id=offer.order_id)
    cancelled_ids = [sibling_id for sibling_id, _ in siblings]

    logger.info("Driver %s claimed order %s via offer %s", profile.id, order.id, offer.id)

    publish_order_status(order)
    publish_offers_updated(order.store_id, order.id, "accepted", [offer.id], driver_id=str(profile.id))
    if cancelled_ids:
        publish_offers_updated(order.store_id, order.id, "cancelled", cancelled_ids, reason="claimed")
    publish_store_event(order.store_id, "driver_status_changed", {
        "driver_id": str(profile.id),
        "driver_name": profile.driver_name,
        "status": profile.driver_status,
        "is_available": profile.is_available,
    })

    notify_driver_event("offer_accepted", user.pk, "Delivery accepted! Head to the store for pickup.", {
        "offer_id": str(offer.id),
        "order_id": str(order.id),
    })
    for sibling_id, driver_user_id in siblings:
        notify_driver_event("offer_cancelled", driver_user_id, "Another driver accepted this delivery.", {
            "offer_id": str(sibling_id),
            "order_id": str(order.id),
        })

    try:
        notify_users([order.store.owner_id], order_assigned_message(order, profile.driver_name or user.get_username()))
    except Exception:
        logger.exception("Failed to notify store owner about order %s", order.id)

    return OfferClaimResult(order=order, offer=offer, cancelled_offer_ids=cancelled_ids)
