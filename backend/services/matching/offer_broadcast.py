"""
Offer broadcast.

Offers an order to every eligible driver of its store at once; the first
driver to claim it wins (see ``services.order_management.offer_claim``).

A broadcast replaces whatever offer set the order had before:
1. Lock the order row
2. Cancel its pending offers
3. Create one pending offer per eligible driver
4. Move the order to ``awaiting_driver``
All four happen in one transaction. Realtime events and the driver
fan-out only run after it commits, and their failures never change the
result returned to the caller.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from drivers.models import DriverProfile
from drivers.services import eligible_drivers_for_store
from notifications.fanout import FanoutResult, notify_users
from notifications.messages import order_offer_message
from orders.models import Order, OrderOffer
from realtime.notifications import (
    notify_drivers_of_offers,
    publish_offers_updated,
    publish_order_status,
    publish_store_event,
)
from services.order_management.exceptions import (
    BroadcastError,
    OrderNotBroadcastableError,
    OrderNotFoundError,
)

logger = logging.getLogger(__name__)


@dataclass
class BroadcastResult:
    """Result of one broadcast. Zero drivers contacted is still a success."""
    order_id: Any
    store_id: Any
    drivers_contacted: int
    order_status: str
    offer_ids: List[Any] = field(default_factory=list)
    driver_names: List[str] = field(default_factory=list)
    cancelled_offer_ids: List[Any] = field(default_factory=list)
    fanout: Optional[FanoutResult] = None

    @property
    def message(self) -> str:
        if not self.drivers_contacted:
            return "No available drivers for this store"
        return f"Order broadcasted to {self.drivers_contacted} drivers"


@dataclass
class DispatchResult:
    dispatched: bool
    reason: str
    next_open: Optional[str] = None
    broadcast: Optional[BroadcastResult] = None


def _load_order(order_id, store_id, lock: bool = False) -> Order:
    queryset = Order.objects.select_for_update() if lock else Order.objects
    try:
        return queryset.get(id=order_id, store_id=store_id)
    except Order.DoesNotExist:
        raise OrderNotFoundError("Order not found for this store")


def _ensure_broadcastable(order: Order) -> None:
    if order.status not in Order.BROADCASTABLE_STATUSES:
        raise OrderNotBroadcastableError(
            f"Order is {order.status} and can no longer be offered to drivers"
        )


def _relay(order: Order, offers: List[OrderOffer], cancelled_ids: List[Any], released_driver_id=None) -> None:
    if cancelled_ids:
        publish_offers_updated(order.store_id, order.id, "cancelled", cancelled_ids, reason="superseded")
    publish_offers_updated(order.store_id, order.id, "created", [offer.id for offer in offers])
    publish_order_status(order)
    notify_drivers_of_offers(order, offers)
    if released_driver_id:
        publish_store_event(order.store_id, "driver_status_changed", {
            "driver_id": str(released_driver_id),
            "status": DriverProfile.STATUS_AVAILABLE,
            "is_available": True,
        })


def broadcast_order_offers(order_id, store_id) -> BroadcastResult:
    """
    Offer an order to every eligible driver of its store.

    Args:
        order_id: Order to broadcast
        store_id: Store that must own the order

    Returns:
        BroadcastResult with the offers created

    Raises:
        OrderNotFoundError: order unknown or owned by another store
        OrderNotBroadcastableError: order already assigned, delivered or cancelled
        BroadcastError: the offer set could not be written; nothing was changed
    """
    try:
        order = _load_order(order_id, store_id)
        _ensure_broadcastable(order)
        drivers = list(eligible_drivers_for_store(store_id))
    except DatabaseError as exc:
        logger.exception("Could not load drivers for order %s", order_id)
        raise BroadcastError("Failed to look up available drivers") from exc

    if not drivers:
        logger.info("No eligible drivers for order %s in store %s", order_id, store_id)
        return BroadcastResult(
            order_id=order.id,
            store_id=order.store_id,
            drivers_contacted=0,
            order_status=order.status,
        )

    try:
        with transaction.atomic():
            # Concurrent broadcasts of this order queue up here
            order = _load_order(order_id, store_id, lock=True)
            _ensure_broadcastable(order)

            now = timezone.now()
            pending = order.offers.filter(status=OrderOffer.STATUS_PENDING)
            cancelled_ids = list(pending.values_list("id", flat=True))
            if cancelled_ids:
                pending.update(status=OrderOffer.STATUS_CANCELLED, responded_at=now)

            offers = OrderOffer.objects.bulk_create([
                OrderOffer(order=order, driver=driver, store_id=order.store_id)
                for driver in drivers
            ])

            # A manual assignment still waiting on its driver is superseded too
            released_driver_id = order.driver_id
            if released_driver_id:
                DriverProfile.objects.filter(
                    id=released_driver_id,
                    driver_status=DriverProfile.STATUS_PENDING_ACCEPTANCE,
                ).update(driver_status=DriverProfile.STATUS_AVAILABLE, is_available=True, updated_at=now)

            order.status = Order.STATUS_AWAITING_DRIVER
            order.driver = None
            order.save(update_fields=["status", "driver", "updated_at"])
    except DatabaseError as exc:
        logger.exception("Broadcast of order %s failed", order_id)
        raise BroadcastError("Failed to create driver offers") from exc

    logger.info(
        "Order %s offered to %s drivers (%s earlier offers superseded)",
        order.id, len(offers), len(cancelled_ids),
    )

    result = BroadcastResult(
        order_id=order.id,
        store_id=order.store_id,
        drivers_contacted=len(offers),
        order_status=order.status,
        offer_ids=[offer.id for offer in offers],
        driver_names=[driver.driver_name for driver in drivers],
        cancelled_offer_ids=cancelled_ids,
    )

    try:
        _relay(order, offers, cancelled_ids, released_driver_id)
    except Exception:
        logger.exception("Realtime relay failed for order %s", order.id)

    try:
        result.fanout = notify_users(
            [driver.user_id for driver in drivers if driver.user_id],
            order_offer_message(order),
        )
    except Exception:
        logger.exception("Driver notification fan-out failed for order %s", order.id)

    return result


def dispatch_new_order(order: Order, now: Optional[datetime] = None) -> DispatchResult:
    """
    Broadcast a freshly placed order if its store is taking orders.

    A closed store is not an error: the order stays ``placed`` and the result
    says why, so the caller can show the store's next opening time.
    """
    status = order.store.availability(now=now)
    if not status.is_open:
        logger.info("Store %s closed (%s), order %s not dispatched", order.store_id, status.reason, order.id)
        return DispatchResult(
            dispatched=False,
            reason=status.reason,
            next_open=status.next_open_description,
        )

    result = broadcast_order_offers(order.id, order.store_id)
    return DispatchResult(dispatched=True, reason=status.reason, broadcast=result)
