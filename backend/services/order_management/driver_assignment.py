"""
Manual driver assignment.

Store staff may skip the broadcast and hand an order to one driver. The
order waits in ``awaiting_driver`` with that driver attached until the
driver accepts; the driver is held in ``pending_acceptance`` meanwhile.
Acceptance goes through the regular claim path, against the single offer
created here.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from drivers.models import DriverProfile
from notifications.fanout import FanoutResult, notify_users
from notifications.messages import order_assignment_request_message
from orders.models import Order, OrderOffer
from realtime.notifications import (
    notify_driver_event,
    publish_offers_updated,
    publish_order_status,
    publish_store_event,
)
from .exceptions import (
    AssignmentError,
    DriverNotAvailableError,
    DriverNotFoundError,
    OrderNotBroadcastableError,
    OrderNotFoundError,
)

logger = logging.getLogger(__name__)


@dataclass
class AssignmentResult:
    order: Order
    driver: DriverProfile
    offer: OrderOffer
    cancelled_offer_ids: List[Any] = field(default_factory=list)
    released_driver_id: Optional[Any] = None
    fanout: Optional[FanoutResult] = None

    @property
    def message(self) -> str:
        return "Driver assigned successfully"


def assign_driver_to_order(order_id, driver_id, store_id) -> AssignmentResult:
    """
    Hand one order to one driver of the same store.

    Args:
        order_id: Order still waiting for a driver
        driver_id: DriverProfile of the chosen driver
        store_id: Store that must own both

    Returns:
        AssignmentResult with the driver's offer

    Raises:
        OrderNotFoundError: order unknown or owned by another store
        OrderNotBroadcastableError: order already assigned, delivered or cancelled
        DriverNotFoundError: driver unknown or working for another store
        DriverNotAvailableError: driver inactive or busy with another delivery
        AssignmentError: the assignment could not be written; nothing was changed
    """
    try:
        with transaction.atomic():
            try:
                order = Order.objects.select_for_update().get(id=order_id, store_id=store_id)
            except Order.DoesNotExist:
                raise OrderNotFoundError("Order not found for this store")
            if order.status not in Order.BROADCASTABLE_STATUSES:
                raise OrderNotBroadcastableError(
                    f"Order is {order.status} and can no longer be assigned"
                )

            try:
                driver = DriverProfile.objects.select_related("user").get(id=driver_id, store_id=store_id)
            except DriverProfile.DoesNotExist:
                raise DriverNotFoundError("Driver not found for this store")

            # Drivers already holding another assignment are not free
            free_statuses = [DriverProfile.STATUS_AVAILABLE, DriverProfile.STATUS_OFFLINE]
            if order.driver_id == driver.id:
                free_statuses.append(DriverProfile.STATUS_PENDING_ACCEPTANCE)

            now = timezone.now()
            held = DriverProfile.objects.filter(
                id=driver.id,
                is_active=True,
                driver_status__in=free_statuses,
            ).update(
                driver_status=DriverProfile.STATUS_PENDING_ACCEPTANCE,
                is_available=False,
                updated_at=now,
            )
            if not held:
                raise DriverNotAvailableError("Driver is inactive or already on a delivery")

            released_driver_id = None
            if order.driver_id and order.driver_id != driver.id:
                released_driver_id = order.driver_id
                DriverProfile.objects.filter(
                    id=released_driver_id,
                    driver_status=DriverProfile.STATUS_PENDING_ACCEPTANCE,
                ).update(driver_status=DriverProfile.STATUS_AVAILABLE, is_available=True, updated_at=now)

            pending = order.offers.filter(status=OrderOffer.STATUS_PENDING)
            cancelled = list(pending.values_list("id", "driver__user_id"))
            if cancelled:
                pending.update(status=OrderOffer.STATUS_CANCELLED, responded_at=now)

            offer = OrderOffer.objects.create(order=order, driver=driver, store_id=order.store_id)

            updated = Order.objects.filter(
                id=order.id,
                status__in=Order.BROADCASTABLE_STATUSES,
            ).update(status=Order.STATUS_AWAITING_DRIVER, driver=driver, updated_at=now)
            if not updated:
                raise OrderNotBroadcastableError("Order can no longer be assigned")
    except DatabaseError as exc:
        logger.exception("Assignment of order %s to driver %s failed", order_id, driver_id)
        raise AssignmentError("Failed to assign driver") from exc

    order.refresh_from_db()
    driver.refresh_from_db()
    cancelled_ids = [offer_id for offer_id, _ in cancelled]

    logger.info("Order %s assigned to driver %s, waiting for acceptance", order.id, driver.id)

    result = AssignmentResult(
        order=order,
        driver=driver,
        offer=offer,
        cancelled_offer_ids=cancelled_ids,
        released_driver_id=released_driver_id,
    )

    try:
        _relay(result, cancelled)
    except Exception:
        logger.exception("Realtime relay failed for assignment of order %s", order.id)

    if driver.user_id:
        try:
            result.fanout = notify_users([driver.user_id], order_assignment_request_message(order))
        except Exception:
            logger.exception("Failed to notify driver %s about order %s", driver.id, order.id)

    return result


def _relay(result: AssignmentResult, cancelled) -> None:
    order, driver = result.order, result.driver

    if result.cancelled_offer_ids:
        publish_offers_updated(order.store_id, order.id, "cancelled", result.cancelled_offer_ids, reason="assigned")
    publish_offers_updated(order.store_id, order.id, "created", [result.offer.id], driver_id=str(driver.id))
    publish_order_status(order)

    publish_store_event(order.store_id, "driver_status_changed", {
        "driver_id": str(driver.id),
        "driver_name": driver.driver_name,
        "status": driver.driver_status,
        "is_available": driver.is_available,
    })
    if result.released_driver_id:
        publish_store_event(order.store_id, "driver_status_changed", {
            "driver_id": str(result.released_driver_id),
            "status": DriverProfile.STATUS_AVAILABLE,
            "is_available": True,
        })

    notify_driver_event("order_offer", driver.user_id, "A delivery was assigned to you. Accept it to start.", {
        "offer_id": str(result.offer.id),
        "order_id": str(order.id),
        "store_id": str(order.store_id),
        "assigned": True,
    })
    for offer_id, driver_user_id in cancelled:
        notify_driver_event("offer_cancelled", driver_user_id, "The store assigned this delivery to another driver.", {
            "offer_id": str(offer_id),
            "order_id": str(order.id),
        })
