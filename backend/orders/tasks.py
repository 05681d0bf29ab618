"""Celery tasks for order dispatch background processing."""

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task
def expire_stale_offers_task():
    """Beat task: expire pending offers nobody claimed in time."""
    from services.matching import expire_stale_offers

    expired = expire_stale_offers()
    if expired:
        logger.info("Offer sweep expired %s offers", expired)
    return expired


@shared_task
def dispatch_new_order_task(order_id: str):
    """
    Broadcast a newly placed order if its store is open.
    Queued by the order-creation workflow right after the order is saved.
    """
    from orders.models import Order
    from services.matching import dispatch_new_order
    from services.order_management import BroadcastError, OrderNotBroadcastableError

    try:
        order = Order.objects.select_related('store').get(id=order_id)
    except Order.DoesNotExist:
        logger.warning("Order %s not found for dispatch", order_id)
        return {"dispatched": False, "reason": "not_found"}

    try:
        result = dispatch_new_order(order)
    except OrderNotBroadcastableError as e:
        logger.info("Order %s not dispatched: %s", order_id, e)
        return {"dispatched": False, "reason": "not_broadcastable"}
    except BroadcastError:
        logger.exception("Dispatch of order %s failed", order_id)
        return {"dispatched": False, "reason": "error"}

    return {
        "dispatched": result.dispatched,
        "reason": result.reason,
        "offers_created": result.broadcast.drivers_contacted if result.broadcast else 0,
    }


@shared_task
def broadcast_order_offers_task(order_id: str, store_id: str):
    """Re-broadcast from a background worker. Returns the offer count."""
    from services.matching import broadcast_order_offers

    result = broadcast_order_offers(order_id, store_id)
    return result.drivers_contacted
