"""
Notification helpers for sending WebSocket messages to connected clients.

Every order-status and offer-status write is published here so dashboards
and driver apps react without polling. Groups:
    - store_<store_id>: store dashboards (orders, offers, driver roster)
    - driver_<user_id>: one driver's app (new offers, lost races)
    - user_<user_id>: any signed-in user (in-app notification badge)

Publishing is best effort: a missing or failing channel layer is logged and
reported as False, never raised into the write path that triggered it.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def store_group(store_id) -> str:
    return f"store_{store_id}"


def driver_group(user_id) -> str:
    return f"driver_{user_id}"


def user_group(user_id) -> str:
    return f"user_{user_id}"


def _group_send(group: str, payload: Dict[str, Any]) -> bool:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer available, dropping %s for %s", payload.get("type"), group)
        return False

    try:
        logger.debug("WS -> %s: %s", group, payload)
        async_to_sync(channel_layer.group_send)(group, payload)
        return True
    except Exception:
        logger.exception("Failed to publish %s to %s", payload.get("type"), group)
        return False


# ---------------------- Store Dashboard Events ----------------------

def publish_store_event(store_id, event_type: str, payload: Optional[Dict[str, Any]] = None) -> bool:
    """
    Send an event to every dashboard watching one store.

    Args:
        store_id: Store the change belongs to
        event_type: Handler name in consumer (order_status_changed, offers_updated, ...)
        payload: JSON-serialisable event data
    """
    if not store_id:
        return False
    return _group_send(store_group(store_id), {
        "type": event_type,
        "store_id": str(store_id),
        **(payload or {}),
    })


def publish_order_status(order) -> bool:
    """Relay an order status write to its store group."""
    return publish_store_event(order.store_id, "order_status_changed", {
        "order_id": str(order.id),
        "status": order.status,
        "driver_id": str(order.driver_id) if order.driver_id else None,
    })


def publish_offers_updated(
    store_id,
    order_id,
    action: str,
    offer_ids: Iterable = (),
    **extra: Any,
) -> bool:
    """Relay a batch of offer status writes (created / cancelled / accepted / expired)."""
    return publish_store_event(store_id, "offers_updated", {
        "order_id": str(order_id),
        "action": action,
        "offer_ids": [str(offer_id) for offer_id in offer_ids],
        **extra,
    })


# ---------------------- Driver & User Events ----------------------

def notify_driver_event(
    event_type: str,
    driver_user_id: int | None,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Send an event to a specific driver using their personal group: driver_<user_id>

    Args:
        event_type: Handler name in consumer (order_offer, offer_cancelled, offer_accepted)
        driver_user_id: Target driver's user ID
        message: Optional message to include
        extra: Additional payload data

    Returns:
        True if sent successfully, False otherwise
    """
    if not driver_user_id:
        return False

    payload = {
        "type": event_type,
        **(extra or {}),
    }
    if message:
        payload["message"] = message

    return _group_send(driver_group(driver_user_id), payload)


def notify_drivers_of_offers(order, offers) -> int:
    """Push each new offer to its driver's app. Returns how many were sent."""
    sent = 0
    for offer in offers:
        user_id = offer.driver.user_id if offer.driver_id else None
        if notify_driver_event("order_offer", user_id, extra={
            "offer_id": str(offer.id),
            "order_id": str(order.id),
            "store_id": str(order.store_id),
        }):
            sent += 1
    return sent


def notify_user_event(user_id, event_type: str, payload: Optional[Dict[str, Any]] = None) -> bool:
    """Send an event to one user's personal group: user_<user_id>"""
    if not user_id:
        return False
    return _group_send(user_group(user_id), {"type": event_type, **(payload or {})})
