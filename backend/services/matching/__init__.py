"""
Driver matching and offer dispatch service.

This module handles:
    - Broadcasting an order to every eligible driver of its store
    - Gating new orders on store availability
    - Expiring offers nobody claimed in time
"""

from .offer_broadcast import (
    BroadcastResult,
    DispatchResult,
    broadcast_order_offers,
    dispatch_new_order,
)
from .offer_expiry import expire_stale_offers

__all__ = [
    "BroadcastResult",
    "DispatchResult",
    "broadcast_order_offers",
    "dispatch_new_order",
    "expire_stale_offers",
]
