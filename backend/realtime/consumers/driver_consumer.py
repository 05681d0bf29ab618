"""Driver WebSocket consumer for order offers and availability updates."""

import logging
from typing import Dict, Any

from channels.db import database_sync_to_async

from drivers.models import DriverProfile
from drivers.services import update_driver_status
from realtime.notifications import driver_group

from .base import BaseConsumer

logger = logging.getLogger(__name__)


class DriverConsumer(BaseConsumer):
    """
    WebSocket consumer for drivers.

    Handles:
        - New order offers (first driver to claim wins)
        - Offers lost to another driver or expired
        - Status changes (available/offline)
    """

    async def on_connect(self):
        """Set up driver-specific groups on connection."""
        if self.role != "driver":
            await self.send_error("This endpoint is for drivers only")
            await self.close()
            return

        # Join driver-specific group for targeted notifications
        await self._join_group(driver_group(self.user_id))

        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "message": "Driver connected successfully",
        })

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Handle driver-specific messages."""
        if msg_type == "driver_status_update":
            await self._handle_status_update(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_status_update(self, data: Dict[str, Any]):
        """Handle driver status change (available/offline)."""
        status = data.get("status")

        if status not in (DriverProfile.STATUS_AVAILABLE, DriverProfile.STATUS_OFFLINE):
            await self.send_error("Invalid status. Must be: available or offline")
            return

        error = await self._update_driver_status_db(status)
        if error:
            await self.send_error(error)
            return

        await self.send_success("status_updated", status=status)

    # ---------------------- Event Handlers (from group_send) ----------------------

    async def order_offer(self, event):
        """A store broadcast an order to this driver, or assigned it by hand."""
        await self.send_json({
            "type": "new_order_offer",
            "offer_id": event.get("offer_id"),
            "order_id": event.get("order_id"),
            "store_id": event.get("store_id"),
            "assigned": event.get("assigned", False),
            "message": event.get("message", ""),
        })

    async def offer_cancelled(self, event):
        """Another driver claimed the order this offer was for."""
        await self.send_json({
            "type": "offer_cancelled",
            "offer_id": event.get("offer_id"),
            "order_id": event.get("order_id"),
            "message": event.get("message", ""),
        })

    async def offer_expired(self, event):
        """Nobody claimed the offer in time."""
        await self.send_json({
            "type": "offer_expired",
            "offer_id": event.get("offer_id"),
            "order_id": event.get("order_id"),
            "message": event.get("message", "Offer timed out"),
        })

    async def offer_accepted(self, event):
        """This driver's claim went through."""
        await self.send_json({
            "type": "offer_accepted",
            "offer_id": event.get("offer_id"),
            "order_id": event.get("order_id"),
            "message": event.get("message", ""),
        })

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _update_driver_status_db(self, status: str):
        """Returns an error message, or None once the status is saved."""
        try:
            profile = DriverProfile.objects.get(user_id=self.user_id)
        except DriverProfile.DoesNotExist:
            return "Driver profile not found"

        if not profile.is_active:
            return "Driver account is deactivated"
        if profile.driver_status == DriverProfile.STATUS_BUSY:
            return "Finish the current delivery before changing status"

        update_driver_status(profile, status)
        return None
