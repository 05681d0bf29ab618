"""Store dashboard WebSocket consumer: live orders, offers and driver roster."""

import logging

from channels.db import database_sync_to_async
from django.core.exceptions import ValidationError

from stores.models import Store
from realtime.notifications import store_group

from .base import BaseConsumer

logger = logging.getLogger(__name__)


class StoreConsumer(BaseConsumer):
    """
    WebSocket consumer for one store's dashboard.
    Only the store owner (or staff) may listen.
    """

    async def on_connect(self):
        self.store_id = self.scope["url_route"]["kwargs"]["store_id"]

        if not await self._can_watch_store():
            await self.send_error("You do not have access to this store")
            await self.close()
            return

        await self._join_group(store_group(self.store_id))
        logger.info("User %s watching store %s", self.user_id, self.store_id)

        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "store_id": self.store_id,
        })

    # ---------------------- Event Handlers (from group_send) ----------------------

    async def order_status_changed(self, event):
        await self.forward_event(event)

    async def offers_updated(self, event):
        await self.forward_event(event)

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _can_watch_store(self) -> bool:
        try:
            store = Store.objects.only("owner").get(id=self.store_id)
        except (Store.DoesNotExist, ValidationError):
            return False
        return self.user.is_staff or store.owner_id == self.user_id
