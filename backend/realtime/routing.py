"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.driver_consumer import DriverConsumer
from .consumers.store_consumer import StoreConsumer

websocket_urlpatterns = [
    # Driver app: offers, lost races, status
    # URL: ws://localhost:8000/ws/driver/
    re_path(
        r"ws/driver/$",
        DriverConsumer.as_asgi(),
        name="driver-ws"
    ),

    # Store dashboard: order and offer changes for one store
    # URL: ws://localhost:8000/ws/store/<store_id>/
    re_path(
        r"ws/store/(?P<store_id>[0-9a-f-]+)/$",
        StoreConsumer.as_asgi(),
        name="store-ws"
    ),
]
