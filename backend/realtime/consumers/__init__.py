"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .driver_consumer import DriverConsumer
from .store_consumer import StoreConsumer

__all__ = [
    "BaseConsumer",
    "DriverConsumer",
    "StoreConsumer",
]
