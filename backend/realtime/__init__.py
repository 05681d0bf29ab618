"""
Realtime app for WebSocket communication with store dashboards and drivers.

This app provides:
- WebSocket consumers for drivers and store dashboards
- Notification helpers that publish order and offer changes to groups
- JWT/Cookie authentication middleware for WebSocket connections

Key Components:
    - consumers/: WebSocket consumers (driver, store)
    - notifications.py: Group publishing helpers (store_, driver_, user_ groups)
    - middleware.py: WebSocket authentication

Usage:
    from realtime.consumers import DriverConsumer, StoreConsumer
    from realtime.notifications import publish_order_status, notify_driver_event
"""
