"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - matching: Offer broadcast, availability gate and offer expiry
    - order_management: Offer claiming and dispatch exceptions
"""
