"""
Order management service - claiming, manual assignment and their failure modes.

This module handles:
    - Claiming a broadcast offer (first driver wins)
    - Assigning an order to one driver by hand
    - Exceptions shared by the dispatch services
"""

from .offer_claim import OfferClaimResult, claim_offer
from .driver_assignment import AssignmentResult, assign_driver_to_order

from .exceptions import (
    OrderNotFoundError,
    OrderNotBroadcastableError,
    BroadcastError,
    OfferNotFoundError,
    OfferNotAvailableError,
    OfferAlreadyClaimedError,
    DriverNotAvailableError,
    DriverNotFoundError,
    AssignmentError,
)

__all__ = [
    # Claiming
    "OfferClaimResult",
    "claim_offer",
    # Manual assignment
    "AssignmentResult",
    "assign_driver_to_order",
    # Exceptions
    "OrderNotFoundError",
    "OrderNotBroadcastableError",
    "BroadcastError",
    "OfferNotFoundError",
    "OfferNotAvailableError",
    "OfferAlreadyClaimedError",
    "DriverNotAvailableError",
    "DriverNotFoundError",
    "AssignmentError",
]
