"""Custom exceptions for order dispatch."""


class OrderNotFoundError(Exception):
    """Raised when an order cannot be found for the given store."""
    pass


class OrderNotBroadcastableError(Exception):
    """Raised when an order is past the point where drivers can be offered it."""
    pass


class BroadcastError(Exception):
    """Raised when the offer broadcast could not be written."""
    pass


class OfferNotFoundError(Exception):
    """Raised when an offer cannot be found for this driver."""
    pass


class OfferNotAvailableError(Exception):
    """Raised when an offer was cancelled or expired before it was claimed."""
    pass


class OfferAlreadyClaimedError(Exception):
    """Raised when another driver already claimed the order."""
    pass


class DriverNotAvailableError(Exception):
    """Raised when driver is not available to accept orders."""
    pass


class DriverNotFoundError(Exception):
    """Raised when a driver cannot be found for the given store."""
    pass


class AssignmentError(Exception):
    """Raised when a manual driver assignment could not be written."""
    pass
