import logging
from dataclasses import dataclass

from django.db.models import Q, QuerySet

from drivers.models import DriverProfile
from realtime.notifications import publish_store_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DriverEligibility:
    """
    Who may receive offers for a store's orders.

    One predicate, two uses: ``as_q()`` filters the driver table in a single
    query, ``matches()`` checks a profile already in memory. Both must agree.
    """
    store_id: object
    is_active: bool = True
    is_available: bool = True
    driver_status: str = DriverProfile.STATUS_AVAILABLE

    def as_q(self) -> Q:
        return Q(
            store_id=self.store_id,
            is_active=self.is_active,
            is_available=self.is_available,
            driver_status=self.driver_status,
        )

    def matches(self, profile: DriverProfile) -> bool:
        return (
            str(profile.store_id) == str(self.store_id)
            and profile.is_active == self.is_active
            and profile.is_available == self.is_available
            and profile.driver_status == self.driver_status
        )


def eligible_drivers_for_store(store_id) -> QuerySet:
    """Drivers that may receive an offer right now, oldest registration first."""
    return (
        DriverProfile.objects
        .filter(DriverEligibility(store_id=store_id).as_q())
        .select_related("user")
        .order_by("created_at")
    )


# DRIVER STATUS UPDATE
def update_driver_status(profile: DriverProfile, new_status: str) -> DriverProfile:
    """
    Update driver availability status.
    The ``is_available`` flag follows the status so the driver can be
    dispatched again as soon as it reports ``available``.
    """
    profile.driver_status = new_status
    profile.is_available = new_status == DriverProfile.STATUS_AVAILABLE
    profile.save(update_fields=["driver_status", "is_available", "updated_at"])

    logger.info("Driver %s is now %s", profile.id, new_status)

    # Store dashboards show the driver roster live
    publish_store_event(profile.store_id, "driver_status_changed", {
        "driver_id": str(profile.id),
        "driver_name": profile.driver_name,
        "status": new_status,
        "is_available": profile.is_available,
    })

    return profile
