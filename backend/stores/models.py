import uuid
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.conf import settings
from django.db import models
from django.utils import timezone

from stores.availability import StoreOpenStatus, evaluate


def default_store_timezone():
    return settings.STORE_DEFAULT_TIMEZONE


class Store(models.Model):
    """A local store that receives orders and employs its own delivery drivers."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=120)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='stores'
    )

    # Manual toggle; the weekly schedule only applies while this is on
    is_open = models.BooleanField(default=True)
    opening_hours = models.JSONField(null=True, blank=True)
    timezone = models.CharField(max_length=64, default=default_store_timezone)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'stores'
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def zoneinfo(self):
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo(settings.TIME_ZONE)

    def availability(self, now=None) -> StoreOpenStatus:
        """Evaluate whether the store accepts new orders right now (or at ``now``)."""
        return evaluate(
            self.is_open,
            self.opening_hours,
            now or timezone.now(),
            tz=self.zoneinfo,
        )
