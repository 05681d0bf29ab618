import uuid

from django.db import models
from django.conf import settings

User = settings.AUTH_USER_MODEL


class DriverProfile(models.Model):
    """Delivery driver working for one store, with availability flags."""
    STATUS_AVAILABLE = 'available'
    STATUS_BUSY = 'busy'
    STATUS_OFFLINE = 'offline'
    STATUS_PENDING_ACCEPTANCE = 'pending_acceptance'

    STATUS_CHOICES = [
        (STATUS_AVAILABLE, 'Available'),
        (STATUS_BUSY, 'Busy'),
        (STATUS_OFFLINE, 'Offline'),
        (STATUS_PENDING_ACCEPTANCE, 'Pending Acceptance'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # Drivers registered by the store may not have a login yet
    user = models.OneToOneField(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='driver_profile'
    )
    store = models.ForeignKey('stores.Store', on_delete=models.CASCADE, related_name='drivers')
    driver_name = models.CharField(max_length=100, blank=True)

    is_active = models.BooleanField(default=True)
    is_available = models.BooleanField(default=False)
    driver_status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_OFFLINE)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'driver_profiles'
        indexes = [
            models.Index(fields=['store', 'is_active', 'is_available', 'driver_status'], name='driver_eligibility_idx'),
        ]

    def __str__(self):
        return f"{self.driver_name or self.id} - {self.driver_status}"
