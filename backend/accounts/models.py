from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Platform user; the role decides which dashboards and push scopes apply."""
    ROLE_CUSTOMER = 'customer'
    ROLE_DRIVER = 'driver'
    ROLE_STORE_OWNER = 'store_owner'

    ROLE_CHOICES = [
        (ROLE_CUSTOMER, 'Customer'),
        (ROLE_DRIVER, 'Delivery Driver'),
        (ROLE_STORE_OWNER, 'Store Owner'),
    ]

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_CUSTOMER)
    phone_number = models.CharField(max_length=20, blank=True)

    class Meta:
        db_table = 'users'

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"
