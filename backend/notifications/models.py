from django.conf import settings
from django.db import models


class PushSubscription(models.Model):
    """
    A browser Web Push endpoint and its encryption keys.

    Subscriptions are scoped by user, role, and optionally a store or a single
    order (customers tracking one order without an account). The endpoint is
    unique: subscribing again from the same browser replaces the old row.
    """
    USER_TYPE_CUSTOMER = 'customer'
    USER_TYPE_DRIVER = 'driver'
    USER_TYPE_STORE_OWNER = 'store_owner'

    USER_TYPE_CHOICES = [
        (USER_TYPE_CUSTOMER, 'Customer'),
        (USER_TYPE_DRIVER, 'Driver'),
        (USER_TYPE_STORE_OWNER, 'Store Owner'),
    ]

    endpoint = models.URLField(max_length=1000, unique=True)
    p256dh = models.CharField(max_length=255)
    auth = models.CharField(max_length=255)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='push_subscriptions'
    )
    user_type = models.CharField(max_length=20, choices=USER_TYPE_CHOICES, default=USER_TYPE_CUSTOMER)
    store = models.ForeignKey(
        'stores.Store',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='push_subscriptions'
    )
    order = models.ForeignKey(
        'orders.Order',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='push_subscriptions'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'push_subscriptions'

    def __str__(self):
        return f"{self.user_type} push -> {self.endpoint[:60]}"

    def as_subscription_info(self):
        """Shape expected by pywebpush."""
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.p256dh, "auth": self.auth},
        }


class Notification(models.Model):
    """Durable in-app notification shown in the dashboard bell."""
    TYPE_CHOICES = [
        ('info', 'Info'),
        ('success', 'Success'),
        ('warning', 'Warning'),
        ('error', 'Error'),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications'
    )
    title = models.CharField(max_length=200)
    message = models.TextField()
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='info')
    data = models.JSONField(null=True, blank=True)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'notifications'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.title} -> {self.user_id}"
