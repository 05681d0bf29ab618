import uuid

from django.db import models
from django.db.models import Q


class Order(models.Model):
    """A customer purchase from one store, delivered by one of its drivers."""
    STATUS_PLACED = 'placed'
    STATUS_AWAITING_DRIVER = 'awaiting_driver'
    STATUS_ASSIGNED = 'assigned'
    STATUS_IN_DELIVERY = 'in_delivery'
    STATUS_DELIVERED = 'delivered'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_PLACED, 'Placed'),
        (STATUS_AWAITING_DRIVER, 'Awaiting Driver'),
        (STATUS_ASSIGNED, 'Assigned'),
        (STATUS_IN_DELIVERY, 'In Delivery'),
        (STATUS_DELIVERED, 'Delivered'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    # Orders in these states may (re)receive a broadcast
    BROADCASTABLE_STATUSES = (STATUS_PLACED, STATUS_AWAITING_DRIVER)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    store = models.ForeignKey('stores.Store', on_delete=models.CASCADE, related_name='orders')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PLACED)
    driver = models.ForeignKey(
        'drivers.DriverProfile',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_orders'
    )
    customer_name = models.CharField(max_length=120, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at']

    def __str__(self):
        return f"Order {self.id} - {self.status}"


class OrderOffer(models.Model):
    """One driver's chance to claim one order. Every broadcast creates a fresh set."""
    STATUS_PENDING = 'pending'
    STATUS_ACCEPTED = 'accepted'
    STATUS_CANCELLED = 'cancelled'
    STATUS_EXPIRED = 'expired'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_EXPIRED, 'Expired'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='offers')
    driver = models.ForeignKey('drivers.DriverProfile', on_delete=models.CASCADE, related_name='offers')
    store = models.ForeignKey('stores.Store', on_delete=models.CASCADE, related_name='order_offers')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)

    created_at = models.DateTimeField(auto_now_add=True)
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'order_offers'
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['order', 'status'], name='order_offer_status_idx'),
            models.Index(fields=['status', 'created_at'], name='order_offer_age_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['order'],
                condition=Q(status='accepted'),
                name='unique_accepted_offer_per_order'
            ),
            models.UniqueConstraint(
                fields=['order', 'driver'],
                condition=Q(status='pending'),
                name='unique_pending_offer_per_driver'
            ),
        ]

    def __str__(self):
        return f"Offer {self.id} - Order {self.order_id} -> Driver {self.driver_id} ({self.status})"
