"""Tells what to show in the Django admin interface for orders app"""

from django.contrib import admin
from .models import Order, OrderOffer


class OrderOfferInline(admin.TabularInline):
    model = OrderOffer
    extra = 0
    readonly_fields = ("driver", "status", "created_at", "responded_at")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Order admin"""
    list_display = ['id', 'store', 'status', 'driver', 'created_at', 'updated_at']
    list_filter = ['status', 'created_at']
    search_fields = ['id', 'store__name', 'customer_name']
    readonly_fields = ['created_at', 'updated_at']
    date_hierarchy = 'created_at'
    inlines = [OrderOfferInline]


@admin.register(OrderOffer)
class OrderOfferAdmin(admin.ModelAdmin):
    list_display = ("order", "driver", "store", "status", "created_at", "responded_at")
    list_filter = ("status",)
    search_fields = ("order__id", "driver__driver_name")
