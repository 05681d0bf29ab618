from django.contrib import admin
from drivers.models import DriverProfile


@admin.register(DriverProfile)
class DriverProfileAdmin(admin.ModelAdmin):
    """Admin panel for managing Driver Profiles"""

    list_display = [
        "driver_name",
        "store",
        "user",
        "is_active",
        "is_available",
        "driver_status",
        "updated_at",
    ]

    list_filter = [
        "driver_status",
        "is_active",
        "is_available",
    ]

    search_fields = [
        "driver_name",
        "user__username",
        "store__name",
    ]

    readonly_fields = [
        "created_at",
        "updated_at",
    ]

    ordering = ("driver_name",)
