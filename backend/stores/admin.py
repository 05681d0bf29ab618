from django.contrib import admin

from stores.models import Store


@admin.register(Store)
class StoreAdmin(admin.ModelAdmin):
    list_display = ["name", "owner", "is_open", "timezone", "updated_at"]
    list_filter = ["is_open"]
    search_fields = ["name", "owner__username"]
    readonly_fields = ["created_at", "updated_at"]
