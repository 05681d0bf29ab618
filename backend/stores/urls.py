from django.urls import path

from .views import StoreAvailabilityView

urlpatterns = [
    path("<uuid:store_id>/availability/", StoreAvailabilityView.as_view(), name="store-availability"),
]
