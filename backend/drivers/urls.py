from django.urls import path
from .views import DriverStatusView

urlpatterns = [
    path("status/", DriverStatusView.as_view(), name="driver-status"),
]
