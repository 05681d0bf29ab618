from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # Store availability (public)
    path('api/stores/', include('stores.urls')),

    # Driver APIs (availability toggle)
    path('api/driver/', include('drivers.urls')),

    # Order dispatch: broadcast, driver offers, claim
    path('api/orders/', include('orders.urls')),

    # In-app notifications and push subscriptions
    path('api/notifications/', include('notifications.urls')),
]
