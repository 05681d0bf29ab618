from django.urls import path

from .views import (
    NotificationListView,
    NotificationReadView,
    PushSubscribeView,
    PushUnsubscribeView,
    SendPushView,
)

urlpatterns = [
    path("", NotificationListView.as_view(), name="notification-list"),
    path("<int:notification_id>/read/", NotificationReadView.as_view(), name="notification-read"),
    path("push/subscribe/", PushSubscribeView.as_view(), name="push-subscribe"),
    path("push/unsubscribe/", PushUnsubscribeView.as_view(), name="push-unsubscribe"),
    path("push/send/", SendPushView.as_view(), name="push-send"),
]
