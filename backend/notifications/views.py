import logging

from django.db import transaction
from django.shortcuts import get_object_or_404
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.models import User
from drivers.models import DriverProfile
from orders.models import Order
from stores.models import Store

from .models import Notification, PushSubscription
from .push import PushConfigurationError, PushPayload, send_push
from .serializers import (
    NotificationSerializer,
    PushSubscribeSerializer,
    PushUnsubscribeSerializer,
    SendPushSerializer,
)
from .throttles import PushSubscribeThrottle

logger = logging.getLogger(__name__)


def _subscription_scope_error(user, user_type, store_id, order_id):
    """
    Who may file a subscription under which audience.
    Anonymous browsers only follow one order; drivers and store owners
    must be signed in with the matching role, on their own store.
    """
    if not user:
        if user_type != PushSubscription.USER_TYPE_CUSTOMER:
            return Response({"error": "Sign in to subscribe as %s" % user_type}, status=403)
        if not order_id:
            return Response({"error": "order_id is required for guest subscriptions"}, status=400)
        if store_id:
            return Response({"error": "Guests cannot subscribe to store notifications"}, status=403)
        return None

    if user.is_staff or (user_type == PushSubscription.USER_TYPE_CUSTOMER and not store_id):
        return None

    if user_type == PushSubscription.USER_TYPE_STORE_OWNER:
        if user.role != User.ROLE_STORE_OWNER:
            return Response({"error": "Only store owners can subscribe as store_owner"}, status=403)
        if store_id and not Store.objects.filter(id=store_id, owner=user).exists():
            return Response({"error": "You can only subscribe to your own store"}, status=403)
        return None

    if user_type == PushSubscription.USER_TYPE_DRIVER:
        if user.role != User.ROLE_DRIVER:
            return Response({"error": "Only drivers can subscribe as driver"}, status=403)
        if store_id and not DriverProfile.objects.filter(user=user, store_id=store_id).exists():
            return Response({"error": "You can only subscribe to the store you drive for"}, status=403)
        return None

    return Response({"error": "Customers cannot subscribe to store notifications"}, status=403)


class PushSubscribeView(APIView):
    """
    Register (or refresh) a browser push subscription.
    The endpoint is the identity: subscribing again replaces the old row.
    """
    permission_classes = [AllowAny]
    throttle_classes = [PushSubscribeThrottle]
    rate_limiter = None

    def post(self, request):
        serializer = PushSubscribeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        store_id = data.get("store_id")
        order_id = data.get("order_id")
        if store_id and not Store.objects.filter(id=store_id).exists():
            return Response({"error": "Store not found"}, status=404)
        if order_id and not Order.objects.filter(id=order_id).exists():
            return Response({"error": "Order not found"}, status=404)

        user = request.user if request.user.is_authenticated else None
        scope_error = _subscription_scope_error(user, data["user_type"], store_id, order_id)
        if scope_error is not None:
            return scope_error

        with transaction.atomic():
            subscription, created = PushSubscription.objects.update_or_create(
                endpoint=data["endpoint"],
                defaults={
                    "p256dh": data["keys"]["p256dh"],
                    "auth": data["keys"]["auth"],
                    "user": user,
                    "user_type": data["user_type"],
                    "store_id": store_id,
                    "order_id": order_id,
                },
            )

        logger.info(
            "Push subscription %s for user=%s type=%s",
            "created" if created else "replaced", user and user.pk, subscription.user_type,
        )
        return Response({"success": True, "created": created}, status=201 if created else 200)


class PushUnsubscribeView(APIView):
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = PushUnsubscribeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        deleted, _ = PushSubscription.objects.filter(
            endpoint=serializer.validated_data["endpoint"]
        ).delete()
        return Response({"success": True, "deleted": bool(deleted)})


class SendPushView(APIView):
    """Staff tool: push a payload to one order, user or store audience."""
    permission_classes = [IsAdminUser]

    def post(self, request):
        serializer = SendPushSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = send_push(
                payload=PushPayload.from_dict(data["payload"]),
                order_id=data.get("orderId"),
                user_id=data.get("userId"),
                store_id=data.get("storeId"),
                user_type=data.get("userType"),
            )
        except PushConfigurationError as exc:
            logger.error("Push send rejected: %s", exc)
            return Response({"error": str(exc)}, status=500)

        return Response({"success": True, "sent": result.sent, "total": result.total})


class NotificationListView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        notifications = Notification.objects.filter(user=request.user)
        if request.query_params.get("unread") in ("1", "true"):
            notifications = notifications.filter(is_read=False)

        notifications = notifications[:50]
        return Response({
            "notifications": NotificationSerializer(notifications, many=True).data,
            "unread_count": Notification.objects.filter(user=request.user, is_read=False).count(),
        })


class NotificationReadView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, notification_id):
        notification = get_object_or_404(Notification, id=notification_id, user=request.user)
        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=["is_read"])
        return Response(NotificationSerializer(notification).data)
