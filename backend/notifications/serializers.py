from rest_framework import serializers

from .models import Notification, PushSubscription


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ["id", "title", "message", "type", "data", "is_read", "created_at"]
        read_only_fields = fields


class SubscriptionKeysSerializer(serializers.Serializer):
    p256dh = serializers.CharField(max_length=255)
    auth = serializers.CharField(max_length=255)


class PushSubscribeSerializer(serializers.Serializer):
    """
    The browser's ``PushSubscription.toJSON()`` plus the scope to file it under.
    Anonymous customers subscribe for a single order.
    """
    endpoint = serializers.URLField(max_length=1000)
    keys = SubscriptionKeysSerializer()
    user_type = serializers.ChoiceField(
        choices=[choice for choice, _ in PushSubscription.USER_TYPE_CHOICES],
        default=PushSubscription.USER_TYPE_CUSTOMER,
    )
    store_id = serializers.UUIDField(required=False, allow_null=True)
    order_id = serializers.UUIDField(required=False, allow_null=True)


class PushUnsubscribeSerializer(serializers.Serializer):
    endpoint = serializers.URLField(max_length=1000)


class PushPayloadSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=200)
    body = serializers.CharField()
    icon = serializers.CharField(required=False, allow_blank=True)
    tag = serializers.CharField(required=False, allow_blank=True, max_length=200)
    data = serializers.DictField(required=False)


class SendPushSerializer(serializers.Serializer):
    """Request body of the send endpoint (camelCase, as browser clients post it)."""
    orderId = serializers.UUIDField(required=False)
    userId = serializers.IntegerField(required=False)
    storeId = serializers.UUIDField(required=False)
    companyId = serializers.UUIDField(required=False, write_only=True)
    userType = serializers.ChoiceField(
        choices=[choice for choice, _ in PushSubscription.USER_TYPE_CHOICES],
        required=False,
    )
    payload = PushPayloadSerializer()

    def validate(self, attrs):
        company_id = attrs.pop("companyId", None)
        if not attrs.get("storeId") and company_id:
            attrs["storeId"] = company_id

        if not any(attrs.get(key) for key in ("orderId", "userId", "storeId")):
            raise serializers.ValidationError("One of orderId, userId or storeId is required")
        return attrs
