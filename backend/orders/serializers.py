from rest_framework import serializers

from orders.models import Order, OrderOffer


class BroadcastRequestSerializer(serializers.Serializer):
    """
    Body of the broadcast endpoint. ``companyId`` is accepted as an alias of
    ``storeId`` for older dashboard builds.
    """
    orderId = serializers.UUIDField()
    storeId = serializers.UUIDField(required=False)
    companyId = serializers.UUIDField(required=False, write_only=True)

    def validate(self, attrs):
        company_id = attrs.pop("companyId", None)
        if not attrs.get("storeId"):
            if not company_id:
                raise serializers.ValidationError({"storeId": "This field is required."})
            attrs["storeId"] = company_id
        return attrs


class AssignDriverRequestSerializer(BroadcastRequestSerializer):
    driverId = serializers.UUIDField()


class OrderSerializer(serializers.ModelSerializer):
    store_id = serializers.UUIDField(read_only=True)
    store_name = serializers.CharField(source="store.name", read_only=True)
    driver_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = Order
        fields = ["id", "store_id", "store_name", "status", "driver_id", "customer_name", "created_at"]
        read_only_fields = fields


class OrderOfferSerializer(serializers.ModelSerializer):
    """Offer as shown in the driver app."""
    order = OrderSerializer(read_only=True)

    class Meta:
        model = OrderOffer
        fields = ["id", "status", "created_at", "order"]
        read_only_fields = fields
