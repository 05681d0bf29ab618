from rest_framework import serializers
from drivers.models import DriverProfile


class DriverProfileSerializer(serializers.ModelSerializer):
    """Driver availability as shown to the driver app and store dashboard."""
    store_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = DriverProfile
        fields = [
            "id",
            "driver_name",
            "store_id",
            "is_active",
            "is_available",
            "driver_status",
            "updated_at",
        ]
        read_only_fields = fields


class DriverStatusSerializer(serializers.Serializer):
    """
    Serializer for updating driver availability (available/offline).
    ``busy`` is set by the system when an offer is claimed.
    """
    status = serializers.ChoiceField(choices=[
        DriverProfile.STATUS_AVAILABLE,
        DriverProfile.STATUS_OFFLINE,
    ])
