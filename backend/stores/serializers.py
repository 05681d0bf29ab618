from rest_framework import serializers


class StoreAvailabilityQuerySerializer(serializers.Serializer):
    """Optional ``at`` query parameter to evaluate the store at a given instant."""
    at = serializers.DateTimeField(required=False)
