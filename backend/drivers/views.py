from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from drivers.models import DriverProfile
from drivers.serializers import DriverProfileSerializer, DriverStatusSerializer

from drivers import services


# Utility: Ensure request.user is a driver
def require_driver(user):
    if user.role != "driver":
        return False, Response({"error": "Only drivers allowed"}, status=403)
    try:
        profile = user.driver_profile
        return True, profile
    except DriverProfile.DoesNotExist:
        return False, Response({"error": "Driver profile not found"}, status=404)


class DriverStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile  # Response object

        return Response(DriverProfileSerializer(profile).data)

    def put(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        if not profile.is_active:
            return Response({"error": "Driver account is deactivated"}, status=403)

        if profile.driver_status == DriverProfile.STATUS_BUSY:
            return Response(
                {"error": "Finish the current delivery before changing status"},
                status=409,
            )

        serializer = DriverStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data["status"]

        services.update_driver_status(profile, new_status)

        return Response({
            "message": f"Status updated to {new_status}",
            "status": new_status,
            "is_available": profile.is_available,
        })
