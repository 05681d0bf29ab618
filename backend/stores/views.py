from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from stores.availability import format_today_hours
from stores.models import Store
from stores.serializers import StoreAvailabilityQuerySerializer


class StoreAvailabilityView(APIView):
    """Public: can this store take orders right now?"""
    permission_classes = [AllowAny]

    def get(self, request, store_id):
        store = get_object_or_404(Store, id=store_id)

        query = StoreAvailabilityQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        now = query.validated_data.get("at") or timezone.now()

        open_status = store.availability(now)
        return Response({
            "store_id": str(store.id),
            "store_name": store.name,
            **open_status.as_dict(),
            "today_hours": format_today_hours(store.opening_hours, now, tz=store.zoneinfo),
        })
