import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from drivers.views import require_driver
from orders.models import OrderOffer
from orders.serializers import (
    AssignDriverRequestSerializer,
    BroadcastRequestSerializer,
    OrderOfferSerializer,
    OrderSerializer,
)
from services.matching import broadcast_order_offers
from services.order_management import (
    AssignmentError,
    BroadcastError,
    DriverNotAvailableError,
    DriverNotFoundError,
    OfferAlreadyClaimedError,
    OfferNotAvailableError,
    OfferNotFoundError,
    OrderNotBroadcastableError,
    OrderNotFoundError,
    assign_driver_to_order,
    claim_offer,
)
from stores.models import Store

logger = logging.getLogger(__name__)


# ==================== Store Dispatch APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def broadcast_order(request):
    """Offer an order to every available driver of the store (first to claim wins)."""
    serializer = BroadcastRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    order_id = serializer.validated_data['orderId']
    store_id = serializer.validated_data['storeId']

    try:
        store = Store.objects.get(id=store_id)
    except Store.DoesNotExist:
        return Response({'error': 'Store not found'}, status=status.HTTP_404_NOT_FOUND)

    if not (request.user.is_staff or store.owner_id == request.user.pk):
        return Response(
            {'error': 'You can only dispatch orders of your own store'},
            status=status.HTTP_403_FORBIDDEN
        )

    try:
        result = broadcast_order_offers(order_id, store.id)
    except OrderNotFoundError as e:
        return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
    except OrderNotBroadcastableError as e:
        return Response({'error': str(e)}, status=status.HTTP_409_CONFLICT)
    except BroadcastError as e:
        return Response({'error': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response({
        'success': True,
        'message': result.message,
        'offersCreated': result.drivers_contacted,
        'offerIds': [str(offer_id) for offer_id in result.offer_ids],
        'driverNames': result.driver_names,
    }, status=status.HTTP_200_OK)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def assign_driver(request):
    """Hand an order to one driver of the store; the driver still has to accept it."""
    serializer = AssignDriverRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    store_id = serializer.validated_data['storeId']

    try:
        store = Store.objects.get(id=store_id)
    except Store.DoesNotExist:
        return Response({'error': 'Store not found'}, status=status.HTTP_404_NOT_FOUND)

    if not (request.user.is_staff or store.owner_id == request.user.pk):
        return Response(
            {'error': 'You can only assign drivers to orders of your own store'},
            status=status.HTTP_403_FORBIDDEN
        )

    try:
        result = assign_driver_to_order(
            serializer.validated_data['orderId'],
            serializer.validated_data['driverId'],
            store.id,
        )
    except (OrderNotFoundError, DriverNotFoundError) as e:
        return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
    except (OrderNotBroadcastableError, DriverNotAvailableError) as e:
        return Response({'error': str(e)}, status=status.HTTP_409_CONFLICT)
    except AssignmentError as e:
        return Response({'error': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response({
        'success': True,
        'message': result.message,
        'driverName': result.driver.driver_name,
        'offerId': str(result.offer.id),
        'order': OrderSerializer(result.order).data,
    }, status=status.HTTP_200_OK)


# ==================== Driver Offer APIs ====================

@api_view(['GET'])
@permission_classes([IsAuthenticated])
def pending_offers(request):
    """Offers this driver can still claim, newest first."""
    ok, profile = require_driver(request.user)
    if ok is False:
        return profile

    offers = (
        OrderOffer.objects
        .filter(driver=profile, status=OrderOffer.STATUS_PENDING)
        .select_related('order__store')
        .order_by('-created_at')
    )
    return Response({'offers': OrderOfferSerializer(offers, many=True).data})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def claim_order_offer(request, offer_id):
    """Accept an offer. Only the first driver to claim an order gets it."""
    ok, profile = require_driver(request.user)
    if ok is False:
        return profile

    try:
        result = claim_offer(request.user, offer_id)
    except OfferNotFoundError as e:
        return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
    except DriverNotAvailableError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except OfferAlreadyClaimedError as e:
        return Response(
            {'error': 'Order already claimed', 'message': str(e)},
            status=status.HTTP_409_CONFLICT
        )
    except OfferNotAvailableError as e:
        return Response(
            {'error': 'Offer no longer available', 'message': str(e)},
            status=status.HTTP_410_GONE
        )

    return Response({
        'success': True,
        'message': result.message,
        'order': OrderSerializer(result.order).data,
        'offer_id': str(result.offer.id),
    }, status=status.HTTP_200_OK)
