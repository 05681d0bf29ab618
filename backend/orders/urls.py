from django.urls import path

from . import views

urlpatterns = [
    path('broadcast/', views.broadcast_order, name='order-broadcast'),
    path('assign/', views.assign_driver, name='order-assign-driver'),
    path('offers/', views.pending_offers, name='order-offers'),
    path('offers/<uuid:offer_id>/claim/', views.claim_order_offer, name='order-offer-claim'),
]
