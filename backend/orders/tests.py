from datetime import datetime, timedelta, timezone as dt_timezone
from unittest.mock import patch

from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from drivers.models import DriverProfile
from notifications.models import Notification
from orders.models import Order, OrderOffer
from orders.tasks import dispatch_new_order_task, expire_stale_offers_task
from orders.views import assign_driver, broadcast_order, claim_order_offer, pending_offers
from services.matching import broadcast_order_offers, dispatch_new_order, expire_stale_offers
from services.order_management import (
	BroadcastError,
	DriverNotAvailableError,
	OfferAlreadyClaimedError,
	OfferNotAvailableError,
	OrderNotBroadcastableError,
	assign_driver_to_order,
	claim_offer,
)
from stores.models import Store


class DispatchTestCase(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.owner = User.objects.create_user(
			username='owner',
			password='pass1234',
			role='store_owner'
		)
		self.store = Store.objects.create(name='Pizza Place', owner=self.owner)

		self.drivers = []
		for index in range(3):
			user = User.objects.create_user(
				username='driver_%d' % index,
				password='driver1234',
				role='driver',
				phone_number='900000000%d' % index
			)
			self.drivers.append(DriverProfile.objects.create(
				user=user,
				store=self.store,
				driver_name='Driver %d' % index,
				is_available=True,
				driver_status='available'
			))

		offline_user = User.objects.create_user(username='offline', password='driver1234', role='driver')
		self.offline_driver = DriverProfile.objects.create(
			user=offline_user,
			store=self.store,
			driver_name='Offline',
			is_available=False,
			driver_status='offline'
		)

		self.order = Order.objects.create(store=self.store, customer_name='Maria')

	def post_broadcast(self, data, user=None):
		request = self.factory.post('/api/orders/broadcast/', data, format='json')
		force_authenticate(request, user=user or self.owner)
		return broadcast_order(request)

	def post_claim(self, profile, offer):
		request = self.factory.post('/api/orders/offers/%s/claim/' % offer.id)
		force_authenticate(request, user=profile.user)
		return claim_order_offer(request, offer_id=offer.id)


class BroadcastTests(DispatchTestCase):
	def test_one_pending_offer_per_eligible_driver(self):
		response = self.post_broadcast({'orderId': str(self.order.id), 'storeId': str(self.store.id)})

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['success'])
		self.assertEqual(response.data['offersCreated'], 3)
		self.assertEqual(len(response.data['offerIds']), 3)
		self.assertEqual(sorted(response.data['driverNames']), ['Driver 0', 'Driver 1', 'Driver 2'])

		self.order.refresh_from_db()
		self.assertEqual(self.order.status, 'awaiting_driver')

		offers = OrderOffer.objects.filter(order=self.order)
		self.assertEqual(offers.count(), 3)
		self.assertTrue(all(offer.status == 'pending' for offer in offers))
		self.assertEqual({offer.driver_id for offer in offers}, {driver.id for driver in self.drivers})
		self.assertFalse(offers.filter(driver=self.offline_driver).exists())

	def test_contacted_drivers_get_in_app_notification(self):
		result = broadcast_order_offers(self.order.id, self.store.id)

		notified = set(Notification.objects.values_list('user_id', flat=True))
		self.assertEqual(notified, {driver.user_id for driver in self.drivers})
		self.assertEqual(result.fanout.total, 3)
		# Nobody has a push subscription
		self.assertEqual(result.fanout.sent, 0)

	def test_no_eligible_drivers_is_a_successful_no_op(self):
		DriverProfile.objects.update(is_available=False, driver_status='offline')

		response = self.post_broadcast({'orderId': str(self.order.id), 'storeId': str(self.store.id)})

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['success'])
		self.assertEqual(response.data['offersCreated'], 0)

		self.order.refresh_from_db()
		self.assertEqual(self.order.status, 'placed')
		self.assertFalse(OrderOffer.objects.exists())
		self.assertFalse(Notification.objects.exists())

	def test_rebroadcast_supersedes_previous_offers(self):
		first = broadcast_order_offers(self.order.id, self.store.id)
		second = broadcast_order_offers(self.order.id, self.store.id)

		self.assertEqual(sorted(second.cancelled_offer_ids), sorted(first.offer_ids))
		self.assertEqual(
			OrderOffer.objects.filter(id__in=first.offer_ids, status='cancelled').count(),
			len(first.offer_ids)
		)
		pending = OrderOffer.objects.filter(order=self.order, status='pending')
		self.assertEqual(pending.count(), 3)
		self.assertEqual(set(pending.values_list('id', flat=True)), set(second.offer_ids))

	def test_datastore_failure_rolls_back_everything(self):
		earlier = OrderOffer.objects.create(order=self.order, driver=self.drivers[0], store=self.store)

		with patch.object(OrderOffer.objects, 'bulk_create', side_effect=DatabaseError('disk full')):
			with self.assertRaises(BroadcastError):
				broadcast_order_offers(self.order.id, self.store.id)

			response = self.post_broadcast({'orderId': str(self.order.id), 'storeId': str(self.store.id)})

		self.assertEqual(response.status_code, 500)
		self.assertIn('error', response.data)

		earlier.refresh_from_db()
		self.order.refresh_from_db()
		self.assertEqual(earlier.status, 'pending')
		self.assertEqual(self.order.status, 'placed')

	@patch('services.matching.offer_broadcast.eligible_drivers_for_store', side_effect=DatabaseError('db down'))
	def test_driver_lookup_failure_returns_error(self, mock_drivers):
		response = self.post_broadcast({'orderId': str(self.order.id), 'storeId': str(self.store.id)})

		mock_drivers.assert_called_once()
		self.assertEqual(response.status_code, 500)
		self.assertIn('error', response.data)
		self.order.refresh_from_db()
		self.assertEqual(self.order.status, 'placed')
		self.assertFalse(OrderOffer.objects.exists())

	@patch('services.matching.offer_broadcast.notify_users', side_effect=RuntimeError('push down'))
	def test_fanout_failure_does_not_change_result(self, mock_notify):
		result = broadcast_order_offers(self.order.id, self.store.id)

		mock_notify.assert_called_once()
		self.assertEqual(result.drivers_contacted, 3)
		self.assertEqual(OrderOffer.objects.filter(status='pending').count(), 3)

	@patch('services.matching.offer_broadcast.publish_offers_updated')
	@patch('services.matching.offer_broadcast.publish_order_status')
	def test_changes_are_relayed_to_store_group(self, mock_status, mock_offers):
		broadcast_order_offers(self.order.id, self.store.id)

		mock_status.assert_called_once()
		self.assertEqual(mock_status.call_args[0][0].status, 'awaiting_driver')
		actions = [call[0][2] for call in mock_offers.call_args_list]
		self.assertEqual(actions, ['created'])

	def test_company_id_alias(self):
		response = self.post_broadcast({'orderId': str(self.order.id), 'companyId': str(self.store.id)})
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['offersCreated'], 3)

	def test_invalid_identifiers(self):
		self.assertEqual(self.post_broadcast({'storeId': str(self.store.id)}).status_code, 400)
		self.assertEqual(self.post_broadcast({'orderId': 'abc', 'storeId': str(self.store.id)}).status_code, 400)
		self.assertEqual(self.post_broadcast({'orderId': str(self.order.id)}).status_code, 400)
		self.assertFalse(OrderOffer.objects.exists())

	def test_unknown_order_or_store(self):
		other_owner = User.objects.create_user(username='other', password='pass1234', role='store_owner')
		other_store = Store.objects.create(name='Burger Place', owner=other_owner)

		# Order exists, but not in this store
		response = self.post_broadcast({'orderId': str(self.order.id), 'storeId': str(other_store.id)}, user=other_owner)
		self.assertEqual(response.status_code, 404)

		response = self.post_broadcast({'orderId': str(self.order.id), 'storeId': '00000000-0000-0000-0000-000000000000'})
		self.assertEqual(response.status_code, 404)

	def test_only_store_owner_may_broadcast(self):
		stranger = User.objects.create_user(username='stranger', password='pass1234', role='store_owner')

		response = self.post_broadcast({'orderId': str(self.order.id), 'storeId': str(self.store.id)}, user=stranger)

		self.assertEqual(response.status_code, 403)
		self.assertFalse(OrderOffer.objects.exists())

	def test_assigned_order_cannot_be_broadcast(self):
		self.order.status = 'assigned'
		self.order.save()

		response = self.post_broadcast({'orderId': str(self.order.id), 'storeId': str(self.store.id)})

		self.assertEqual(response.status_code, 409)


class ClaimTests(DispatchTestCase):
	def setUp(self):
		super().setUp()
		result = broadcast_order_offers(self.order.id, self.store.id)
		self.offers = {
			offer.driver_id: offer
			for offer in OrderOffer.objects.filter(id__in=result.offer_ids)
		}

	def offer_for(self, profile):
		return self.offers[profile.id]

	def test_first_claim_wins(self):
		winner, loser = self.drivers[0], self.drivers[1]

		response = self.post_claim(winner, self.offer_for(winner))
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['order']['status'], 'assigned')

		self.order.refresh_from_db()
		winner.refresh_from_db()
		self.assertEqual(self.order.status, 'assigned')
		self.assertEqual(self.order.driver, winner)
		self.assertEqual(winner.driver_status, 'busy')
		self.assertFalse(winner.is_available)

		statuses = dict(OrderOffer.objects.filter(order=self.order).values_list('driver_id', 'status'))
		self.assertEqual(statuses[winner.id], 'accepted')
		self.assertEqual(statuses[loser.id], 'cancelled')
		self.assertEqual(statuses[self.drivers[2].id], 'cancelled')

		response = self.post_claim(loser, self.offer_for(loser))
		self.assertEqual(response.status_code, 409)
		self.assertEqual(OrderOffer.objects.filter(order=self.order, status='accepted').count(), 1)

	def test_losing_the_race_rolls_back_the_offer(self):
		# Another worker assigned the order before our offer was cancelled
		Order.objects.filter(id=self.order.id).update(status='assigned', driver=self.drivers[0])
		loser = self.drivers[1]

		with self.assertRaises(OfferAlreadyClaimedError):
			claim_offer(loser.user, self.offer_for(loser).id)

		self.assertEqual(OrderOffer.objects.get(id=self.offer_for(loser).id).status, 'pending')
		self.assertFalse(OrderOffer.objects.filter(status='accepted').exists())
		loser.refresh_from_db()
		self.assertEqual(loser.driver_status, 'available')

	def test_expired_offer_is_gone(self):
		driver = self.drivers[2]
		OrderOffer.objects.filter(id=self.offer_for(driver).id).update(status='expired')

		with self.assertRaises(OfferNotAvailableError):
			claim_offer(driver.user, self.offer_for(driver).id)

		response = self.post_claim(driver, self.offer_for(driver))
		self.assertEqual(response.status_code, 410)

	def test_unavailable_driver_cannot_claim(self):
		driver = self.drivers[0]
		driver.driver_status = 'offline'
		driver.is_available = False
		driver.save()

		with self.assertRaises(DriverNotAvailableError):
			claim_offer(driver.user, self.offer_for(driver).id)

	def test_cannot_claim_someone_elses_offer(self):
		response = self.post_claim(self.drivers[0], self.offer_for(self.drivers[1]))
		self.assertEqual(response.status_code, 404)

	def test_store_owner_is_notified_of_assignment(self):
		claim_offer(self.drivers[0].user, self.offer_for(self.drivers[0]).id)

		self.assertTrue(Notification.objects.filter(user=self.owner, type='success').exists())

	def test_pending_offers_lists_only_claimable(self):
		driver = self.drivers[0]
		request = self.factory.get('/api/orders/offers/')
		force_authenticate(request, user=driver.user)
		response = pending_offers(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(len(response.data['offers']), 1)
		self.assertEqual(response.data['offers'][0]['order']['id'], str(self.order.id))


class AssignDriverTests(DispatchTestCase):
	def post_assign(self, data, user=None):
		request = self.factory.post('/api/orders/assign/', data, format='json')
		force_authenticate(request, user=user or self.owner)
		return assign_driver(request)

	def assign_body(self, driver):
		return {'orderId': str(self.order.id), 'storeId': str(self.store.id), 'driverId': str(driver.id)}

	def test_assignment_holds_driver_until_acceptance(self):
		driver = self.drivers[0]

		response = self.post_assign(self.assign_body(driver))

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['success'])
		self.assertEqual(response.data['driverName'], 'Driver 0')

		self.order.refresh_from_db()
		driver.refresh_from_db()
		self.assertEqual(self.order.status, 'awaiting_driver')
		self.assertEqual(self.order.driver, driver)
		self.assertEqual(driver.driver_status, 'pending_acceptance')
		self.assertFalse(driver.is_available)

		offer = OrderOffer.objects.get(order=self.order)
		self.assertEqual(offer.driver, driver)
		self.assertEqual(offer.status, 'pending')
		self.assertEqual(str(offer.id), response.data['offerId'])

		notification = Notification.objects.get(user=driver.user)
		self.assertEqual(notification.data['type'], 'new_delivery')

	def test_assignment_cancels_broadcast_offers(self):
		broadcast = broadcast_order_offers(self.order.id, self.store.id)

		with patch('services.order_management.driver_assignment.notify_driver_event') as mock_event:
			result = assign_driver_to_order(self.order.id, self.drivers[1].id, self.store.id)

		self.assertEqual(sorted(result.cancelled_offer_ids), sorted(broadcast.offer_ids))
		self.assertEqual(OrderOffer.objects.filter(id__in=broadcast.offer_ids, status='cancelled').count(), 3)
		self.assertEqual(list(OrderOffer.objects.filter(status='pending')), [result.offer])

		events = [(call[0][0], call[0][1]) for call in mock_event.call_args_list]
		self.assertIn(('order_offer', self.drivers[1].user_id), events)
		self.assertEqual(len([event for event in events if event[0] == 'offer_cancelled']), 3)

	def test_assigned_driver_accepts_through_claim(self):
		driver = self.drivers[0]
		result = assign_driver_to_order(self.order.id, driver.id, self.store.id)

		response = self.post_claim(driver, result.offer)

		self.assertEqual(response.status_code, 200)
		self.order.refresh_from_db()
		driver.refresh_from_db()
		self.assertEqual(self.order.status, 'assigned')
		self.assertEqual(self.order.driver, driver)
		self.assertEqual(driver.driver_status, 'busy')

	def test_reassignment_releases_previous_driver(self):
		first, second = self.drivers[0], self.drivers[1]
		assign_driver_to_order(self.order.id, first.id, self.store.id)

		result = assign_driver_to_order(self.order.id, second.id, self.store.id)

		self.assertEqual(result.released_driver_id, first.id)
		first.refresh_from_db()
		self.assertEqual(first.driver_status, 'available')
		self.assertTrue(first.is_available)
		self.order.refresh_from_db()
		self.assertEqual(self.order.driver, second)

	def test_rebroadcast_supersedes_assignment(self):
		driver = self.drivers[0]
		assign_driver_to_order(self.order.id, driver.id, self.store.id)

		result = broadcast_order_offers(self.order.id, self.store.id)

		self.order.refresh_from_db()
		driver.refresh_from_db()
		self.assertIsNone(self.order.driver)
		self.assertEqual(driver.driver_status, 'available')
		# Driver 0 was still held while the driver list was read
		self.assertEqual(result.drivers_contacted, 2)

	def test_busy_or_foreign_driver_is_rejected(self):
		busy = self.drivers[0]
		busy.driver_status = 'busy'
		busy.is_available = False
		busy.save()

		response = self.post_assign(self.assign_body(busy))
		self.assertEqual(response.status_code, 409)

		other_owner = User.objects.create_user(username='other', password='pass1234', role='store_owner')
		other_store = Store.objects.create(name='Burger Place', owner=other_owner)
		foreign = DriverProfile.objects.create(store=other_store, driver_name='Foreign', driver_status='available')
		response = self.post_assign(self.assign_body(foreign))
		self.assertEqual(response.status_code, 404)

		self.order.refresh_from_db()
		self.assertEqual(self.order.status, 'placed')
		self.assertIsNone(self.order.driver)
		self.assertFalse(OrderOffer.objects.exists())

	def test_driver_held_by_another_order_is_not_free(self):
		other_order = Order.objects.create(store=self.store, customer_name='Joao')
		assign_driver_to_order(other_order.id, self.drivers[0].id, self.store.id)

		with self.assertRaises(DriverNotAvailableError):
			assign_driver_to_order(self.order.id, self.drivers[0].id, self.store.id)

	def test_only_store_owner_may_assign(self):
		stranger = User.objects.create_user(username='stranger', password='pass1234', role='store_owner')

		response = self.post_assign(self.assign_body(self.drivers[0]), user=stranger)

		self.assertEqual(response.status_code, 403)
		self.drivers[0].refresh_from_db()
		self.assertEqual(self.drivers[0].driver_status, 'available')

	def test_assigned_order_cannot_be_reassigned(self):
		self.order.status = 'assigned'
		self.order.save()

		with self.assertRaises(OrderNotBroadcastableError):
			assign_driver_to_order(self.order.id, self.drivers[0].id, self.store.id)
		self.drivers[0].refresh_from_db()
		self.assertEqual(self.drivers[0].driver_status, 'available')

	def test_missing_driver_id(self):
		response = self.post_assign({'orderId': str(self.order.id), 'storeId': str(self.store.id)})
		self.assertEqual(response.status_code, 400)


class OfferExpiryTests(DispatchTestCase):
	def setUp(self):
		super().setUp()
		broadcast_order_offers(self.order.id, self.store.id)
		self.old_ids = list(
			OrderOffer.objects.filter(driver__in=self.drivers[:2]).values_list('id', flat=True)
		)
		OrderOffer.objects.filter(id__in=self.old_ids).update(
			created_at=timezone.now() - timedelta(seconds=600)
		)

	def test_old_offers_expire_young_ones_stay(self):
		expired = expire_stale_offers(max_age_seconds=300)

		self.assertEqual(expired, 2)
		self.assertEqual(
			set(OrderOffer.objects.filter(status='expired').values_list('id', flat=True)),
			set(self.old_ids)
		)
		young = OrderOffer.objects.get(driver=self.drivers[2])
		self.assertEqual(young.status, 'pending')
		self.assertIsNone(young.responded_at)

		self.order.refresh_from_db()
		self.assertEqual(self.order.status, 'awaiting_driver')

	@patch('services.matching.offer_expiry.publish_offers_updated')
	@patch('services.matching.offer_expiry.notify_driver_event')
	def test_claimed_offer_is_not_reported_as_expired(self, mock_driver_event, mock_offers):
		claimed = OrderOffer.objects.get(driver=self.drivers[0])
		OrderOffer.objects.filter(id=claimed.id).update(status='accepted', responded_at=timezone.now())

		expired = expire_stale_offers(max_age_seconds=300)

		self.assertEqual(expired, 1)
		claimed.refresh_from_db()
		self.assertEqual(claimed.status, 'accepted')

		notified = [call[0][1] for call in mock_driver_event.call_args_list]
		self.assertEqual(notified, [self.drivers[1].user_id])
		mock_offers.assert_called_once()
		self.assertNotIn(claimed.id, mock_offers.call_args[0][3])
		self.assertEqual(len(mock_offers.call_args[0][3]), 1)

	def test_expiry_is_idempotent(self):
		self.assertEqual(expire_stale_offers(max_age_seconds=300), 2)
		self.assertEqual(expire_stale_offers(max_age_seconds=300), 0)

	def test_management_command_and_task(self):
		call_command('expire_stale_offers', max_age=300)
		self.assertEqual(OrderOffer.objects.filter(status='expired').count(), 2)

		OrderOffer.objects.filter(status='pending').update(
			created_at=timezone.now() - timedelta(seconds=10000)
		)
		self.assertEqual(expire_stale_offers_task(), 1)

	def test_cleanup_keeps_accepted_offers(self):
		expire_stale_offers(max_age_seconds=300)
		OrderOffer.objects.update(created_at=timezone.now() - timedelta(days=40))

		call_command('cleanup_old_offers', days=30)

		self.assertEqual(list(OrderOffer.objects.values_list('status', flat=True)), ['pending'])


class DispatchGateTests(DispatchTestCase):
	def setUp(self):
		super().setUp()
		self.store.opening_hours = {
			'monday': {'enabled': True, 'open': '08:00', 'close': '18:00'},
		}
		self.store.timezone = 'UTC'
		self.store.save()
		self.order.store = self.store

	def test_closed_store_is_not_dispatched(self):
		monday_night = datetime(2024, 1, 1, 21, 0, tzinfo=dt_timezone.utc)

		result = dispatch_new_order(self.order, now=monday_night)

		self.assertFalse(result.dispatched)
		self.assertEqual(result.reason, 'outside_hours')
		self.assertEqual(result.next_open, 'Opens tomorrow at 08:00')
		self.assertFalse(OrderOffer.objects.exists())

	def test_open_store_is_broadcast(self):
		monday_noon = datetime(2024, 1, 1, 12, 0, tzinfo=dt_timezone.utc)

		result = dispatch_new_order(self.order, now=monday_noon)

		self.assertTrue(result.dispatched)
		self.assertEqual(result.broadcast.drivers_contacted, 3)

	def test_manually_closed_store_via_task(self):
		self.store.is_open = False
		self.store.save()

		result = dispatch_new_order_task(str(self.order.id))

		self.assertEqual(result, {'dispatched': False, 'reason': 'manual_closed', 'offers_created': 0})
