from unittest.mock import patch

from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from drivers.models import DriverProfile
from drivers.services import DriverEligibility, eligible_drivers_for_store
from drivers.views import DriverStatusView
from stores.models import Store


class DriverEligibilityTests(TestCase):
	def setUp(self):
		owner = User.objects.create_user(username='owner', password='pass1234', role='store_owner')
		self.store = Store.objects.create(name='Pizza Place', owner=owner)
		self.other_store = Store.objects.create(name='Burger Place', owner=owner)

		self.ready = DriverProfile.objects.create(
			store=self.store, driver_name='Ready', is_available=True, driver_status='available'
		)
		self.offline = DriverProfile.objects.create(
			store=self.store, driver_name='Offline', is_available=False, driver_status='offline'
		)
		self.busy = DriverProfile.objects.create(
			store=self.store, driver_name='Busy', is_available=True, driver_status='busy'
		)
		self.inactive = DriverProfile.objects.create(
			store=self.store, driver_name='Inactive', is_active=False, is_available=True, driver_status='available'
		)
		self.elsewhere = DriverProfile.objects.create(
			store=self.other_store, driver_name='Elsewhere', is_available=True, driver_status='available'
		)

	def test_only_active_available_drivers_of_the_store(self):
		self.assertEqual(list(eligible_drivers_for_store(self.store.id)), [self.ready])

	def test_query_and_in_memory_check_agree(self):
		predicate = DriverEligibility(store_id=self.store.id)
		matched = set(DriverProfile.objects.filter(predicate.as_q()))

		for profile in DriverProfile.objects.all():
			self.assertEqual(predicate.matches(profile), profile in matched, profile.driver_name)


class DriverStatusViewTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		owner = User.objects.create_user(username='owner', password='pass1234', role='store_owner')
		self.store = Store.objects.create(name='Pizza Place', owner=owner)
		self.driver = User.objects.create_user(username='driver', password='driver1234', role='driver')
		self.profile = DriverProfile.objects.create(user=self.driver, store=self.store, driver_name='Ana')

	def put(self, user, data):
		request = self.factory.put('/api/driver/status/', data, format='json')
		force_authenticate(request, user=user)
		return DriverStatusView.as_view()(request)

	@patch('drivers.services.publish_store_event')
	def test_going_available_flips_flag_and_notifies_store(self, mock_publish):
		response = self.put(self.driver, {'status': 'available'})

		self.assertEqual(response.status_code, 200)
		self.profile.refresh_from_db()
		self.assertEqual(self.profile.driver_status, 'available')
		self.assertTrue(self.profile.is_available)

		mock_publish.assert_called_once()
		args = mock_publish.call_args[0]
		self.assertEqual(args[0], self.store.id)
		self.assertEqual(args[1], 'driver_status_changed')

	def test_busy_driver_cannot_change_status(self):
		self.profile.driver_status = 'busy'
		self.profile.save()

		response = self.put(self.driver, {'status': 'offline'})

		self.assertEqual(response.status_code, 409)

	def test_busy_is_not_a_client_choice(self):
		response = self.put(self.driver, {'status': 'busy'})
		self.assertEqual(response.status_code, 400)

	def test_non_driver_rejected(self):
		customer = User.objects.create_user(username='customer', password='pass1234')
		response = self.put(customer, {'status': 'available'})
		self.assertEqual(response.status_code, 403)

	def test_get_returns_profile(self):
		request = self.factory.get('/api/driver/status/')
		force_authenticate(request, user=self.driver)
		response = DriverStatusView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['driver_status'], 'offline')
		self.assertFalse(response.data['is_available'])
