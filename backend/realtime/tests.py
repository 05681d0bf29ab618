from unittest.mock import patch

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.test import SimpleTestCase, TestCase

from accounts.models import User
from orders.models import Order
from realtime.middleware import _token_from_scope
from realtime.notifications import (
	driver_group,
	notify_driver_event,
	publish_order_status,
	store_group,
)
from stores.models import Store


class GroupPublishingTests(TestCase):
	def setUp(self):
		owner = User.objects.create_user(username='owner', password='pass1234', role='store_owner')
		self.store = Store.objects.create(name='Pizza Place', owner=owner)
		self.order = Order.objects.create(store=self.store)
		self.layer = get_channel_layer()

	def listen(self, group):
		channel = async_to_sync(self.layer.new_channel)()
		async_to_sync(self.layer.group_add)(group, channel)
		return channel

	def test_order_status_reaches_store_group(self):
		channel = self.listen(store_group(self.store.id))

		self.assertTrue(publish_order_status(self.order))

		message = async_to_sync(self.layer.receive)(channel)
		self.assertEqual(message['type'], 'order_status_changed')
		self.assertEqual(message['order_id'], str(self.order.id))
		self.assertEqual(message['store_id'], str(self.store.id))
		self.assertEqual(message['status'], 'placed')
		self.assertIsNone(message['driver_id'])

	def test_driver_event(self):
		channel = self.listen(driver_group(42))

		notify_driver_event('offer_cancelled', 42, 'Taken', {'offer_id': 'abc'})

		message = async_to_sync(self.layer.receive)(channel)
		self.assertEqual(message, {'type': 'offer_cancelled', 'offer_id': 'abc', 'message': 'Taken'})

	def test_missing_target_is_skipped(self):
		self.assertFalse(notify_driver_event('order_offer', None))

	@patch('realtime.notifications.get_channel_layer', return_value=None)
	def test_no_channel_layer(self, mock_layer):
		self.assertFalse(publish_order_status(self.order))


class TokenExtractionTests(SimpleTestCase):
	def test_query_string(self):
		scope = {'query_string': b'token=abc.def', 'headers': []}
		self.assertEqual(_token_from_scope(scope), 'abc.def')

	def test_bearer_header(self):
		scope = {'query_string': b'', 'headers': [(b'authorization', b'Bearer xyz')]}
		self.assertEqual(_token_from_scope(scope), 'xyz')

	def test_no_token(self):
		scope = {'query_string': b'', 'headers': [(b'authorization', b'Basic Zm9v')]}
		self.assertIsNone(_token_from_scope(scope))
