import json
from unittest.mock import Mock, patch

from django.test import TestCase, override_settings
from pywebpush import WebPushException
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from drivers.models import DriverProfile
from common.ratelimit import FixedWindowRateLimiter
from notifications.fanout import NotificationMessage, notify_users
from notifications.models import Notification, PushSubscription
from notifications.push import (
	DeliveryOutcome,
	PushConfigurationError,
	PushPayload,
	deliver,
	resolve_subscriptions,
	send_push,
	send_web_push,
)
from notifications.views import (
	NotificationListView,
	NotificationReadView,
	PushSubscribeView,
	PushUnsubscribeView,
	SendPushView,
)
from orders.models import Order
from stores.models import Store


def push_error(status_code):
	return WebPushException(
		"Push failed: %s" % status_code,
		response=Mock(status_code=status_code, text=""),
	)


def make_subscription(name, **fields):
	return PushSubscription.objects.create(
		endpoint="https://push.example.com/send/%s" % name,
		p256dh="p256dh-%s" % name,
		auth="auth-%s" % name,
		**fields
	)


PAYLOAD = PushPayload(title="New delivery available!", body="Accept fast!", tag="order-offer-1")


class PushDeliveryTests(TestCase):
	def setUp(self):
		self.subscription = make_subscription("one")

	@patch("notifications.push.webpush")
	def test_delivered(self, mock_webpush):
		outcome = deliver(self.subscription, PAYLOAD)

		self.assertIs(outcome, DeliveryOutcome.DELIVERED)
		kwargs = mock_webpush.call_args.kwargs
		self.assertEqual(kwargs["subscription_info"], {
			"endpoint": self.subscription.endpoint,
			"keys": {"p256dh": "p256dh-one", "auth": "auth-one"},
		})
		self.assertEqual(json.loads(kwargs["data"])["tag"], "order-offer-1")
		self.assertEqual(kwargs["vapid_private_key"], "test-private-key")
		self.assertEqual(kwargs["vapid_claims"]["sub"], "mailto:tests@example.com")

	@patch("notifications.push.webpush")
	def test_gone_endpoint_is_deleted(self, mock_webpush):
		for status_code in (404, 410):
			subscription = make_subscription("gone-%s" % status_code)
			mock_webpush.side_effect = push_error(status_code)

			outcome = deliver(subscription, PAYLOAD)

			self.assertIs(outcome, DeliveryOutcome.RECIPIENT_GONE)
			self.assertFalse(PushSubscription.objects.filter(pk=subscription.pk).exists())

	@patch("notifications.push.webpush", side_effect=push_error(500))
	def test_transient_failure_keeps_row(self, mock_webpush):
		outcome = deliver(self.subscription, PAYLOAD)

		self.assertIs(outcome, DeliveryOutcome.TRANSIENT_FAILURE)
		self.assertTrue(PushSubscription.objects.filter(pk=self.subscription.pk).exists())

	@patch("notifications.push.webpush", side_effect=push_error(None))
	def test_failure_without_response_is_transient(self, mock_webpush):
		outcome = send_web_push(self.subscription.as_subscription_info(), PAYLOAD)
		self.assertIs(outcome, DeliveryOutcome.TRANSIENT_FAILURE)

	@override_settings(VAPID_PRIVATE_KEY="")
	@patch("notifications.push.webpush")
	def test_missing_vapid_keys(self, mock_webpush):
		with self.assertRaises(PushConfigurationError):
			send_web_push(self.subscription.as_subscription_info(), PAYLOAD)
		mock_webpush.assert_not_called()


class SendPushTests(TestCase):
	def setUp(self):
		self.owner = User.objects.create_user(username="owner", password="pass1234", role="store_owner")
		self.driver = User.objects.create_user(username="driver", password="pass1234", role="driver")
		self.store = Store.objects.create(name="Pizza Place", owner=self.owner)
		self.order = Order.objects.create(store=self.store)

		self.order_sub = make_subscription("order", order=self.order, store=self.store)
		self.driver_sub = make_subscription("driver", user=self.driver, user_type="driver", store=self.store)
		self.owner_sub = make_subscription("owner", user=self.owner, user_type="store_owner", store=self.store)

	def test_first_scope_wins(self):
		self.assertEqual(list(resolve_subscriptions(order_id=self.order.id, user_id=self.driver.id)), [self.order_sub])
		self.assertEqual(list(resolve_subscriptions(user_id=self.driver.id, store_id=self.store.id)), [self.driver_sub])
		self.assertEqual(
			list(resolve_subscriptions(store_id=self.store.id, user_type="store_owner")),
			[self.owner_sub]
		)
		self.assertEqual(resolve_subscriptions(store_id=self.store.id).count(), 3)
		self.assertEqual(resolve_subscriptions().count(), 0)

	@patch("notifications.push.webpush")
	def test_counts_and_prunes(self, mock_webpush):
		def fake_webpush(subscription_info, **kwargs):
			if subscription_info["endpoint"] == self.driver_sub.endpoint:
				raise push_error(410)
			if subscription_info["endpoint"] == self.owner_sub.endpoint:
				raise push_error(503)

		mock_webpush.side_effect = fake_webpush

		result = send_push(payload=PAYLOAD, store_id=self.store.id)

		self.assertEqual((result.sent, result.total), (1, 3))
		self.assertFalse(PushSubscription.objects.filter(pk=self.driver_sub.pk).exists())
		self.assertTrue(PushSubscription.objects.filter(pk=self.owner_sub.pk).exists())

	@patch("notifications.push.webpush")
	def test_no_subscriptions(self, mock_webpush):
		result = send_push(payload=PAYLOAD, user_id=999999)

		self.assertEqual((result.sent, result.total), (0, 0))
		mock_webpush.assert_not_called()


class FanoutTests(TestCase):
	def setUp(self):
		self.users = [
			User.objects.create_user(username="driver_%d" % index, password="pass1234", role="driver")
			for index in range(5)
		]
		self.subscriptions = [
			make_subscription("user-%d" % index, user=user, user_type="driver")
			for index, user in enumerate(self.users)
		]
		self.message = NotificationMessage(
			title="New delivery available!",
			body="A new delivery is available.",
			push_body="Accept fast!",
			tag="order-offer-1",
			data={"type": "order_offer"},
		)

	@patch("notifications.push.webpush")
	def test_partial_push_failure(self, mock_webpush):
		failing = {self.subscriptions[1].endpoint, self.subscriptions[3].endpoint}

		def fake_webpush(subscription_info, **kwargs):
			if subscription_info["endpoint"] in failing:
				raise push_error(500)

		mock_webpush.side_effect = fake_webpush

		result = notify_users(self.users, self.message)

		self.assertEqual(Notification.objects.count(), 5)
		self.assertEqual(result.sent, 3)
		self.assertEqual(result.total, 5)
		self.assertEqual(mock_webpush.call_count, 5)
		self.assertEqual(result.outcomes[self.users[1].pk], [DeliveryOutcome.TRANSIENT_FAILURE])

		pushed = json.loads(mock_webpush.call_args.kwargs["data"])
		self.assertEqual(pushed["body"], "Accept fast!")
		self.assertEqual(Notification.objects.first().message, "A new delivery is available.")

	@patch("notifications.push.webpush")
	def test_user_with_two_devices_counts_once(self, mock_webpush):
		make_subscription("user-0-phone", user=self.users[0], user_type="driver")

		result = notify_users([self.users[0].pk, self.users[0].pk], self.message)

		self.assertEqual((result.sent, result.total), (1, 1))
		self.assertEqual(mock_webpush.call_count, 2)
		self.assertEqual(Notification.objects.count(), 1)

	@override_settings(VAPID_PUBLIC_KEY="")
	@patch("notifications.push.webpush")
	def test_missing_push_config_still_stores_notifications(self, mock_webpush):
		result = notify_users(self.users, self.message)

		self.assertEqual((result.sent, result.total), (0, 5))
		self.assertEqual(Notification.objects.count(), 5)
		mock_webpush.assert_not_called()


class PushSubscriptionViewTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.limiter = FixedWindowRateLimiter(limit=100, window_seconds=60)
		self.driver = User.objects.create_user(username="driver", password="pass1234", role="driver")
		self.owner = User.objects.create_user(username="owner", password="pass1234", role="store_owner")
		self.store = Store.objects.create(name="Pizza Place", owner=self.owner)
		self.order = Order.objects.create(store=self.store, customer_name="Maria")

	def subscribe(self, data, user=None, limiter=None, ip="203.0.113.7"):
		request = self.factory.post(
			"/api/notifications/push/subscribe/",
			data,
			format="json",
			HTTP_X_FORWARDED_FOR="%s, 10.0.0.1" % ip,
		)
		if user:
			force_authenticate(request, user=user)
		return PushSubscribeView.as_view(rate_limiter=limiter or self.limiter)(request)

	def body(self, **extra):
		return {
			"endpoint": "https://push.example.com/send/abc",
			"keys": {"p256dh": "key-1", "auth": "auth-1"},
			**extra,
		}

	def test_subscribe_upserts_by_endpoint(self):
		first = self.subscribe(self.body(order_id=str(self.order.id)))
		self.assertEqual(first.status_code, 201)

		second = self.subscribe(
			self.body(keys={"p256dh": "key-2", "auth": "auth-2"}, user_type="driver"),
			user=self.driver,
		)
		self.assertEqual(second.status_code, 200)

		subscription = PushSubscription.objects.get()
		self.assertEqual(subscription.p256dh, "key-2")
		self.assertEqual(subscription.user, self.driver)
		self.assertEqual(subscription.user_type, "driver")

	def test_subscribe_validation(self):
		response = self.subscribe({"endpoint": "not-a-url", "keys": {}})
		self.assertEqual(response.status_code, 400)

	def test_subscribe_unknown_order(self):
		response = self.subscribe(self.body(order_id="00000000-0000-0000-0000-000000000000"))
		self.assertEqual(response.status_code, 404)

	def test_subscribe_is_rate_limited_per_ip(self):
		now = [0.0]
		limiter = FixedWindowRateLimiter(limit=2, window_seconds=60, clock=lambda: now[0])

		self.assertNotEqual(self.subscribe(self.body(), limiter=limiter).status_code, 429)
		self.assertNotEqual(self.subscribe(self.body(), limiter=limiter).status_code, 429)
		self.assertEqual(self.subscribe(self.body(), limiter=limiter).status_code, 429)

		# Another client is unaffected
		self.assertNotEqual(self.subscribe(self.body(), limiter=limiter, ip="198.51.100.2").status_code, 429)

		now[0] = 61.0
		self.assertNotEqual(self.subscribe(self.body(), limiter=limiter).status_code, 429)

	def test_unsubscribe(self):
		make_subscription("abc")
		request = self.factory.post(
			"/api/notifications/push/unsubscribe/",
			{"endpoint": "https://push.example.com/send/abc"},
			format="json",
		)
		response = PushUnsubscribeView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data["deleted"])
		self.assertFalse(PushSubscription.objects.exists())

	def test_guest_cannot_subscribe_as_store_owner(self):
		endpoint = "https://push.example.com/send/guest"
		response = self.subscribe(self.body(
			endpoint=endpoint,
			user_type="store_owner",
			store_id=str(self.store.id),
		))

		self.assertEqual(response.status_code, 403)
		self.assertFalse(PushSubscription.objects.exists())
		self.assertNotIn(
			endpoint,
			[sub.endpoint for sub in resolve_subscriptions(store_id=self.store.id, user_type="store_owner")],
		)

	def test_guest_subscribes_only_to_an_order(self):
		self.assertEqual(self.subscribe(self.body(user_type="driver")).status_code, 403)
		self.assertEqual(self.subscribe(self.body()).status_code, 400)
		self.assertEqual(
			self.subscribe(self.body(order_id=str(self.order.id), store_id=str(self.store.id))).status_code,
			403,
		)

		response = self.subscribe(self.body(order_id=str(self.order.id)))
		self.assertEqual(response.status_code, 201)
		subscription = PushSubscription.objects.get()
		self.assertIsNone(subscription.user)
		self.assertEqual(subscription.order, self.order)

	def test_store_owner_subscribes_only_to_own_store(self):
		stranger = User.objects.create_user(username="stranger", password="pass1234", role="store_owner")
		response = self.subscribe(
			self.body(user_type="store_owner", store_id=str(self.store.id)),
			user=stranger,
		)
		self.assertEqual(response.status_code, 403)

		response = self.subscribe(
			self.body(user_type="store_owner", store_id=str(self.store.id)),
			user=self.owner,
		)
		self.assertEqual(response.status_code, 201)
		self.assertEqual(
			[sub.user for sub in resolve_subscriptions(store_id=self.store.id, user_type="store_owner")],
			[self.owner],
		)

	def test_role_must_match_user_type(self):
		response = self.subscribe(self.body(user_type="store_owner"), user=self.driver)
		self.assertEqual(response.status_code, 403)

		response = self.subscribe(self.body(user_type="driver", store_id=str(self.store.id)), user=self.driver)
		self.assertEqual(response.status_code, 403)

		DriverProfile.objects.create(user=self.driver, store=self.store, driver_name="Driver")
		response = self.subscribe(self.body(user_type="driver", store_id=str(self.store.id)), user=self.driver)
		self.assertEqual(response.status_code, 201)


class SendPushViewTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.staff = User.objects.create_user(username="staff", password="pass1234", is_staff=True)
		self.driver = User.objects.create_user(username="driver", password="pass1234", role="driver")
		make_subscription("driver", user=self.driver, user_type="driver")

	def post(self, data, user):
		request = self.factory.post("/api/notifications/push/send/", data, format="json")
		force_authenticate(request, user=user)
		return SendPushView.as_view()(request)

	@patch("notifications.push.webpush")
	def test_staff_can_send(self, mock_webpush):
		response = self.post({
			"userId": self.driver.id,
			"payload": {"title": "Hello", "body": "World", "data": {"orderId": "x"}},
		}, self.staff)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data, {"success": True, "sent": 1, "total": 1})

	def test_requires_staff(self):
		response = self.post({"userId": self.driver.id, "payload": {"title": "a", "body": "b"}}, self.driver)
		self.assertEqual(response.status_code, 403)

	def test_requires_a_scope(self):
		response = self.post({"payload": {"title": "a", "body": "b"}}, self.staff)
		self.assertEqual(response.status_code, 400)


class NotificationInboxTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.user = User.objects.create_user(username="driver", password="pass1234", role="driver")
		self.other = User.objects.create_user(username="other", password="pass1234")
		self.mine = Notification.objects.create(user=self.user, title="Mine", message="hello")
		Notification.objects.create(user=self.other, title="Theirs", message="hello")

	def test_list_only_own(self):
		request = self.factory.get("/api/notifications/")
		force_authenticate(request, user=self.user)
		response = NotificationListView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual([n["title"] for n in response.data["notifications"]], ["Mine"])
		self.assertEqual(response.data["unread_count"], 1)

	def test_mark_read(self):
		request = self.factory.post("/api/notifications/%d/read/" % self.mine.id)
		force_authenticate(request, user=self.user)
		response = NotificationReadView.as_view()(request, notification_id=self.mine.id)

		self.assertEqual(response.status_code, 200)
		self.mine.refresh_from_db()
		self.assertTrue(self.mine.is_read)

	def test_cannot_read_someone_elses(self):
		request = self.factory.post("/api/notifications/%d/read/" % self.mine.id)
		force_authenticate(request, user=self.other)
		response = NotificationReadView.as_view()(request, notification_id=self.mine.id)

		self.assertEqual(response.status_code, 404)
