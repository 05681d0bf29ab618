from unittest.mock import patch

from django.test import TestCase
from rest_framework.test import APIRequestFactory

from delivery_backend.celery import app as celery_app
from delivery_backend.views import health_check


@patch('delivery_backend.views.redis.Redis.from_url')
class HealthCheckTests(TestCase):
	def get_health(self):
		request = APIRequestFactory().get('/health/')
		return health_check(request)

	def test_answering_workers_are_healthy(self, mock_redis):
		with patch.object(celery_app.control, 'ping', return_value=[{'celery@worker1': {'ok': 'pong'}}]) as mock_ping:
			response = self.get_health()

		mock_ping.assert_called_once_with(timeout=1)
		mock_redis.return_value.ping.assert_called_once()
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['services']['celery'], 'healthy: 1 workers')
		self.assertEqual(response.data['services']['database'], 'healthy')

	def test_no_workers_is_unhealthy(self, mock_redis):
		with patch.object(celery_app.control, 'ping', return_value=[]):
			response = self.get_health()

		self.assertEqual(response.status_code, 503)
		self.assertEqual(response.data['status'], 'unhealthy')
		self.assertEqual(response.data['services']['celery'], 'unhealthy: no workers responded')

	def test_broker_error_is_unhealthy(self, mock_redis):
		with patch.object(celery_app.control, 'ping', side_effect=OSError('connection refused')):
			response = self.get_health()

		self.assertEqual(response.status_code, 503)
		self.assertTrue(response.data['services']['celery'].startswith('unhealthy'))
