from django.test import SimpleTestCase

from common.ratelimit import FixedWindowRateLimiter


class FakeClock:
	def __init__(self):
		self.now = 1000.0

	def __call__(self):
		return self.now


class FixedWindowRateLimiterTests(SimpleTestCase):
	def setUp(self):
		self.clock = FakeClock()
		self.limiter = FixedWindowRateLimiter(limit=3, window_seconds=60, clock=self.clock)

	def test_admits_limit_calls_per_window(self):
		self.assertEqual([self.limiter.hit("1.2.3.4") for _ in range(4)], [True, True, True, False])
		self.assertEqual(self.limiter.remaining("1.2.3.4"), 0)

	def test_keys_are_independent(self):
		for _ in range(3):
			self.limiter.hit("a")
		self.assertFalse(self.limiter.hit("a"))
		self.assertTrue(self.limiter.hit("b"))
		self.assertEqual(self.limiter.remaining("b"), 2)

	def test_window_resets(self):
		for _ in range(3):
			self.limiter.hit("a")

		self.clock.now += 59.5
		self.assertFalse(self.limiter.hit("a"))
		self.assertAlmostEqual(self.limiter.retry_after("a"), 0.5)

		self.clock.now += 0.5
		self.assertTrue(self.limiter.hit("a"))
		self.assertEqual(self.limiter.remaining("a"), 2)

	def test_retry_after_is_zero_when_allowed(self):
		self.assertEqual(self.limiter.retry_after("fresh"), 0.0)

	def test_reset_clears_key(self):
		for _ in range(3):
			self.limiter.hit("a")
		self.limiter.reset("a")
		self.assertTrue(self.limiter.hit("a"))

	def test_expired_keys_evicted_when_full(self):
		limiter = FixedWindowRateLimiter(limit=1, window_seconds=10, clock=self.clock, max_keys=2)
		limiter.hit("a")
		limiter.hit("b")

		self.clock.now += 11
		limiter.hit("c")

		self.assertEqual(set(limiter._windows), {"c"})

	def test_rejects_bad_configuration(self):
		with self.assertRaises(ValueError):
			FixedWindowRateLimiter(limit=0, window_seconds=60)
		with self.assertRaises(ValueError):
			FixedWindowRateLimiter(limit=1, window_seconds=0)
