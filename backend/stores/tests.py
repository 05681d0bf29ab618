from datetime import datetime, timezone as dt_timezone
from zoneinfo import ZoneInfo

from django.test import SimpleTestCase, TestCase
from rest_framework.test import APIRequestFactory

from accounts.models import User
from stores.availability import (
	DEFAULT_HOURS,
	REASON_DAY_CLOSED,
	REASON_MANUAL_CLOSED,
	REASON_OPEN,
	REASON_OUTSIDE_HOURS,
	evaluate,
	find_next_open,
	format_today_hours,
	normalize_schedule,
)
from stores.models import Store
from stores.views import StoreAvailabilityView

# 2024-01-01 is a Monday
MONDAY = datetime(2024, 1, 1)


def at(day_offset, hhmm):
	hour, minute = (int(part) for part in hhmm.split(":"))
	return MONDAY.replace(day=1 + day_offset, hour=hour, minute=minute)


def closed_week(**days):
	schedule = {key: {"enabled": False} for key in DEFAULT_HOURS}
	schedule.update(days)
	return schedule


class ManualToggleTests(SimpleTestCase):
	def test_manual_closed_wins_over_any_schedule(self):
		for schedule in (None, {}, closed_week(monday={"enabled": True, "open": "00:00", "close": "23:59"})):
			status = evaluate(False, schedule, at(0, "12:00"))
			self.assertFalse(status.is_open)
			self.assertEqual(status.reason, REASON_MANUAL_CLOSED)
			self.assertIsNone(status.next_open_description)

	def test_no_schedule_means_open(self):
		status = evaluate(True, None, at(6, "03:00"))
		self.assertTrue(status.is_open)
		self.assertEqual(status.reason, REASON_OPEN)


class OpeningWindowTests(SimpleTestCase):
	def test_window_is_half_open(self):
		schedule = {"monday": {"enabled": True, "open": "08:00", "close": "18:00"}}

		self.assertFalse(evaluate(True, schedule, at(0, "07:59")).is_open)
		self.assertTrue(evaluate(True, schedule, at(0, "08:00")).is_open)
		self.assertTrue(evaluate(True, schedule, at(0, "17:59")).is_open)

		closing = evaluate(True, schedule, at(0, "18:00"))
		self.assertFalse(closing.is_open)
		self.assertEqual(closing.reason, REASON_OUTSIDE_HOURS)

	def test_before_opening_reports_today(self):
		status = evaluate(True, DEFAULT_HOURS, at(0, "07:59"))
		self.assertEqual(status.next_open_description, "Opens today at 08:00")
		self.assertEqual(status.active_day, DEFAULT_HOURS["monday"])

	def test_after_closing_reports_tomorrow(self):
		status = evaluate(True, DEFAULT_HOURS, at(0, "18:00"))
		self.assertEqual(status.next_open_description, "Opens tomorrow at 08:00")

	def test_overnight_window(self):
		schedule = closed_week(monday={"enabled": True, "open": "22:00", "close": "02:00"})

		self.assertTrue(evaluate(True, schedule, at(0, "23:30")).is_open)
		self.assertTrue(evaluate(True, schedule, at(0, "01:00")).is_open)

		morning = evaluate(True, schedule, at(0, "10:00"))
		self.assertFalse(morning.is_open)
		self.assertEqual(morning.reason, REASON_OUTSIDE_HOURS)
		self.assertEqual(morning.next_open_description, "Opens today at 22:00")

	def test_disabled_day(self):
		status = evaluate(True, DEFAULT_HOURS, at(6, "10:00"))
		self.assertFalse(status.is_open)
		self.assertEqual(status.reason, REASON_DAY_CLOSED)
		self.assertEqual(status.next_open_description, "Opens tomorrow at 08:00")

	def test_next_open_skips_disabled_days(self):
		# Saturday after closing; Sunday is disabled
		status = evaluate(True, DEFAULT_HOURS, at(5, "15:00"))
		self.assertEqual(status.next_open_description, "Opens Monday at 08:00")

	def test_single_open_weekday_wraps_to_next_week(self):
		schedule = closed_week(wednesday={"enabled": True, "open": "09:00", "close": "17:00"})
		status = evaluate(True, schedule, at(2, "20:00"))
		self.assertEqual(status.next_open_description, "Opens Wednesday at 09:00")

	def test_no_enabled_day(self):
		status = evaluate(True, closed_week(), at(0, "10:00"))
		self.assertEqual(status.reason, REASON_DAY_CLOSED)
		self.assertIsNone(status.next_open_description)
		self.assertIsNone(find_next_open(normalize_schedule(closed_week()), 0))

	def test_aware_now_is_converted_to_store_time(self):
		tz = ZoneInfo("America/Sao_Paulo")
		# 11:30 UTC is 08:30 in Sao Paulo
		opened = evaluate(True, DEFAULT_HOURS, datetime(2024, 1, 1, 11, 30, tzinfo=dt_timezone.utc), tz=tz)
		self.assertTrue(opened.is_open)

		early = evaluate(True, DEFAULT_HOURS, datetime(2024, 1, 1, 10, 30, tzinfo=dt_timezone.utc), tz=tz)
		self.assertFalse(early.is_open)
		self.assertEqual(early.next_open_description, "Opens today at 08:00")


class ScheduleNormalizationTests(SimpleTestCase):
	def test_partial_schedule_is_merged_with_defaults(self):
		schedule = normalize_schedule({"monday": {"open": "9:30"}, "sunday": {"enabled": True}})

		self.assertEqual(schedule["monday"].open, "09:30")
		self.assertEqual(schedule["monday"].close, "18:00")
		self.assertTrue(schedule["sunday"].enabled)
		self.assertEqual(schedule["sunday"].open, "08:00")
		self.assertEqual(schedule["tuesday"], DEFAULT_HOURS["tuesday"])

	def test_malformed_times_fall_back_per_field(self):
		schedule = normalize_schedule({"friday": {"enabled": True, "open": "25:00", "close": 17}})
		self.assertEqual(schedule["friday"].open, "08:00")
		self.assertEqual(schedule["friday"].close, "18:00")

	def test_non_mapping_uses_defaults(self):
		self.assertEqual(normalize_schedule("nonsense"), DEFAULT_HOURS)

	def test_format_today_hours(self):
		self.assertEqual(format_today_hours(DEFAULT_HOURS, at(0, "10:00")), "08:00 - 18:00")
		self.assertEqual(format_today_hours(DEFAULT_HOURS, at(6, "10:00")), "Closed today")
		self.assertIsNone(format_today_hours(None, at(0, "10:00")))


class StoreAvailabilityViewTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.owner = User.objects.create_user(username='owner', password='pass1234', role='store_owner')
		self.store = Store.objects.create(
			name='Corner Bakery',
			owner=self.owner,
			opening_hours={key: value.as_dict() for key, value in DEFAULT_HOURS.items()},
			timezone='America/Sao_Paulo',
		)

	def get(self, **params):
		request = self.factory.get('/api/stores/%s/availability/' % self.store.id, params)
		return StoreAvailabilityView.as_view()(request, store_id=self.store.id)

	def test_open_store(self):
		response = self.get(at='2024-01-01T12:00:00Z')

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['is_open'])
		self.assertEqual(response.data['reason'], 'open')
		self.assertEqual(response.data['today_hours'], '08:00 - 18:00')
		self.assertEqual(response.data['current_day_hours'], {'enabled': True, 'open': '08:00', 'close': '18:00'})

	def test_manually_closed_store(self):
		self.store.is_open = False
		self.store.save()

		response = self.get(at='2024-01-01T12:00:00Z')

		self.assertFalse(response.data['is_open'])
		self.assertEqual(response.data['reason'], 'manual_closed')

	def test_model_shortcut_uses_store_timezone(self):
		# 22:30 UTC on Monday is 19:30 in Sao Paulo
		status = self.store.availability(datetime(2024, 1, 1, 22, 30, tzinfo=dt_timezone.utc))
		self.assertFalse(status.is_open)
		self.assertEqual(status.next_open_description, 'Opens tomorrow at 08:00')

	def test_bad_at_parameter(self):
		response = self.get(at='not-a-date')
		self.assertEqual(response.status_code, 400)
