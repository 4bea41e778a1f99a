from datetime import datetime, time, timedelta
from decimal import Decimal
from itertools import product
from types import SimpleNamespace
from unittest.mock import Mock, patch

import requests
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from bookings.models import Booking
from common.utils import Location
from providers.models import WEEKDAYS, DriverProfile
from services.exceptions import (
	InvalidTimeWindow,
	OutsideScheduledDays,
	OutsideWorkingHours,
	ProviderUnavailable,
	SchedulingConflict,
)
from services.matching.availability import (
	WeeklySchedule,
	check_availability,
	evaluate_availability,
	intervals_overlap,
)
from services.pricing import (
	SurgeInputs,
	WeatherCondition,
	calculate_surge,
	commission_rate,
	estimate,
	final_fare,
	round_money,
)
from services.pricing.demand import current_demand_ratio
from services.pricing.inputs import build_surge_inputs
from services.pricing.weather import classify_condition, get_current_condition

WORK_WEEK = frozenset(["monday", "tuesday", "wednesday", "thursday", "friday"])


def local(year, month, day, hour, minute=0):
	return timezone.make_aware(datetime(year, month, day, hour, minute))


# 2030-01-09 is a Wednesday, 2030-01-12 a Saturday
WEDNESDAY = (2030, 1, 9)
SATURDAY = (2030, 1, 12)


def provider(kind="guide", verified=True, tier="basic", base="0", per_km="0", per_minute="0"):
	return SimpleNamespace(
		kind=kind,
		is_verified=verified,
		subscription_tier=tier,
		base_rate=Decimal(base),
		per_km_rate=Decimal(per_km),
		per_minute_rate=Decimal(per_minute),
	)


class FareEstimateTests(SimpleTestCase):
	def test_reference_fare_without_surge(self):
		breakdown = estimate(300, 50, 5, 10, 30)

		self.assertEqual(breakdown.subtotal, Decimal("950.00"))
		self.assertEqual(breakdown.surge_amount, Decimal("0.00"))
		self.assertEqual(breakdown.total, Decimal("950.00"))
		self.assertEqual(breakdown.commission, Decimal("0.00"))

	def test_commission_is_taken_from_fare(self):
		breakdown = estimate(300, 50, 5, 10, 30, commission_rate=Decimal("0.10"))

		self.assertEqual(breakdown.commission, Decimal("95.00"))
		self.assertEqual(breakdown.provider_earnings, Decimal("855.00"))

	def test_ride_platform_fee_is_added_but_not_commissioned(self):
		breakdown = estimate(
			300, 50, 5, 10, 30, commission_rate=Decimal("0.05"), include_platform_fee=True
		)

		self.assertEqual(breakdown.platform_fee, Decimal("47.50"))
		self.assertEqual(breakdown.total, Decimal("997.50"))
		self.assertEqual(breakdown.commission, Decimal("47.50"))

	def test_surge_amount_uses_multiplier(self):
		inputs = SurgeInputs(at=local(*WEDNESDAY, 10), weather=WeatherCondition.RAIN)
		breakdown = estimate(300, 50, 5, 10, 30, surge_inputs=inputs)

		self.assertEqual(breakdown.surge_multiplier, Decimal("1.15"))
		self.assertEqual(breakdown.surge_amount, Decimal("142.50"))
		self.assertEqual(breakdown.total, Decimal("1092.50"))
		self.assertEqual(breakdown.surge_components[0]["type"], "weather")

	def test_rounding_is_half_up(self):
		self.assertEqual(round_money(Decimal("2.675")), Decimal("2.68"))
		self.assertEqual(round_money(2.675), Decimal("2.68"))
		self.assertEqual(round_money(Decimal("2.665")), Decimal("2.67"))

	def test_negative_inputs_are_rejected(self):
		with self.assertRaises(ValueError):
			estimate(300, 50, 5, -1, 30)


class SurgeTests(SimpleTestCase):
	def test_rush_hour_windows_are_half_open(self):
		self.assertEqual(calculate_surge(SurgeInputs(at=local(*WEDNESDAY, 7))).multiplier, Decimal("1.2"))
		self.assertEqual(calculate_surge(SurgeInputs(at=local(*WEDNESDAY, 8, 59))).multiplier, Decimal("1.2"))
		self.assertEqual(calculate_surge(SurgeInputs(at=local(*WEDNESDAY, 9))).multiplier, Decimal("1.0"))
		self.assertEqual(calculate_surge(SurgeInputs(at=local(*WEDNESDAY, 17, 30))).multiplier, Decimal("1.2"))

	def test_weekend_has_no_rush_hour(self):
		result = calculate_surge(SurgeInputs(at=local(*SATURDAY, 8)))
		self.assertEqual(result.multiplier, Decimal("1.1"))
		self.assertEqual([c.kind for c in result.components], ["weekend"])

	def test_demand_thresholds(self):
		self.assertEqual(calculate_surge(SurgeInputs(demand_ratio=0.6)).multiplier, Decimal("1.0"))
		self.assertEqual(calculate_surge(SurgeInputs(demand_ratio=0.7)).multiplier, Decimal("1.15"))
		self.assertEqual(calculate_surge(SurgeInputs(demand_ratio=0.81)).multiplier, Decimal("1.3"))

	def test_bumps_accumulate(self):
		inputs = SurgeInputs(at=local(*WEDNESDAY, 8), weather=WeatherCondition.STORM, demand_ratio=0.9)
		self.assertEqual(calculate_surge(inputs).multiplier, Decimal("1.75"))

	def test_multiplier_never_exceeds_cap(self):
		moments = [local(*WEDNESDAY, 8), local(*WEDNESDAY, 12), local(*SATURDAY, 8), None]
		weathers = [None, WeatherCondition.CLEAR, WeatherCondition.RAIN, WeatherCondition.STORM]
		ratios = [None, 0.0, 0.65, 0.95, 5.0]
		for at, weather, ratio in product(moments, weathers, ratios):
			multiplier = calculate_surge(SurgeInputs(at=at, weather=weather, demand_ratio=ratio)).multiplier
			self.assertGreaterEqual(multiplier, Decimal("1.0"))
			self.assertLessEqual(multiplier, Decimal("2.0"))

	@override_settings(MARKETPLACE={"SURGE_STORM_BUMP": Decimal("0.9"), "SURGE_HIGH_DEMAND_BUMP": Decimal("0.6")})
	def test_large_bumps_are_capped(self):
		result = calculate_surge(
			SurgeInputs(at=local(*WEDNESDAY, 8), weather=WeatherCondition.STORM, demand_ratio=0.9)
		)
		self.assertEqual(result.multiplier, Decimal("2.0"))
		self.assertTrue(result.capped)


class CommissionTests(SimpleTestCase):
	def test_rates_by_kind_and_verification(self):
		self.assertEqual(commission_rate("guide", verified=True), Decimal("0.10"))
		self.assertEqual(commission_rate("guide", verified=False), Decimal("0.15"))
		self.assertEqual(commission_rate("driver"), Decimal("0.05"))

	def test_subscription_tier_only_lowers_rate(self):
		self.assertEqual(commission_rate("guide", True, "premium"), Decimal("0.08"))
		self.assertEqual(commission_rate("guide", False, "premium"), Decimal("0.08"))
		self.assertEqual(commission_rate("driver", True, "premium"), Decimal("0.05"))
		self.assertEqual(commission_rate("guide", True, "basic"), Decimal("0.10"))

	def test_unknown_kind(self):
		with self.assertRaises(ValueError):
			commission_rate("pilot")


class FinalFareTests(SimpleTestCase):
	def test_non_ride_keeps_total_and_recomputes_commission(self):
		guide = provider("guide", base="1000")
		fare = final_fare([guide], Decimal("1000.00"), Decimal("1.0"), actual_distance_km=50)

		self.assertEqual(fare.final, Decimal("1000.00"))
		self.assertEqual(fare.variance, Decimal("0.00"))
		self.assertEqual(fare.commission, Decimal("100.00"))

	def test_combined_booking_splits_commission_per_provider(self):
		guide = provider("guide", base="1000")
		driver = provider("driver", base="500")
		fare = final_fare(
			[guide, driver], Decimal("1500.00"), Decimal("1.0"),
			estimated_fares={"guide": Decimal("1000.00"), "driver": Decimal("500.00")},
		)
		# 10% of 1000 + 5% of 500
		self.assertEqual(fare.commission, Decimal("125.00"))

	def test_ride_is_repriced_from_actuals(self):
		driver = provider("driver", base="100", per_km="50", per_minute="2")
		# estimate: 100 + 10*50 + 20*2 = 640, +5% fee = 672
		fare = final_fare(
			[driver], Decimal("672.00"), Decimal("1.0"),
			actual_distance_km=12, actual_duration_minutes=25, is_ride=True,
		)

		self.assertEqual(fare.final, Decimal("787.50"))
		self.assertEqual(fare.variance, Decimal("115.50"))
		self.assertEqual(fare.variance_percentage, Decimal("17.19"))
		self.assertEqual(fare.commission, Decimal("37.50"))
		self.assertEqual(fare.platform_fee, Decimal("37.50"))

	def test_ride_reprice_keeps_locked_surge(self):
		driver = provider("driver", base="100")
		fare = final_fare(
			[driver], Decimal("157.50"), Decimal("1.5"),
			actual_distance_km=0, actual_duration_minutes=0, is_ride=True,
		)
		self.assertEqual(fare.final, Decimal("157.50"))
		self.assertEqual(fare.variance, Decimal("0.00"))


class AvailabilityTests(SimpleTestCase):
	def setUp(self):
		self.provider = SimpleNamespace(
			is_online=True,
			schedule=WeeklySchedule(WORK_WEEK, time(8), time(18)),
		)

	def test_available_inside_schedule(self):
		check_availability(self.provider, local(*WEDNESDAY, 10), local(*WEDNESDAY, 12), [])
		check_availability(self.provider, local(*WEDNESDAY, 8), local(*WEDNESDAY, 18), [])

	def test_offline_provider(self):
		self.provider.is_online = False
		with self.assertRaises(ProviderUnavailable):
			check_availability(self.provider, local(*WEDNESDAY, 10), local(*WEDNESDAY, 12), [])

	def test_day_outside_schedule(self):
		with self.assertRaises(OutsideScheduledDays):
			check_availability(self.provider, local(*SATURDAY, 10), local(*SATURDAY, 12), [])

	def test_hours_outside_schedule(self):
		with self.assertRaises(OutsideWorkingHours):
			check_availability(self.provider, local(*WEDNESDAY, 17), local(*WEDNESDAY, 19), [])
		with self.assertRaises(OutsideWorkingHours):
			check_availability(self.provider, local(*WEDNESDAY, 7), local(*WEDNESDAY, 9), [])

	def test_overlap_is_half_open(self):
		busy = [(local(*WEDNESDAY, 12), local(*WEDNESDAY, 14))]
		check_availability(self.provider, local(*WEDNESDAY, 10), local(*WEDNESDAY, 12), busy)
		check_availability(self.provider, local(*WEDNESDAY, 14), local(*WEDNESDAY, 16), busy)
		with self.assertRaises(SchedulingConflict):
			check_availability(self.provider, local(*WEDNESDAY, 13), local(*WEDNESDAY, 15), busy)
		self.assertFalse(intervals_overlap(1, 2, 2, 3))
		self.assertTrue(intervals_overlap(1, 3, 2, 4))

	def test_checks_run_in_order(self):
		self.provider.is_online = False
		busy = [(local(*SATURDAY, 10), local(*SATURDAY, 12))]
		result = evaluate_availability(self.provider, local(*SATURDAY, 10), local(*SATURDAY, 12), busy)
		self.assertFalse(result.available)
		self.assertEqual(result.reason, "provider_unavailable")

	def test_malformed_windows(self):
		start = local(*WEDNESDAY, 10)
		with self.assertRaises(InvalidTimeWindow):
			check_availability(self.provider, start, start, [])
		with self.assertRaises(InvalidTimeWindow):
			check_availability(self.provider, start, start - timedelta(hours=1), [])
		with self.assertRaises(InvalidTimeWindow):
			check_availability(self.provider, datetime(2030, 1, 9, 10), datetime(2030, 1, 9, 12), [])


@override_settings(MARKETPLACE={"WEATHER_API_KEY": "test-key"})
class WeatherLookupTests(SimpleTestCase):
	def setUp(self):
		from django.core.cache import cache
		cache.clear()
		self.location = Location(6.9271, 79.8612)

	def response(self, main):
		response = Mock()
		response.json.return_value = {"weather": [{"main": main}]}
		response.raise_for_status.return_value = None
		return response

	@patch("services.pricing.weather.requests.get")
	def test_condition_is_classified_and_cached(self, get):
		get.return_value = self.response("Thunderstorm")

		self.assertEqual(get_current_condition(self.location), WeatherCondition.STORM)
		self.assertEqual(get_current_condition(self.location), WeatherCondition.STORM)
		get.assert_called_once()

	@patch("services.pricing.weather.requests.get")
	def test_failure_means_no_weather_bump(self, get):
		get.side_effect = requests.ConnectionError("down")
		self.assertIsNone(get_current_condition(self.location))

	@patch("services.pricing.weather.requests.get")
	def test_malformed_payload(self, get):
		response = Mock()
		response.json.return_value = {"weather": []}
		get.return_value = response
		self.assertIsNone(get_current_condition(self.location))

	@override_settings(MARKETPLACE={"WEATHER_API_KEY": ""})
	@patch("services.pricing.weather.requests.get")
	def test_no_key_skips_lookup(self, get):
		self.assertIsNone(get_current_condition(self.location))
		get.assert_not_called()

	@patch("services.pricing.weather.requests.get")
	@patch("services.pricing.weather.cache")
	def test_cache_outage_still_prices(self, cache, get):
		cache.get.side_effect = ConnectionError("redis down")
		cache.set.side_effect = ConnectionError("redis down")
		get.return_value = self.response("Rain")

		self.assertEqual(get_current_condition(self.location), WeatherCondition.RAIN)

	@patch("services.pricing.weather.requests.get")
	@patch("services.pricing.weather.cache")
	def test_cache_and_api_outage_means_no_weather_bump(self, cache, get):
		cache.get.side_effect = ConnectionError("redis down")
		get.side_effect = requests.Timeout("slow")
		now = local(*WEDNESDAY, 11)

		inputs = build_surge_inputs(now, self.location, None)
		self.assertIsNone(inputs.weather)
		self.assertEqual(inputs.at, now)

	@patch("services.pricing.inputs.get_current_condition")
	def test_unexpected_lookup_error_is_swallowed(self, lookup):
		lookup.side_effect = RuntimeError("boom")
		inputs = build_surge_inputs(local(*WEDNESDAY, 11), self.location, None)
		self.assertIsNone(inputs.weather)
		self.assertEqual(calculate_surge(inputs).multiplier, Decimal("1.0"))

	def test_classification(self):
		self.assertEqual(classify_condition("Drizzle"), WeatherCondition.RAIN)
		self.assertEqual(classify_condition("Clouds"), WeatherCondition.CLEAR)


class DemandRatioTests(TestCase):
	def setUp(self):
		from accounts.models import User

		self.drivers = []
		for i in range(4):
			user = User.objects.create_user(username=f"driver_{i}", password="pass1234", role="driver")
			self.drivers.append(DriverProfile.objects.create(
				user=user,
				available_days=list(WEEKDAYS),
				working_hours_start=time(0),
				working_hours_end=time(23, 59),
				is_online=True,
				vehicle_number=f"WP-{i}",
			))
		self.requester = User.objects.create_user(username="traveler", password="pass1234")

	def occupy(self, driver, status, start, end):
		return Booking.objects.create(
			booking_reference=f"R-DEMAND{driver.pk:02d}",
			requester=self.requester,
			driver=driver,
			booking_type="ride",
			start=start,
			end=end,
			duration_minutes=int((end - start).total_seconds() // 60),
			pickup_latitude=Decimal("6.927100"),
			pickup_longitude=Decimal("79.861200"),
			total_amount=Decimal("500.00"),
			status=status,
		)

	def test_ratio_of_engaged_online_drivers(self):
		now = local(*WEDNESDAY, 10)
		self.occupy(self.drivers[0], "in_progress", now - timedelta(minutes=10), now + timedelta(minutes=20))
		self.occupy(self.drivers[1], "confirmed", now - timedelta(minutes=5), now + timedelta(minutes=25))
		self.occupy(self.drivers[2], "confirmed", now + timedelta(hours=3), now + timedelta(hours=4))

		self.assertEqual(current_demand_ratio("driver", now=now), 0.5)

	def test_nobody_online_means_no_signal(self):
		DriverProfile.objects.update(is_online=False)
		self.assertIsNone(current_demand_ratio("driver"))
